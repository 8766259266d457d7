"""Retry policy for remote operations."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Awaitable, Callable, TypeVar

from .errors import RemoteError, RetryExhausted

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass
class RetryPolicy:
    """Run an async attempt up to ``1 + retries`` times with linear backoff.

    The n-th retry waits ``base_delay * n`` seconds. Only exceptions listed in
    ``retry_on`` are retried; anything else propagates unchanged. The policy
    holds no connection state: callers decide what exhaustion means.
    """

    retries: int = 3
    base_delay: float = 1.0
    retry_on: tuple[type[BaseException], ...] = (RemoteError,)

    def delay_for(self, retry_number: int) -> float:
        return self.base_delay * retry_number

    async def run(
        self,
        attempt: Callable[[], Awaitable[T]],
        *,
        should_retry: Callable[[], bool] = lambda: True,
        label: str = "operation",
    ) -> T:
        """Return the first successful result or raise RetryExhausted."""
        attempts = 0
        while True:
            attempts += 1
            try:
                return await attempt()
            except self.retry_on as exc:
                retry_number = attempts
                if retry_number > self.retries or not should_retry():
                    raise RetryExhausted(attempts, exc) from exc

                delay = self.delay_for(retry_number)
                logger.warning(
                    "Operation %s failed (%s), retry %d/%d in %.1fs",
                    label, exc, retry_number, self.retries, delay,
                )
                if delay > 0:
                    await asyncio.sleep(delay)
