"""Shared connection mode and missing-table bookkeeping."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Callable

logger = logging.getLogger(__name__)

StatusListener = Callable[[bool], None]


@dataclass
class ConnectionState:
    """Online/offline mode plus the tables known to be unavailable remotely.

    One instance is owned by a DataLayer and handed by reference to anything
    that needs to observe it (e.g. a status indicator).
    """

    online: bool | None = None
    missing_tables: set[str] = field(default_factory=set)
    _listeners: list[StatusListener] = field(default_factory=list, repr=False)

    @property
    def is_online(self) -> bool:
        return bool(self.online)

    def is_missing(self, table: str) -> bool:
        return table in self.missing_tables

    def mark_missing(self, table: str) -> None:
        if table not in self.missing_tables:
            logger.warning("Table '%s' is not available remotely, using local storage", table)
        self.missing_tables.add(table)

    def mark_present(self, table: str) -> None:
        self.missing_tables.discard(table)

    def reset(self) -> None:
        self.online = None
        self.missing_tables.clear()

    def add_listener(self, listener: StatusListener) -> None:
        """Register a callback invoked with the current mode on every status change."""
        self._listeners.append(listener)

    def remove_listener(self, listener: StatusListener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    def notify(self) -> None:
        online = self.is_online
        for listener in list(self._listeners):
            try:
                listener(online)
            except Exception:
                logger.exception("Connection status listener failed")
