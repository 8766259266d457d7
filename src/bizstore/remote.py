"""Remote table store client - PostgREST (Supabase) over httpx.

All failures leave this module as RemoteError with a RemoteErrorKind, so the
data layer never has to inspect messages or status codes itself.
"""

from __future__ import annotations

import logging
import re
from typing import Any, Iterable, Mapping, Protocol

import httpx

from .config import BizStoreSettings
from .errors import RecordNotFoundError, RemoteError, RemoteErrorKind
from .query import RANGE_OPERATORS, Query

logger = logging.getLogger(__name__)

# Postgres "undefined_table" and PostgREST "table not in schema cache"
TABLE_MISSING_CODES = {"42P01", "PGRST205"}
# Only consulted when the body carries no error code
TABLE_MISSING_MARKERS = (r"relation \S+ does not exist", r"could not find the table")


class RemoteStore(Protocol):
    """What the data layer needs from a remote table store."""

    @property
    def connected(self) -> bool: ...

    async def ping(self) -> None: ...

    async def connect(self) -> None: ...

    async def close(self) -> None: ...

    async def select(
        self, table: str, query: Query | None = None, columns: str = "*"
    ) -> list[dict[str, Any]]: ...

    async def insert(self, table: str, rows: list[dict[str, Any]]) -> list[dict[str, Any]]: ...

    async def update(self, table: str, record_id: str, changes: dict[str, Any]) -> dict[str, Any]: ...

    async def delete(self, table: str, record_id: str) -> None: ...

    async def delete_where(self, table: str, query: Query) -> None: ...

    async def search(
        self, table: str, fields: Iterable[str], term: str, limit: int = 10
    ) -> list[dict[str, Any]]: ...


def classify_error(
    message: str,
    status_code: int | None = None,
    body: dict | None = None,
) -> RemoteError:
    """Turn an error response into a RemoteError of the right kind."""
    code = None
    if isinstance(body, dict):
        code = body.get("code")
        message = body.get("message") or message

    text = (message or "").lower()
    if code:
        missing = code in TABLE_MISSING_CODES
    else:
        missing = any(re.search(marker, text) for marker in TABLE_MISSING_MARKERS)

    if missing:
        kind = RemoteErrorKind.TABLE_MISSING
    else:
        kind = RemoteErrorKind.TRANSIENT

    return RemoteError(message, kind=kind, status_code=status_code, code=code, response=body)


def _format_value(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def _format_list_item(value: Any) -> str:
    text = _format_value(value)
    if any(ch in text for ch in ',()"'):
        escaped = text.replace('"', '\\"')
        return f'"{escaped}"'
    return text


def build_params(query: Query | None, columns: str = "*") -> list[tuple[str, str]]:
    """Encode a Query as PostgREST query-string parameters."""
    params: list[tuple[str, str]] = []
    if columns:
        params.append(("select", columns))
    if query is None:
        return params

    params.extend(build_filters(query))

    if query.order_by:
        direction = "asc" if query.ascending else "desc"
        params.append(("order", f"{query.order_by}.{direction}"))
    if query.limit:
        params.append(("limit", str(query.limit)))
    if query.offset:
        params.append(("offset", str(query.offset)))
    return params


def build_filters(query: Query) -> list[tuple[str, str]]:
    filters: list[tuple[str, str]] = []
    for column, value in query.conditions():
        if isinstance(value, (list, tuple, set, frozenset)):
            items = ",".join(_format_list_item(v) for v in value)
            filters.append((column, f"in.({items})"))
        elif isinstance(value, Mapping):
            for op_name, bound in value.items():
                if op_name not in RANGE_OPERATORS:
                    raise ValueError(f"Unsupported filter operator: {op_name}")
                if bound is not None:
                    filters.append((column, f"{op_name}.{_format_value(bound)}"))
        else:
            filters.append((column, f"eq.{_format_value(value)}"))
    return filters


class PostgrestClient:
    """Table-oriented client for a Supabase/PostgREST endpoint.

    Usage:
        client = PostgrestClient.from_settings(settings)
        await client.ping()
        await client.connect()
        rows = await client.select("employees", Query(where={"status": "active"}))
    """

    def __init__(
        self,
        url: str,
        api_key: str,
        timeout: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.url = url.rstrip("/")
        self.api_key = api_key
        self.timeout = timeout
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    @classmethod
    def from_settings(
        cls,
        settings: BizStoreSettings,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> "PostgrestClient":
        return cls(
            settings.supabase_url,
            settings.supabase_key,
            timeout=settings.request_timeout,
            transport=transport,
        )

    @property
    def rest_url(self) -> str:
        return f"{self.url}/rest/v1"

    @property
    def connected(self) -> bool:
        return self._client is not None

    def _headers(self) -> dict[str, str]:
        return {
            "apikey": self.api_key,
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
            "Accept": "application/json",
        }

    async def __aenter__(self) -> "PostgrestClient":
        await self.connect()
        return self

    async def __aexit__(self, *args):
        await self.close()

    async def ping(self) -> None:
        """Check that the REST endpoint answers at all."""
        if not self.url or not self.api_key:
            raise RemoteError("Remote store URL or key not configured")

        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as probe:
                response = await probe.head(f"{self.rest_url}/", headers=self._headers())
        except httpx.HTTPError as e:
            raise RemoteError(f"Connectivity test failed: {e}") from e

        if response.status_code >= 400:
            raise RemoteError(
                f"Connectivity test failed: HTTP {response.status_code}",
                status_code=response.status_code,
            )

    async def connect(self) -> None:
        if self._client is not None:
            return
        if not self.url or not self.api_key:
            raise RemoteError("Remote store URL or key not configured")
        self._client = httpx.AsyncClient(
            base_url=self.rest_url,
            headers=self._headers(),
            timeout=self.timeout,
            transport=self._transport,
        )

    async def close(self) -> None:
        """Close the HTTP client."""
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    async def _request(
        self,
        method: str,
        path: str,
        params: list[tuple[str, str]] | None = None,
        json: Any = None,
        prefer: str | None = None,
    ) -> Any:
        """Make a request and translate failures into RemoteError."""
        if self._client is None:
            raise RemoteError("Remote client not connected")

        headers = {"Prefer": prefer} if prefer else None
        try:
            response = await self._client.request(
                method=method,
                url=path,
                params=params,
                json=json,
                headers=headers,
            )
        except httpx.HTTPError as e:
            raise RemoteError(f"Network error: {e}") from e

        logger.debug("%s %s -> %s", method, path, response.status_code)

        if response.status_code >= 400:
            body = None
            try:
                body = response.json() if response.content else None
            except ValueError:
                pass
            raise classify_error(
                f"API error: {response.status_code} {response.text[:200]}",
                response.status_code,
                body,
            )

        if not response.content:
            return None
        try:
            return response.json()
        except ValueError as e:
            raise RemoteError(
                f"Invalid JSON in response: {response.text[:200]}",
                status_code=response.status_code,
            ) from e

    async def select(
        self, table: str, query: Query | None = None, columns: str = "*"
    ) -> list[dict[str, Any]]:
        data = await self._request("GET", f"/{table}", params=build_params(query, columns))
        return data or []

    async def insert(self, table: str, rows: list[dict[str, Any]]) -> list[dict[str, Any]]:
        data = await self._request(
            "POST", f"/{table}", json=rows, prefer="return=representation"
        )
        return data or []

    async def update(self, table: str, record_id: str, changes: dict[str, Any]) -> dict[str, Any]:
        data = await self._request(
            "PATCH",
            f"/{table}",
            params=[("id", f"eq.{record_id}")],
            json=changes,
            prefer="return=representation",
        )
        if not data:
            raise RecordNotFoundError(table, record_id)
        return data[0]

    async def delete(self, table: str, record_id: str) -> None:
        await self._request("DELETE", f"/{table}", params=[("id", f"eq.{record_id}")])

    async def delete_where(self, table: str, query: Query) -> None:
        filters = build_filters(query)
        if not filters:
            raise ValueError("Refusing to delete without a filter")
        await self._request("DELETE", f"/{table}", params=filters)

    async def search(
        self, table: str, fields: Iterable[str], term: str, limit: int = 10
    ) -> list[dict[str, Any]]:
        """Case-insensitive substring match on any of ``fields``."""
        cleaned = "".join(ch for ch in term if ch not in ',()*"')
        clauses = ",".join(f"{f}.ilike.*{cleaned}*" for f in fields)
        params = [("select", "*"), ("or", f"({clauses})"), ("limit", str(limit))]
        data = await self._request("GET", f"/{table}", params=params)
        return data or []
