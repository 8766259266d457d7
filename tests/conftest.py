"""Shared test fixtures for the bizstore test suite."""

import logging
from itertools import count
from typing import Any, Callable

import pytest

from bizstore.config import BizStoreSettings
from bizstore.errors import RecordNotFoundError, RemoteError, RemoteErrorKind
from bizstore.layer import DataLayer
from bizstore.local import MemoryStore
from bizstore.query import Query, apply_query, matches
from bizstore.retry import RetryPolicy
from bizstore.tables import TABLE_NAMES

SAMPLE_EMPLOYEE_ID = "EMP0001"
SAMPLE_CUSTOMER_ID = "CUST0001"


def table_missing_error(table: str) -> RemoteError:
    return RemoteError(
        f'relation "public.{table}" does not exist',
        kind=RemoteErrorKind.TABLE_MISSING,
        status_code=404,
        code="42P01",
    )


def transient_error(message: str = "upstream timeout") -> RemoteError:
    return RemoteError(message, status_code=503)


class FakeRemote:
    """In-memory RemoteStore with scriptable failures.

    Tables not listed in ``tables`` answer like a database without them.
    ``failures`` are raised one per call, in order; ``fail_always`` on every
    call; ``reject`` raises RuntimeError for rows it returns True for.
    """

    def __init__(self, tables=None, *, reachable: bool = True):
        self.tables: dict[str, list[dict[str, Any]]] = {
            name: [] for name in (TABLE_NAMES if tables is None else tables)
        }
        self.reachable = reachable
        self.connected = False
        self.failures: list[Exception] = []
        self.fail_always: Exception | None = None
        self.reject: Callable[[dict[str, Any]], bool] | None = None
        self.calls: list[tuple[str, str]] = []
        self._ids = count(1)

    def _check(self, op: str, table: str) -> None:
        self.calls.append((op, table))
        if self.fail_always is not None:
            raise self.fail_always
        if self.failures:
            raise self.failures.pop(0)
        if table not in self.tables:
            raise table_missing_error(table)

    def calls_for(self, op: str, table: str | None = None) -> int:
        return sum(1 for o, t in self.calls if o == op and (table is None or t == table))

    async def ping(self) -> None:
        if not self.reachable:
            raise RemoteError("Connectivity test failed: connection refused")

    async def connect(self) -> None:
        self.connected = True

    async def close(self) -> None:
        self.connected = False

    async def select(self, table: str, query: Query | None = None, columns: str = "*"):
        self._check("select", table)
        return apply_query([dict(r) for r in self.tables[table]], query or Query())

    async def insert(self, table: str, rows: list[dict[str, Any]]):
        self._check("insert", table)
        if self.reject is not None and any(self.reject(row) for row in rows):
            raise RuntimeError("row rejected")
        stored = []
        for row in rows:
            record = dict(row)
            record.setdefault("id", f"srv_{next(self._ids)}")
            self.tables[table].append(record)
            stored.append(dict(record))
        return stored

    async def update(self, table: str, record_id: str, changes: dict[str, Any]):
        self._check("update", table)
        for record in self.tables[table]:
            if record.get("id") == record_id:
                record.update(changes)
                return dict(record)
        raise RecordNotFoundError(table, record_id)

    async def delete(self, table: str, record_id: str) -> None:
        self._check("delete", table)
        self.tables[table] = [r for r in self.tables[table] if r.get("id") != record_id]

    async def delete_where(self, table: str, query: Query) -> None:
        self._check("delete_where", table)
        self.tables[table] = [r for r in self.tables[table] if not matches(r, query)]

    async def search(self, table: str, fields, term: str, limit: int = 10):
        self._check("search", table)
        needle = term.lower()
        found = [
            dict(r) for r in self.tables[table]
            if any(needle in str(r.get(f) or "").lower() for f in fields)
        ]
        return found[:limit]


@pytest.fixture(autouse=True)
def reset_package_logger():
    """The CLI reconfigures the package logger; undo that between tests."""
    yield
    pkg_logger = logging.getLogger("bizstore")
    pkg_logger.handlers.clear()
    pkg_logger.setLevel(logging.NOTSET)
    pkg_logger.propagate = True


@pytest.fixture
def test_settings(tmp_path):
    return BizStoreSettings(
        supabase_url="https://example.supabase.co",
        supabase_key="test-key",
        local_store_dir=str(tmp_path / "cache"),
        retry_base_delay=0,
    )


@pytest.fixture
def remote():
    return FakeRemote()


@pytest.fixture
def store():
    return MemoryStore()


@pytest.fixture
def make_layer(test_settings, store):
    """Build a DataLayer over a MemoryStore with no retry delays."""

    def _make(remote=None, settings=None, **kwargs) -> DataLayer:
        return DataLayer(
            settings or test_settings,
            remote=remote if remote is not None else FakeRemote(),
            store=kwargs.pop("store", store),
            retry=kwargs.pop("retry", RetryPolicy(retries=3, base_delay=0)),
            **kwargs,
        )

    return _make


@pytest.fixture
def layer(make_layer, remote):
    return make_layer(remote)
