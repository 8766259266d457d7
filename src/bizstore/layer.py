"""Offline-first data access layer.

Every operation is routed either to the remote store or to the local cache:

- online, table available remotely -> remote, with retries
- remote says the table does not exist -> mark it missing, serve locally now
- retries exhausted -> switch the whole layer offline, serve locally
- offline or table known missing -> local only

Usage:
    async with DataLayer() as db:
        employee = await db.create("employees", {"name": "Asha"})
        active = await db.employees.list({"status": "active"})
"""

from __future__ import annotations

import asyncio
import logging
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any, Awaitable, Callable, Iterable, Mapping, TypeVar

from . import backup as backup_io
from .accessors import ProductsAPI, TableAPI
from .config import BizStoreSettings
from .config import settings as default_settings
from .errors import RemoteError, RetryExhausted
from .local import JsonFileStore, KeyValueStore, LocalCache
from .query import Query
from .records import prepare_changes, prepare_new_record
from .remote import PostgrestClient, RemoteStore
from .reports import Reports
from .retry import RetryPolicy
from .state import ConnectionState
from .tables import TABLE_NAMES, Table, sanitize, validate_table

logger = logging.getLogger(__name__)

T = TypeVar("T")

PendingOperation = Callable[[], Awaitable[Any]]

CUSTOMER_SEARCH_FIELDS = ("name", "phone", "email")

# Tables pruned by cleanup_old_data and the date column that ages them
RETENTION_COLUMNS = {
    Table.ATTENDANCE.value: "attendance_date",
    Table.SALARY_RECORDS.value: "record_date",
}


@dataclass
class TableSyncStats:
    """Per-table outcome of pushing cached records to the remote store."""

    pushed: int = 0
    skipped: int = 0
    failed: int = 0


@dataclass
class SyncReport:
    tables: dict[str, TableSyncStats] = field(default_factory=dict)

    @property
    def pushed(self) -> int:
        return sum(s.pushed for s in self.tables.values())

    @property
    def failed(self) -> int:
        return sum(s.failed for s in self.tables.values())


class DataLayer:
    """Remote-first CRUD with a local cache fallback for every registry table."""

    def __init__(
        self,
        settings: BizStoreSettings | None = None,
        *,
        remote: RemoteStore | None = None,
        store: KeyValueStore | None = None,
        retry: RetryPolicy | None = None,
        state: ConnectionState | None = None,
    ):
        self.settings = settings or default_settings
        self.remote: RemoteStore = remote if remote is not None else PostgrestClient.from_settings(self.settings)
        self.local = LocalCache(store if store is not None else JsonFileStore(self.settings.cache_dir))
        self.retry = retry or RetryPolicy(
            retries=self.settings.max_retries,
            base_delay=self.settings.retry_base_delay,
        )
        self.state = state or ConnectionState()
        self.initialized = False
        self._pending: deque[PendingOperation] = deque()
        self._init_lock = asyncio.Lock()

        self.local.ensure_tables(TABLE_NAMES)

        # Per-table shortcuts
        self.users = TableAPI(self, Table.USERS)
        self.employees = TableAPI(self, Table.EMPLOYEES)
        self.customers = TableAPI(self, Table.CUSTOMERS)
        self.bills = TableAPI(self, Table.BILLS)
        self.payments = TableAPI(self, Table.PAYMENTS)
        self.salary_records = TableAPI(self, Table.SALARY_RECORDS)
        self.yearly_allocations = TableAPI(self, Table.YEARLY_ALLOCATIONS)
        self.advance_payments = TableAPI(self, Table.ADVANCE_PAYMENTS)
        self.family_groups = TableAPI(self, Table.FAMILY_GROUPS)
        self.attendance = TableAPI(self, Table.ATTENDANCE)
        self.simple_advances = TableAPI(self, Table.SIMPLE_ADVANCES)
        self.salary_payments = TableAPI(self, Table.SALARY_PAYMENTS)
        self.products = ProductsAPI(self, Table.PRODUCTS)
        self.advance_records = TableAPI(self, Table.ADVANCE_RECORDS)

        self.reports = Reports(self)

    async def __aenter__(self) -> "DataLayer":
        return await self.initialize()

    async def __aexit__(self, *args):
        await self.close()

    # ==================== LIFECYCLE ====================

    async def initialize(self) -> "DataLayer":
        """Connect, probe tables, push cached records, drain pending operations.

        Safe to call repeatedly; only the first call does any work.
        """
        async with self._init_lock:
            if self.initialized:
                logger.debug("Data layer already initialized")
                return self

            logger.info("Initializing data layer")
            self.state.reset()

            if await self._connect_remote():
                self._set_online()
                await self._verify_connection()
                await self.check_all_tables()
                await self.sync_local_data()
            else:
                self.state.online = False

            self.initialized = True
            await self._process_pending()
            self.state.notify()

            logger.info(
                "Data layer ready (mode: %s, missing tables: %s)",
                "online" if self.state.is_online else "offline",
                sorted(self.state.missing_tables) or "none",
            )
        return self

    async def _connect_remote(self) -> bool:
        try:
            await self.remote.ping()
        except RemoteError as e:
            logger.warning("Remote store unreachable, using local storage: %s", e)
            return False

        try:
            await self.remote.connect()
        except RemoteError as e:
            logger.warning("Could not create remote client, using local storage: %s", e)
            return False
        return True

    def _set_online(self) -> None:
        self.state.online = True
        self.state.missing_tables.clear()

    def force_online(self) -> bool:
        """Switch back to online mode if a remote client exists."""
        if not self.remote.connected:
            return False
        logger.info("Forcing online mode")
        self._set_online()
        self.state.notify()
        return True

    def _go_offline(self, label: str, error: BaseException) -> None:
        if self.state.online is False:
            return
        logger.warning("Switching to offline mode after %s failed: %s", label, error)
        self.state.online = False
        self.state.notify()

    async def _verify_connection(self) -> None:
        try:
            await self.remote.select(Table.USERS.value, Query(limit=1), columns="id")
        except RemoteError as e:
            if e.table_missing:
                logger.info("Remote connection verified (users table not present)")
            else:
                # A client exists, so a flaky verification query is not a reason to go offline
                logger.warning("Remote verification failed but staying online: %s", e)
            return
        logger.info("Remote connection verified")

    async def probe_table(self, table: Table | str) -> bool:
        """Return False only when the remote says the table does not exist."""
        name = validate_table(table)
        try:
            await self.remote.select(name, Query(limit=1), columns="id")
        except RemoteError as e:
            if e.table_missing:
                self.state.mark_missing(name)
                return False
            logger.warning("Error checking table %s, assuming it exists: %s", name, e)
            return True

        self.state.mark_present(name)
        return True

    async def check_all_tables(self) -> dict[str, list[str]]:
        results: dict[str, list[str]] = {"exists": [], "missing": []}
        for name in TABLE_NAMES:
            key = "exists" if await self.probe_table(name) else "missing"
            results[key].append(name)
        logger.info("Table check: %d present, %d missing", len(results["exists"]), len(results["missing"]))
        return results

    async def sync_local_data(self) -> SyncReport:
        """Push locally cached records to the remote store, once, best effort.

        A table's cache is cleared after all its records were attempted. Tables
        the remote does not have keep their cache, as it is their only copy.
        """
        report = SyncReport()
        if not self.state.is_online:
            return report

        for name in TABLE_NAMES:
            if self.state.is_missing(name):
                continue
            records = self.local.load(name)
            if not records:
                continue
            logger.info("Syncing %d local records from %s", len(records), name)
            report.tables[name] = await self._sync_table(name, records)

        if report.tables:
            logger.info("Local data sync completed: %d pushed, %d failed", report.pushed, report.failed)
        return report

    async def _sync_table(self, name: str, records: list[dict[str, Any]]) -> TableSyncStats:
        stats = TableSyncStats()
        for record in records:
            record_id = record.get("id")
            try:
                if record_id:
                    existing = await self.remote.select(
                        name, Query(where={"id": record_id}, limit=1), columns="id"
                    )
                    if existing:
                        stats.skipped += 1
                        continue
                await self.remote.insert(name, [sanitize(name, record)])
                stats.pushed += 1
            except Exception as e:
                stats.failed += 1
                logger.warning("Failed to sync %s item %s: %s", name, record_id, e)

        self.local.clear(name)
        return stats

    async def run_when_ready(self, operation: PendingOperation) -> Any:
        """Run ``operation`` now, or queue it until initialize() completes."""
        if self.initialized:
            return await operation()
        self._pending.append(operation)
        return None

    async def _process_pending(self) -> None:
        if not self._pending:
            return
        logger.info("Processing %d pending operations", len(self._pending))
        while self._pending:
            operation = self._pending.popleft()
            try:
                await operation()
            except Exception:
                logger.exception("Failed to process pending operation")

    async def close(self) -> None:
        await self.remote.close()

    async def destroy(self) -> None:
        """Drop queued work and return to the uninitialized state."""
        self._pending.clear()
        self.initialized = False
        self.state.online = False
        await self.close()

    # ==================== DISPATCH ====================

    def _remote_available(self, table: str) -> bool:
        return (
            self.state.is_online
            and self.remote.connected
            and not self.state.is_missing(table)
        )

    async def _dispatch(
        self,
        table: str,
        verb: str,
        remote_call: Callable[[], Awaitable[T]],
        local_call: Callable[[], T],
    ) -> T:
        if not self._remote_available(table):
            logger.debug("%s %s: using local storage", verb, table)
            return local_call()

        async def attempt() -> T:
            # Another operation may have taken us offline while we were waiting
            if not self._remote_available(table):
                return local_call()
            try:
                return await remote_call()
            except RemoteError as e:
                if e.table_missing:
                    self.state.mark_missing(table)
                    return local_call()
                raise

        label = f"{verb}_{table}"
        try:
            return await self.retry.run(
                attempt,
                should_retry=lambda: self.state.is_online,
                label=label,
            )
        except RetryExhausted as e:
            self._go_offline(label, e.last_error)
            return local_call()

    # ==================== CRUD ====================

    async def create(self, table: Table | str, data: Mapping[str, Any]) -> dict[str, Any]:
        name = validate_table(table)
        record = prepare_new_record(name, data)

        async def remote_call() -> dict[str, Any]:
            rows = await self.remote.insert(name, [sanitize(name, record)])
            return rows[0] if rows else record

        return await self._dispatch(name, "create", remote_call, lambda: self.local.create(name, record))

    async def read(
        self,
        table: Table | str,
        query: Query | Mapping[str, Any] | None = None,
    ) -> list[dict[str, Any]]:
        name = validate_table(table)
        q = Query.coerce(query)

        if self._should_probe_offline(name):
            return await self._probe_read(name, q)

        return await self._dispatch(
            name,
            "read",
            lambda: self.remote.select(name, q),
            lambda: self.local.read(name, q),
        )

    def _should_probe_offline(self, table: str) -> bool:
        return (
            self.settings.offline_read_probe
            and self.state.online is False
            and self.remote.connected
            and not self.state.is_missing(table)
        )

    async def _probe_read(self, name: str, query: Query) -> list[dict[str, Any]]:
        """Single remote attempt while offline; success brings the layer back online."""
        try:
            rows = await self.remote.select(name, query)
        except RemoteError as e:
            if e.table_missing:
                self.state.mark_missing(name)
            return self.local.read(name, query)

        logger.info("Remote read of %s succeeded, switching to online mode", name)
        self.state.online = True
        self.state.notify()
        return rows

    async def update(
        self,
        table: Table | str,
        record_id: str,
        data: Mapping[str, Any],
    ) -> dict[str, Any]:
        name = validate_table(table)
        changes = prepare_changes(name, data)

        return await self._dispatch(
            name,
            "update",
            lambda: self.remote.update(name, record_id, sanitize(name, changes)),
            lambda: self.local.update(name, record_id, data),
        )

    async def delete(self, table: Table | str, record_id: str) -> bool:
        name = validate_table(table)

        async def remote_call() -> bool:
            await self.remote.delete(name, record_id)
            return True

        return await self._dispatch(name, "delete", remote_call, lambda: self.local.delete(name, record_id))

    # ==================== BULK ====================

    async def bulk_create(
        self,
        table: Table | str,
        items: Iterable[Mapping[str, Any]],
    ) -> list[dict[str, Any]]:
        """Insert many records; falls back to one create() per item.

        Items that fail individually are logged and left out of the result.
        """
        name = validate_table(table)
        items = list(items)
        logger.info("Bulk creating %d items in %s", len(items), name)

        if items and self._remote_available(name):
            rows = [sanitize(name, prepare_new_record(name, item)) for item in items]
            try:
                return await self.remote.insert(name, rows)
            except Exception as e:
                if isinstance(e, RemoteError) and e.table_missing:
                    self.state.mark_missing(name)
                logger.warning("Bulk create failed for %s, creating items one by one: %s", name, e)

        results = []
        for item in items:
            try:
                results.append(await self.create(name, item))
            except Exception as e:
                logger.warning("Failed to create item in %s: %s", name, e)
        return results

    async def bulk_mark_attendance(self, rows: Iterable[Mapping[str, Any]]) -> list[dict[str, Any]]:
        return await self.bulk_create(Table.ATTENDANCE, rows)

    async def bulk_process_salary_payments(self, rows: Iterable[Mapping[str, Any]]) -> list[dict[str, Any]]:
        return await self.bulk_create(Table.SALARY_PAYMENTS, rows)

    # ==================== BACKUP ====================

    async def create_backup(self) -> dict[str, list[dict[str, Any]]]:
        return await backup_io.create_backup(self)

    async def restore_backup(self, document: Mapping[str, Any]) -> dict[str, int]:
        return await backup_io.restore_backup(self, document)

    # ==================== MAINTENANCE ====================

    async def search_customers(self, term: str, limit: int = 10) -> list[dict[str, Any]]:
        """Case-insensitive match on customer name, phone or email."""
        name = Table.CUSTOMERS.value
        if self._remote_available(name):
            try:
                return await self.remote.search(name, CUSTOMER_SEARCH_FIELDS, term, limit)
            except RemoteError as e:
                if e.table_missing:
                    self.state.mark_missing(name)
                logger.warning("Customer search failed, searching local storage: %s", e)

        needle = term.lower()
        found = [
            customer
            for customer in self.local.load(name)
            if any(needle in str(customer.get(f) or "").lower() for f in CUSTOMER_SEARCH_FIELDS)
        ]
        return found[:limit]

    async def cleanup_old_data(self, now: datetime | None = None) -> bool:
        """Delete attendance and salary records older than the retention window."""
        now = now or datetime.now(timezone.utc)
        cutoff = (now - timedelta(days=self.settings.data_retention_days)).date().isoformat()

        try:
            for name, column in RETENTION_COLUMNS.items():
                query = Query(where={column: {"lt": cutoff}})
                if self._remote_available(name):
                    await self.remote.delete_where(name, query)
                else:
                    removed = self.local.delete_matching(name, query)
                    logger.debug("Removed %d old records from local %s", removed, name)
        except RemoteError as e:
            logger.error("Error cleaning up old data: %s", e)
            return False

        logger.info("Cleaned up records older than %s", cutoff)
        return True

    async def health_check(self) -> bool:
        if not self.state.is_online:
            return True
        try:
            await self.remote.select(Table.USERS.value, Query(limit=1), columns="id")
        except RemoteError as e:
            logger.warning("Health check failed: %s", e)
            return False
        return True

    def status(self) -> dict[str, Any]:
        """Snapshot of the layer for status displays."""
        return {
            "initialized": self.initialized,
            "online": self.state.is_online,
            "connected": self.remote.connected,
            "missing_tables": sorted(self.state.missing_tables),
            "pending_operations": len(self._pending),
            "local_records": {name: self.local.count(name) for name in TABLE_NAMES},
        }
