"""Per-table shortcuts over the data layer, each with its default ordering."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Iterable, Mapping

from .query import Query
from .tables import Table

if TYPE_CHECKING:
    from .layer import DataLayer

# (column, ascending) used by list() when the caller does not choose an order
DEFAULT_ORDERING: dict[Table, tuple[str, bool]] = {
    Table.USERS: ("created_at", False),
    Table.EMPLOYEES: ("created_at", False),
    Table.CUSTOMERS: ("created_at", False),
    Table.BILLS: ("bill_date", False),
    Table.PAYMENTS: ("payment_date", False),
    Table.SALARY_RECORDS: ("record_date", False),
    Table.YEARLY_ALLOCATIONS: ("created_at", False),
    Table.ADVANCE_PAYMENTS: ("payment_date", False),
    Table.FAMILY_GROUPS: ("created_at", False),
    Table.ATTENDANCE: ("attendance_date", False),
    Table.SIMPLE_ADVANCES: ("advance_date", False),
    Table.SALARY_PAYMENTS: ("payment_date", False),
    Table.PRODUCTS: ("name", True),
    Table.ADVANCE_RECORDS: ("record_date", False),
}


class TableAPI:
    """CRUD for one table.

    Usage:
        recent = await db.bills.list({"customer_id": customer["id"]}, limit=20)
        bill = await db.bills.get(recent[0]["id"])
    """

    def __init__(self, layer: DataLayer, table: Table):
        self._layer = layer
        self.table = table
        self.order_by, self.ascending = DEFAULT_ORDERING[table]

    def _query(
        self,
        filters: Mapping[str, Any] | None,
        limit: int | None,
        offset: int | None,
        order_by: str | None,
        ascending: bool | None,
    ) -> Query:
        return Query(
            where=dict(filters or {}),
            order_by=order_by or self.order_by,
            ascending=self.ascending if ascending is None else ascending,
            limit=limit,
            offset=offset,
        )

    async def list(
        self,
        filters: Mapping[str, Any] | None = None,
        *,
        limit: int | None = None,
        offset: int | None = None,
        order_by: str | None = None,
        ascending: bool | None = None,
    ) -> list[dict[str, Any]]:
        return await self._layer.read(
            self.table, self._query(filters, limit, offset, order_by, ascending)
        )

    async def get(self, record_id: str) -> dict[str, Any] | None:
        rows = await self._layer.read(self.table, Query(where={"id": record_id}, limit=1))
        return rows[0] if rows else None

    async def create(self, data: Mapping[str, Any]) -> dict[str, Any]:
        return await self._layer.create(self.table, data)

    async def update(self, record_id: str, data: Mapping[str, Any]) -> dict[str, Any]:
        return await self._layer.update(self.table, record_id, data)

    async def delete(self, record_id: str) -> bool:
        return await self._layer.delete(self.table, record_id)

    async def bulk_create(self, items: Iterable[Mapping[str, Any]]) -> list[dict[str, Any]]:
        return await self._layer.bulk_create(self.table, items)


class ProductsAPI(TableAPI):
    """Products are listed active-only unless include_inactive is set."""

    async def list(
        self,
        filters: Mapping[str, Any] | None = None,
        *,
        include_inactive: bool = False,
        **kwargs: Any,
    ) -> list[dict[str, Any]]:
        merged = dict(filters or {})
        if not include_inactive:
            merged["is_active"] = True
        return await super().list(merged, **kwargs)
