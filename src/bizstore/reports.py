"""Business summaries computed client-side from data layer reads.

Every helper degrades to a zero-valued result when its reads fail, so a
dashboard can always render something.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import date
from typing import TYPE_CHECKING, Any, Iterable, Mapping

from .tables import Table

if TYPE_CHECKING:
    from .layer import DataLayer

logger = logging.getLogger(__name__)


def to_float(value: Any) -> float:
    """Lenient number parsing; anything unparseable counts as 0."""
    if value is None or isinstance(value, bool):
        return 0.0
    try:
        return float(value)
    except (TypeError, ValueError):
        return 0.0


def total(records: Iterable[Mapping[str, Any]], field: str) -> float:
    return sum((to_float(r.get(field)) for r in records), 0.0)


def count_status(records: Iterable[Mapping[str, Any]], status: str) -> int:
    return sum(1 for r in records if r.get("status") == status)


def _iso(day: date | str) -> str:
    return day.isoformat() if isinstance(day, date) else str(day)


EMPTY_DASHBOARD = {
    "total_customers": 0,
    "total_employees": 0,
    "total_sales": 0.0,
    "total_gst": 0.0,
    "total_received": 0.0,
    "pending_payments": 0,
    "outstanding_amount": 0.0,
    "recent_activity": 0,
}


def dashboard_totals(
    customers: list[dict[str, Any]],
    employees: list[dict[str, Any]],
    bills: list[dict[str, Any]],
    payments: list[dict[str, Any]],
) -> dict[str, Any]:
    total_sales = total(bills, "total_amount")
    total_received = total(payments, "amount")
    return {
        "total_customers": len(customers),
        "total_employees": len(employees),
        "total_sales": total_sales,
        "total_gst": total(bills, "gst_amount"),
        "total_received": total_received,
        "pending_payments": count_status(bills, "pending"),
        "outstanding_amount": total_sales - total_received,
        "recent_activity": len(bills) + len(payments),
    }


class Reports:
    def __init__(self, layer: DataLayer):
        self._layer = layer

    async def employee_summary(self, employee_id: str) -> dict[str, Any]:
        """Salary, advance and attendance totals for one employee."""
        db = self._layer
        where = {"employee_id": employee_id}
        try:
            salary_records, advance_records, attendance = await asyncio.gather(
                db.salary_records.list(where),
                db.advance_records.list(where),
                db.attendance.list(where),
            )
        except Exception as e:
            logger.warning("Error getting employee summary for %s: %s", employee_id, e)
            return {
                "total_salary": 0.0,
                "pending_advances": 0.0,
                "paid_advances": 0.0,
                "net_payable": 0.0,
                "total_records": 0,
                "present_days": 0,
                "last_salary_date": None,
            }

        total_salary = total(salary_records, "amount")
        pending = total((r for r in advance_records if r.get("status") == "pending"), "amount")
        paid = total((r for r in advance_records if r.get("status") == "paid"), "amount")
        salary_dates = [r["record_date"] for r in salary_records if r.get("record_date")]

        return {
            "total_salary": total_salary,
            "pending_advances": pending,
            "paid_advances": paid,
            "net_payable": total_salary - paid,
            "total_records": len(salary_records) + len(advance_records),
            "present_days": count_status(attendance, "present"),
            "last_salary_date": max(salary_dates) if salary_dates else None,
        }

    async def daily_employees(self, filters: Mapping[str, Any] | None = None) -> list[dict[str, Any]]:
        """Employees paid per day; an unset salary_type counts as daily."""
        try:
            employees = await self._layer.employees.list(filters)
        except Exception as e:
            logger.warning("Error listing daily employees: %s", e)
            return []
        return [e for e in employees if e.get("salary_type") in ("daily", None, "")]

    async def todays_attendance_summary(self, today: date | None = None) -> dict[str, int]:
        day = _iso(today or date.today())
        try:
            records, daily = await asyncio.gather(
                self._layer.attendance.list({"attendance_date": day}),
                self.daily_employees(),
            )
        except Exception as e:
            logger.warning("Error summarising attendance for %s: %s", day, e)
            return {"present": 0, "absent": 0, "half_day": 0, "total": 0, "not_marked": 0}

        return {
            "present": count_status(records, "present"),
            "absent": count_status(records, "absent"),
            "half_day": count_status(records, "half_day"),
            "total": len(daily),
            "not_marked": max(len(daily) - len(records), 0),
        }

    async def employee_attendance_summary(
        self,
        employee_id: str,
        start: date | str,
        end: date | str,
    ) -> dict[str, Any]:
        try:
            records = await self._layer.attendance.list({
                "employee_id": employee_id,
                "attendance_date": {"gte": _iso(start), "lte": _iso(end)},
            })
        except Exception as e:
            logger.warning("Error getting attendance for %s: %s", employee_id, e)
            records = []

        present = count_status(records, "present")
        rate = f"{present / len(records) * 100:.1f}%" if records else "0%"
        return {
            "total_days": len(records),
            "present_days": present,
            "absent_days": count_status(records, "absent"),
            "half_days": count_status(records, "half_day"),
            "total_work_hours": total(records, "work_hours"),
            "total_overtime": total(records, "overtime_hours"),
            "attendance_rate": rate,
        }

    async def employee_salary_summary(self, employee_id: str, year: int | None = None) -> dict[str, Any]:
        """Yearly salary, advance and work-day totals (calendar year, default current)."""
        year = year or date.today().year
        window = {"gte": f"{year}-01-01", "lte": f"{year}-12-31"}
        db = self._layer
        try:
            payments, advances, attendance = await asyncio.gather(
                db.salary_payments.list({"employee_id": employee_id, "payment_date": window}),
                db.simple_advances.list({"employee_id": employee_id, "advance_date": window}),
                db.attendance.list({"employee_id": employee_id, "attendance_date": window}),
            )
        except Exception as e:
            logger.warning("Error getting salary summary for %s: %s", employee_id, e)
            payments, advances, attendance = [], [], []

        total_salary = total(payments, "net_salary")
        return {
            "total_salary": total_salary,
            "total_advances": total(advances, "amount"),
            "total_work_days": count_status(attendance, "present"),
            "salary_payments_count": len(payments),
            "advances_count": len(advances),
            "average_salary": total_salary / len(payments) if payments else 0.0,
        }

    async def family_group_members(self, family_group_id: str) -> list[dict[str, Any]]:
        try:
            return await self._layer.employees.list({"family_group_id": family_group_id})
        except Exception as e:
            logger.warning("Error listing family group %s: %s", family_group_id, e)
            return []

    async def dashboard_stats(self) -> dict[str, Any]:
        """Headline totals; falls back to the local cache, then to zeros."""
        db = self._layer
        try:
            customers, employees, bills, payments = await asyncio.gather(
                db.customers.list(),
                db.employees.list(),
                db.bills.list(),
                db.payments.list(),
            )
            return dashboard_totals(customers, employees, bills, payments)
        except Exception as e:
            logger.warning("Error getting dashboard stats, using local data: %s", e)

        try:
            return dashboard_totals(*(
                db.local.load(t.value)
                for t in (Table.CUSTOMERS, Table.EMPLOYEES, Table.BILLS, Table.PAYMENTS)
            ))
        except Exception:
            logger.exception("Local dashboard stats failed")
            return dict(EMPTY_DASHBOARD)
