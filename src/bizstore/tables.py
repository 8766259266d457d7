"""Table registry, per-table field whitelists and payload sanitization."""

from __future__ import annotations

from enum import Enum
from typing import Any, Mapping

from .errors import InvalidTableError


class Table(str, Enum):
    """Logical tables mirrored between the remote store and the local cache."""

    USERS = "users"
    EMPLOYEES = "employees"
    CUSTOMERS = "customers"
    BILLS = "bills"
    PAYMENTS = "payments"
    SALARY_RECORDS = "salary_records"
    YEARLY_ALLOCATIONS = "yearly_allocations"
    ADVANCE_PAYMENTS = "advance_payments"
    FAMILY_GROUPS = "family_groups"
    ATTENDANCE = "attendance"
    SIMPLE_ADVANCES = "simple_advances"
    SALARY_PAYMENTS = "salary_payments"
    PRODUCTS = "products"
    ADVANCE_RECORDS = "advance_records"

    def __str__(self) -> str:
        return self.value


TABLE_NAMES: list[str] = [t.value for t in Table]


# Columns accepted by the remote schema. Anything else is dropped before a write.
TABLE_FIELDS: dict[str, tuple[str, ...]] = {
    "users": (
        "id", "username", "password", "name", "email", "phone", "role", "status",
        "created_at", "updated_at",
    ),
    "employees": (
        "id", "name", "phone", "email", "employee_type", "vehicle_number", "role",
        "salary", "basic_salary", "salary_type", "join_date", "status",
        "family_group_id", "created_at", "updated_at",
    ),
    "customers": (
        "id", "name", "phone", "email", "address", "total_bills", "total_amount",
        "created_at", "updated_at",
    ),
    "bills": (
        "id", "bill_number", "bill_date", "customer_id", "customer_name",
        "customer_phone", "customer_email", "customer_address", "items", "sub_total",
        "gst_rate", "gst_amount", "total_amount", "status", "created_at", "updated_at",
    ),
    "payments": (
        "id", "bill_id", "bill_number", "customer_id", "customer_name", "amount",
        "payment_method", "payment_date", "created_at",
    ),
    "salary_records": (
        "id", "employee_id", "employee_name", "record_date", "amount",
        "incentive_amount", "work_hours", "created_at", "updated_at",
    ),
    "yearly_allocations": (
        "id", "employee_id", "year", "allocated_amount", "salary_type", "notes",
        "created_at", "updated_at",
    ),
    "advance_payments": (
        "id", "employee_id", "amount", "allocation_used", "payment_date",
        "week_number", "month_number", "year", "confirmed", "notes",
        "created_at", "updated_at",
    ),
    "family_groups": (
        "id", "family_name", "primary_member_id", "bank_account_number", "bank_name",
        "ifsc_code", "created_at", "updated_at",
    ),
    "attendance": (
        "id", "employee_id", "employee_name", "attendance_date", "status",
        "check_in_time", "check_out_time", "work_hours", "overtime_hours", "notes",
        "created_at", "updated_at",
    ),
    "simple_advances": (
        "id", "employee_id", "employee_name", "amount", "advance_date", "reason",
        "status", "created_at", "updated_at",
    ),
    "salary_payments": (
        "id", "employee_id", "employee_name", "payment_date", "pay_period_start",
        "pay_period_end", "basic_salary", "overtime_amount", "incentive_amount",
        "advance_deductions", "total_advances", "net_salary", "payment_method",
        "status", "payslip_generated", "work_days", "total_hours",
        "created_at", "updated_at",
    ),
    "products": (
        "id", "name", "description", "price", "gst_rate", "unit", "stock_quantity",
        "is_active", "created_at", "updated_at",
    ),
    "advance_records": (
        "id", "employee_id", "employee_name", "amount", "record_date", "type",
        "status", "week_number", "month_number", "year", "paid_date",
        "deducted_date", "created_at", "updated_at",
    ),
}


def validate_table(table: Table | str) -> str:
    """Return the registry name for ``table`` or raise InvalidTableError."""
    if isinstance(table, Table):
        return table.value
    if isinstance(table, str) and table in TABLE_FIELDS:
        return table
    raise InvalidTableError(table, TABLE_NAMES)


def sanitize(table: Table | str, data: Mapping[str, Any]) -> dict[str, Any]:
    """Drop None values and any field the table does not declare.

    The same filter runs for remote and local writes so the local cache never
    holds columns the remote schema would reject during sync.
    """
    name = validate_table(table)
    allowed = TABLE_FIELDS[name]
    return {
        key: value
        for key, value in data.items()
        if value is not None and key in allowed
    }
