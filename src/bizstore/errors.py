"""Exceptions raised by the bizstore data layer."""

from __future__ import annotations

from enum import Enum


class BizStoreError(Exception):
    """Base exception for data layer errors."""


class InvalidTableError(BizStoreError, ValueError):
    """Operation referenced a table outside the registry."""

    def __init__(self, table: object, valid: list[str] | None = None):
        self.table = table
        message = f"Invalid table name: {table}"
        if valid:
            message += f". Valid tables: {', '.join(valid)}"
        super().__init__(message)


class RecordNotFoundError(BizStoreError, KeyError):
    """No record with the given id exists in the table."""

    def __init__(self, table: str, record_id: str):
        self.table = table
        self.record_id = record_id
        super().__init__(f"Item not found in {table} with id: {record_id}")

    def __str__(self) -> str:
        # KeyError would repr() the message otherwise
        return self.args[0]


class RemoteErrorKind(str, Enum):
    """How the remote store failed, decided where the response is parsed."""

    TABLE_MISSING = "table_missing"
    TRANSIENT = "transient"


class RemoteError(BizStoreError):
    """The remote store rejected or could not serve a request."""

    def __init__(
        self,
        message: str,
        kind: RemoteErrorKind = RemoteErrorKind.TRANSIENT,
        status_code: int | None = None,
        code: str | None = None,
        response: dict | None = None,
    ):
        self.message = message
        self.kind = kind
        self.status_code = status_code
        self.code = code
        self.response = response
        super().__init__(self.message)

    @property
    def table_missing(self) -> bool:
        return self.kind is RemoteErrorKind.TABLE_MISSING


class RetryExhausted(BizStoreError):
    """Every attempt allowed by a retry policy failed."""

    def __init__(self, attempts: int, last_error: BaseException):
        self.attempts = attempts
        self.last_error = last_error
        super().__init__(f"Gave up after {attempts} attempts: {last_error}")


class BackupFormatError(BizStoreError, ValueError):
    """A backup document does not have the expected shape."""
