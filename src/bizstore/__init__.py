"""bizstore - offline-first data access for the business manager."""

from .config import BizStoreSettings
from .errors import (
    BackupFormatError,
    BizStoreError,
    InvalidTableError,
    RecordNotFoundError,
    RemoteError,
    RemoteErrorKind,
)
from .layer import DataLayer, SyncReport
from .local import JsonFileStore, LocalCache, MemoryStore
from .query import Query
from .remote import PostgrestClient
from .retry import RetryPolicy
from .state import ConnectionState
from .tables import TABLE_NAMES, Table

__version__ = "0.1.0"

__all__ = [
    "BackupFormatError",
    "BizStoreError",
    "BizStoreSettings",
    "ConnectionState",
    "DataLayer",
    "InvalidTableError",
    "JsonFileStore",
    "LocalCache",
    "MemoryStore",
    "PostgrestClient",
    "Query",
    "RecordNotFoundError",
    "RemoteError",
    "RemoteErrorKind",
    "RetryPolicy",
    "SyncReport",
    "TABLE_NAMES",
    "Table",
]
