"""
courier/store — message store interface and the SQLite backend.
"""

from courier.store.base import (
    ADDR_TABLE,
    MAX_QUERY_PARAMS,
    MMS_TABLE,
    PART_TABLE,
    SMS_TABLE,
    MessageStore,
)
from courier.store.sqlite_store import SQLiteMessageStore

__all__ = [
    "ADDR_TABLE",
    "MAX_QUERY_PARAMS",
    "MMS_TABLE",
    "PART_TABLE",
    "SMS_TABLE",
    "MessageStore",
    "SQLiteMessageStore",
]
