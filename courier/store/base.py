"""
courier/store/base.py
Abstract base class for message stores.
To import into a new backend: subclass MessageStore and implement every method.

The importer only ever talks to this interface. Each call is its own
atomic unit — there is no transaction spanning a whole import, which is
why every write step is preceded by an existence check.
"""

from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional, Sequence

# Table names, Android telephony layout
SMS_TABLE  = 'sms'
MMS_TABLE  = 'pdu'
PART_TABLE = 'part'
ADDR_TABLE = 'addr'

# Safe ceiling for bound parameters per statement. Older SQLite builds
# fail above this with "too many SQL variables".
MAX_QUERY_PARAMS = 999


class MessageStore(ABC):
    """
    All stores implement this interface.
    Raise StoreError (or a subclass) on failure — the importer counts it.
    """

    @abstractmethod
    def insert(self, table: str, values: Dict[str, Any]) -> Optional[int]:
        """
        Insert one row. Returns the new row id when the backend exposes it.
        Callers that need a stable id must query for it instead.
        """
        ...

    @abstractmethod
    def bulk_insert(self, table: str, rows: Sequence[Dict[str, Any]]) -> int:
        """Insert many rows in one call, all-or-nothing. Returns rows inserted."""
        ...

    @abstractmethod
    def query(
        self,
        table:          str,
        projection:     Sequence[str],
        selection:      str,
        selection_args: Sequence[Any],
    ) -> List[tuple]:
        """
        Return projected columns of rows matching `selection`.
        `selection` uses ? placeholders bound from `selection_args`.
        """
        ...

    @abstractmethod
    def get_or_create_thread_id(self, address: str) -> int:
        """Find-or-create the conversation thread for one recipient address."""
        ...

    @abstractmethod
    def write_part_data(self, part_id: int, data: bytes) -> None:
        """Persist the binary payload of a non-text MMS part."""
        ...

    @abstractmethod
    def update_last_conversation_message(self, thread_id: int) -> None:
        """Recompute a thread's last-message metadata (date, snippet, count)."""
        ...
