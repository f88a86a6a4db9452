"""
courier/threads.py
Per-run state and thread id resolution.

ImportSession is created by the importer for one run and dropped at the
end of it. Only the single import worker touches it, so nothing here is
locked.
"""

import logging
from dataclasses import dataclass, field
from typing import Dict, Set

from courier.store.base import MessageStore

logger = logging.getLogger(__name__)


@dataclass
class ImportSession:
    """Thread id cache and the set of threads touched during one run."""
    thread_id_cache:     Dict[str, int] = field(default_factory=dict)
    modified_thread_ids: Set[int]       = field(default_factory=set)
    lookups:             int            = 0      # store round-trips made


class ThreadResolver:
    """
    Maps a recipient address to its store thread id.
    Cached by the raw address string: "+1 555" and "+1555" are two lookups.
    """

    def __init__(self, store: MessageStore, session: ImportSession):
        self.store   = store
        self.session = session

    def resolve(self, address: str) -> int:
        cache = self.session.thread_id_cache
        if address not in cache:
            cache[address] = self.store.get_or_create_thread_id(address)
            self.session.lookups += 1
        return cache[address]

    def mark_modified(self, thread_id: int) -> None:
        self.session.modified_thread_ids.add(thread_id)

    def resolve_and_mark(self, address: str) -> int:
        thread_id = self.resolve(address)
        self.mark_modified(thread_id)
        return thread_id
