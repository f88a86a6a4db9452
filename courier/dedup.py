"""
courier/dedup.py
Existence checks against the live store — the reason re-imports are idempotent.

Identity tuples:
  SMS      (date, address, type)
  MMS      (date, date_sent, thread_id, msg_box)
  part     (cl, ct, mid, cid)
  address  (type, address, msg_id)

Nullable columns are compared with IS so a missing cl/cid still matches.
"""

import logging
from typing import List, Optional, Sequence, Set, Tuple

from courier.models.record import MmsAddress, MmsPart, MmsRecord, SmsRecord
from courier.store.base import (
    ADDR_TABLE,
    MAX_QUERY_PARAMS,
    MMS_TABLE,
    PART_TABLE,
    SMS_TABLE,
    MessageStore,
)

logger = logging.getLogger(__name__)


def sms_exists(store: MessageStore, record: SmsRecord) -> bool:
    rows = store.query(
        SMS_TABLE, ['_id'],
        "date = ? AND address = ? AND type = ?",
        [record.date, record.address, record.type],
    )
    return len(rows) > 0


def bulk_sms_exist(store: MessageStore, records: Sequence[SmsRecord]) -> List[bool]:
    """
    One query for a whole batch: select every row whose date is among the
    batch's dates, then match (date, address, type) locally.
    Timestamps are nearly unique, so the date-only query returns a small
    superset. The exact tuple match keeps the result correct regardless.
    """
    if len(records) > MAX_QUERY_PARAMS:
        raise ValueError(
            f"Batch of {len(records)} exceeds the {MAX_QUERY_PARAMS} parameter limit"
        )

    dates = list(dict.fromkeys(r.date for r in records))
    existing: Set[Tuple[int, str, int]] = set()
    if dates:
        placeholders = ','.join('?' for _ in dates)
        rows = store.query(
            SMS_TABLE, ['date', 'address', 'type'],
            f"date IN ({placeholders})",
            dates,
        )
        # Rows with NULL columns stay in the set and simply never match.
        existing = {tuple(row) for row in rows}

    logger.debug(f"Bulk check: {len(records)} messages, {len(existing)} candidate rows")
    return [r.identity in existing for r in records]


def find_mms_id(store: MessageStore, record: MmsRecord, thread_id: int) -> Optional[int]:
    rows = store.query(
        MMS_TABLE, ['_id'],
        "date = ? AND date_sent = ? AND thread_id = ? AND msg_box = ?",
        [record.date, record.date_sent, thread_id, record.message_box],
    )
    return rows[-1][0] if rows else None


def mms_part_exists(store: MessageStore, part: MmsPart, message_id: int) -> bool:
    rows = store.query(
        PART_TABLE, ['_id'],
        "cl IS ? AND ct = ? AND mid = ? AND cid IS ?",
        [part.content_location, part.content_type, message_id, part.content_id],
    )
    return len(rows) > 0


def mms_address_exists(store: MessageStore, address: MmsAddress, message_id: int) -> bool:
    rows = store.query(
        ADDR_TABLE, ['_id'],
        "type = ? AND address = ? AND msg_id = ?",
        [address.type, address.address, message_id],
    )
    return len(rows) > 0
