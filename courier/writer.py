"""
courier/writer.py
Writes backup records into a MessageStore, skipping anything already there.

MMS are written in dependency order — pdu row, id lookup, parts, addresses —
each step checked for existence first. Nothing is rolled back: a failed MMS
may leave some rows behind, and the next import fills in the rest.
"""

import base64
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Sequence

from courier import dedup
from courier.models.record import (
    MESSAGE_BOX_INBOX,
    PDU_FROM,
    PDU_TO,
    MmsAddress,
    MmsPart,
    MmsRecord,
    SmsRecord,
)
from courier.store.base import (
    ADDR_TABLE,
    MMS_TABLE,
    PART_TABLE,
    SMS_TABLE,
    MessageStore,
)
from courier.threads import ImportSession, ThreadResolver

logger = logging.getLogger(__name__)


class MmsWriteStatus(Enum):
    WRITTEN           = 'written'            # all steps ran
    SKIPPED_NO_THREAD = 'skipped_no_thread'  # no From/To address to key a thread on
    ABANDONED_NO_ID   = 'abandoned_no_id'    # row not found after insert; parts and addresses not written


class PartWriteStatus(Enum):
    EXISTS         = 'exists'
    WRITTEN        = 'written'
    PAYLOAD_FAILED = 'payload_failed'        # row written, payload missing or partial


@dataclass
class MmsWriteResult:
    status:           MmsWriteStatus
    thread_id:        Optional[int] = None
    message_id:       Optional[int] = None
    message_inserted: bool = False
    parts:            List[PartWriteStatus] = field(default_factory=list)
    addresses_added:  int = 0

    @property
    def payload_failures(self) -> int:
        return sum(1 for p in self.parts if p is PartWriteStatus.PAYLOAD_FAILED)


class MessagesWriter:
    """
    Usage:
        writer = MessagesWriter(store, ImportSession())
        writer.bulk_write_sms(chunk)
        writer.write_mms(mms)
        writer.fix_conversation_dates()
    """

    def __init__(self, store: MessageStore, session: ImportSession):
        self.store    = store
        self.session  = session
        self.resolver = ThreadResolver(store, session)

    # ── SMS ───────────────────────────────────────────────────

    def write_sms(self, record: SmsRecord) -> bool:
        """Insert one SMS unless present. The thread is marked modified either way."""
        thread_id = self.resolver.resolve_and_mark(record.address)
        if dedup.sms_exists(self.store, record):
            return False
        self.store.insert(SMS_TABLE, _sms_values(record, thread_id))
        return True

    def bulk_write_sms(self, records: Sequence[SmsRecord]) -> int:
        """
        Write a chunk of at most MAX_QUERY_PARAMS SMS with one existence query
        and one bulk insert. Every offered record's thread is marked modified.
        """
        exist = dedup.bulk_sms_exist(self.store, records)
        new_records = [r for r, e in zip(records, exist) if not e]
        for r in records:
            self.resolver.resolve_and_mark(r.address)

        rows = [_sms_values(r, self.resolver.resolve(r.address)) for r in new_records]
        logger.debug(
            f"Writing a batch of {len(rows)} messages "
            f"(skipping {len(records) - len(rows)} existing messages)"
        )
        if not rows:
            return 0
        return self.store.bulk_insert(SMS_TABLE, rows)

    # ── MMS ───────────────────────────────────────────────────

    def write_mms(self, record: MmsRecord) -> MmsWriteResult:
        address = mms_thread_address(record)
        if not address:
            logger.warning(
                f"Skipped MMS dated {record.date}: no "
                f"{'From' if record.message_box == MESSAGE_BOX_INBOX else 'To'} address"
            )
            return MmsWriteResult(status=MmsWriteStatus.SKIPPED_NO_THREAD)

        thread_id = self.resolver.resolve(address)
        result    = MmsWriteResult(status=MmsWriteStatus.WRITTEN, thread_id=thread_id)

        if dedup.find_mms_id(self.store, record, thread_id) is None:
            self.store.insert(MMS_TABLE, _mms_values(record, thread_id))
            self.resolver.mark_modified(thread_id)
            result.message_inserted = True

        message_id = dedup.find_mms_id(self.store, record, thread_id)
        if message_id is None:
            logger.warning(
                f"MMS dated {record.date} in thread {thread_id} not found after insert; "
                f"parts and addresses not written"
            )
            result.status = MmsWriteStatus.ABANDONED_NO_ID
            return result
        result.message_id = message_id

        for part in record.parts:
            result.parts.append(self._write_mms_part(part, message_id))
        for addr in record.addresses:
            if self._write_mms_address(addr, message_id):
                result.addresses_added += 1
        return result

    def _write_mms_part(self, part: MmsPart, message_id: int) -> PartWriteStatus:
        if dedup.mms_part_exists(self.store, part, message_id):
            return PartWriteStatus.EXISTS

        part_id = self.store.insert(PART_TABLE, _part_values(part, message_id))
        if part_id is None or not part.is_non_text:
            return PartWriteStatus.WRITTEN

        # Payload is best-effort: the part row stays even if this fails.
        try:
            if part.data is None:
                raise ValueError("no payload in backup")
            self.store.write_part_data(part_id, base64.b64decode(part.data))
        except Exception as e:
            logger.warning(f"Payload write failed for part {part_id} ({part.content_type}): {e}")
            return PartWriteStatus.PAYLOAD_FAILED
        return PartWriteStatus.WRITTEN

    def _write_mms_address(self, address: MmsAddress, message_id: int) -> bool:
        if dedup.mms_address_exists(self.store, address, message_id):
            return False
        self.store.insert(ADDR_TABLE, {
            'msg_id':  message_id,
            'address': address.address,
            'type':    address.type,
            'charset': address.charset,
        })
        return True

    # ── THREADS ───────────────────────────────────────────────

    def fix_conversation_dates(self) -> int:
        """
        Refresh last-message metadata for every thread touched this run.
        Returns the number of threads that failed to update.
        """
        thread_ids = sorted(self.session.modified_thread_ids)
        logger.info(f"Fixing dates for {len(thread_ids)} conversations")
        failures = 0
        for thread_id in thread_ids:
            try:
                self.store.update_last_conversation_message(thread_id)
            except Exception as e:
                failures += 1
                logger.error(f"Thread {thread_id} repair failed: {e}", exc_info=True)
        return failures


def mms_thread_address(record: MmsRecord) -> Optional[str]:
    """From address for inbox messages, To address for everything else."""
    role = PDU_FROM if record.message_box == MESSAGE_BOX_INBOX else PDU_TO
    return record.first_address(role)


# ── ROW BUILDERS ─────────────────────────────────────────────

def _sms_values(r: SmsRecord, thread_id: int) -> Dict[str, Any]:
    return {
        'thread_id':      thread_id,
        'sub_id':         r.subscription_id,
        'address':        r.address,
        'body':           r.body,
        'date':           r.date,
        'date_sent':      r.date_sent,
        'locked':         r.locked,
        'protocol':       r.protocol,
        'read':           r.read,
        'status':         r.status,
        'type':           r.type,
        'service_center': r.service_center,
    }


def _mms_values(r: MmsRecord, thread_id: int) -> Dict[str, Any]:
    return {
        'thread_id': thread_id,
        'date':      r.date,
        'date_sent': r.date_sent,
        'msg_box':   r.message_box,
        'creator':   r.creator,
        'ct_t':      r.content_type,
        'd_rpt':     r.delivery_report,
        'locked':    r.locked,
        'm_type':    r.message_type,
        'read':      r.read,
        'rr':        r.read_report,
        'seen':      r.seen,
        'text_only': r.text_only,
        'st':        r.status,
        'sub':       r.subject,
        'sub_cs':    r.subject_charset,
        'sub_id':    r.subscription_id,
        'tr_id':     r.transaction_id,
    }


def _part_values(p: MmsPart, message_id: int) -> Dict[str, Any]:
    return {
        'mid':   message_id,
        'seq':   p.sequence,
        'ct':    p.content_type,
        'name':  p.name,
        'chset': p.charset,
        'cd':    p.content_disposition,
        'fn':    p.filename,
        'cid':   p.content_id,
        'cl':    p.content_location,
        'ctt_s': p.ct_start,
        'ctt_t': p.ct_type,
        'text':  p.text,
    }
