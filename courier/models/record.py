"""
courier/models/record.py
Shared dataclass schema. Parsers produce these, the writer consumes them.
Do not add store logic here — data only.

Field names follow the Android telephony columns the backups were taken from:
  SMS  dates are epoch milliseconds
  MMS  dates are epoch seconds
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Optional, Tuple, Union


# PDU header codes for MMS address roles
PDU_BCC  = 129
PDU_CC   = 130
PDU_FROM = 137
PDU_TO   = 151

# MMS message box classification
MESSAGE_BOX_ALL    = 0
MESSAGE_BOX_INBOX  = 1
MESSAGE_BOX_SENT   = 2
MESSAGE_BOX_DRAFTS = 3
MESSAGE_BOX_OUTBOX = 4

# SMS message types
SMS_TYPE_INBOX  = 1
SMS_TYPE_SENT   = 2
SMS_TYPE_DRAFT  = 3
SMS_TYPE_OUTBOX = 4
SMS_TYPE_FAILED = 5
SMS_TYPE_QUEUED = 6

TEXT_LIKE_CONTENT_TYPES = ('application/smil',)


@dataclass(frozen=True)
class SmsRecord:
    """One SMS row from a backup."""
    subscription_id: int
    address:         str
    body:            Optional[str]
    date:            int            # received, ms
    date_sent:       int            # ms
    locked:          int
    protocol:        Optional[str]
    read:            int
    status:          int
    type:            int            # SMS_TYPE_*
    service_center:  Optional[str]

    @property
    def identity(self) -> Tuple[int, str, int]:
        return (self.date, self.address, self.type)


@dataclass(frozen=True)
class MmsAddress:
    address: str
    type:    int                    # PDU_FROM / PDU_TO / PDU_CC / PDU_BCC
    charset: int = 106              # UTF-8


@dataclass(frozen=True)
class MmsPart:
    """One content component of an MMS. Owned by exactly one MmsRecord."""
    content_type:        str
    content_location:    Optional[str] = None
    content_id:          Optional[str] = None
    text:                Optional[str] = None
    data:                Optional[str] = None      # base64 payload
    content_disposition: Optional[str] = None
    charset:             Optional[str] = None
    ct_start:            Optional[str] = None
    ct_type:             Optional[str] = None
    filename:            Optional[str] = None
    name:                Optional[str] = None
    sequence:            int = 0

    @property
    def is_non_text(self) -> bool:
        ct = (self.content_type or '').lower()
        return not (ct.startswith('text/') or ct in TEXT_LIKE_CONTENT_TYPES)


@dataclass(frozen=True)
class MmsRecord:
    """One MMS with its parts and addresses."""
    date:             int           # received, seconds
    date_sent:        int           # seconds
    message_box:      int           # MESSAGE_BOX_*
    addresses:        Tuple[MmsAddress, ...] = ()
    parts:            Tuple[MmsPart, ...]    = ()

    # Store-level metadata, copied verbatim into the pdu row
    creator:          Optional[str] = None
    content_type:     Optional[str] = None
    delivery_report:  int = 0
    locked:           int = 0
    message_type:     int = 0
    read:             int = 0
    read_report:      int = 0
    seen:             int = 0
    text_only:        int = 0
    status:           Optional[int] = None
    subject:          Optional[str] = None
    subject_charset:  Optional[int] = None
    subscription_id:  int = 0
    transaction_id:   Optional[str] = None

    def first_address(self, role: int) -> Optional[str]:
        return next((a.address for a in self.addresses if a.type == role), None)


BackupRecord = Union[SmsRecord, MmsRecord]


class BackupFormat(Enum):
    XML  = 'xml'       # streaming, tag-based
    JSON = 'json'      # batch array


@dataclass
class BackupDocument:
    """Decoded backup plus the streaming decoder's per-tag bookkeeping."""
    format:          BackupFormat
    records:         list = field(default_factory=list)
    decode_failures: int  = 0
    skipped_tags:    int  = 0

    @property
    def sms(self) -> list:
        return [r for r in self.records if isinstance(r, SmsRecord)]

    @property
    def mms(self) -> list:
        return [r for r in self.records if isinstance(r, MmsRecord)]


class ImportOutcome(Enum):
    NOTHING_NEW = 'nothing_new'
    OK          = 'ok'
    PARTIAL     = 'partial'
    FAIL        = 'fail'

    @classmethod
    def from_counts(cls, imported: int, failed: int) -> 'ImportOutcome':
        if imported == 0 and failed == 0:
            return cls.NOTHING_NEW
        if failed > 0 and imported > 0:
            return cls.PARTIAL
        if failed > 0:
            return cls.FAIL
        return cls.OK


OUTCOME_MESSAGES = {
    ImportOutcome.NOTHING_NEW: 'No new entries for importing',
    ImportOutcome.OK:          'Importing successful',
    ImportOutcome.PARTIAL:     'Importing some entries failed',
    ImportOutcome.FAIL:        'Importing failed',
}
INVALID_FORMAT_MESSAGE = 'Invalid file format'


@dataclass
class PhaseCounters:
    """Per-phase bookkeeping: imported + failed + skipped == offered."""
    offered:       int = 0
    imported:      int = 0
    failed:        int = 0
    skipped:       int = 0      # MMS without a thread address
    rows_inserted: int = 0      # new message rows actually written


@dataclass
class ImportSummary:
    """Result of one import run."""
    outcome:          ImportOutcome
    format:           Optional[BackupFormat] = None
    sms:              PhaseCounters = field(default_factory=PhaseCounters)
    mms:              PhaseCounters = field(default_factory=PhaseCounters)
    payload_failures: int = 0
    threads_repaired: int = 0
    repair_failures:  int = 0

    @property
    def imported(self) -> int:
        return self.sms.imported + self.mms.imported

    @property
    def failed(self) -> int:
        return self.sms.failed + self.mms.failed

    @property
    def message(self) -> str:
        return OUTCOME_MESSAGES[self.outcome]
