"""Batch decoder for JSON message backups.

The whole document must validate as one array of backup entries, each
tagged by ``backupType``. There is no partial-success mode: a single
malformed entry rejects the document. If the export format changes,
pydantic's ValidationError names the offending field, which is logged
before it is turned into a FormatError.
"""
from __future__ import annotations

import logging
from typing import Annotated, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, ValidationError

from courier.errors import FormatError
from courier.models.record import (
    BackupDocument,
    BackupFormat,
    MmsAddress,
    MmsPart,
    MmsRecord,
    SmsRecord,
)
from courier.parsers.text import decode_backup_text

logger = logging.getLogger(__name__)


class _Entry(BaseModel):
    model_config = ConfigDict(extra="ignore", frozen=True)


class MmsAddressEntry(_Entry):
    address: str
    type: int
    charset: int = 106

    def to_model(self) -> MmsAddress:
        return MmsAddress(address=self.address, type=self.type, charset=self.charset)


class MmsPartEntry(_Entry):
    content_type: str = Field(alias="ct")
    content_location: Optional[str] = Field(None, alias="cl")
    content_id: Optional[str] = Field(None, alias="cid")
    content_disposition: Optional[str] = Field(None, alias="cd")
    charset: Optional[str] = Field(None, alias="chset")
    ct_start: Optional[str] = Field(None, alias="ctt_s")
    ct_type: Optional[str] = Field(None, alias="ctt_t")
    filename: Optional[str] = Field(None, alias="fn")
    name: Optional[str] = None
    sequence: int = Field(0, alias="seq")
    text: Optional[str] = None
    data: Optional[str] = None

    def to_model(self) -> MmsPart:
        return MmsPart(
            content_type=self.content_type,
            content_location=self.content_location,
            content_id=self.content_id,
            text=self.text,
            data=self.data,
            content_disposition=self.content_disposition,
            charset=self.charset,
            ct_start=self.ct_start,
            ct_type=self.ct_type,
            filename=self.filename,
            name=self.name,
            sequence=self.sequence,
        )


class SmsEntry(_Entry):
    backup_type: Literal["sms"] = Field(alias="backupType")
    subscription_id: int = Field(0, alias="sub_id")
    address: str
    body: Optional[str] = None
    date: int
    date_sent: int = 0
    locked: int = 0
    protocol: Optional[str] = None
    read: int = 0
    status: int = -1
    type: int
    service_center: Optional[str] = None

    def to_record(self) -> SmsRecord:
        return SmsRecord(
            subscription_id=self.subscription_id,
            address=self.address,
            body=self.body,
            date=self.date,
            date_sent=self.date_sent,
            locked=self.locked,
            protocol=self.protocol,
            read=self.read,
            status=self.status,
            type=self.type,
            service_center=self.service_center,
        )


class MmsEntry(_Entry):
    backup_type: Literal["mms"] = Field(alias="backupType")
    date: int
    date_sent: int = 0
    message_box: int = Field(alias="msg_box")
    addresses: List[MmsAddressEntry] = Field(default_factory=list)
    parts: List[MmsPartEntry] = Field(default_factory=list)
    creator: Optional[str] = None
    content_type: Optional[str] = Field(None, alias="ct_t")
    delivery_report: int = Field(0, alias="d_rpt")
    locked: int = 0
    message_type: int = Field(0, alias="m_type")
    read: int = 0
    read_report: int = Field(0, alias="rr")
    seen: int = 0
    text_only: int = 0
    status: Optional[int] = Field(None, alias="st")
    subject: Optional[str] = Field(None, alias="sub")
    subject_charset: Optional[int] = Field(None, alias="sub_cs")
    subscription_id: int = Field(0, alias="sub_id")
    transaction_id: Optional[str] = Field(None, alias="tr_id")

    def to_record(self) -> MmsRecord:
        return MmsRecord(
            date=self.date,
            date_sent=self.date_sent,
            message_box=self.message_box,
            addresses=tuple(a.to_model() for a in self.addresses),
            parts=tuple(p.to_model() for p in self.parts),
            creator=self.creator,
            content_type=self.content_type,
            delivery_report=self.delivery_report,
            locked=self.locked,
            message_type=self.message_type,
            read=self.read,
            read_report=self.read_report,
            seen=self.seen,
            text_only=self.text_only,
            status=self.status,
            subject=self.subject,
            subject_charset=self.subject_charset,
            subscription_id=self.subscription_id,
            transaction_id=self.transaction_id,
        )


BackupEntry = Annotated[Union[SmsEntry, MmsEntry], Field(discriminator="backup_type")]

_BACKUP_ADAPTER = TypeAdapter(List[BackupEntry])


def parse_json_backup(raw: bytes) -> BackupDocument:
    """Decode a JSON backup. Raises FormatError if the document does not validate."""
    text = decode_backup_text(raw)
    try:
        entries = _BACKUP_ADAPTER.validate_json(text)
    except ValidationError as exc:
        logger.warning(f"JSON backup rejected: {exc.error_count()} validation error(s)")
        logger.debug(str(exc))
        raise FormatError(f"Invalid backup document ({exc.error_count()} errors)") from exc

    doc = BackupDocument(format=BackupFormat.JSON)
    doc.records = [entry.to_record() for entry in entries]
    logger.info(f"Parsed {len(doc.sms)} SMS and {len(doc.mms)} MMS from JSON")
    return doc
