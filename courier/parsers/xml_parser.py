"""
courier/parsers/xml_parser.py
Streaming decoder for SMS Backup & Restore style XML (sms-*.xml).

Uses ET.iterparse() so large exports are never built as a full tree.
Only direct <sms> children of the <smses> root are decoded. Any other
child — <mms> included — is skipped as an opaque subtree.

One malformed <sms> is a per-record failure; malformed XML is fatal.

Schema: https://synctech.com.au/sms-backup-restore/fields-in-xml-backup-files/
"""

import io
import logging
import re
import xml.etree.ElementTree as ET

from courier.errors import FormatError, RecordDecodeError
from courier.models.record import BackupDocument, BackupFormat, SmsRecord
from courier.parsers.text import decode_backup_text

logger = logging.getLogger(__name__)

ROOT_TAG = 'smses'
SMS_TAG  = 'sms'


def parse_xml_backup(raw: bytes) -> BackupDocument:
    """
    Decode an XML backup into SmsRecords.
    decoded + decode_failures + skipped_tags == number of root children.
    Raises FormatError on a wrong root tag or broken XML.
    """
    doc   = BackupDocument(format=BackupFormat.XML)
    text  = _strip_stylesheet(decode_backup_text(raw))
    depth = 0
    root  = None

    try:
        for event, el in ET.iterparse(io.StringIO(text), events=('start', 'end')):
            if event == 'end':
                depth -= 1
                if depth == 1 and root is not None:
                    root.clear()
                continue

            depth += 1
            if depth == 1:
                if el.tag != ROOT_TAG:
                    raise FormatError(f"Expected <{ROOT_TAG}> root, found <{el.tag}>")
                root = el
            elif depth == 2:
                if el.tag == SMS_TAG:
                    try:
                        doc.records.append(read_sms(el))
                    except RecordDecodeError as e:
                        doc.decode_failures += 1
                        logger.warning(f"Skipped <sms> element: {e}")
                else:
                    doc.skipped_tags += 1
    except ET.ParseError as e:
        raise FormatError(f"XML parse error: {e}") from e

    if root is None:
        raise FormatError("Empty XML document")

    logger.info(
        f"Parsed {len(doc.records)} SMS from XML "
        f"({doc.decode_failures} failed, {doc.skipped_tags} skipped tags)"
    )
    return doc


def read_sms(el: ET.Element) -> SmsRecord:
    """Decode one <sms> element. `date` fills both timestamps."""
    try:
        date = int(_required(el, 'date'))
        return SmsRecord(
            subscription_id = 0,
            address         = _required(el, 'address'),
            body            = el.get('body'),
            date            = date,
            date_sent       = date,
            locked          = int(_required(el, 'locked')),
            protocol        = el.get('protocol'),
            read            = int(_required(el, 'read')),
            status          = int(_required(el, 'status')),
            type            = int(_required(el, 'type')),
            service_center  = el.get('service_center'),
        )
    except ValueError as e:
        raise RecordDecodeError(str(e)) from e


def _required(el: ET.Element, name: str) -> str:
    val = el.get(name)
    if val is None:
        raise RecordDecodeError(f"missing attribute '{name}'")
    return val


def _strip_stylesheet(content: str) -> str:
    return re.sub(r'<\?xml-stylesheet[^?]*\?>', '', content)
