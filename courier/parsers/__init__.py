"""
courier/parsers — backup decoding.

detect_format() picks exactly one of the two decoders; parse_backup()
runs it. Anything that is not XML by MIME type or by declaration is
handed to the JSON decoder.
"""

import logging
import mimetypes
from pathlib import Path
from typing import BinaryIO, Optional, Union

from courier.models.record import BackupDocument, BackupFormat
from courier.parsers.json_parser import parse_json_backup
from courier.parsers.text import starts_with_xml_declaration
from courier.parsers.xml_parser import parse_xml_backup

logger = logging.getLogger(__name__)

XML_MIME_TYPES = ('application/xml', 'text/xml')

_DECODERS = {
    BackupFormat.XML:  parse_xml_backup,
    BackupFormat.JSON: parse_json_backup,
}


def detect_format(content_type: Optional[str], raw: bytes) -> BackupFormat:
    mime = (content_type or '').split(';', 1)[0].strip().lower()
    if mime in XML_MIME_TYPES:
        return BackupFormat.XML
    if starts_with_xml_declaration(raw):
        return BackupFormat.XML
    return BackupFormat.JSON


def parse_backup(
    source:       Union[bytes, BinaryIO],
    content_type: Optional[str] = None,
) -> BackupDocument:
    """Decode a backup from bytes or a binary stream. Raises FormatError."""
    raw = source if isinstance(source, (bytes, bytearray)) else source.read()
    fmt = detect_format(content_type, raw)
    logger.info(f"Decoding {len(raw)} bytes as {fmt.value} (content type: {content_type or 'unknown'})")
    return _DECODERS[fmt](bytes(raw))


def load_backup(path: Path, content_type: Optional[str] = None) -> BackupDocument:
    """Read and decode a backup file, guessing the MIME type from its name."""
    path = Path(path)
    if content_type is None:
        content_type, _ = mimetypes.guess_type(path.name)
    return parse_backup(path.read_bytes(), content_type)


__all__ = [
    "XML_MIME_TYPES",
    "detect_format",
    "load_backup",
    "parse_backup",
    "parse_json_backup",
    "parse_xml_backup",
]
