"""
courier/parsers/text.py
Byte → text decoding shared by both backup decoders.

Backup exporters vary by version: some write a UTF-8 BOM, some UTF-16.
Decode by BOM when present, otherwise UTF-8 with a lossy fallback.
"""

BOM_UTF8     = b'\xef\xbb\xbf'
BOM_UTF16_LE = b'\xff\xfe'
BOM_UTF16_BE = b'\xfe\xff'

XML_DECLARATION = '<?xml'


def decode_backup_text(raw: bytes) -> str:
    if raw.startswith(BOM_UTF8):
        return raw[len(BOM_UTF8):].decode('utf-8', errors='replace')
    if raw.startswith(BOM_UTF16_LE):
        return raw[len(BOM_UTF16_LE):].decode('utf-16-le', errors='replace')
    if raw.startswith(BOM_UTF16_BE):
        return raw[len(BOM_UTF16_BE):].decode('utf-16-be', errors='replace')
    try:
        return raw.decode('utf-8', errors='strict')
    except UnicodeDecodeError:
        return raw.decode('utf-8', errors='replace')


def starts_with_xml_declaration(raw: bytes) -> bool:
    """True when the first line of the backup opens with an XML declaration."""
    head = decode_backup_text(raw[:256])
    first_line = head.splitlines()[0] if head else ''
    return first_line.startswith(XML_DECLARATION)
