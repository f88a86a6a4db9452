"""
tests/test_parsers.py
Unit tests for format detection and both backup decoders.
Synthetic XML/JSON only — no real messages needed.
"""

import json

import pytest

from courier.errors import FormatError
from courier.models.record import BackupFormat, MmsRecord, SmsRecord, PDU_FROM, PDU_TO
from courier.parsers import detect_format, parse_backup
from courier.parsers.json_parser import parse_json_backup
from courier.parsers.text import BOM_UTF8
from courier.parsers.xml_parser import parse_xml_backup


# ── FIXTURE: Synthetic SMS XML ────────────────────────────────

SAMPLE_SMS_XML = """<?xml version='1.0' encoding='UTF-8' standalone='yes' ?>
<?xml-stylesheet type="text/xsl" href="sms.xsl"?>
<smses count="7">
  <sms protocol="0" address="+16125550001" date="1704067200000"
       type="1" subject="null" body="Are we still on for Saturday?"
       toa="null" sc_toa="null" service_center="null" read="1"
       status="-1" locked="0" contact_name="Test Contact" />
  <sms protocol="0" address="+16125550001" date="1704067260000"
       type="2" subject="null" body="Yes, see you at noon."
       toa="null" sc_toa="null" service_center="null" read="1"
       status="-1" locked="0" contact_name="Test Contact" />
  <sms protocol="0" address="+16125550002" date="1704067320000"
       type="1" body="Package delivered." service_center="+15550000000"
       read="0" status="0" locked="1" />
  <sms protocol="0" address="+16125550002" date="1704067380000"
       type="1" body="Thanks!" service_center="null" read="0"
       status="-1" locked="0" />
  <mms date="1704067440000" address="+16125550001" msg_box="1" read="1" m_type="132">
    <parts>
      <part seq="0" ct="text/plain" text="Photo from the trip" />
    </parts>
    <addrs>
      <addr address="+16125550001" type="137" charset="106" />
    </addrs>
  </mms>
  <sms protocol="0" address="+16125550003" date="not-a-number"
       type="1" body="Broken date" read="0" status="-1" locked="0" />
  <sms protocol="0" address="+16125550003" date="1704067500000"
       type="1" body="Missing status" read="0" locked="0" />
</smses>
"""

ONE_SMS_XML = """<?xml version="1.0" encoding="UTF-8"?>
<smses count="1">
  <sms address="555" body="hello" date="1000" locked="0" protocol="0"
       read="1" status="-1" type="1" service_center="null" />
</smses>
"""

SAMPLE_JSON = [
    {
        "backupType": "sms",
        "sub_id": 1,
        "address": "+15550001",
        "body": "One.",
        "date": 1704067200000,
        "date_sent": 1704067199000,
        "locked": 0,
        "protocol": "0",
        "read": 1,
        "status": -1,
        "type": 1,
        "service_center": None,
    },
    {
        "backupType": "mms",
        "date": 1704067440,
        "date_sent": 1704067439,
        "msg_box": 1,
        "m_type": 132,
        "read": 1,
        "seen": 1,
        "sub_id": 1,
        "tr_id": "T1",
        "addresses": [
            {"address": "+15550001", "type": 137, "charset": 106},
            {"address": "+15559999", "type": 151, "charset": 106},
        ],
        "parts": [
            {"ct": "application/smil", "cl": "smil.xml", "cid": "<smil>", "seq": -1, "text": "<smil/>"},
            {"ct": "text/plain", "cl": "text_0.txt", "cid": "<text_0>", "seq": 0, "text": "Look"},
            {"ct": "image/jpeg", "cl": "img.jpg", "cid": "<img>", "seq": 0, "data": "/9j/4AAQ"},
        ],
    },
]


def _json_bytes(payload) -> bytes:
    return json.dumps(payload).encode('utf-8')


# ── FORMAT DETECTION ─────────────────────────────────────────

class TestDetectFormat:

    @pytest.mark.parametrize('content_type', [
        'application/xml', 'text/xml', 'TEXT/XML', 'application/xml; charset=utf-8',
    ])
    def test_xml_mime_types(self, content_type):
        assert detect_format(content_type, b'[]') is BackupFormat.XML

    def test_xml_declaration_sniffed_without_mime(self):
        assert detect_format(None, ONE_SMS_XML.encode()) is BackupFormat.XML

    def test_xml_declaration_sniffed_through_bom(self):
        assert detect_format('text/plain', BOM_UTF8 + ONE_SMS_XML.encode()) is BackupFormat.XML

    def test_everything_else_is_json(self):
        assert detect_format('application/json', b'[]') is BackupFormat.JSON
        assert detect_format(None, b'') is BackupFormat.JSON
        assert detect_format('text/plain', b'<smses></smses>') is BackupFormat.JSON


# ── STREAMING XML DECODER ────────────────────────────────────

class TestXmlParser:

    def test_decodes_sms_and_counts_the_rest(self):
        doc = parse_xml_backup(SAMPLE_SMS_XML.encode())
        assert doc.format is BackupFormat.XML
        assert len(doc.records) == 4
        assert doc.decode_failures == 2
        assert doc.skipped_tags == 1

    def test_every_root_child_is_accounted_for(self):
        doc = parse_xml_backup(SAMPLE_SMS_XML.encode())
        assert len(doc.records) + doc.decode_failures + doc.skipped_tags == 7

    def test_sms_fields(self):
        doc = parse_xml_backup(SAMPLE_SMS_XML.encode())
        third = doc.records[2]
        assert isinstance(third, SmsRecord)
        assert third.address == '+16125550002'
        assert third.date == third.date_sent == 1704067320000
        assert third.locked == 1
        assert third.status == 0
        assert third.read == 0
        assert third.type == 1
        assert third.subscription_id == 0
        assert third.service_center == '+15550000000'

    def test_nested_sms_inside_other_tag_is_skipped(self):
        xml = """<?xml version="1.0"?>
<smses>
  <meta><sms address="1" date="1" locked="0" read="0" status="0" type="1" /></meta>
  <sms address="2" date="2" locked="0" read="0" status="0" type="1" />
</smses>"""
        doc = parse_xml_backup(xml.encode())
        assert [r.address for r in doc.records] == ['2']
        assert doc.skipped_tags == 1

    def test_wrong_root_is_format_error(self):
        with pytest.raises(FormatError):
            parse_xml_backup(b'<?xml version="1.0"?><calls count="0"></calls>')

    def test_malformed_xml_is_format_error(self):
        with pytest.raises(FormatError):
            parse_xml_backup(b'<smses><sms BROKEN')

    def test_empty_input_is_format_error(self):
        with pytest.raises(FormatError):
            parse_xml_backup(b'')

    def test_utf8_bom_is_stripped(self):
        doc = parse_xml_backup(BOM_UTF8 + ONE_SMS_XML.encode())
        assert len(doc.records) == 1

    def test_utf16_backup(self):
        xml = ONE_SMS_XML.replace('encoding="UTF-8"', '')
        doc = parse_xml_backup(b'\xff\xfe' + xml.encode('utf-16-le'))
        assert doc.records[0].body == 'hello'


# ── BATCH JSON DECODER ───────────────────────────────────────

class TestJsonParser:

    def test_decodes_tagged_records(self):
        doc = parse_json_backup(_json_bytes(SAMPLE_JSON))
        assert doc.format is BackupFormat.JSON
        assert len(doc.sms) == 1
        assert len(doc.mms) == 1

    def test_sms_fields(self):
        sms = parse_json_backup(_json_bytes(SAMPLE_JSON)).sms[0]
        assert sms.subscription_id == 1
        assert sms.date_sent == 1704067199000
        assert sms.identity == (1704067200000, '+15550001', 1)

    def test_mms_parts_and_addresses(self):
        mms = parse_json_backup(_json_bytes(SAMPLE_JSON)).mms[0]
        assert isinstance(mms, MmsRecord)
        assert mms.message_box == 1
        assert mms.transaction_id == 'T1'
        assert mms.first_address(PDU_FROM) == '+15550001'
        assert mms.first_address(PDU_TO) == '+15559999'
        assert [p.is_non_text for p in mms.parts] == [False, False, True]
        assert mms.parts[2].data == '/9j/4AAQ'

    def test_records_are_immutable(self):
        sms = parse_json_backup(_json_bytes(SAMPLE_JSON)).sms[0]
        with pytest.raises(AttributeError):
            sms.address = 'other'

    def test_empty_array_is_nothing_to_import(self):
        doc = parse_json_backup(b'[]')
        assert doc.records == []

    @pytest.mark.parametrize('raw', [
        b'{"backupType": "sms"}',                                # not an array
        b'[{"address": "1", "date": 1, "type": 1}]',             # untagged
        b'[{"backupType": "call", "number": "1"}]',              # unknown tag
        b'[{"backupType": "sms", "address": "1", "type": 1}]',   # missing date
        b'[{"backupType": "sms", "address": "1", "date": 1, "type": 1},',
        b'not json at all',
    ])
    def test_structural_errors_reject_whole_document(self, raw):
        with pytest.raises(FormatError):
            parse_json_backup(raw)

    def test_one_bad_entry_rejects_the_good_ones(self):
        payload = SAMPLE_JSON + [{"backupType": "mms", "date": "soon", "msg_box": 1}]
        with pytest.raises(FormatError):
            parse_json_backup(_json_bytes(payload))


# ── DISPATCH ─────────────────────────────────────────────────

class TestParseBackup:

    def test_xml_by_content_type(self):
        doc = parse_backup(ONE_SMS_XML.encode(), 'text/xml')
        assert doc.format is BackupFormat.XML

    def test_json_from_stream(self, tmp_path):
        path = tmp_path / 'backup.json'
        path.write_bytes(_json_bytes(SAMPLE_JSON))
        with path.open('rb') as fh:
            doc = parse_backup(fh, 'application/json')
        assert len(doc.records) == 2

    def test_xml_declared_but_json_inside_is_format_error(self):
        with pytest.raises(FormatError):
            parse_backup(_json_bytes(SAMPLE_JSON), 'application/xml')
