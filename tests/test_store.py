"""
tests/test_store.py
SQLiteMessageStore: parameter ceiling, thread find-or-create, payloads, thread repair.
"""

import threading

import pytest

from courier.errors import StoreError, StoreWriteError
from courier.store.base import ADDR_TABLE, MMS_TABLE, PART_TABLE, SMS_TABLE
from courier.store.sqlite_store import SQLiteMessageStore


@pytest.fixture
def store(tmp_path):
    s = SQLiteMessageStore(tmp_path / 'messages.db')
    yield s
    s.close()


def _sms_row(thread_id, date, body='hi', read=1, address='+15550001'):
    return {
        'thread_id': thread_id, 'address': address, 'date': date,
        'type': 1, 'body': body, 'read': read,
    }


class TestQueries:

    def test_insert_returns_row_id(self, store):
        first  = store.insert(SMS_TABLE, _sms_row(1, 1000))
        second = store.insert(SMS_TABLE, _sms_row(1, 2000))
        assert second == first + 1

    def test_query_with_selection(self, store):
        store.insert(SMS_TABLE, _sms_row(1, 1000))
        store.insert(SMS_TABLE, _sms_row(1, 2000))
        rows = store.query(SMS_TABLE, ['date'], "date > ?", [1500])
        assert rows == [(2000,)]

    def test_bulk_insert(self, store):
        n = store.bulk_insert(SMS_TABLE, [_sms_row(1, d) for d in range(10)])
        assert n == 10
        assert store.count(SMS_TABLE) == 10

    def test_bulk_insert_empty(self, store):
        assert store.bulk_insert(SMS_TABLE, []) == 0

    def test_too_many_variables(self, store):
        args = list(range(1000))
        placeholders = ','.join('?' for _ in args)
        with pytest.raises(StoreError, match='too many SQL variables'):
            store.query(SMS_TABLE, ['_id'], f"date IN ({placeholders})", args)

    def test_exactly_999_variables_is_fine(self, store):
        args = list(range(999))
        placeholders = ','.join('?' for _ in args)
        assert store.query(SMS_TABLE, ['_id'], f"date IN ({placeholders})", args) == []

    def test_lower_ceiling_applies_to_inserts(self, tmp_path):
        with SQLiteMessageStore(tmp_path / 'small.db', max_variables=3) as small:
            with pytest.raises(StoreError):
                small.insert(SMS_TABLE, _sms_row(1, 1000))

    def test_unknown_table_rejected(self, store):
        with pytest.raises(StoreError):
            store.query('contacts', ['_id'], '', [])

    def test_bad_column_rejected(self, store):
        with pytest.raises(StoreError):
            store.insert(SMS_TABLE, {'date; DROP TABLE sms': 1})

    def test_failed_write_is_store_write_error(self, store):
        with pytest.raises(StoreWriteError):
            store.insert(SMS_TABLE, {'no_such_column': 1})

    def test_failed_read_is_store_error(self, store):
        with pytest.raises(StoreError) as info:
            store.query(SMS_TABLE, ['_id'], "no_such_column = ?", [1])
        assert not isinstance(info.value, StoreWriteError)


class TestSharedConnection:

    def test_reader_waits_for_writer(self, store):
        store.insert(SMS_TABLE, _sms_row(1, 1000))
        counts = []
        reader = threading.Thread(target=lambda: counts.append(store.count(SMS_TABLE)))

        with store._lock:
            reader.start()
            reader.join(timeout=0.2)
            assert reader.is_alive()
            store.insert(SMS_TABLE, _sms_row(1, 2000))

        reader.join(timeout=5)
        assert counts == [2]

    def test_reads_interleave_with_writes(self, store):
        errors = []

        def read_threads():
            for _ in range(50):
                try:
                    store.threads()
                    store.count(SMS_TABLE)
                except Exception as e:
                    errors.append(e)

        reader = threading.Thread(target=read_threads)
        reader.start()
        for d in range(200):
            tid = store.get_or_create_thread_id(f'+1555000{d % 5}')
            store.insert(SMS_TABLE, _sms_row(tid, d))
            store.update_last_conversation_message(tid)
        reader.join(timeout=10)
        assert errors == []
        assert store.count(SMS_TABLE) == 200


class TestThreads:

    def test_same_address_same_thread(self, store):
        a = store.get_or_create_thread_id('+15550001')
        b = store.get_or_create_thread_id('+15550001')
        assert a == b

    def test_different_addresses_different_threads(self, store):
        a = store.get_or_create_thread_id('+15550001')
        b = store.get_or_create_thread_id('+15550002')
        assert a != b
        assert len(store.threads()) == 2

    def test_thread_survives_reopen(self, tmp_path):
        path = tmp_path / 'messages.db'
        with SQLiteMessageStore(path) as s:
            tid = s.get_or_create_thread_id('+15550001')
        with SQLiteMessageStore(path) as s:
            assert s.get_or_create_thread_id('+15550001') == tid


class TestPartPayload:

    def test_payload_stored_as_blob(self, store):
        part_id = store.insert(PART_TABLE, {'mid': 1, 'ct': 'image/jpeg'})
        store.write_part_data(part_id, b'\xff\xd8\xff')
        assert store.query(PART_TABLE, ['payload', '_data'], "_id = ?", [part_id]) == [(b'\xff\xd8\xff', None)]

    def test_payload_written_to_parts_dir(self, tmp_path):
        parts = tmp_path / 'parts'
        with SQLiteMessageStore(tmp_path / 'messages.db', parts_dir=parts) as s:
            part_id = s.insert(PART_TABLE, {'mid': 1, 'ct': 'image/png'})
            s.write_part_data(part_id, b'PNG')
            (data_path,) = s.query(PART_TABLE, ['_data'], "_id = ?", [part_id])[0]
        assert data_path == str(parts / f'PART_{part_id}')
        assert (parts / f'PART_{part_id}').read_bytes() == b'PNG'


class TestThreadRepair:

    def test_latest_sms_becomes_snippet(self, store):
        tid = store.get_or_create_thread_id('+15550001')
        store.insert(SMS_TABLE, _sms_row(tid, 1000, body='older'))
        store.insert(SMS_TABLE, _sms_row(tid, 5000, body='newest', read=0))
        store.update_last_conversation_message(tid)

        (thread,) = store.threads()
        assert thread['date'] == 5000
        assert thread['snippet'] == 'newest'
        assert thread['message_count'] == 2
        assert thread['read'] == 0
        assert thread['address'] == '+15550001'

    def test_mms_dates_are_scaled_to_ms(self, store):
        tid = store.get_or_create_thread_id('+15550001')
        store.insert(SMS_TABLE, _sms_row(tid, 1_704_067_200_000, body='sms'))
        mid = store.insert(MMS_TABLE, {'thread_id': tid, 'date': 1_704_067_260, 'msg_box': 1, 'read': 1})
        store.insert(PART_TABLE, {'mid': mid, 'ct': 'text/plain', 'text': 'mms text'})
        store.update_last_conversation_message(tid)

        (thread,) = store.threads()
        assert thread['date'] == 1_704_067_260_000
        assert thread['snippet'] == 'mms text'
        assert thread['message_count'] == 2

    def test_empty_thread_is_deleted(self, store):
        tid = store.get_or_create_thread_id('+15550001')
        store.update_last_conversation_message(tid)
        assert store.threads() == []

    def test_address_rows_do_not_count_as_messages(self, store):
        tid = store.get_or_create_thread_id('+15550001')
        store.insert(SMS_TABLE, _sms_row(tid, 1000))
        store.insert(ADDR_TABLE, {'msg_id': 99, 'address': '+15550001', 'type': 137, 'charset': 106})
        store.update_last_conversation_message(tid)
        assert store.threads()[0]['message_count'] == 1
