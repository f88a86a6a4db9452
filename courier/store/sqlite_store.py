"""
courier/store/sqlite_store.py
SQLite implementation of MessageStore — a telephony-shaped message database.

SCHEMA DESIGN NOTES:
- sms, pdu (MMS), part, addr mirror the Android telephony provider columns
  so backups map onto rows without renaming
- canonical_addresses + threads implement find-or-create thread ids;
  a thread's recipient_ids is the canonical address id as text
- sms.date is epoch milliseconds, pdu.date is epoch seconds (Android quirk);
  thread repair scales MMS dates before comparing
- part payloads go to part.payload (BLOB), or to parts_dir/PART_<id>
  with the path in part._data when a parts_dir is configured
- every public call is its own transaction; bulk_insert is all-or-nothing
- failed writes raise StoreWriteError, failed reads StoreError
"""

import logging
import re
import sqlite3
import threading
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence, Union

from courier.errors import StoreError, StoreWriteError
from courier.store.base import (
    ADDR_TABLE,
    MAX_QUERY_PARAMS,
    MMS_TABLE,
    PART_TABLE,
    SMS_TABLE,
    MessageStore,
)

logger = logging.getLogger(__name__)

THREADS_TABLE   = 'threads'
CANONICAL_TABLE = 'canonical_addresses'

KNOWN_TABLES = {SMS_TABLE, MMS_TABLE, PART_TABLE, ADDR_TABLE, THREADS_TABLE, CANONICAL_TABLE}
_IDENTIFIER  = re.compile(r'^[A-Za-z_][A-Za-z0-9_]*$')


class SQLiteMessageStore(MessageStore):
    """
    Usage:
        with SQLiteMessageStore(Path("messages.db")) as store:
            tid = store.get_or_create_thread_id("+15550001")
    """

    def __init__(
        self,
        db_path:       Union[Path, str] = Path('messages.db'),
        max_variables: int = MAX_QUERY_PARAMS,
        parts_dir:     Optional[Path] = None,
    ):
        self.db_path       = db_path
        self.max_variables = max_variables
        self.parts_dir     = Path(parts_dir) if parts_dir else None
        # Shared by the import worker and API readers; every use holds _lock.
        self._lock = threading.RLock()
        self._conn = sqlite3.connect(str(db_path), check_same_thread=False)
        self._conn.execute("PRAGMA journal_mode=WAL")
        self._conn.execute("PRAGMA foreign_keys=ON")
        _create_schema(self._conn)

    def close(self) -> None:
        with self._lock:
            self._conn.close()

    def __enter__(self) -> 'SQLiteMessageStore':
        return self

    def __exit__(self, *exc) -> None:
        self.close()

    # ── INTERNAL ──────────────────────────────────────────────────────────

    @contextmanager
    def _transaction(self, what: str):
        try:
            with self._lock, self._conn:
                yield self._conn
        except sqlite3.Error as e:
            raise StoreWriteError(f"{what} failed: {e}") from e

    def _check_variables(self, count: int, what: str) -> None:
        if count > self.max_variables:
            raise StoreError(
                f"{what} failed: too many SQL variables ({count} > {self.max_variables})"
            )

    @staticmethod
    def _check_table(table: str) -> None:
        if table not in KNOWN_TABLES:
            raise StoreError(f"Unknown table: {table}")

    @staticmethod
    def _check_columns(columns: Sequence[str]) -> None:
        bad = [c for c in columns if not _IDENTIFIER.match(c)]
        if bad:
            raise StoreError(f"Invalid column name(s): {bad}")

    # ── MessageStore ──────────────────────────────────────────────────────

    def insert(self, table: str, values: Dict[str, Any]) -> Optional[int]:
        self._check_table(table)
        columns = list(values)
        self._check_columns(columns)
        self._check_variables(len(columns), f"insert into {table}")
        sql = (
            f"INSERT INTO {table} ({', '.join(columns)}) "
            f"VALUES ({', '.join('?' for _ in columns)})"
        )
        with self._transaction(f"insert into {table}") as conn:
            cur = conn.execute(sql, [values[c] for c in columns])
            return cur.lastrowid

    def bulk_insert(self, table: str, rows: Sequence[Dict[str, Any]]) -> int:
        self._check_table(table)
        if not rows:
            return 0
        columns = list(rows[0])
        self._check_columns(columns)
        self._check_variables(len(columns), f"bulk insert into {table}")
        sql = (
            f"INSERT INTO {table} ({', '.join(columns)}) "
            f"VALUES ({', '.join('?' for _ in columns)})"
        )
        with self._transaction(f"bulk insert into {table}") as conn:
            conn.executemany(sql, [[row.get(c) for c in columns] for row in rows])
        logger.debug(f"Bulk inserted {len(rows)} rows into {table}")
        return len(rows)

    def query(
        self,
        table:          str,
        projection:     Sequence[str],
        selection:      str,
        selection_args: Sequence[Any],
    ) -> List[tuple]:
        self._check_table(table)
        self._check_columns(projection)
        self._check_variables(len(selection_args), f"query on {table}")
        sql = f"SELECT {', '.join(projection)} FROM {table}"
        if selection:
            sql += f" WHERE {selection}"
        try:
            with self._lock:
                return self._conn.execute(sql, list(selection_args)).fetchall()
        except sqlite3.Error as e:
            raise StoreError(f"query on {table} failed: {e}") from e

    def get_or_create_thread_id(self, address: str) -> int:
        with self._transaction("thread lookup") as conn:
            row = conn.execute(
                f"SELECT _id FROM {CANONICAL_TABLE} WHERE address = ?", (address,)
            ).fetchone()
            canonical_id = row[0] if row else conn.execute(
                f"INSERT INTO {CANONICAL_TABLE} (address) VALUES (?)", (address,)
            ).lastrowid

            recipient_ids = str(canonical_id)
            row = conn.execute(
                f"SELECT _id FROM {THREADS_TABLE} WHERE recipient_ids = ?", (recipient_ids,)
            ).fetchone()
            if row:
                return row[0]
            thread_id = conn.execute(
                f"INSERT INTO {THREADS_TABLE} (recipient_ids) VALUES (?)", (recipient_ids,)
            ).lastrowid
        logger.debug(f"Created thread {thread_id}")
        return thread_id

    def write_part_data(self, part_id: int, data: bytes) -> None:
        if self.parts_dir is None:
            with self._transaction("part payload write") as conn:
                conn.execute(
                    f"UPDATE {PART_TABLE} SET payload = ? WHERE _id = ?", (data, part_id)
                )
            return

        self.parts_dir.mkdir(parents=True, exist_ok=True)
        path = self.parts_dir / f"PART_{part_id}"
        path.write_bytes(data)
        with self._transaction("part payload write") as conn:
            conn.execute(
                f"UPDATE {PART_TABLE} SET _data = ? WHERE _id = ?", (str(path), part_id)
            )

    def update_last_conversation_message(self, thread_id: int) -> None:
        with self._transaction(f"thread {thread_id} repair") as conn:
            latest_sms = conn.execute(
                f"SELECT date, body FROM {SMS_TABLE} WHERE thread_id = ? "
                f"ORDER BY date DESC LIMIT 1",
                (thread_id,),
            ).fetchone()
            latest_mms = conn.execute(
                f"SELECT date * 1000, sub, _id FROM {MMS_TABLE} WHERE thread_id = ? "
                f"ORDER BY date DESC LIMIT 1",
                (thread_id,),
            ).fetchone()
            count = (
                conn.execute(f"SELECT COUNT(*) FROM {SMS_TABLE} WHERE thread_id = ?", (thread_id,)).fetchone()[0]
                + conn.execute(f"SELECT COUNT(*) FROM {MMS_TABLE} WHERE thread_id = ?", (thread_id,)).fetchone()[0]
            )
            unread = (
                conn.execute(f"SELECT COUNT(*) FROM {SMS_TABLE} WHERE thread_id = ? AND read = 0", (thread_id,)).fetchone()[0]
                + conn.execute(f"SELECT COUNT(*) FROM {MMS_TABLE} WHERE thread_id = ? AND read = 0", (thread_id,)).fetchone()[0]
            )

            if count == 0:
                conn.execute(f"DELETE FROM {THREADS_TABLE} WHERE _id = ?", (thread_id,))
                return

            if latest_mms and (not latest_sms or latest_mms[0] > latest_sms[0]):
                date, snippet = latest_mms[0], latest_mms[1] or _mms_text(conn, latest_mms[2])
            else:
                date, snippet = latest_sms

            conn.execute(
                f"UPDATE {THREADS_TABLE} SET date = ?, snippet = ?, message_count = ?, read = ? "
                f"WHERE _id = ?",
                (date, snippet, count, int(unread == 0), thread_id),
            )

    # ── HELPERS ───────────────────────────────────────────────────────────

    def count(self, table: str) -> int:
        self._check_table(table)
        with self._lock:
            return self._conn.execute(f"SELECT COUNT(*) FROM {table}").fetchone()[0]

    def threads(self) -> List[Dict[str, Any]]:
        """Thread metadata joined with its recipient address, newest first."""
        with self._lock:
            rows = self._conn.execute(f"""
                SELECT t._id, c.address, t.date, t.message_count, t.snippet, t.read
                FROM {THREADS_TABLE} t
                LEFT JOIN {CANONICAL_TABLE} c ON CAST(c._id AS TEXT) = t.recipient_ids
                ORDER BY t.date DESC
            """).fetchall()
        keys = ('thread_id', 'address', 'date', 'message_count', 'snippet', 'read')
        return [dict(zip(keys, r)) for r in rows]


def _mms_text(conn: sqlite3.Connection, message_id: int) -> Optional[str]:
    row = conn.execute(
        f"SELECT text FROM {PART_TABLE} WHERE mid = ? AND ct = 'text/plain' "
        f"ORDER BY seq LIMIT 1",
        (message_id,),
    ).fetchone()
    return row[0] if row else None


# ── SCHEMA ───────────────────────────────────────────────────

def _create_schema(conn: sqlite3.Connection) -> None:
    conn.executescript(f"""
        CREATE TABLE IF NOT EXISTS {CANONICAL_TABLE} (
            _id             INTEGER PRIMARY KEY AUTOINCREMENT,
            address         TEXT    NOT NULL UNIQUE
        );

        CREATE TABLE IF NOT EXISTS {THREADS_TABLE} (
            _id             INTEGER PRIMARY KEY AUTOINCREMENT,
            recipient_ids   TEXT    NOT NULL UNIQUE,
            date            INTEGER DEFAULT 0,     -- ms
            message_count   INTEGER DEFAULT 0,
            snippet         TEXT,
            read            INTEGER DEFAULT 1
        );

        CREATE TABLE IF NOT EXISTS {SMS_TABLE} (
            _id             INTEGER PRIMARY KEY AUTOINCREMENT,
            thread_id       INTEGER,
            address         TEXT,
            date            INTEGER,               -- ms
            date_sent       INTEGER DEFAULT 0,
            protocol        TEXT,
            read            INTEGER DEFAULT 0,
            status          INTEGER DEFAULT -1,
            type            INTEGER,
            body            TEXT,
            service_center  TEXT,
            locked          INTEGER DEFAULT 0,
            sub_id          INTEGER DEFAULT -1
        );

        CREATE TABLE IF NOT EXISTS {MMS_TABLE} (
            _id             INTEGER PRIMARY KEY AUTOINCREMENT,
            thread_id       INTEGER,
            date            INTEGER,               -- seconds
            date_sent       INTEGER DEFAULT 0,
            msg_box         INTEGER,
            read            INTEGER DEFAULT 0,
            seen            INTEGER DEFAULT 0,
            text_only       INTEGER DEFAULT 0,
            creator         TEXT,
            ct_t            TEXT,
            d_rpt           INTEGER,
            locked          INTEGER DEFAULT 0,
            m_type          INTEGER,
            rr              INTEGER,
            st              INTEGER,
            sub             TEXT,
            sub_cs          INTEGER,
            sub_id          INTEGER DEFAULT -1,
            tr_id           TEXT
        );

        CREATE TABLE IF NOT EXISTS {PART_TABLE} (
            _id             INTEGER PRIMARY KEY AUTOINCREMENT,
            mid             INTEGER,
            seq             INTEGER DEFAULT 0,
            ct              TEXT,
            name            TEXT,
            chset           TEXT,
            cd              TEXT,
            fn              TEXT,
            cid             TEXT,
            cl              TEXT,
            ctt_s           TEXT,
            ctt_t           TEXT,
            text            TEXT,
            _data           TEXT,                  -- payload file path
            payload         BLOB
        );

        CREATE TABLE IF NOT EXISTS {ADDR_TABLE} (
            _id             INTEGER PRIMARY KEY AUTOINCREMENT,
            msg_id          INTEGER,
            address         TEXT,
            type            INTEGER,
            charset         INTEGER
        );

        CREATE INDEX IF NOT EXISTS idx_sms_date    ON {SMS_TABLE}(date);
        CREATE INDEX IF NOT EXISTS idx_sms_thread  ON {SMS_TABLE}(thread_id);
        CREATE INDEX IF NOT EXISTS idx_pdu_date    ON {MMS_TABLE}(date);
        CREATE INDEX IF NOT EXISTS idx_pdu_thread  ON {MMS_TABLE}(thread_id);
        CREATE INDEX IF NOT EXISTS idx_part_mid    ON {PART_TABLE}(mid);
        CREATE INDEX IF NOT EXISTS idx_addr_msg    ON {ADDR_TABLE}(msg_id);
    """)
