"""
courier/importer.py
Drives one import run: parse → write SMS → write MMS → fix threads → summary.

PHASES:
  START → PARSING → WRITING_SMS → WRITING_MMS → FINALIZING → DONE
  PARSING → FAILED on an unparseable backup (FormatError is re-raised)

FAILURE ACCOUNTING:
  XML SMS        per record (decode failures included)
  JSON SMS       per chunk of up to 999 — the whole chunk counts either way
  MMS            per record; records with no thread address are skipped,
                 records whose row cannot be found again count as imported
Nothing but FormatError leaves a run; everything else becomes a counter.

Runs are non-reentrant. ImportWorker runs them on one background thread.
"""

import logging
import threading
from concurrent.futures import Future, ThreadPoolExecutor
from contextlib import contextmanager
from enum import Enum
from typing import BinaryIO, Callable, List, Optional, Union

from courier.config import ImportSettings
from courier.errors import FormatError, ImportInProgressError
from courier.models.record import (
    BackupDocument,
    BackupFormat,
    ImportOutcome,
    ImportSummary,
    MmsRecord,
    PhaseCounters,
    SmsRecord,
)
from courier.parsers import parse_backup
from courier.store.base import MAX_QUERY_PARAMS, MessageStore
from courier.threads import ImportSession
from courier.writer import MessagesWriter, MmsWriteStatus

logger = logging.getLogger(__name__)


class ImportPhase(Enum):
    START       = 'start'
    PARSING     = 'parsing'
    WRITING_SMS = 'writing_sms'
    WRITING_MMS = 'writing_mms'
    FINALIZING  = 'finalizing'
    DONE        = 'done'
    FAILED      = 'failed'


class MessagesImporter:
    """
    Usage:
        importer = MessagesImporter(store, ImportSettings(import_mms=False))
        summary  = importer.import_backup(Path("sms.xml").read_bytes(), "text/xml")
        print(summary.message)
    """

    def __init__(
        self,
        store:      MessageStore,
        settings:   Optional[ImportSettings] = None,
        chunk_size: int = MAX_QUERY_PARAMS,
    ):
        self.store      = store
        self.settings   = settings or ImportSettings()
        self.chunk_size = max(1, min(chunk_size, MAX_QUERY_PARAMS))
        self.phase      = ImportPhase.START
        self._lock      = threading.Lock()

    @contextmanager
    def _exclusive(self):
        if not self._lock.acquire(blocking=False):
            raise ImportInProgressError("An import is already running")
        try:
            yield
        finally:
            self._lock.release()

    # ── ENTRY POINTS ──────────────────────────────────────────

    def import_backup(
        self,
        source:       Union[bytes, BinaryIO],
        content_type: Optional[str] = None,
        settings:     Optional[ImportSettings] = None,
    ) -> ImportSummary:
        """Parse and restore a backup. Raises FormatError before any write."""
        with self._exclusive():
            self.phase = ImportPhase.PARSING
            try:
                document = parse_backup(source, content_type)
            except FormatError as e:
                self.phase = ImportPhase.FAILED
                logger.error(f"Import aborted — invalid backup: {e}")
                raise
            return self._restore(document, settings or self.settings)

    def restore_messages(
        self,
        document: BackupDocument,
        settings: Optional[ImportSettings] = None,
    ) -> ImportSummary:
        """Restore an already-decoded backup."""
        with self._exclusive():
            return self._restore(document, settings or self.settings)

    # ── PIPELINE ──────────────────────────────────────────────

    def _restore(self, document: BackupDocument, settings: ImportSettings) -> ImportSummary:
        session = ImportSession()
        writer  = MessagesWriter(self.store, session)
        sms     = PhaseCounters()
        mms     = PhaseCounters()
        payload_failures = 0

        logger.info(f"Importing backup with {len(document.records)} messages")

        if settings.import_sms:
            self.phase = ImportPhase.WRITING_SMS
            sms.offered += document.decode_failures
            sms.failed  += document.decode_failures
            if document.format is BackupFormat.XML:
                self._write_sms_each(writer, document.sms, sms)
            else:
                self._write_sms_chunks(writer, document.sms, sms)
            logger.info(f"SMS: {sms.imported} imported, {sms.failed} failed, {sms.rows_inserted} new rows")

        if settings.import_mms:
            self.phase = ImportPhase.WRITING_MMS
            payload_failures = self._write_mms_each(writer, document.mms, mms)
            logger.info(
                f"MMS: {mms.imported} imported, {mms.failed} failed, "
                f"{mms.skipped} skipped, {mms.rows_inserted} new rows"
            )

        self.phase = ImportPhase.FINALIZING
        outcome = ImportOutcome.from_counts(sms.imported + mms.imported, sms.failed + mms.failed)
        threads = len(session.modified_thread_ids)
        repair_failures = writer.fix_conversation_dates()

        summary = ImportSummary(
            outcome          = outcome,
            format           = document.format,
            sms              = sms,
            mms              = mms,
            payload_failures = payload_failures,
            threads_repaired = threads - repair_failures,
            repair_failures  = repair_failures,
        )
        self.phase = ImportPhase.DONE
        logger.info(f"Finished import: {summary.message} ({summary.imported} imported, {summary.failed} failed)")
        return summary

    def _write_sms_each(self, writer: MessagesWriter, records: List[SmsRecord], counts: PhaseCounters) -> None:
        for record in records:
            counts.offered += 1
            try:
                if writer.write_sms(record):
                    counts.rows_inserted += 1
                counts.imported += 1
            except Exception as e:
                counts.failed += 1
                logger.error(f"SMS dated {record.date} failed: {e}", exc_info=True)

    def _write_sms_chunks(self, writer: MessagesWriter, records: List[SmsRecord], counts: PhaseCounters) -> None:
        for start in range(0, len(records), self.chunk_size):
            chunk = records[start:start + self.chunk_size]
            counts.offered += len(chunk)
            try:
                counts.rows_inserted += writer.bulk_write_sms(chunk)
                counts.imported += len(chunk)
            except Exception as e:
                counts.failed += len(chunk)
                logger.error(f"SMS chunk of {len(chunk)} failed: {e}", exc_info=True)

    def _write_mms_each(self, writer: MessagesWriter, records: List[MmsRecord], counts: PhaseCounters) -> int:
        payload_failures = 0
        for record in records:
            counts.offered += 1
            try:
                result = writer.write_mms(record)
            except Exception as e:
                counts.failed += 1
                logger.error(f"MMS dated {record.date} failed: {e}", exc_info=True)
                continue

            if result.status is MmsWriteStatus.SKIPPED_NO_THREAD:
                counts.skipped += 1
                continue
            # Abandoned writes count as imported.
            counts.imported += 1
            if result.status is MmsWriteStatus.WRITTEN:
                counts.rows_inserted += int(result.message_inserted)
            payload_failures += result.payload_failures
        return payload_failures


class ImportWorker:
    """
    Single dedicated background thread for imports. Submitted runs queue up
    and execute one at a time; there is no cancellation once a run starts.

    Usage:
        with ImportWorker(importer) as worker:
            future = worker.submit(raw_bytes, "application/json")
            summary = future.result()
    """

    def __init__(self, importer: MessagesImporter):
        self.importer  = importer
        self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix='courier-import')

    def submit(
        self,
        source:       Union[bytes, BinaryIO],
        content_type: Optional[str] = None,
        callback:     Optional[Callable[[Future], None]] = None,
    ) -> Future:
        future = self._executor.submit(self.importer.import_backup, source, content_type)
        if callback is not None:
            future.add_done_callback(callback)
        return future

    def shutdown(self, wait: bool = True) -> None:
        self._executor.shutdown(wait=wait)

    def __enter__(self) -> 'ImportWorker':
        return self

    def __exit__(self, *exc) -> None:
        self.shutdown()
