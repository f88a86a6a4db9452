"""
courier/cli.py
Command-line interface for courier.

USAGE:
  python -m courier.cli sms-2024-01-01.xml --db messages.db
  python -m courier.cli backup.json --db messages.db --no-mms
  python -m courier.cli export.txt --content-type text/xml

EXIT CODES:
  0  nothing new / all imported / some entries failed
  1  every attempted entry failed, or the backup file is missing
  2  invalid file format
"""

import argparse
import logging
import sys
import time
from pathlib import Path

from courier.config import ImportSettings, load_config, resolve_db_path
from courier.errors import FormatError
from courier.importer import MessagesImporter
from courier.models.record import INVALID_FORMAT_MESSAGE, ImportOutcome
from courier.parsers import load_backup
from courier.store.base import MAX_QUERY_PARAMS
from courier.store.sqlite_store import SQLiteMessageStore

logger = logging.getLogger(__name__)

# ANSI colors
GREEN  = '\033[92m'
YELLOW = '\033[93m'
RED    = '\033[91m'
CYAN   = '\033[96m'
RESET  = '\033[0m'
BOLD   = '\033[1m'

_OUTCOME_COLORS = {
    ImportOutcome.NOTHING_NEW: YELLOW,
    ImportOutcome.OK:          GREEN,
    ImportOutcome.PARTIAL:     YELLOW,
    ImportOutcome.FAIL:        RED,
}


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog        = 'courier',
        description = 'Import an SMS/MMS backup (XML or JSON) into a message database',
    )
    parser.add_argument(
        'backup',
        type = Path,
        help = 'Backup file (sms-*.xml or a JSON export)',
    )
    parser.add_argument(
        '--db', '-o',
        type    = Path,
        default = None,
        help    = 'Target SQLite database (default: db_path from courier_config.json)',
    )
    parser.add_argument(
        '--content-type',
        default = None,
        help    = 'MIME type of the backup; guessed from the file name when omitted',
    )
    parser.add_argument(
        '--no-sms',
        action = 'store_true',
        help   = 'Skip SMS records',
    )
    parser.add_argument(
        '--no-mms',
        action = 'store_true',
        help   = 'Skip MMS records',
    )
    parser.add_argument(
        '--parts-dir',
        type    = Path,
        default = None,
        help    = 'Write MMS attachment payloads as files under this directory',
    )
    parser.add_argument(
        '--verbose', '-v',
        action = 'store_true',
        help   = 'Enable debug logging',
    )
    return parser


def main(argv=None) -> int:
    args = build_parser().parse_args(argv)

    # ── LOGGING SETUP ────────────────────────────────────────
    logging.basicConfig(
        level   = logging.DEBUG if args.verbose else logging.INFO,
        format  = '%(asctime)s [%(levelname)s] %(name)s: %(message)s',
        datefmt = '%H:%M:%S',
    )

    if not args.backup.exists():
        _print(f"{RED}Error: Backup not found: {args.backup}{RESET}")
        return 1

    config   = load_config()
    settings = ImportSettings.from_config(config)
    if args.no_sms:
        settings.import_sms = False
    if args.no_mms:
        settings.import_mms = False
    db_path   = args.db or resolve_db_path(config)
    parts_dir = args.parts_dir or config.get('parts_dir')

    _print(f"Backup   : {CYAN}{args.backup}{RESET}")
    _print(f"Database : {CYAN}{db_path}{RESET}")
    _print(f"Types    : {CYAN}{_types_label(settings)}{RESET}\n")

    t0 = time.time()
    try:
        document = load_backup(args.backup, args.content_type)
    except FormatError as e:
        logger.debug(f"Format error: {e}")
        _print(f"{RED}✗ {INVALID_FORMAT_MESSAGE}{RESET}")
        return 2

    with SQLiteMessageStore(
        db_path,
        max_variables = config.get('max_query_params') or MAX_QUERY_PARAMS,
        parts_dir     = Path(parts_dir) if parts_dir else None,
    ) as store:
        importer = MessagesImporter(store, settings, chunk_size=store.max_variables)
        summary  = importer.restore_messages(document)

    color = _OUTCOME_COLORS[summary.outcome]
    _print(f"{BOLD}{color}{summary.message}{RESET}")
    _print(f"  SMS      : {summary.sms.imported:,} imported, {summary.sms.failed:,} failed, {summary.sms.rows_inserted:,} new")
    _print(f"  MMS      : {summary.mms.imported:,} imported, {summary.mms.failed:,} failed, {summary.mms.rows_inserted:,} new, {summary.mms.skipped:,} skipped")
    if summary.payload_failures:
        _print(f"  {YELLOW}⚠ {summary.payload_failures} attachment payload(s) could not be written{RESET}")
    _print(f"  Threads  : {summary.threads_repaired:,} updated")
    _print(f"  Elapsed  : {_elapsed(t0)}")

    return 1 if summary.outcome is ImportOutcome.FAIL else 0


# ── PRINT HELPERS ────────────────────────────────────────────

def _types_label(settings: ImportSettings) -> str:
    types = [t for t, on in (('SMS', settings.import_sms), ('MMS', settings.import_mms)) if on]
    return ' + '.join(types) or 'none'

def _print(msg): print(msg)

def _elapsed(t0: float) -> str:
    s = time.time() - t0
    return f"{s:.1f}s" if s < 60 else f"{int(s//60)}m {int(s%60)}s"


if __name__ == '__main__':
    sys.exit(main())
