"""
courier/errors.py
Exception hierarchy for the import pipeline.
Only FormatError is meant to escape an import run — everything else
is converted into a counter by the importer.
"""


class CourierError(Exception):
    """Base exception for all courier errors."""


# Parsing
class FormatError(CourierError):
    """Backup cannot be parsed as either supported format. Terminal for a run."""


class RecordDecodeError(CourierError):
    """One streaming-format record has missing or malformed attributes."""


# Store
class StoreError(CourierError):
    """A message store query/insert/payload call failed."""


class StoreWriteError(StoreError):
    """A write step for a single record could not complete."""


# Orchestration
class ImportInProgressError(CourierError):
    """Another import is already running against this importer."""
