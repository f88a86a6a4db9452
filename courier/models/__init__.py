from courier.models.record import (
    BackupDocument,
    BackupFormat,
    BackupRecord,
    ImportOutcome,
    ImportSummary,
    MmsAddress,
    MmsPart,
    MmsRecord,
    PhaseCounters,
    SmsRecord,
)

__all__ = [
    "BackupDocument",
    "BackupFormat",
    "BackupRecord",
    "ImportOutcome",
    "ImportSummary",
    "MmsAddress",
    "MmsPart",
    "MmsRecord",
    "PhaseCounters",
    "SmsRecord",
]
