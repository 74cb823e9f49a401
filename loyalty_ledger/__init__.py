from loyalty_ledger.core import (
    FlightRecord,
    ManualLedgerEntry,
    MilesActivity,
    MonthlyMilesRecord,
    MonthlyPointsRecord,
    ParseAnomaly,
    QualificationSettings,
    format_money,
)
from loyalty_ledger.config import DEFAULT_RULES, ProgramRules, SessionConfig, load_program_rules
from loyalty_ledger.normalizer import ImportBatch, PointCorrection, normalize_batch, normalize_flight
from loyalty_ledger.ledger import ComputedLedger, calculate_miles_stats, rebuild_ledger
from loyalty_ledger.qualification import QualificationCycle, calculate_qualification_cycles, current_status
from loyalty_ledger.state import LedgerState, MutationResult
from loyalty_ledger.merge import MergeReport, MergeResult, merge_import
from loyalty_ledger.snapshots import JsonFileBlobStorage, MemoryBlobStorage, Snapshot, SnapshotInfo, SnapshotStore
from loyalty_ledger.parsing import ParseErrorCode, ParseFailure, parse_statement_payload
from loyalty_ledger.persistence import JsonDirectoryBackend, SaveStatus, WriteScheduler
from loyalty_ledger.session import LedgerSession
from loyalty_ledger.report import build_status_report, report_to_markdown

__all__ = [
    "ComputedLedger",
    "DEFAULT_RULES",
    "FlightRecord",
    "ImportBatch",
    "JsonDirectoryBackend",
    "JsonFileBlobStorage",
    "LedgerSession",
    "LedgerState",
    "ManualLedgerEntry",
    "MemoryBlobStorage",
    "MergeReport",
    "MergeResult",
    "MilesActivity",
    "MonthlyMilesRecord",
    "MonthlyPointsRecord",
    "MutationResult",
    "ParseAnomaly",
    "ParseErrorCode",
    "ParseFailure",
    "PointCorrection",
    "ProgramRules",
    "QualificationCycle",
    "QualificationSettings",
    "SaveStatus",
    "SessionConfig",
    "Snapshot",
    "SnapshotInfo",
    "SnapshotStore",
    "WriteScheduler",
    "build_status_report",
    "calculate_miles_stats",
    "calculate_qualification_cycles",
    "current_status",
    "format_money",
    "load_program_rules",
    "merge_import",
    "normalize_batch",
    "normalize_flight",
    "parse_statement_payload",
    "rebuild_ledger",
    "report_to_markdown",
]
