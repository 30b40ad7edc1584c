"""Domain layer definitions."""

from .jobs import LEDGER_FIELDS, Job, Note, StageHistoryEntry, StepState
from .submissions import IngestError, IngestResult, MaterialEntry, Submission

__all__ = [
    "IngestError",
    "IngestResult",
    "Job",
    "LEDGER_FIELDS",
    "MaterialEntry",
    "Note",
    "StageHistoryEntry",
    "StepState",
    "Submission",
]
