"""Domain entities for jobs, their stage workflow and note ledgers."""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime

from servicepro.core.statuses import JobStatus

LEDGER_FIELDS: tuple[str, ...] = (
    "boss_notes_status",
    "additional_notes_status",
    "materials_notes_status",
)


@dataclass(frozen=True, slots=True)
class Note:
    """A single status-tracked entry inside one of a job's note ledgers."""

    id: str
    note_text: str
    created_at: datetime
    updated_at: datetime
    status: str = "undone"
    created_by: str | None = None
    synced_at: datetime | None = None
    submission_id: str | None = None


@dataclass(frozen=True, slots=True)
class StepState:
    completed: bool = False
    completed_at: datetime | None = None
    completed_by: str | None = None
    notes: str | None = None


@dataclass(frozen=True, slots=True)
class StageHistoryEntry:
    stage: str
    entered_at: datetime
    completed_at: datetime | None = None
    previous_stage: str | None = None
    changed_by: str | None = None
    notes: str | None = None


@dataclass(slots=True)
class Job:
    """The central aggregate: one HVAC job and its workflow state."""

    id: str
    job_number: str
    service_address: str
    created_at: datetime
    updated_at: datetime | None = None
    title: str | None = None
    job_type: str | None = None
    description: str | None = None
    status: JobStatus = JobStatus.NOT_SCHEDULED
    stage: str = "beginning"
    stage_steps: dict[str, StepState] = field(default_factory=dict)
    stage_history: list[StageHistoryEntry] = field(default_factory=list)
    boss_notes_status: list[Note] = field(default_factory=list)
    additional_notes_status: list[Note] = field(default_factory=list)
    materials_notes_status: list[Note] = field(default_factory=list)
    version: int = 0

    def ledger(self, name: str) -> list[Note]:
        if name not in LEDGER_FIELDS:
            raise KeyError(name)
        return getattr(self, name)
