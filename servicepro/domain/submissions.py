"""Domain entities for ConnectTeam field submissions and material checklists."""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any


@dataclass(slots=True)
class Submission:
    """One technician form-fill event as recorded from ConnectTeam."""

    submission_id: str
    job_location: str | None = None
    job_type: str | None = None
    work_description: str | None = None
    additional_notes: str | None = None
    parts_materials_needed: str | None = None
    manager_note: str | None = None
    manager_status: str | None = None
    submission_timestamp: datetime | None = None
    technician_name: str | None = None
    start_time: datetime | None = None
    end_time: datetime | None = None
    before_photos: list[str] = field(default_factory=list)
    after_photos: list[str] = field(default_factory=list)
    linked_job_id: str | None = None
    raw_answers: list[dict[str, Any]] = field(default_factory=list)
    manager_fields: list[dict[str, Any]] = field(default_factory=list)
    last_synced_at: datetime | None = None


@dataclass(slots=True)
class MaterialEntry:
    id: str
    submission_id: str
    material_description: str
    created_at: datetime
    job_id: str | None = None
    ordered: bool = False
    ordered_at: datetime | None = None


@dataclass(slots=True)
class IngestError:
    submission_id: str
    message: str
    retryable: bool = False


@dataclass(slots=True)
class IngestResult:
    """Partial-failure summary of one ingestion run."""

    linked: int = 0
    unmatched: int = 0
    errors: list[IngestError] = field(default_factory=list)
    notes_added: int = 0
    notes_updated: int = 0
    materials_linked: int = 0
