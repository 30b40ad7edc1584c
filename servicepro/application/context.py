"""Process-wide stores and service singletons used by the HTTP layer."""
from __future__ import annotations

from servicepro.application.jobs import JobService
from servicepro.application.notes import NoteService
from servicepro.application.progression import StageService
from servicepro.application.submissions import SubmissionService
from servicepro.infrastructure import (
    InMemoryJobStore,
    InMemoryMaterialStore,
    InMemorySubmissionStore,
    SystemClock,
    UUIDGenerator,
)

_job_store = InMemoryJobStore()
_submission_store = InMemorySubmissionStore()
_material_store = InMemoryMaterialStore()
_clock = SystemClock()
_ids = UUIDGenerator()

_job_service = JobService(_job_store, clock=_clock, ids=_ids)
_stage_service = StageService(_job_store, clock=_clock)
_note_service = NoteService(_job_store, clock=_clock, ids=_ids)
_submission_service = SubmissionService(
    _job_store,
    _submission_store,
    _material_store,
    clock=_clock,
    ids=_ids,
)


def get_job_service() -> JobService:
    """Return the singleton job service for the process."""

    return _job_service


def get_stage_service() -> StageService:
    return _stage_service


def get_note_service() -> NoteService:
    return _note_service


def get_submission_service() -> SubmissionService:
    return _submission_service


def reset_service_state() -> None:
    """Reset the in-memory stores (used in tests)."""

    _job_service.reset()
    _submission_service.reset()
