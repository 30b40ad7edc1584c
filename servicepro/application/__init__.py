"""Application services."""

from .context import (
    get_job_service,
    get_note_service,
    get_stage_service,
    get_submission_service,
    reset_service_state,
)
from .jobs import JobService
from .matching import JobResolver, MatchSuggestion
from .notes import NoteService
from .progression import StageService
from .submissions import SubmissionService

__all__ = [
    "JobResolver",
    "JobService",
    "MatchSuggestion",
    "NoteService",
    "StageService",
    "SubmissionService",
    "get_job_service",
    "get_note_service",
    "get_stage_service",
    "get_submission_service",
    "reset_service_state",
]
