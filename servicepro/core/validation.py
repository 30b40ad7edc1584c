from __future__ import annotations

from typing import Iterable


class ServiceProError(Exception):
    """Base exception for domain and storage failures."""

    retryable = False

    def __init__(self, message: str, original_error: Exception | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.original_error = original_error


class ValidationError(ServiceProError):
    """Raised when domain validation fails."""


class InvalidStepError(ValidationError):
    def __init__(self, stage: str, step_key: str) -> None:
        super().__init__(f"step '{step_key}' is not defined for stage '{stage}'")
        self.stage = stage
        self.step_key = step_key


class InvalidStageError(ValidationError):
    def __init__(self, stage: str) -> None:
        super().__init__(f"unknown stage '{stage}'")
        self.stage = stage


class InvalidNoteStatusError(ValidationError):
    pass


class InvalidStatusError(ValidationError):
    pass


class NotFoundError(ServiceProError):
    """Raised when a referenced entity does not exist."""


class JobNotFoundError(NotFoundError):
    def __init__(self, job_id: str) -> None:
        super().__init__(f"job '{job_id}' not found")
        self.job_id = job_id


class NoteNotFoundError(NotFoundError):
    def __init__(self, note_id: str) -> None:
        super().__init__(f"note '{note_id}' not found")
        self.note_id = note_id


class SubmissionNotFoundError(NotFoundError):
    def __init__(self, submission_id: str) -> None:
        super().__init__(f"submission '{submission_id}' not found")
        self.submission_id = submission_id


class StorageError(ServiceProError):
    """Transient read/write failure; safe to retry."""

    retryable = True


class ConcurrencyError(StorageError):
    """Raised when a conditional update finds a newer version of the record."""


NOTE_STATUSES = ("undone", "in_progress", "done")


def validate_note_status(status: object) -> str:
    if status not in NOTE_STATUSES:
        raise InvalidNoteStatusError(
            f"invalid note status {status!r}; expected one of {', '.join(NOTE_STATUSES)}"
        )
    return str(status)


def validate_text(value: object, field: str) -> str:
    text = str(value or "").strip()
    if not text:
        raise ValidationError(f"{field} is required")
    return text


def validate_choice(value: object, choices: Iterable[str], field: str) -> str:
    allowed = list(choices)
    if value not in allowed:
        raise ValidationError(f"{field} must be one of {', '.join(allowed)}")
    return str(value)
