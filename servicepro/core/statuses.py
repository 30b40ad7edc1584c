"""Coarse job lifecycle statuses and their single total order."""
from __future__ import annotations

from enum import Enum

from servicepro.core.validation import InvalidStatusError


class JobStatus(str, Enum):
    """Job statuses, declared from least to most advanced."""

    NOT_SCHEDULED = "not_scheduled"
    SCHEDULED = "scheduled"
    WORKING_ON_IT = "working_on_it"
    PARTS_NEEDED = "parts_needed"
    DONE = "done"
    CANCELLED = "cancelled"
    ARCHIVED = "archived"

    @property
    def rank(self) -> int:
        return _RANKS[self]

    def __lt__(self, other: object) -> bool:
        if not isinstance(other, JobStatus):
            return NotImplemented
        return self.rank < other.rank

    def __le__(self, other: object) -> bool:
        if not isinstance(other, JobStatus):
            return NotImplemented
        return self.rank <= other.rank

    def __gt__(self, other: object) -> bool:
        if not isinstance(other, JobStatus):
            return NotImplemented
        return self.rank > other.rank

    def __ge__(self, other: object) -> bool:
        if not isinstance(other, JobStatus):
            return NotImplemented
        return self.rank >= other.rank


_RANKS: dict[JobStatus, int] = {status: index for index, status in enumerate(JobStatus)}

CLOSED_STATUSES = frozenset({JobStatus.CANCELLED, JobStatus.ARCHIVED})

# ConnectTeam manager status labels as they appear in the form's status field.
MANAGER_STATUS_MAP: dict[str, JobStatus] = {
    "estimate": JobStatus.NOT_SCHEDULED,
    "ask vadim": JobStatus.NOT_SCHEDULED,
    "start up": JobStatus.SCHEDULED,
    "working on it": JobStatus.WORKING_ON_IT,
    "parts needed": JobStatus.PARTS_NEEDED,
    "done": JobStatus.DONE,
    "sent invoice": JobStatus.DONE,
    "warranty": JobStatus.DONE,
    "warranty/no charge": JobStatus.DONE,
}

_STAGE_FOR_STATUS: dict[JobStatus, str] = {
    JobStatus.NOT_SCHEDULED: "beginning",
    JobStatus.SCHEDULED: "beginning",
    JobStatus.WORKING_ON_IT: "rough_in",
    JobStatus.PARTS_NEEDED: "rough_in",
    JobStatus.DONE: "completed",
}


def parse_status(value: object) -> JobStatus:
    if isinstance(value, JobStatus):
        return value
    try:
        return JobStatus(str(value))
    except ValueError as exc:
        allowed = ", ".join(status.value for status in JobStatus)
        raise InvalidStatusError(f"invalid job status {value!r}; expected one of {allowed}", exc) from exc


def most_advanced(first: JobStatus, second: JobStatus) -> JobStatus:
    return second if second > first else first


def is_closed(status: JobStatus | str) -> bool:
    return parse_status(status) in CLOSED_STATUSES


def status_for_manager_label(label: str | None) -> JobStatus | None:
    if not label:
        return None
    return MANAGER_STATUS_MAP.get(" ".join(label.lower().split()))


def initial_stage_for_status(status: JobStatus) -> str:
    return _STAGE_FOR_STATUS.get(status, "beginning")
