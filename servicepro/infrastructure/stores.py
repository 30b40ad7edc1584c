"""Persistence contracts and in-memory implementations.

``update_job`` is a conditional write: when ``expected_version`` is given and
no longer matches, :class:`ConcurrencyError` is raised and nothing changes.
Records handed out by the stores are copies, so callers always work on a
fetched snapshot and publish changes through an explicit update.
"""
from __future__ import annotations

import copy
import threading
from dataclasses import fields
from datetime import datetime
from typing import Any, Callable, Iterable, Mapping, Protocol

from servicepro.core.statuses import JobStatus
from servicepro.core.validation import (
    ConcurrencyError,
    JobNotFoundError,
    SubmissionNotFoundError,
)
from servicepro.domain import LEDGER_FIELDS, Job, MaterialEntry, Submission
from servicepro.utils.logging import get_logger

LOGGER = get_logger(__name__)

DEFAULT_MAX_ATTEMPTS = 5

_IMMUTABLE_JOB_FIELDS = frozenset({"id", "version"})


class JobStore(Protocol):
    """Persistence contract for jobs and the note index."""

    def add_job(self, job: Job) -> Job: ...

    def get_job(self, job_id: str) -> Job: ...

    def list_jobs(self, *, include_archived: bool = True) -> list[Job]: ...

    def list_active_jobs(self) -> list[Job]: ...

    def update_job(
        self,
        job_id: str,
        changes: Mapping[str, Any],
        *,
        expected_version: int | None = None,
    ) -> Job: ...

    def locate_note(self, note_id: str) -> tuple[str, str] | None: ...

    def reset(self) -> None: ...


class SubmissionStore(Protocol):
    def upsert_submission(self, submission: Submission) -> bool: ...

    def get_submission(self, submission_id: str) -> Submission: ...

    def list_submissions(self, *, linked: bool | None = None) -> list[Submission]: ...

    def update_submission(self, submission_id: str, changes: Mapping[str, Any]) -> Submission: ...

    def reset(self) -> None: ...


class MaterialStore(Protocol):
    def insert_material(self, entry: MaterialEntry) -> str: ...

    def link_materials_to_job(self, submission_id: str, job_id: str) -> int: ...

    def list_materials(
        self,
        *,
        job_id: str | None = None,
        submission_id: str | None = None,
    ) -> list[MaterialEntry]: ...

    def refresh_description(self, submission_id: str, description: str) -> int: ...

    def mark_ordered(self, material_ids: Iterable[str], ordered_at: datetime) -> int: ...

    def reset(self) -> None: ...


class InMemoryJobStore:
    """Thread-safe in-memory job table with a ``note_id -> (job_id, ledger)`` index."""

    def __init__(self) -> None:
        self._jobs: dict[str, Job] = {}
        self._note_index: dict[str, tuple[str, str]] = {}
        self._lock = threading.RLock()

    # ------------------------------------------------------------------
    # internal helpers
    # ------------------------------------------------------------------
    def _index_notes(self, job: Job) -> None:
        for ledger_name in LEDGER_FIELDS:
            for note in getattr(job, ledger_name):
                self._note_index[note.id] = (job.id, ledger_name)

    def _drop_stale_index(self, job: Job, ledger_name: str) -> None:
        current = {note.id for note in getattr(job, ledger_name)}
        stale = [
            note_id
            for note_id, location in self._note_index.items()
            if location == (job.id, ledger_name) and note_id not in current
        ]
        for note_id in stale:
            del self._note_index[note_id]

    # ------------------------------------------------------------------
    # CRUD operations
    # ------------------------------------------------------------------
    def add_job(self, job: Job) -> Job:
        with self._lock:
            if job.id in self._jobs:
                raise ValueError(f"job '{job.id}' already exists")
            stored = copy.deepcopy(job)
            self._jobs[stored.id] = stored
            self._index_notes(stored)
            return copy.deepcopy(stored)

    def get_job(self, job_id: str) -> Job:
        with self._lock:
            job = self._jobs.get(job_id)
            if job is None:
                raise JobNotFoundError(job_id)
            return copy.deepcopy(job)

    def list_jobs(self, *, include_archived: bool = True) -> list[Job]:
        with self._lock:
            jobs = [
                copy.deepcopy(job)
                for job in self._jobs.values()
                if include_archived or job.status != JobStatus.ARCHIVED
            ]
        return sorted(jobs, key=lambda job: job.created_at, reverse=True)

    def list_active_jobs(self) -> list[Job]:
        return self.list_jobs(include_archived=False)

    def update_job(
        self,
        job_id: str,
        changes: Mapping[str, Any],
        *,
        expected_version: int | None = None,
    ) -> Job:
        with self._lock:
            job = self._jobs.get(job_id)
            if job is None:
                raise JobNotFoundError(job_id)
            if expected_version is not None and job.version != expected_version:
                raise ConcurrencyError(
                    f"job '{job_id}' changed (expected version {expected_version}, found {job.version})"
                )
            unknown = [name for name in changes if name in _IMMUTABLE_JOB_FIELDS or not hasattr(job, name)]
            if unknown:
                raise ValueError(f"cannot update job fields: {', '.join(sorted(unknown))}")
            for name, value in changes.items():
                setattr(job, name, copy.deepcopy(value))
            job.version += 1
            for ledger_name in LEDGER_FIELDS:
                if ledger_name in changes:
                    self._drop_stale_index(job, ledger_name)
            self._index_notes(job)
            return copy.deepcopy(job)

    def locate_note(self, note_id: str) -> tuple[str, str] | None:
        with self._lock:
            return self._note_index.get(note_id)

    def reset(self) -> None:
        with self._lock:
            self._jobs.clear()
            self._note_index.clear()


class InMemorySubmissionStore:
    def __init__(self) -> None:
        self._submissions: dict[str, Submission] = {}
        self._lock = threading.RLock()

    def upsert_submission(self, submission: Submission) -> bool:
        """Insert or replace a submission; an existing link is never cleared."""

        with self._lock:
            existing = self._submissions.get(submission.submission_id)
            stored = copy.deepcopy(submission)
            if existing is not None and existing.linked_job_id:
                stored.linked_job_id = existing.linked_job_id
            self._submissions[stored.submission_id] = stored
            return existing is None

    def get_submission(self, submission_id: str) -> Submission:
        with self._lock:
            submission = self._submissions.get(submission_id)
            if submission is None:
                raise SubmissionNotFoundError(submission_id)
            return copy.deepcopy(submission)

    def list_submissions(self, *, linked: bool | None = None) -> list[Submission]:
        with self._lock:
            items = [copy.deepcopy(item) for item in self._submissions.values()]
        if linked is not None:
            items = [item for item in items if bool(item.linked_job_id) is linked]
        return items

    def update_submission(self, submission_id: str, changes: Mapping[str, Any]) -> Submission:
        with self._lock:
            submission = self._submissions.get(submission_id)
            if submission is None:
                raise SubmissionNotFoundError(submission_id)
            for name, value in changes.items():
                if not hasattr(submission, name) or name == "submission_id":
                    raise ValueError(f"cannot update submission field '{name}'")
                setattr(submission, name, copy.deepcopy(value))
            return copy.deepcopy(submission)

    def reset(self) -> None:
        with self._lock:
            self._submissions.clear()


class InMemoryMaterialStore:
    def __init__(self) -> None:
        self._materials: dict[str, MaterialEntry] = {}
        self._lock = threading.RLock()

    def insert_material(self, entry: MaterialEntry) -> str:
        with self._lock:
            self._materials[entry.id] = copy.deepcopy(entry)
            return entry.id

    def link_materials_to_job(self, submission_id: str, job_id: str) -> int:
        with self._lock:
            count = 0
            for entry in self._materials.values():
                if entry.submission_id == submission_id and entry.job_id != job_id:
                    entry.job_id = job_id
                    count += 1
            return count

    def list_materials(
        self,
        *,
        job_id: str | None = None,
        submission_id: str | None = None,
    ) -> list[MaterialEntry]:
        with self._lock:
            items = [copy.deepcopy(item) for item in self._materials.values()]
        if job_id is not None:
            items = [item for item in items if item.job_id == job_id]
        if submission_id is not None:
            items = [item for item in items if item.submission_id == submission_id]
        return sorted(items, key=lambda item: item.created_at)

    def refresh_description(self, submission_id: str, description: str) -> int:
        """Rewrite the text of a submission's entries that have not been ordered yet."""

        with self._lock:
            count = 0
            for entry in self._materials.values():
                if entry.submission_id != submission_id or entry.ordered:
                    continue
                if entry.material_description != description:
                    entry.material_description = description
                    count += 1
            return count

    def mark_ordered(self, material_ids: Iterable[str], ordered_at: datetime) -> int:
        with self._lock:
            count = 0
            for material_id in material_ids:
                entry = self._materials.get(material_id)
                if entry is None or entry.ordered:
                    continue
                entry.ordered = True
                entry.ordered_at = ordered_at
                count += 1
            return count

    def reset(self) -> None:
        with self._lock:
            self._materials.clear()


def job_changes(before: Job, after: Job) -> dict[str, Any]:
    return {
        item.name: getattr(after, item.name)
        for item in fields(Job)
        if item.name not in _IMMUTABLE_JOB_FIELDS and getattr(after, item.name) != getattr(before, item.name)
    }


def mutate_job(
    store: JobStore,
    job_id: str,
    mutator: Callable[[Job], Job],
    *,
    max_attempts: int = DEFAULT_MAX_ATTEMPTS,
) -> Job:
    """Fetch, transform and conditionally write a job, retrying on version conflicts.

    ``mutator`` must be free of side effects since it may run once per attempt.
    Errors it raises propagate immediately. Returns the stored job after the
    write, or the fetched job when the mutator changed nothing.
    """

    conflict: ConcurrencyError | None = None
    for attempt in range(1, max_attempts + 1):
        job = store.get_job(job_id)
        changes = job_changes(job, mutator(job))
        if not changes:
            return job
        try:
            return store.update_job(job_id, changes, expected_version=job.version)
        except ConcurrencyError as exc:
            conflict = exc
            LOGGER.info("version conflict on job %s (attempt %d/%d)", job_id, attempt, max_attempts)
    raise conflict or ConcurrencyError(f"job '{job_id}' could not be updated")
