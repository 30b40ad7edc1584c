from __future__ import annotations

import asyncio
from collections import Counter
from dataclasses import dataclass, replace
from datetime import datetime
from typing import TYPE_CHECKING, Any, Callable, Iterable

from servicepro.core import ledger as ledger_ops
from servicepro.core.statuses import is_closed, status_for_manager_label
from servicepro.core.validation import SubmissionNotFoundError
from servicepro.domain import IngestError, IngestResult, Job, MaterialEntry, Submission
from servicepro.extractors.connecteam_form import TransformedSubmission, clean_text, transform
from servicepro.infrastructure import (
    Clock,
    IdGenerator,
    JobStore,
    MaterialStore,
    SubmissionStore,
    SystemClock,
    UUIDGenerator,
)
from servicepro.infrastructure.stores import DEFAULT_MAX_ATTEMPTS, mutate_job
from servicepro.utils.logging import get_logger

if TYPE_CHECKING:
    from servicepro.application.matching import JobResolver

LOGGER = get_logger(__name__)

MANAGER_AUTHOR = "ConnectTeam manager"


@dataclass(slots=True)
class _Outcome:
    linked: bool
    notes: Counter
    materials_linked: int = 0


class IngestionPipeline:
    """Reconciles field submissions against existing jobs.

    Submissions are handled one at a time. A failure on one submission is
    recorded in the result and the batch carries on. Re-running over the same
    submissions never changes an established ``linked_job_id``.
    """

    def __init__(
        self,
        jobs: JobStore,
        submissions: SubmissionStore,
        materials: MaterialStore,
        resolver: JobResolver,
        *,
        clock: Clock | None = None,
        ids: IdGenerator | None = None,
        dedupe_notes: bool = True,
        max_attempts: int = DEFAULT_MAX_ATTEMPTS,
    ) -> None:
        self._jobs = jobs
        self._submissions = submissions
        self._materials = materials
        self._resolver = resolver
        self._clock = clock or SystemClock()
        self._ids = ids or UUIDGenerator()
        self._dedupe_notes = dedupe_notes
        self._max_attempts = max_attempts

    # ------------------------------------------------------------------
    # public API
    # ------------------------------------------------------------------
    def ingest(self, submissions: Iterable[Submission]) -> IngestResult:
        result = IngestResult()
        for submission in submissions:
            try:
                outcome = self._ingest_one(submission)
            except Exception as exc:
                LOGGER.exception("failed to ingest submission %s", submission.submission_id)
                result.errors.append(
                    IngestError(
                        submission_id=submission.submission_id,
                        message=str(exc),
                        retryable=bool(getattr(exc, "retryable", False)),
                    )
                )
                continue
            if not outcome.linked:
                result.unmatched += 1
                continue
            result.linked += 1
            result.notes_added += outcome.notes["added"]
            result.notes_updated += outcome.notes["updated"]
            result.materials_linked += outcome.materials_linked

        LOGGER.info(
            "ingested batch: %d linked, %d unmatched, %d errors",
            result.linked,
            result.unmatched,
            len(result.errors),
        )
        return result

    # ------------------------------------------------------------------
    # per-submission steps
    # ------------------------------------------------------------------
    def _extract(self, submission: Submission) -> TransformedSubmission:
        if submission.raw_answers:
            return transform(submission.raw_answers, submission.manager_fields)
        return TransformedSubmission(
            work_description=clean_text(submission.work_description),
            additional_notes=clean_text(submission.additional_notes),
            parts_materials_needed=clean_text(submission.parts_materials_needed),
            manager_note=clean_text(submission.manager_note),
            manager_status=clean_text(submission.manager_status),
        )

    def _stored_link(self, submission: Submission) -> str | None:
        try:
            stored = self._submissions.get_submission(submission.submission_id)
        except SubmissionNotFoundError:
            return submission.linked_job_id
        return stored.linked_job_id or submission.linked_job_id

    def _ingest_one(self, submission: Submission) -> _Outcome:
        job_id = self._stored_link(submission)
        if job_id is None:
            if not clean_text(submission.job_location):
                return _Outcome(linked=False, notes=Counter())
            job_id = self._resolver.find_existing_job(submission.job_location)
        if job_id is None:
            LOGGER.debug("no active job at %r for submission %s", submission.job_location, submission.submission_id)
            return _Outcome(linked=False, notes=Counter())

        content = self._extract(submission)
        now = self._clock.now()
        notes = self._append_notes(job_id, submission, content, now)
        materials_linked = self._link_materials(job_id, submission, content, now)
        self._mark_linked(job_id, submission, content, now)
        return _Outcome(linked=True, notes=notes, materials_linked=materials_linked)

    def _append_notes(
        self,
        job_id: str,
        submission: Submission,
        content: TransformedSubmission,
        now: datetime,
    ) -> Counter:
        entries = [
            ("additional_notes_status", content.additional_notes, submission.technician_name),
            ("materials_notes_status", content.parts_materials_needed, submission.technician_name),
            ("boss_notes_status", content.manager_note, MANAGER_AUTHOR),
        ]
        entries = [(field, text, author) for field, text, author in entries if text]
        # ids are drawn once so a retried write reuses them
        note_ids = {field: self._ids.new_id() for field, _, _ in entries}
        manager_status = status_for_manager_label(content.manager_status)
        counts: Counter = Counter()

        def apply(job: Job) -> Job:
            counts.clear()
            changes: dict[str, Any] = {}
            for field, text, author in entries:
                if self._dedupe_notes:
                    updated, action = ledger_ops.upsert_from_submission(
                        job.ledger(field),
                        text,
                        author,
                        submission_id=submission.submission_id,
                        now=now,
                        note_id=note_ids[field],
                    )
                else:
                    updated = ledger_ops.append(
                        job.ledger(field),
                        text,
                        author,
                        now=now,
                        note_id=note_ids[field],
                        submission_id=submission.submission_id,
                        synced_at=now,
                    )
                    action = "added"
                counts[action] += 1
                if action != "unchanged":
                    changes[field] = updated
            if manager_status is not None and not is_closed(job.status) and manager_status > job.status:
                changes["status"] = manager_status
            if changes:
                changes["updated_at"] = now
            return replace(job, **changes)

        mutate_job(self._jobs, job_id, apply, max_attempts=self._max_attempts)
        return counts

    def _link_materials(
        self,
        job_id: str,
        submission: Submission,
        content: TransformedSubmission,
        now: datetime,
    ) -> int:
        text = content.parts_materials_needed
        existing = self._materials.list_materials(submission_id=submission.submission_id)
        if text and existing:
            self._materials.refresh_description(submission.submission_id, text)
        elif text:
            self._materials.insert_material(
                MaterialEntry(
                    id=self._ids.new_id(),
                    submission_id=submission.submission_id,
                    material_description=text,
                    created_at=now,
                )
            )
        return self._materials.link_materials_to_job(submission.submission_id, job_id)

    def _mark_linked(
        self,
        job_id: str,
        submission: Submission,
        content: TransformedSubmission,
        now: datetime,
    ) -> None:
        changes: dict[str, Any] = {
            "work_description": content.work_description,
            "additional_notes": content.additional_notes,
            "parts_materials_needed": content.parts_materials_needed,
            "manager_note": content.manager_note,
            "manager_status": content.manager_status,
            "last_synced_at": now,
        }
        try:
            stored = self._submissions.get_submission(submission.submission_id)
        except SubmissionNotFoundError:
            self._submissions.upsert_submission(replace(submission, linked_job_id=job_id, **changes))
            return
        if not stored.linked_job_id:
            changes["linked_job_id"] = job_id
        self._submissions.update_submission(submission.submission_id, changes)


class IngestionWorker:
    """Serializes ingestion runs inside the process and keeps them off the event loop."""

    def __init__(self) -> None:
        self._lock = asyncio.Lock()

    async def run(self, func: Callable[..., Any], *args: Any, **kwargs: Any) -> Any:
        async with self._lock:
            return await asyncio.to_thread(func, *args, **kwargs)


_worker: IngestionWorker | None = None


def get_ingestion_worker() -> IngestionWorker:
    global _worker
    if _worker is None:
        _worker = IngestionWorker()
    return _worker
