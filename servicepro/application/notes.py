"""Application service for the per-job note ledgers."""
from __future__ import annotations

from dataclasses import replace
from typing import Any

from servicepro.core import ledger as ledger_ops
from servicepro.core.statuses import is_closed
from servicepro.core.validation import (
    NoteNotFoundError,
    validate_choice,
    validate_note_status,
    validate_text,
)
from servicepro.domain import LEDGER_FIELDS, Job, Note
from servicepro.infrastructure import Clock, IdGenerator, JobStore, SystemClock, UUIDGenerator
from servicepro.infrastructure.stores import DEFAULT_MAX_ATTEMPTS, mutate_job
from servicepro.utils.logging import get_logger

LOGGER = get_logger(__name__)

# Short names accepted by the API for each ledger field.
LEDGER_ALIASES: dict[str, str] = {
    "boss": "boss_notes_status",
    "additional": "additional_notes_status",
    "materials": "materials_notes_status",
}


def resolve_ledger(name: str) -> str:
    field = LEDGER_ALIASES.get(name, name)
    return validate_choice(field, LEDGER_FIELDS, "ledger")


class NoteService:
    def __init__(
        self,
        store: JobStore,
        *,
        clock: Clock | None = None,
        ids: IdGenerator | None = None,
        max_attempts: int = DEFAULT_MAX_ATTEMPTS,
    ) -> None:
        self._store = store
        self._clock = clock or SystemClock()
        self._ids = ids or UUIDGenerator()
        self._max_attempts = max_attempts

    def add_note(self, job_id: str, ledger: str, text: str, author: str | None = None) -> Note:
        field = resolve_ledger(ledger)
        cleaned = validate_text(text, "note_text")
        note_id = self._ids.new_id()
        now = self._clock.now()

        def apply(job: Job) -> Job:
            updated = ledger_ops.append(job.ledger(field), cleaned, author, now=now, note_id=note_id)
            return replace(job, **{field: updated})

        job = mutate_job(self._store, job_id, apply, max_attempts=self._max_attempts)
        return job.ledger(field)[-1]

    def set_note_status(self, note_id: str, status: str) -> Note:
        """Change one note's status, locating its job through the note index."""

        new_status = validate_note_status(status)
        location = self._store.locate_note(note_id)
        if location is None:
            raise NoteNotFoundError(note_id)
        job_id, field = location
        now = self._clock.now()

        def apply(job: Job) -> Job:
            updated = ledger_ops.set_status(job.ledger(field), note_id, new_status, now=now)
            return replace(job, **{field: updated})

        job = mutate_job(self._store, job_id, apply, max_attempts=self._max_attempts)
        for note in job.ledger(field):
            if note.id == note_id:
                LOGGER.info("note %s on job %s set to %s", note_id, job_id, new_status)
                return note
        raise NoteNotFoundError(note_id)

    def list_notes(self, *, status: str | None = None, ledger: str | None = None) -> list[dict[str, Any]]:
        if status is not None:
            validate_note_status(status)
        fields = (resolve_ledger(ledger),) if ledger else LEDGER_FIELDS
        items: list[dict[str, Any]] = []
        for job in self._store.list_active_jobs():
            if is_closed(job.status):
                continue
            for field in fields:
                for note in job.ledger(field):
                    if status is not None and note.status != status:
                        continue
                    items.append(
                        {
                            "job_id": job.id,
                            "job_number": job.job_number,
                            "service_address": job.service_address,
                            "ledger": field,
                            "note": note,
                        }
                    )
        items.sort(key=lambda item: item["note"].created_at, reverse=True)
        return items

    def backfill_synced_at(self) -> dict[str, int]:
        jobs_updated = 0
        notes_backfilled = 0
        for job in self._store.list_jobs(include_archived=True):
            missing = sum(1 for field in LEDGER_FIELDS for note in job.ledger(field) if note.synced_at is None)
            if not missing:
                continue

            def apply(current: Job) -> Job:
                changes = {field: ledger_ops.backfill_synced_at(current.ledger(field)) for field in LEDGER_FIELDS}
                return replace(current, **changes)

            mutate_job(self._store, job.id, apply, max_attempts=self._max_attempts)
            jobs_updated += 1
            notes_backfilled += missing
        LOGGER.info("backfilled synced_at on %d notes across %d jobs", notes_backfilled, jobs_updated)
        return {"jobs_updated": jobs_updated, "notes_backfilled": notes_backfilled}
