"""Pure operations over a single note ledger.

A ledger is an ordered list of :class:`~servicepro.domain.Note`. Functions here
never mutate the list they receive; notes keep their position for life.
"""
from __future__ import annotations

from dataclasses import replace
from datetime import datetime
from typing import Sequence

from servicepro.core.validation import NoteNotFoundError, validate_note_status
from servicepro.domain import Note


def append(
    ledger: Sequence[Note],
    text: str,
    author: str | None,
    *,
    now: datetime,
    note_id: str,
    submission_id: str | None = None,
    synced_at: datetime | None = None,
) -> list[Note]:
    note = Note(
        id=note_id,
        note_text=text.strip(),
        created_at=now,
        updated_at=now,
        created_by=author,
        synced_at=synced_at,
        submission_id=submission_id,
    )
    return [*ledger, note]


def set_status(ledger: Sequence[Note], note_id: str, new_status: str, *, now: datetime) -> list[Note]:
    status = validate_note_status(new_status)
    for index, note in enumerate(ledger):
        if note.id == note_id:
            updated = list(ledger)
            updated[index] = replace(note, status=status, updated_at=now)
            return updated
    raise NoteNotFoundError(note_id)


def contains(ledger: Sequence[Note], note_id: str) -> bool:
    return any(note.id == note_id for note in ledger)


def backfill_synced_at(ledger: Sequence[Note]) -> list[Note]:
    return [note if note.synced_at is not None else replace(note, synced_at=note.created_at) for note in ledger]


def upsert_from_submission(
    ledger: Sequence[Note],
    text: str,
    author: str | None,
    *,
    submission_id: str,
    now: datetime,
    note_id: str,
) -> tuple[list[Note], str]:
    """Append, or refresh the entry previously created for ``submission_id``.

    Returns the new ledger and one of ``"added"``, ``"updated"`` or ``"unchanged"``.
    An existing entry keeps its id, status and position; only its text and
    ``updated_at`` change.
    """

    cleaned = text.strip()
    for index, note in enumerate(ledger):
        if note.submission_id != submission_id:
            continue
        if note.note_text == cleaned:
            return list(ledger), "unchanged"
        updated = list(ledger)
        updated[index] = replace(note, note_text=cleaned, updated_at=now, synced_at=now)
        return updated, "updated"
    appended = append(
        ledger,
        cleaned,
        author,
        now=now,
        note_id=note_id,
        submission_id=submission_id,
        synced_at=now,
    )
    return appended, "added"
