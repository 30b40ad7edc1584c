from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from servicepro.core import ledger
from servicepro.core.validation import InvalidNoteStatusError, NoteNotFoundError

NOW = datetime(2024, 5, 1, 9, 0, tzinfo=timezone.utc)


def _three_notes():
    notes = []
    for index, text in enumerate(["first", "second", "third"], start=1):
        notes = ledger.append(notes, text, "dispatcher", now=NOW, note_id=f"n{index}")
    return notes


def test_append_preserves_order_and_defaults():
    notes = _three_notes()
    assert [note.id for note in notes] == ["n1", "n2", "n3"]
    assert all(note.status == "undone" for note in notes)
    assert notes[0].created_by == "dispatcher"
    assert notes[0].synced_at is None


def test_append_does_not_mutate_input():
    notes = _three_notes()
    ledger.append(notes, "fourth", None, now=NOW, note_id="n4")
    assert len(notes) == 3


def test_set_status_only_touches_target_note():
    notes = _three_notes()
    later = NOW + timedelta(hours=1)

    updated = ledger.set_status(notes, "n2", "done", now=later)

    assert [note.status for note in updated] == ["undone", "done", "undone"]
    assert updated[1].updated_at == later
    assert updated[1].note_text == "second"
    assert updated[0] == notes[0]
    assert updated[2] == notes[2]
    assert notes[1].status == "undone"


def test_set_status_unknown_note_raises():
    with pytest.raises(NoteNotFoundError):
        ledger.set_status(_three_notes(), "missing", "done", now=NOW)


def test_set_status_rejects_unknown_status():
    with pytest.raises(InvalidNoteStatusError):
        ledger.set_status(_three_notes(), "n1", "finished", now=NOW)


def test_backfill_synced_at_is_idempotent():
    notes = _three_notes()
    synced = NOW + timedelta(days=1)
    notes[2:] = [ledger.append([], "synced", None, now=NOW, note_id="n3", synced_at=synced)[0]]

    once = ledger.backfill_synced_at(notes)
    twice = ledger.backfill_synced_at(once)

    assert [note.synced_at for note in once] == [NOW, NOW, synced]
    assert once == twice


def test_upsert_from_submission_updates_in_place():
    notes = _three_notes()
    notes, outcome = ledger.upsert_from_submission(
        notes, "Need filter", "tech", submission_id="sub-1", now=NOW, note_id="n4"
    )
    assert outcome == "added"
    notes = ledger.set_status(notes, "n4", "done", now=NOW)

    later = NOW + timedelta(hours=2)
    refreshed, outcome = ledger.upsert_from_submission(
        notes, "Need 2 filters", "tech", submission_id="sub-1", now=later, note_id="n5"
    )

    assert outcome == "updated"
    assert len(refreshed) == 4
    assert refreshed[3].id == "n4"
    assert refreshed[3].note_text == "Need 2 filters"
    assert refreshed[3].status == "done"
    assert refreshed[3].updated_at == later

    again, outcome = ledger.upsert_from_submission(
        refreshed, "Need 2 filters", "tech", submission_id="sub-1", now=later, note_id="n6"
    )
    assert outcome == "unchanged"
    assert again == refreshed


def test_contains():
    notes = _three_notes()
    assert ledger.contains(notes, "n3")
    assert not ledger.contains(notes, "n9")
