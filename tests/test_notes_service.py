from __future__ import annotations

import pytest

from servicepro.core.validation import InvalidNoteStatusError, NoteNotFoundError, ValidationError


def test_add_note_to_each_ledger(job_service, note_service, job_store):
    job = job_service.create_job("123 Main Street")

    boss = note_service.add_note(job.id, "boss", "Call customer before arrival", "owner")
    extra = note_service.add_note(job.id, "additional_notes_status", "Dog in the yard")

    stored = job_store.get_job(job.id)
    assert [note.id for note in stored.boss_notes_status] == [boss.id]
    assert [note.id for note in stored.additional_notes_status] == [extra.id]
    assert boss.status == "undone"
    assert boss.created_by == "owner"


def test_add_note_rejects_unknown_ledger_and_blank_text(job_service, note_service):
    job = job_service.create_job("123 Main Street")
    with pytest.raises(ValidationError):
        note_service.add_note(job.id, "gossip", "text")
    with pytest.raises(ValidationError):
        note_service.add_note(job.id, "boss", "   ")


def test_set_note_status_finds_note_through_index(job_service, note_service, job_store, clock):
    first = job_service.create_job("1 First Street")
    second = job_service.create_job("2 Second Street")
    note_service.add_note(first.id, "materials", "Filter 16x25")
    target = note_service.add_note(second.id, "materials", "Copper line")
    untouched = note_service.add_note(second.id, "materials", "Drain pan")
    clock.advance(minutes=5)

    updated = note_service.set_note_status(target.id, "in_progress")

    assert updated.status == "in_progress"
    assert updated.updated_at == clock.now()
    stored = job_store.get_job(second.id)
    assert [note.status for note in stored.materials_notes_status] == ["in_progress", "undone"]
    assert stored.materials_notes_status[1].id == untouched.id
    assert job_store.locate_note(target.id) == (second.id, "materials_notes_status")


def test_set_note_status_errors(job_service, note_service):
    job = job_service.create_job("123 Main Street")
    note = note_service.add_note(job.id, "boss", "Bring ladder")
    with pytest.raises(NoteNotFoundError):
        note_service.set_note_status("missing-note", "done")
    with pytest.raises(InvalidNoteStatusError):
        note_service.set_note_status(note.id, "finished")


def test_list_notes_filters_and_skips_closed_jobs(job_service, note_service, clock):
    open_job = job_service.create_job("1 First Street")
    closed_job = job_service.create_job("2 Second Street")
    first = note_service.add_note(open_job.id, "boss", "Order thermostat")
    clock.advance(minutes=1)
    second = note_service.add_note(open_job.id, "additional", "Gate code 1234")
    note_service.add_note(closed_job.id, "boss", "Old note")
    job_service.update_status(closed_job.id, "cancelled")
    note_service.set_note_status(first.id, "done")

    everything = note_service.list_notes()
    assert [item["note"].id for item in everything] == [second.id, first.id]
    assert everything[0]["job_number"] == open_job.job_number

    undone = note_service.list_notes(status="undone")
    assert [item["note"].id for item in undone] == [second.id]

    boss_only = note_service.list_notes(ledger="boss")
    assert [item["ledger"] for item in boss_only] == ["boss_notes_status"]


def test_backfill_synced_at(job_service, note_service, job_store):
    job = job_service.create_job("123 Main Street")
    note_service.add_note(job.id, "boss", "One")
    note_service.add_note(job.id, "materials", "Two")
    job_service.create_job("9 Elm Avenue")

    assert note_service.backfill_synced_at() == {"jobs_updated": 1, "notes_backfilled": 2}
    stored = job_store.get_job(job.id)
    assert stored.boss_notes_status[0].synced_at == stored.boss_notes_status[0].created_at
    assert note_service.backfill_synced_at() == {"jobs_updated": 0, "notes_backfilled": 0}
