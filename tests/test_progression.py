from __future__ import annotations

import threading

import pytest

from servicepro.application import StageService
from servicepro.core import progression
from servicepro.core.stages import get_stage, list_stages
from servicepro.core.statuses import JobStatus
from servicepro.core.validation import ConcurrencyError, InvalidStageError, InvalidStepError
from servicepro.infrastructure import InMemoryJobStore

BEGINNING_REQUIRED = [
    "proposal_approved",
    "deposit_invoice_sent",
    "deposit_invoice_paid",
    "job_scheduled",
    "technician_assigned",
    "ready_to_start",
]


def test_stage_table_order_and_terminal():
    keys = [stage.key for stage in list_stages()]
    assert keys == ["beginning", "rough_in", "trim_out", "closing", "completed"]
    assert get_stage("completed").is_terminal
    assert [step.key for step in get_stage("beginning").required_steps] == BEGINNING_REQUIRED


def test_new_job_starts_in_beginning(job_service, stage_service):
    job = job_service.create_job("123 Main Street")
    assert job.stage == "beginning"
    assert job.job_number == "JOB-20240501-001"
    assert len(job.stage_history) == 1
    progress = stage_service.get_stage_progress(job.id)
    assert progress.completed == 0
    assert progress.total == 7
    assert not progress.can_advance


def test_required_steps_gate_advancement(job_service, stage_service):
    job = job_service.create_job("123 Main Street")
    for key in BEGINNING_REQUIRED[:-1]:
        job = stage_service.complete_step(job.id, key, user_id="dispatcher")

    assert job.stage == "beginning"
    progress = stage_service.get_stage_progress(job.id)
    assert progress.completed == 5
    assert progress.percentage == 71
    assert progress.incomplete_required_steps == ["Ready to Start"]

    job = stage_service.advance_stage_if_ready(job.id)
    assert job.stage == "beginning"


def test_optional_step_does_not_block_auto_advance(job_service, stage_service, clock):
    job = job_service.create_job("123 Main Street")
    for key in BEGINNING_REQUIRED[:-1]:
        stage_service.complete_step(job.id, key)
    clock.advance(hours=1)

    job = stage_service.complete_step(job.id, "ready_to_start", user_id="dispatcher")

    assert job.stage == "rough_in"
    assert set(job.stage_steps) == {step.key for step in get_stage("rough_in").steps}
    assert not any(state.completed for state in job.stage_steps.values())

    first, entered = job.stage_history[-2], job.stage_history[-1]
    assert first.stage == "beginning"
    assert first.completed_at == clock.now()
    assert entered.stage == "rough_in"
    assert entered.previous_stage == "beginning"
    assert entered.notes == progression.AUTO_ADVANCE_NOTE
    assert entered.completed_at is None


def test_complete_step_records_who_and_when(job_service, stage_service, clock):
    job = job_service.create_job("123 Main Street")
    job = stage_service.complete_step(job.id, "proposal_approved", user_id="ana", notes="signed copy")
    state = job.stage_steps["proposal_approved"]
    assert state.completed
    assert state.completed_by == "ana"
    assert state.completed_at == clock.now()
    assert state.notes == "signed copy"


def test_invalid_step_leaves_job_unchanged(job_service, stage_service, job_store):
    job = job_service.create_job("123 Main Street")

    with pytest.raises(InvalidStepError):
        stage_service.complete_step(job.id, "inspection_passed")
    with pytest.raises(InvalidStepError):
        stage_service.complete_steps(job.id, ["proposal_approved", "not_a_step"])

    stored = job_store.get_job(job.id)
    assert stored.version == job.version
    assert stored.stage_steps == job.stage_steps


def test_complete_steps_advances_once(job_service, stage_service):
    job = job_service.create_job("123 Main Street")
    job = stage_service.complete_steps(job.id, BEGINNING_REQUIRED)
    assert job.stage == "rough_in"
    assert len(job.stage_history) == 2


def test_uncomplete_step(job_service, stage_service):
    job = job_service.create_job("123 Main Street")
    stage_service.complete_step(job.id, "proposal_approved")
    job = stage_service.uncomplete_step(job.id, "proposal_approved")
    assert not job.stage_steps["proposal_approved"].completed
    assert job.stage_steps["proposal_approved"].completed_at is None


def test_manual_override_skips_gating(job_service, stage_service):
    job = job_service.create_job("123 Main Street")
    job = stage_service.move_to_stage(job.id, "closing", user_id="owner")

    assert job.stage == "closing"
    assert set(job.stage_steps) == {step.key for step in get_stage("closing").steps}
    entry = job.stage_history[-1]
    assert entry.previous_stage == "beginning"
    assert entry.changed_by == "owner"
    assert entry.notes == progression.MANUAL_OVERRIDE_NOTE
    assert job.status == JobStatus.NOT_SCHEDULED


def test_manual_override_to_same_stage_keeps_steps(job_service, stage_service):
    job = job_service.create_job("123 Main Street")
    stage_service.complete_step(job.id, "proposal_approved")
    job = stage_service.move_to_stage(job.id, "beginning", notes="re-check")
    assert job.stage_steps["proposal_approved"].completed
    assert job.stage_history[-1].notes == "re-check"
    assert len(job.stage_history) == 2


def test_manual_override_unknown_stage(job_service, stage_service):
    job = job_service.create_job("123 Main Street")
    with pytest.raises(InvalidStageError):
        stage_service.move_to_stage(job.id, "demolition")


def test_reaching_completed_marks_job_done(job_service, stage_service):
    job = job_service.create_job("123 Main Street")
    stage_service.move_to_stage(job.id, "closing")
    job = stage_service.complete_steps(
        job.id, ["startup_complete", "final_walkthrough", "customer_signed_off", "job_complete"]
    )

    assert job.stage == "completed"
    assert job.status == JobStatus.DONE
    progress = stage_service.get_stage_progress(job.id)
    assert progress.percentage == 100
    assert not progress.can_advance
    assert progress.next_stage is None


def test_concurrent_step_completions_are_not_lost(job_store, job_service, clock):
    service = StageService(job_store, clock=clock, max_attempts=100)
    job = job_service.create_job("123 Main Street")
    keys = BEGINNING_REQUIRED[:-1] + ["materials_ordered"]
    barrier = threading.Barrier(len(keys))
    errors: list[BaseException] = []

    def worker(key: str) -> None:
        barrier.wait()
        try:
            service.complete_step(job.id, key)
        except BaseException as exc:  # pragma: no cover - surfaced below
            errors.append(exc)

    threads = [threading.Thread(target=worker, args=(key,)) for key in keys]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert errors == []
    stored = job_store.get_job(job.id)
    assert all(stored.stage_steps[key].completed for key in keys)
    assert not stored.stage_steps["ready_to_start"].completed


class InterferingJobStore(InMemoryJobStore):
    """Lets another writer slip in before each of the first ``interruptions`` conditional writes."""

    def __init__(self, interruptions: int) -> None:
        super().__init__()
        self.interruptions = interruptions
        self.conflicts = 0

    def update_job(self, job_id, changes, *, expected_version=None):
        if expected_version is not None and self.interruptions > 0:
            self.interruptions -= 1
            super().update_job(job_id, {"description": f"edited elsewhere {self.interruptions}"})
            self.conflicts += 1
        return super().update_job(job_id, changes, expected_version=expected_version)


def test_conflicting_write_is_retried(clock, ids):
    from servicepro.application import JobService

    store = InterferingJobStore(interruptions=2)
    job = JobService(store, clock=clock, ids=ids).create_job("9 Elm Avenue")
    service = StageService(store, clock=clock)

    updated = service.complete_step(job.id, "proposal_approved")

    assert store.conflicts == 2
    assert updated.stage_steps["proposal_approved"].completed
    assert updated.description == "edited elsewhere 0"


def test_exhausted_retries_raise_concurrency_error(clock, ids):
    from servicepro.application import JobService

    store = InterferingJobStore(interruptions=10)
    job = JobService(store, clock=clock, ids=ids).create_job("9 Elm Avenue")
    service = StageService(store, clock=clock, max_attempts=3)

    with pytest.raises(ConcurrencyError):
        service.complete_step(job.id, "proposal_approved")
    assert not store.get_job(job.id).stage_steps["proposal_approved"].completed


def test_pure_transition_does_not_mutate_input(job_service):
    job = job_service.create_job("123 Main Street")
    updated = progression.complete_step(job, "proposal_approved", now=job.created_at)
    assert not job.stage_steps["proposal_approved"].completed
    assert updated.stage_steps["proposal_approved"].completed
