"""Pure stage progression rules over :class:`~servicepro.domain.Job`.

Every function returns a new ``Job`` and never mutates the one it is given, so
callers can retry a fetch-transform-write cycle without side effects.
"""
from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import datetime
from typing import Iterable

from servicepro.core.stages import StageDefinition, get_stage
from servicepro.core.statuses import JobStatus, most_advanced
from servicepro.domain import Job, StageHistoryEntry, StepState

AUTO_ADVANCE_NOTE = "Auto-advanced after completing all required steps"
MANUAL_OVERRIDE_NOTE = "Manual stage override"


@dataclass(slots=True)
class StageProgress:
    completed: int
    total: int
    percentage: int
    stage: str
    stage_name: str
    required_steps_complete: bool
    can_advance: bool
    next_stage: str | None = None
    incomplete_required_steps: list[str] = field(default_factory=list)


def fresh_step_map(stage: StageDefinition) -> dict[str, StepState]:
    return {step.key: StepState() for step in stage.steps}


def _current_steps(job: Job, stage: StageDefinition) -> dict[str, StepState]:
    steps = fresh_step_map(stage)
    for key, state in job.stage_steps.items():
        if key in steps:
            steps[key] = state
    return steps


def _required_complete(job: Job, stage: StageDefinition) -> bool:
    steps = _current_steps(job, stage)
    return all(steps[step.key].completed for step in stage.required_steps)


def _append_history(
    job: Job,
    target: StageDefinition,
    *,
    now: datetime,
    user_id: str | None,
    notes: str | None,
) -> list[StageHistoryEntry]:
    history = list(job.stage_history)
    if history and history[-1].completed_at is None:
        history[-1] = replace(history[-1], completed_at=now)
    history.append(
        StageHistoryEntry(
            stage=target.key,
            entered_at=now,
            previous_stage=job.stage,
            changed_by=user_id,
            notes=notes,
        )
    )
    return history


def _enter_stage(
    job: Job,
    target: StageDefinition,
    *,
    now: datetime,
    user_id: str | None,
    notes: str | None,
) -> Job:
    history = _append_history(job, target, now=now, user_id=user_id, notes=notes)
    status = job.status
    if target.is_terminal:
        status = most_advanced(status, JobStatus.DONE)
    return replace(
        job,
        stage=target.key,
        stage_steps=fresh_step_map(target),
        stage_history=history,
        status=status,
        updated_at=now,
    )


def complete_step(
    job: Job,
    step_key: str,
    *,
    now: datetime,
    user_id: str | None = None,
    notes: str | None = None,
) -> Job:
    stage = get_stage(job.stage)
    stage.step(step_key)
    steps = _current_steps(job, stage)
    steps[step_key] = StepState(completed=True, completed_at=now, completed_by=user_id, notes=notes)
    return replace(job, stage_steps=steps, updated_at=now)


def complete_steps(
    job: Job,
    step_keys: Iterable[str],
    *,
    now: datetime,
    user_id: str | None = None,
) -> Job:
    # validate everything first so a bad key leaves the job untouched
    keys = list(step_keys)
    stage = get_stage(job.stage)
    for key in keys:
        stage.step(key)
    for key in keys:
        job = complete_step(job, key, now=now, user_id=user_id)
    return job


def uncomplete_step(job: Job, step_key: str, *, now: datetime) -> Job:
    stage = get_stage(job.stage)
    stage.step(step_key)
    steps = _current_steps(job, stage)
    steps[step_key] = StepState()
    return replace(job, stage_steps=steps, updated_at=now)


def get_stage_progress(job: Job) -> StageProgress:
    stage = get_stage(job.stage)
    steps = _current_steps(job, stage)
    total = len(stage.steps)
    completed = sum(1 for step in stage.steps if steps[step.key].completed)
    percentage = round(completed / total * 100) if total else 100
    incomplete = [step.label for step in stage.required_steps if not steps[step.key].completed]
    required_done = not incomplete
    return StageProgress(
        completed=completed,
        total=total,
        percentage=percentage,
        stage=stage.key,
        stage_name=stage.name,
        required_steps_complete=required_done,
        can_advance=required_done and not stage.is_terminal,
        next_stage=stage.next_stage,
        incomplete_required_steps=incomplete,
    )


def advance_stage_if_ready(job: Job, *, now: datetime, user_id: str | None = None) -> Job:
    stage = get_stage(job.stage)
    if stage.is_terminal or not _required_complete(job, stage):
        return job
    target = get_stage(stage.next_stage)
    return _enter_stage(job, target, now=now, user_id=user_id, notes=AUTO_ADVANCE_NOTE)


def move_to_stage(
    job: Job,
    target_stage: str,
    *,
    now: datetime,
    user_id: str | None = None,
    notes: str | None = None,
) -> Job:
    target = get_stage(target_stage)
    note = notes or MANUAL_OVERRIDE_NOTE
    if target.key == job.stage:
        # re-entering the current stage is recorded but keeps checklist progress
        history = _append_history(job, target, now=now, user_id=user_id, notes=note)
        return replace(job, stage_history=history, updated_at=now)
    return _enter_stage(job, target, now=now, user_id=user_id, notes=note)
