"""Application service for job stage actions."""
from __future__ import annotations

from typing import Iterable

from servicepro.core import progression
from servicepro.core.progression import StageProgress
from servicepro.domain import Job
from servicepro.infrastructure import Clock, JobStore, SystemClock
from servicepro.infrastructure.stores import DEFAULT_MAX_ATTEMPTS, mutate_job
from servicepro.utils.logging import get_logger

LOGGER = get_logger(__name__)


class StageService:
    """Runs progression rules against stored jobs with optimistic retries."""

    def __init__(
        self,
        store: JobStore,
        *,
        clock: Clock | None = None,
        max_attempts: int = DEFAULT_MAX_ATTEMPTS,
    ) -> None:
        self._store = store
        self._clock = clock or SystemClock()
        self._max_attempts = max_attempts

    def _mutate(self, job_id: str, mutator) -> Job:
        return mutate_job(self._store, job_id, mutator, max_attempts=self._max_attempts)

    def _log_transition(self, before: str, after: Job) -> None:
        if after.stage != before:
            LOGGER.info("job %s moved from %s to %s", after.id, before, after.stage)

    # ------------------------------------------------------------------
    # step actions
    # ------------------------------------------------------------------
    def complete_step(
        self,
        job_id: str,
        step_key: str,
        *,
        user_id: str | None = None,
        notes: str | None = None,
        auto_advance: bool = True,
    ) -> Job:
        now = self._clock.now()
        stage_before = self._store.get_job(job_id).stage

        def apply(job: Job) -> Job:
            updated = progression.complete_step(job, step_key, now=now, user_id=user_id, notes=notes)
            if auto_advance:
                updated = progression.advance_stage_if_ready(updated, now=now, user_id=user_id)
            return updated

        job = self._mutate(job_id, apply)
        self._log_transition(stage_before, job)
        return job

    def complete_steps(
        self,
        job_id: str,
        step_keys: Iterable[str],
        *,
        user_id: str | None = None,
        auto_advance: bool = True,
    ) -> Job:
        keys = list(step_keys)
        now = self._clock.now()
        stage_before = self._store.get_job(job_id).stage

        def apply(job: Job) -> Job:
            updated = progression.complete_steps(job, keys, now=now, user_id=user_id)
            if auto_advance:
                updated = progression.advance_stage_if_ready(updated, now=now, user_id=user_id)
            return updated

        job = self._mutate(job_id, apply)
        self._log_transition(stage_before, job)
        return job

    def uncomplete_step(self, job_id: str, step_key: str) -> Job:
        now = self._clock.now()
        return self._mutate(job_id, lambda job: progression.uncomplete_step(job, step_key, now=now))

    # ------------------------------------------------------------------
    # stage transitions
    # ------------------------------------------------------------------
    def get_stage_progress(self, job_id: str) -> StageProgress:
        return progression.get_stage_progress(self._store.get_job(job_id))

    def advance_stage_if_ready(self, job_id: str, *, user_id: str | None = None) -> Job:
        now = self._clock.now()
        stage_before = self._store.get_job(job_id).stage
        job = self._mutate(
            job_id,
            lambda current: progression.advance_stage_if_ready(current, now=now, user_id=user_id),
        )
        self._log_transition(stage_before, job)
        return job

    def move_to_stage(
        self,
        job_id: str,
        target_stage: str,
        *,
        user_id: str | None = None,
        notes: str | None = None,
    ) -> Job:
        now = self._clock.now()
        job = self._mutate(
            job_id,
            lambda current: progression.move_to_stage(
                current, target_stage, now=now, user_id=user_id, notes=notes
            ),
        )
        LOGGER.info("job %s manually moved to %s by %s", job_id, job.stage, user_id or "unknown")
        return job
