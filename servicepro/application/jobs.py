"""Application service for job lifecycle."""
from __future__ import annotations

import re
import threading
from dataclasses import replace

from servicepro.core.progression import fresh_step_map
from servicepro.core.stages import INITIAL_STAGE, get_stage
from servicepro.core.statuses import JobStatus, initial_stage_for_status, parse_status
from servicepro.core.validation import validate_text
from servicepro.domain import Job, StageHistoryEntry
from servicepro.infrastructure import Clock, IdGenerator, JobStore, SystemClock, UUIDGenerator
from servicepro.infrastructure.stores import mutate_job
from servicepro.utils.logging import get_logger

LOGGER = get_logger(__name__)

_JOB_NUMBER = re.compile(r"^JOB-(\d{8})-(\d{3,})$")


class JobService:
    """Creates jobs and manages their coarse status."""

    def __init__(
        self,
        store: JobStore,
        *,
        clock: Clock | None = None,
        ids: IdGenerator | None = None,
    ) -> None:
        self._store = store
        self._clock = clock or SystemClock()
        self._ids = ids or UUIDGenerator()
        self._number_lock = threading.Lock()

    # ------------------------------------------------------------------
    # job lifecycle
    # ------------------------------------------------------------------
    def _next_job_number(self, day: str) -> str:
        highest = 0
        for job in self._store.list_jobs(include_archived=True):
            match = _JOB_NUMBER.match(job.job_number)
            if match and match.group(1) == day:
                highest = max(highest, int(match.group(2)))
        return f"JOB-{day}-{highest + 1:03d}"

    def create_job(
        self,
        service_address: str,
        *,
        title: str | None = None,
        job_type: str | None = None,
        description: str | None = None,
        status: JobStatus | str | None = None,
    ) -> Job:
        address = validate_text(service_address, "service_address")
        job_status = parse_status(status) if status else JobStatus.NOT_SCHEDULED
        stage = get_stage(initial_stage_for_status(job_status) if status else INITIAL_STAGE)
        now = self._clock.now()
        with self._number_lock:
            job = Job(
                id=self._ids.new_id(),
                job_number=self._next_job_number(now.strftime("%Y%m%d")),
                service_address=address,
                created_at=now,
                updated_at=now,
                title=title,
                job_type=job_type,
                description=description,
                status=job_status,
                stage=stage.key,
                stage_steps=fresh_step_map(stage),
                stage_history=[StageHistoryEntry(stage=stage.key, entered_at=now, notes="Job created")],
            )
            created = self._store.add_job(job)
        LOGGER.info("created job %s (%s) at %s", created.job_number, created.id, address)
        return created

    def get_job(self, job_id: str) -> Job:
        return self._store.get_job(job_id)

    def list_jobs(self, *, include_archived: bool = False) -> list[Job]:
        return self._store.list_jobs(include_archived=include_archived)

    def update_status(self, job_id: str, status: JobStatus | str) -> Job:
        new_status = parse_status(status)
        now = self._clock.now()

        def apply(job: Job) -> Job:
            if job.status == new_status:
                return job
            return replace(job, status=new_status, updated_at=now)

        return mutate_job(self._store, job_id, apply)

    # ------------------------------------------------------------------
    # testing helpers
    # ------------------------------------------------------------------
    def reset(self) -> None:
        self._store.reset()
