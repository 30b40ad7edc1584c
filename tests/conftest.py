from __future__ import annotations

import itertools
import sys
from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest

sys.path.append(str(Path(__file__).resolve().parents[1]))

from servicepro.application import (
    JobService,
    NoteService,
    StageService,
    SubmissionService,
    reset_service_state,
)
from servicepro.infrastructure import InMemoryJobStore, InMemoryMaterialStore, InMemorySubmissionStore


class ManualClock:
    def __init__(self, start: datetime | None = None) -> None:
        self.current = start or datetime(2024, 5, 1, 9, 0, tzinfo=timezone.utc)

    def now(self) -> datetime:
        return self.current

    def advance(self, **kwargs) -> datetime:
        self.current = self.current + timedelta(**kwargs)
        return self.current


class SequentialIds:
    def __init__(self, prefix: str = "id") -> None:
        self._prefix = prefix
        self._counter = itertools.count(1)

    def new_id(self) -> str:
        return f"{self._prefix}-{next(self._counter):04d}"


@pytest.fixture(autouse=True)
def reset_state():
    reset_service_state()
    yield
    reset_service_state()


@pytest.fixture()
def clock() -> ManualClock:
    return ManualClock()


@pytest.fixture()
def ids() -> SequentialIds:
    return SequentialIds()


@pytest.fixture()
def job_store() -> InMemoryJobStore:
    return InMemoryJobStore()


@pytest.fixture()
def submission_store() -> InMemorySubmissionStore:
    return InMemorySubmissionStore()


@pytest.fixture()
def material_store() -> InMemoryMaterialStore:
    return InMemoryMaterialStore()


@pytest.fixture()
def job_service(job_store, clock, ids) -> JobService:
    return JobService(job_store, clock=clock, ids=ids)


@pytest.fixture()
def stage_service(job_store, clock) -> StageService:
    return StageService(job_store, clock=clock)


@pytest.fixture()
def note_service(job_store, clock, ids) -> NoteService:
    return NoteService(job_store, clock=clock, ids=ids)


@pytest.fixture()
def submission_service(job_store, submission_store, material_store, clock, ids) -> SubmissionService:
    return SubmissionService(job_store, submission_store, material_store, clock=clock, ids=ids)
