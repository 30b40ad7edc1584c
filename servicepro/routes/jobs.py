from __future__ import annotations

from dataclasses import asdict
from typing import Any

from fastapi import APIRouter, HTTPException, Query

from servicepro.application import get_job_service
from servicepro.core.progression import get_stage_progress
from servicepro.domain import Job

router = APIRouter(prefix="/jobs", tags=["jobs"])


def serialise_job(job: Job) -> dict[str, Any]:
    payload = asdict(job)
    payload["status"] = getattr(job.status, "value", job.status)
    payload["progress"] = asdict(get_stage_progress(job))
    return payload


@router.get("")
async def list_jobs(include_archived: bool = Query(default=False)) -> dict:
    service = get_job_service()
    items = [serialise_job(job) for job in service.list_jobs(include_archived=include_archived)]
    return {"items": items}


@router.post("")
async def create_job(payload: dict) -> dict:
    address = payload.get("service_address")
    if not address:
        raise HTTPException(status_code=400, detail="service_address is required")
    service = get_job_service()
    job = service.create_job(
        str(address),
        title=payload.get("title"),
        job_type=payload.get("job_type"),
        description=payload.get("description"),
        status=payload.get("status"),
    )
    return serialise_job(job)


@router.get("/{job_id}")
async def get_job(job_id: str) -> dict:
    service = get_job_service()
    return serialise_job(service.get_job(job_id))


@router.patch("/{job_id}/status")
async def update_job_status(job_id: str, payload: dict) -> dict:
    status = payload.get("status")
    if not status:
        raise HTTPException(status_code=400, detail="status is required")
    service = get_job_service()
    return serialise_job(service.update_status(job_id, str(status)))
