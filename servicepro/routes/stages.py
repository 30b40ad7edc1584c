from __future__ import annotations

from dataclasses import asdict

from fastapi import APIRouter, HTTPException

from servicepro.application import get_job_service, get_stage_service
from servicepro.core.stages import get_stage, list_stages
from servicepro.routes.jobs import serialise_job

router = APIRouter(tags=["stages"])

STEP_ACTIONS = {"complete_step", "uncomplete_step", "complete_steps"}
STAGE_ACTIONS = {"advance_stage", "manual_override"}


@router.get("/stages")
async def list_stage_definitions() -> dict:
    return {"items": [stage.to_dict() for stage in list_stages()]}


@router.get("/jobs/{job_id}/stages")
async def get_job_stage(job_id: str) -> dict:
    job = get_job_service().get_job(job_id)
    progress = get_stage_service().get_stage_progress(job_id)
    stage = get_stage(job.stage)
    steps = [
        {
            "key": step.key,
            "label": step.label,
            "description": step.description,
            "required": step.required,
            "completed": bool(job.stage_steps.get(step.key) and job.stage_steps[step.key].completed),
        }
        for step in stage.steps
    ]
    return {
        "job_id": job.id,
        "stage": stage.to_dict(),
        "steps": steps,
        "progress": asdict(progress),
        "history": [asdict(entry) for entry in job.stage_history],
    }


@router.put("/jobs/{job_id}/stages")
async def update_job_steps(job_id: str, payload: dict) -> dict:
    """Complete or uncomplete checklist steps of the job's current stage."""
    action = payload.get("action")
    if action not in STEP_ACTIONS:
        raise HTTPException(status_code=400, detail=f"action must be one of {', '.join(sorted(STEP_ACTIONS))}")
    user_id = payload.get("user_id")
    service = get_stage_service()

    if action == "complete_steps":
        step_keys = payload.get("step_keys")
        if not isinstance(step_keys, list) or not step_keys:
            raise HTTPException(status_code=400, detail="step_keys must be a non-empty list")
        job = service.complete_steps(job_id, [str(key) for key in step_keys], user_id=user_id)
        return serialise_job(job)

    step_key = payload.get("step_key")
    if not step_key:
        raise HTTPException(status_code=400, detail="step_key is required")
    if action == "complete_step":
        job = service.complete_step(job_id, str(step_key), user_id=user_id, notes=payload.get("notes"))
    else:
        job = service.uncomplete_step(job_id, str(step_key))
    return serialise_job(job)


@router.post("/jobs/{job_id}/stages")
async def change_job_stage(job_id: str, payload: dict) -> dict:
    action = payload.get("action")
    if action not in STAGE_ACTIONS:
        raise HTTPException(status_code=400, detail=f"action must be one of {', '.join(sorted(STAGE_ACTIONS))}")
    user_id = payload.get("user_id")
    service = get_stage_service()

    if action == "advance_stage":
        job = service.advance_stage_if_ready(job_id, user_id=user_id)
        return serialise_job(job)

    target = payload.get("target_stage")
    if not target:
        raise HTTPException(status_code=400, detail="target_stage is required")
    job = service.move_to_stage(job_id, str(target), user_id=user_id, notes=payload.get("notes"))
    return serialise_job(job)
