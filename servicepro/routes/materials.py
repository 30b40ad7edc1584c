from __future__ import annotations

from dataclasses import asdict

from fastapi import APIRouter, HTTPException, Query

from servicepro.application import get_submission_service

router = APIRouter(prefix="/materials", tags=["materials"])


@router.get("")
async def list_materials(job_id: str | None = Query(default=None)) -> dict:
    service = get_submission_service()
    return {"items": [asdict(item) for item in service.list_materials(job_id=job_id)]}


@router.post("/order")
async def mark_materials_ordered(payload: dict) -> dict:
    material_ids = payload.get("material_ids")
    if not isinstance(material_ids, list) or not material_ids:
        raise HTTPException(status_code=400, detail="material_ids must be a non-empty list")
    service = get_submission_service()
    updated = service.mark_materials_ordered(str(item) for item in material_ids)
    return {"updated": updated}
