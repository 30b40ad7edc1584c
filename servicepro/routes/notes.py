from __future__ import annotations

from dataclasses import asdict

from fastapi import APIRouter, HTTPException, Query

from servicepro.application import get_note_service

router = APIRouter(tags=["notes"])


@router.post("/jobs/{job_id}/notes")
async def add_job_note(job_id: str, payload: dict) -> dict:
    ledger = payload.get("ledger") or "boss"
    text = payload.get("note_text")
    if not text or not str(text).strip():
        raise HTTPException(status_code=400, detail="note_text is required")
    service = get_note_service()
    note = service.add_note(job_id, str(ledger), str(text), payload.get("created_by"))
    return {"job_id": job_id, "note": asdict(note)}


@router.get("/notes")
async def list_notes(
    status: str | None = Query(default=None),
    ledger: str | None = Query(default=None),
) -> dict:
    service = get_note_service()
    items = service.list_notes(status=status, ledger=ledger)
    return {"items": [{**item, "note": asdict(item["note"])} for item in items]}


@router.put("/notes/{note_id}/status")
async def update_note_status(note_id: str, payload: dict) -> dict:
    status = payload.get("status")
    if not status:
        raise HTTPException(status_code=400, detail="status is required")
    service = get_note_service()
    note = service.set_note_status(note_id, str(status))
    return {"note_id": note.id, "status": note.status, "updated_at": note.updated_at}


@router.post("/notes/backfill-synced-at")
async def backfill_synced_at() -> dict:
    service = get_note_service()
    return service.backfill_synced_at()
