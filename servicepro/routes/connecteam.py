from __future__ import annotations

import shutil
import tempfile
from dataclasses import asdict
from pathlib import Path

from fastapi import APIRouter, File, HTTPException, Query, UploadFile

from servicepro.application import get_submission_service
from servicepro.domain import IngestResult
from servicepro.infrastructure import get_connecteam_client
from servicepro.workers.ingestion import get_ingestion_worker

router = APIRouter(prefix="/connecteam", tags=["connecteam"])

EXCEL_SUFFIXES = {".xlsx", ".xlsm", ".xls"}


def _result_payload(result: IngestResult) -> dict:
    payload = asdict(result)
    payload["success"] = not result.errors
    return payload


@router.post("/submissions")
async def receive_submissions(payload: dict) -> dict:
    """Record raw ConnectTeam form submissions and reconcile them against jobs."""
    raw_items = payload.get("submissions")
    if not isinstance(raw_items, list):
        raise HTTPException(status_code=400, detail="submissions must be a list")
    service = get_submission_service()
    worker = get_ingestion_worker()
    result, rejected = await worker.run(service.ingest_raw, raw_items)
    return {**_result_payload(result), "rejected": rejected}


@router.post("/ingest")
async def ingest_stored_submissions(payload: dict | None = None) -> dict:
    include_linked = bool((payload or {}).get("include_linked", False))
    service = get_submission_service()
    worker = get_ingestion_worker()
    result = await worker.run(service.ingest_stored, include_linked=include_linked)
    return _result_payload(result)


@router.post("/sync")
async def sync_from_connecteam(payload: dict | None = None) -> dict:
    client = get_connecteam_client()
    if client is None:
        raise HTTPException(status_code=503, detail="ConnectTeam API credentials are not configured")
    max_pages = (payload or {}).get("max_pages")
    if max_pages is not None and (not isinstance(max_pages, int) or max_pages <= 0):
        raise HTTPException(status_code=400, detail="max_pages must be a positive integer")
    service = get_submission_service()
    worker = get_ingestion_worker()
    result = await worker.run(service.sync_from_connecteam, client, max_pages=max_pages)
    return _result_payload(result)


@router.post("/import-excel")
async def import_excel(file: UploadFile = File(...)) -> dict:
    if not file.filename:
        raise HTTPException(status_code=400, detail="Uploaded file must have a filename")
    suffix = Path(file.filename).suffix.lower()
    if suffix not in EXCEL_SUFFIXES:
        raise HTTPException(status_code=400, detail="Only Excel exports (.xlsx, .xlsm, .xls) are supported")

    with tempfile.TemporaryDirectory() as tmpdir:
        target = Path(tmpdir) / f"connecteam-export{suffix}"
        try:
            with target.open("wb") as fp:
                shutil.copyfileobj(file.file, fp)
        finally:
            await file.close()
        service = get_submission_service()
        worker = get_ingestion_worker()
        summary = await worker.run(service.import_excel, target)

    result = summary.pop("result")
    return {**summary, **_result_payload(result)}


@router.get("/unmatched")
async def list_unmatched(
    search: str | None = Query(default=None),
    limit: int = Query(default=50, ge=1, le=500),
    offset: int = Query(default=0, ge=0),
) -> dict:
    service = get_submission_service()
    page = service.list_unmatched(search=search, limit=limit, offset=offset)
    return {"total": page["total"], "items": [asdict(item) for item in page["items"]]}


@router.get("/submissions/{submission_id}/suggestions")
async def suggest_matches(submission_id: str, limit: int = Query(default=5, ge=1, le=20)) -> dict:
    service = get_submission_service()
    return {"items": [asdict(item) for item in service.suggest_matches(submission_id, limit=limit)]}


@router.post("/submissions/{submission_id}/link")
async def link_submission(submission_id: str, payload: dict) -> dict:
    job_id = payload.get("job_id")
    if not job_id:
        raise HTTPException(status_code=400, detail="job_id is required")
    service = get_submission_service()
    worker = get_ingestion_worker()
    result = await worker.run(service.link_manually, submission_id, str(job_id))
    return _result_payload(result)


@router.post("/relink")
async def relink_submissions(payload: dict | None = None) -> dict:
    options = payload or {}
    service = get_submission_service()
    worker = get_ingestion_worker()
    summary = await worker.run(
        service.relink,
        force=bool(options.get("force", False)),
        dry_run=bool(options.get("dry_run", False)),
    )
    result = summary.pop("result", None)
    if result is not None:
        summary.update(_result_payload(result))
    return summary
