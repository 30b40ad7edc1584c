from __future__ import annotations

import pytest
from fastapi.testclient import TestClient
from openpyxl import Workbook

from servicepro.extractors.connecteam_form import QUESTION_IDS


@pytest.fixture()
def client(monkeypatch):
    monkeypatch.delenv("CONNECTEAM_API_KEY", raising=False)
    monkeypatch.delenv("CONNECTEAM_FORM_ID", raising=False)
    from servicepro.app import create_app

    app = create_app()
    with TestClient(app) as test_client:
        yield test_client


def _create_job(client: TestClient, address: str) -> dict:
    response = client.post("/api/jobs", json={"service_address": address, "title": "AC install"})
    assert response.status_code == 200, response.text
    return response.json()


def test_stage_workflow_end_to_end(client):
    job = _create_job(client, "123 Main Street")
    assert job["stage"] == "beginning"
    assert job["status"] == "not_scheduled"
    assert job["progress"]["total"] == 7

    stages = client.get("/api/stages").json()["items"]
    assert [stage["key"] for stage in stages][0] == "beginning"

    response = client.put(
        f"/api/jobs/{job['id']}/stages",
        json={
            "action": "complete_steps",
            "step_keys": [
                "proposal_approved",
                "deposit_invoice_sent",
                "deposit_invoice_paid",
                "job_scheduled",
                "technician_assigned",
                "ready_to_start",
            ],
            "user_id": "dispatcher",
        },
    )
    assert response.status_code == 200, response.text
    assert response.json()["stage"] == "rough_in"

    detail = client.get(f"/api/jobs/{job['id']}/stages").json()
    assert detail["stage"]["key"] == "rough_in"
    assert detail["progress"]["completed"] == 0
    assert [entry["stage"] for entry in detail["history"]] == ["beginning", "rough_in"]

    bad_step = client.put(
        f"/api/jobs/{job['id']}/stages",
        json={"action": "complete_step", "step_key": "proposal_approved"},
    )
    assert bad_step.status_code == 400
    assert bad_step.json()["retryable"] is False

    override = client.post(
        f"/api/jobs/{job['id']}/stages",
        json={"action": "manual_override", "target_stage": "completed", "user_id": "owner"},
    )
    assert override.status_code == 200
    assert override.json()["status"] == "done"


def test_unknown_job_and_bad_actions(client):
    assert client.get("/api/jobs/missing").status_code == 404
    job = _create_job(client, "9 Elm Avenue")
    assert client.put(f"/api/jobs/{job['id']}/stages", json={"action": "explode"}).status_code == 400
    assert client.post(f"/api/jobs/{job['id']}/stages", json={"action": "manual_override"}).status_code == 400
    unknown_stage = client.post(
        f"/api/jobs/{job['id']}/stages",
        json={"action": "manual_override", "target_stage": "demolition"},
    )
    assert unknown_stage.status_code == 400
    assert client.patch(f"/api/jobs/{job['id']}/status", json={"status": "sleeping"}).status_code == 400


def test_notes_workflow(client):
    job = _create_job(client, "45 Oak Road")

    created = client.post(
        f"/api/jobs/{job['id']}/notes",
        json={"ledger": "materials", "note_text": "Order 20x25 filter", "created_by": "owner"},
    )
    assert created.status_code == 200
    note_id = created.json()["note"]["id"]

    listed = client.get("/api/notes", params={"status": "undone"}).json()["items"]
    assert [item["note"]["id"] for item in listed] == [note_id]
    assert listed[0]["ledger"] == "materials_notes_status"

    updated = client.put(f"/api/notes/{note_id}/status", json={"status": "done"})
    assert updated.status_code == 200
    assert updated.json()["status"] == "done"
    assert client.get("/api/notes", params={"status": "undone"}).json()["items"] == []

    assert client.put("/api/notes/nope/status", json={"status": "done"}).status_code == 404
    assert client.put(f"/api/notes/{note_id}/status", json={"status": "finished"}).status_code == 400

    backfill = client.post("/api/notes/backfill-synced-at").json()
    assert backfill == {"jobs_updated": 1, "notes_backfilled": 1}


def test_submission_ingestion_via_api(client):
    job = _create_job(client, "77 Sunset Boulevard")
    payload = {
        "submissions": [
            {
                "formSubmissionId": "cs-1",
                "submittingUserId": 7,
                "submissionTimestamp": 1714554000,
                "answers": [
                    {"questionId": QUESTION_IDS["job_location"], "locationInput": {"address": "77 Sunset Blvd"}},
                    {"questionId": QUESTION_IDS["parts_materials_needed"], "value": "Capacitor 45/5"},
                ],
                "managerFields": [],
            },
            {
                "formSubmissionId": "cs-2",
                "answers": [
                    {"questionId": QUESTION_IDS["job_location"], "locationInput": {"address": "1 Unknown Way"}},
                ],
            },
        ]
    }

    response = client.post("/api/connecteam/submissions", json=payload)
    assert response.status_code == 200, response.text
    body = response.json()
    assert body["linked"] == 1
    assert body["unmatched"] == 1
    assert body["success"] is True
    assert body["rejected"] == []

    materials = client.get("/api/materials", params={"job_id": job["id"]}).json()["items"]
    assert [item["material_description"] for item in materials] == ["Capacitor 45/5"]
    ordered = client.post("/api/materials/order", json={"material_ids": [materials[0]["id"]]})
    assert ordered.json() == {"updated": 1}

    unmatched = client.get("/api/connecteam/unmatched").json()
    assert unmatched["total"] == 1
    assert unmatched["items"][0]["submission_id"] == "cs-2"

    other = _create_job(client, "1 Unknown Way")
    dry_run = client.post("/api/connecteam/relink", json={"dry_run": True}).json()
    assert dry_run["would_link"] == 1

    linked = client.post("/api/connecteam/submissions/cs-2/link", json={"job_id": other["id"]}).json()
    assert linked["linked"] == 1
    assert client.get("/api/connecteam/unmatched").json()["total"] == 0


def test_sync_requires_credentials(client):
    response = client.post("/api/connecteam/sync", json={})
    assert response.status_code == 503


def test_excel_upload(client, tmp_path):
    _create_job(client, "123 Main Street")
    workbook = Workbook()
    sheet = workbook.active
    sheet.append(["Full name", "Submission Date", "Submission Time", "Job Location📍", "Additional notes"])
    sheet.append(["Alex Rivera", "2024-05-01", "10:36 AM", "123 Main St", "Thermostat is loose"])
    path = tmp_path / "export.xlsx"
    workbook.save(path)

    with path.open("rb") as fp:
        response = client.post(
            "/api/connecteam/import-excel",
            files={"file": ("export.xlsx", fp, "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet")},
        )

    assert response.status_code == 200, response.text
    body = response.json()
    assert body["submissions_saved"] == 1
    assert body["linked"] == 1

    bad = client.post("/api/connecteam/import-excel", files={"file": ("notes.txt", b"hello", "text/plain")})
    assert bad.status_code == 400
