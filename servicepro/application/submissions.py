"""Application service for ConnectTeam submissions and their materials."""
from __future__ import annotations

from dataclasses import replace
from pathlib import Path
from typing import Any, Iterable, Mapping

from servicepro.application.matching import JobResolver, MatchSuggestion
from servicepro.core.address_normalize import normalize
from servicepro.core.schema import RawSubmission
from servicepro.core.validation import ValidationError
from servicepro.domain import IngestResult, MaterialEntry, Submission
from servicepro.extractors import connecteam_excel
from servicepro.extractors.connecteam_form import to_datetime, transform
from servicepro.infrastructure import (
    Clock,
    ConnectTeamClient,
    IdGenerator,
    JobStore,
    MaterialStore,
    SubmissionStore,
    SystemClock,
    UUIDGenerator,
)
from servicepro.utils.logging import get_logger
from servicepro.workers.ingestion import IngestionPipeline

LOGGER = get_logger(__name__)


def _sort_key(submission: Submission) -> float:
    stamp = submission.submission_timestamp
    return stamp.timestamp() if stamp else float("-inf")


class SubmissionService:
    """Records field submissions and reconciles them against jobs."""

    def __init__(
        self,
        jobs: JobStore,
        submissions: SubmissionStore,
        materials: MaterialStore,
        *,
        clock: Clock | None = None,
        ids: IdGenerator | None = None,
        dedupe_notes: bool = True,
        technician_names: Mapping[str, str] | None = None,
    ) -> None:
        self._jobs = jobs
        self._submissions = submissions
        self._materials = materials
        self._clock = clock or SystemClock()
        self._ids = ids or UUIDGenerator()
        self._resolver = JobResolver(jobs)
        self._technician_names = dict(technician_names or {})
        self._pipeline = IngestionPipeline(
            jobs,
            submissions,
            materials,
            self._resolver,
            clock=self._clock,
            ids=self._ids,
            dedupe_notes=dedupe_notes,
        )

    @property
    def resolver(self) -> JobResolver:
        return self._resolver

    # ------------------------------------------------------------------
    # recording
    # ------------------------------------------------------------------
    def _ensure_material(self, submission: Submission) -> None:
        text = submission.parts_materials_needed
        if not text:
            return
        if self._materials.list_materials(submission_id=submission.submission_id):
            self._materials.refresh_description(submission.submission_id, text)
            return
        self._materials.insert_material(
            MaterialEntry(
                id=self._ids.new_id(),
                submission_id=submission.submission_id,
                material_description=text,
                created_at=self._clock.now(),
                job_id=submission.linked_job_id,
            )
        )

    def record(self, submission: Submission) -> Submission:
        """Store a submission, keeping any link it already has."""

        stamped = replace(submission, last_synced_at=self._clock.now())
        created = self._submissions.upsert_submission(stamped)
        stored = self._submissions.get_submission(submission.submission_id)
        self._ensure_material(stored)
        LOGGER.debug("%s submission %s", "recorded" if created else "refreshed", stored.submission_id)
        return stored

    def record_raw(self, raw: Mapping[str, Any]) -> Submission:
        parsed = RawSubmission.model_validate(raw)
        content = transform(parsed.answers, parsed.manager_fields)
        user_id = None if parsed.submitting_user_id is None else str(parsed.submitting_user_id)
        submission = Submission(
            submission_id=parsed.form_submission_id,
            job_location=content.job_location,
            job_type=content.job_type,
            work_description=content.work_description,
            additional_notes=content.additional_notes,
            parts_materials_needed=content.parts_materials_needed,
            manager_note=content.manager_note,
            manager_status=content.manager_status,
            submission_timestamp=to_datetime(parsed.submission_timestamp),
            technician_name=self._technician_names.get(user_id or "", None) or user_id,
            start_time=content.start_time,
            end_time=content.end_time,
            before_photos=list(content.before_photos),
            after_photos=list(content.after_photos),
            raw_answers=list(parsed.answers),
            manager_fields=list(parsed.manager_fields),
        )
        return self.record(submission)

    # ------------------------------------------------------------------
    # reconciliation
    # ------------------------------------------------------------------
    def ingest(self, submissions: Iterable[Submission]) -> IngestResult:
        return self._pipeline.ingest(submissions)

    def ingest_raw(self, raw_submissions: Iterable[Mapping[str, Any]]) -> tuple[IngestResult, list[str]]:
        """Record raw API payloads then ingest them; returns rejected payload errors too."""

        recorded: list[Submission] = []
        rejected: list[str] = []
        for raw in raw_submissions:
            try:
                recorded.append(self.record_raw(raw))
            except ValueError as exc:
                identifier = raw.get("formSubmissionId") if isinstance(raw, Mapping) else None
                LOGGER.warning("rejected malformed submission %s: %s", identifier, exc)
                rejected.append(f"{identifier}: {exc}")
        return self.ingest(recorded), rejected

    def sync_from_connecteam(self, client: ConnectTeamClient, *, max_pages: int | None = None) -> IngestResult:
        result, rejected = self.ingest_raw(client.iter_submissions(max_pages=max_pages))
        if rejected:
            LOGGER.warning("%d submissions from ConnectTeam could not be parsed", len(rejected))
        return result

    def import_excel(self, path: Path) -> dict[str, Any]:
        parsed = connecteam_excel.parse(path)
        recorded = [self.record(submission) for submission in parsed.submissions]
        result = self.ingest(recorded)
        return {
            "rows_parsed": parsed.rows_parsed,
            "rows_skipped": parsed.rows_skipped,
            "submissions_saved": len(recorded),
            "result": result,
        }

    def ingest_stored(self, *, include_linked: bool = False) -> IngestResult:
        linked = None if include_linked else False
        return self.ingest(self._submissions.list_submissions(linked=linked))

    def relink(self, *, force: bool = False, dry_run: bool = False) -> dict[str, Any]:
        """Re-resolve stored submissions against current jobs.

        ``force`` also re-runs content extraction for already linked submissions;
        ``dry_run`` reports the matches that would be made without writing.
        """

        if dry_run:
            matches: list[dict[str, str]] = []
            for submission in self._submissions.list_submissions(linked=False):
                job_id = self._resolver.find_existing_job(submission.job_location)
                if job_id:
                    matches.append({"submission_id": submission.submission_id, "job_id": job_id})
            return {"dry_run": True, "would_link": len(matches), "matches": matches}
        result = self.ingest_stored(include_linked=force)
        return {"dry_run": False, "result": result}

    # ------------------------------------------------------------------
    # manual matching
    # ------------------------------------------------------------------
    def list_unmatched(self, *, search: str | None = None, limit: int = 50, offset: int = 0) -> dict[str, Any]:
        items = self._submissions.list_submissions(linked=False)
        if search:
            keyword = normalize(search)
            items = [item for item in items if keyword in normalize(item.job_location)]
        items.sort(key=_sort_key, reverse=True)
        return {"total": len(items), "items": items[offset : offset + limit]}

    def suggest_matches(self, submission_id: str, *, limit: int = 5) -> list[MatchSuggestion]:
        submission = self._submissions.get_submission(submission_id)
        return self._resolver.suggest_matches(submission.job_location, limit=limit)

    def link_manually(self, submission_id: str, job_id: str) -> IngestResult:
        submission = self._submissions.get_submission(submission_id)
        self._jobs.get_job(job_id)
        if submission.linked_job_id and submission.linked_job_id != job_id:
            raise ValidationError(
                f"submission '{submission_id}' is already linked to job '{submission.linked_job_id}'"
            )
        if not submission.linked_job_id:
            submission = self._submissions.update_submission(submission_id, {"linked_job_id": job_id})
        return self.ingest([submission])

    # ------------------------------------------------------------------
    # materials
    # ------------------------------------------------------------------
    def list_materials(self, *, job_id: str | None = None) -> list[MaterialEntry]:
        return self._materials.list_materials(job_id=job_id)

    def mark_materials_ordered(self, material_ids: Iterable[str]) -> int:
        return self._materials.mark_ordered(list(material_ids), self._clock.now())

    # ------------------------------------------------------------------
    # testing helpers
    # ------------------------------------------------------------------
    def reset(self) -> None:
        self._submissions.reset()
        self._materials.reset()
