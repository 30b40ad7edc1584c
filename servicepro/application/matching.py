"""Resolve field submissions to existing jobs by service address."""
from __future__ import annotations

from dataclasses import dataclass

from rapidfuzz import fuzz

from servicepro.core.address_normalize import normalize
from servicepro.infrastructure import JobStore


@dataclass(slots=True)
class MatchSuggestion:
    job_id: str
    job_number: str
    service_address: str
    score: float


class JobResolver:
    def __init__(self, store: JobStore) -> None:
        self._store = store

    def _candidates(self):
        # newest first decides ties between jobs sharing an address
        return sorted(self._store.list_active_jobs(), key=lambda job: job.created_at, reverse=True)

    def find_existing_job(self, raw_address: str | None) -> str | None:
        """Return the id of the most recently created active job at ``raw_address``."""

        if not raw_address or not raw_address.strip():
            return None
        target = normalize(raw_address)
        for job in self._candidates():
            if normalize(job.service_address) == target:
                return job.id
        return None

    def suggest_matches(
        self,
        raw_address: str | None,
        *,
        limit: int = 5,
        min_score: float = 0.6,
    ) -> list[MatchSuggestion]:
        """Rank active jobs by fuzzy address similarity for manual linking."""

        target = normalize(raw_address)
        if not target:
            return []
        suggestions: list[MatchSuggestion] = []
        for job in self._candidates():
            score = fuzz.ratio(target, normalize(job.service_address)) / 100.0
            if score >= min_score:
                suggestions.append(
                    MatchSuggestion(
                        job_id=job.id,
                        job_number=job.job_number,
                        service_address=job.service_address,
                        score=round(score, 4),
                    )
                )
        suggestions.sort(key=lambda item: item.score, reverse=True)
        return suggestions[:limit]
