"""Integration with the ConnectTeam forms API."""
from __future__ import annotations

from typing import Any, Iterator
from urllib.parse import urlparse

import httpx

from servicepro.core.validation import StorageError
from servicepro.utils.logging import get_logger

LOGGER = get_logger(__name__)


class ConnectTeamError(StorageError):
    """Raised when the ConnectTeam API cannot be reached or returns an error."""


class ConnectTeamClient:
    """Read-only client for form submissions of a single ConnectTeam form."""

    def __init__(
        self,
        api_key: str,
        form_id: str,
        *,
        api_base: str = "https://api.connecteam.com",
        timeout: float = 30.0,
        page_size: int = 50,
        http_client: httpx.Client | None = None,
    ) -> None:
        parsed = urlparse(api_base)
        if not parsed.scheme or not parsed.netloc:
            raise ValueError("api_base must include scheme and host")
        if page_size <= 0:
            raise ValueError("page_size must be positive")

        self._api_key = api_key
        self._form_id = form_id
        self._page_size = page_size
        self._request_url = f"{api_base.rstrip('/')}/forms/v1/forms/{form_id}/form-submissions"
        self._client = http_client or httpx.Client(timeout=timeout)
        self._owns_client = http_client is None

    # ------------------------------------------------------------------
    # helpers
    # ------------------------------------------------------------------
    def _headers(self) -> dict[str, str]:
        return {"X-API-KEY": self._api_key, "Accept": "application/json"}

    @staticmethod
    def _extract_submissions(payload: Any) -> list[dict[str, Any]]:
        data = payload.get("data") if isinstance(payload, dict) else None
        items = (data or {}).get("formSubmissions") if isinstance(data, dict) else None
        if not isinstance(items, list):
            raise ConnectTeamError("unexpected response shape: missing data.formSubmissions")
        return [item for item in items if isinstance(item, dict)]

    # ------------------------------------------------------------------
    # public API
    # ------------------------------------------------------------------
    def fetch_page(self, offset: int = 0, limit: int | None = None) -> list[dict[str, Any]]:
        params = {
            "offset": offset,
            "limit": limit or self._page_size,
            "sortBy": "submissionDate",
            "sortOrder": "descending",
        }
        try:
            response = self._client.get(self._request_url, params=params, headers=self._headers())
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            raise ConnectTeamError(
                f"ConnectTeam API returned {exc.response.status_code} for form {self._form_id}", exc
            ) from exc
        except httpx.HTTPError as exc:
            raise ConnectTeamError(f"ConnectTeam API request failed: {exc}", exc) from exc

        try:
            payload = response.json()
        except ValueError as exc:
            raise ConnectTeamError("ConnectTeam API returned invalid JSON", exc) from exc
        return self._extract_submissions(payload)

    def iter_submissions(self, *, max_pages: int | None = None) -> Iterator[dict[str, Any]]:
        """Yield raw submissions newest first, page by page until a short page."""

        offset = 0
        pages = 0
        while max_pages is None or pages < max_pages:
            batch = self.fetch_page(offset, self._page_size)
            pages += 1
            LOGGER.info("fetched %d submissions at offset %d", len(batch), offset)
            yield from batch
            if len(batch) < self._page_size:
                break
            offset += self._page_size

    def close(self) -> None:  # pragma: no cover - best effort cleanup
        if self._owns_client:
            self._client.close()


_client: ConnectTeamClient | None = None


def configure_connecteam_client(client: ConnectTeamClient | None) -> None:
    """Register the client used by sync endpoints; ``None`` disables syncing."""

    global _client
    _client = client


def get_connecteam_client() -> ConnectTeamClient | None:
    return _client


__all__ = ["ConnectTeamClient", "ConnectTeamError", "configure_connecteam_client", "get_connecteam_client"]
