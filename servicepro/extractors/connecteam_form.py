"""Transform raw ConnectTeam form answers into structured submission fields."""
from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Iterable, Mapping

from pydantic import ValidationError as PydanticValidationError

from servicepro.core.schema import (
    ANSWER_SHAPES,
    Answer,
    ImageAnswer,
    LocationAnswer,
    LocationInput,
    SelectionAnswer,
    TimestampAnswer,
    UnrecognizedAnswer,
    ValueAnswer,
)
from servicepro.utils.logging import get_logger

LOGGER = get_logger(__name__)

# Question identifiers of the field technician job form.
QUESTION_IDS: dict[str, str] = {
    "start_time": "1f14e73b-5fd1-525a-65e9-bf7ed906808c",
    "end_time": "b9b46e58-26bb-3df1-d1fb-1b7d4c7d8142",
    "job_location": "359fedb3-2e43-faf4-94c7-9dcc2c19020d",
    "job_type": "8a43070c-b65f-4c65-4aef-4da1e914ebe1",
    "work_description": "4f87cfe2-f94c-f14d-393a-1b3a98baeb9b",
    "before_photos": "940729f2-f0d1-3213-5fcc-a46569ec0cab",
    "after_photos": "c1f997fd-b464-3c91-66c6-9626ec7fc75b",
    "additional_notes": "0d04f47d-c7c7-2bf8-63eb-1bf78814e499",
    "parts_materials_needed": "8ed44929-a716-ace0-3ec6-aab036963b87",
}

NOT_APPLICABLE = frozenset({"", "n/a"})

_HTML_TAG = re.compile(r"<[^>]*>")


@dataclass(frozen=True, slots=True)
class TransformedSubmission:
    work_description: str | None = None
    additional_notes: str | None = None
    parts_materials_needed: str | None = None
    manager_note: str | None = None
    manager_status: str | None = None
    job_location: str | None = None
    job_type: str | None = None
    start_time: datetime | None = None
    end_time: datetime | None = None
    before_photos: tuple[str, ...] = ()
    after_photos: tuple[str, ...] = ()


def clean_text(value: Any) -> str | None:
    """Flatten an answer value to text, mapping "not applicable" placeholders to ``None``."""

    if value is None:
        return None
    if isinstance(value, LocationInput):
        value = value.address
    elif isinstance(value, (list, tuple)):
        value = ", ".join(str(item).strip() for item in value if item is not None and str(item).strip())
    text = str(value or "").strip()
    if text.lower() in NOT_APPLICABLE:
        return None
    return text


def strip_html(value: Any) -> str | None:
    if value is None:
        return None
    return clean_text(_HTML_TAG.sub("", str(value)))


def to_datetime(value: Any) -> datetime | None:
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value if value.tzinfo else value.replace(tzinfo=timezone.utc)
    try:
        return datetime.fromtimestamp(float(value), tz=timezone.utc)
    except (TypeError, ValueError, OverflowError, OSError):
        LOGGER.warning("ignoring unparseable timestamp %r", value)
        return None


def _unique_urls(values: Any) -> tuple[str, ...]:
    if not isinstance(values, (list, tuple)):
        return ()
    urls: list[str] = []
    for value in values:
        url = str(value or "").strip()
        if url and url not in urls:
            urls.append(url)
    return tuple(urls)


def parse_answer(raw: Mapping[str, Any]) -> Answer:
    question_id = raw.get("questionId")
    for key, model in ANSWER_SHAPES:
        if raw.get(key) is None:
            continue
        try:
            return model.model_validate(raw)
        except PydanticValidationError as exc:
            LOGGER.warning("malformed %s answer for question %s: %s", key, question_id, exc)
            break
    return UnrecognizedAnswer(
        questionId=None if question_id is None else str(question_id),
        keys=sorted(str(key) for key in raw),
    )


def answer_value(answer: Answer) -> Any:
    if isinstance(answer, ValueAnswer):
        return answer.value
    if isinstance(answer, TimestampAnswer):
        return answer.timestamp
    if isinstance(answer, LocationAnswer):
        return answer.location_input
    if isinstance(answer, SelectionAnswer):
        return [item.text for item in answer.selected_answers if item.text]
    if isinstance(answer, ImageAnswer):
        return [image.url for image in answer.images if image.url]
    extra_keys = [key for key in answer.keys if key != "questionId"]
    if extra_keys:
        LOGGER.warning("unrecognized answer shape for question %s (keys: %s)", answer.question_id, extra_keys)
    else:
        LOGGER.debug("question %s has no answer", answer.question_id)
    return None


def extract_manager_fields(manager_fields: Iterable[Mapping[str, Any]] | None) -> tuple[str | None, str | None]:
    note: str | None = None
    status: str | None = None
    for field in manager_fields or []:
        if not isinstance(field, Mapping):
            continue
        kind = field.get("managerFieldType") or field.get("type")
        if kind == "note" and note is None and field.get("note"):
            note = strip_html(field["note"])
        elif kind == "status" and status is None:
            payload = field.get("status")
            if isinstance(payload, Mapping):
                status = clean_text(payload.get("name"))
    return note, status


def transform(
    raw_answers: Iterable[Mapping[str, Any]] | None,
    manager_fields: Iterable[Mapping[str, Any]] | None = None,
    *,
    question_ids: Mapping[str, str] | None = None,
) -> TransformedSubmission:
    """Extract structured fields from a submission's answer array.

    Answers for question ids outside ``question_ids`` are ignored. The result
    depends only on the inputs.
    """

    lookup = {question_id: field for field, question_id in (question_ids or QUESTION_IDS).items()}
    values: dict[str, Any] = {}
    for raw in raw_answers or []:
        if not isinstance(raw, Mapping):
            LOGGER.warning("skipping non-object answer entry %r", raw)
            continue
        field = lookup.get(str(raw.get("questionId")))
        if field is None or field in values:
            continue
        values[field] = answer_value(parse_answer(raw))

    manager_note, manager_status = extract_manager_fields(manager_fields)
    return TransformedSubmission(
        work_description=clean_text(values.get("work_description")),
        additional_notes=clean_text(values.get("additional_notes")),
        parts_materials_needed=clean_text(values.get("parts_materials_needed")),
        manager_note=manager_note,
        manager_status=manager_status,
        job_location=clean_text(values.get("job_location")),
        job_type=clean_text(values.get("job_type")),
        start_time=to_datetime(values.get("start_time")),
        end_time=to_datetime(values.get("end_time")),
        before_photos=_unique_urls(values.get("before_photos")),
        after_photos=_unique_urls(values.get("after_photos")),
    )
