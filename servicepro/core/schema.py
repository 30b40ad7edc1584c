"""Pydantic models for raw ConnectTeam form payloads."""
from __future__ import annotations

from typing import Any, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator


class LocationInput(BaseModel):
    address: str | None = None
    latitude: float | None = None
    longitude: float | None = None


class SelectedAnswer(BaseModel):
    text: str | None = None


class ImageRef(BaseModel):
    url: str | None = None


class ValueAnswer(BaseModel):
    question_id: str = Field(alias="questionId")
    value: Any


class TimestampAnswer(BaseModel):
    question_id: str = Field(alias="questionId")
    timestamp: float


class LocationAnswer(BaseModel):
    question_id: str = Field(alias="questionId")
    location_input: LocationInput = Field(alias="locationInput")


class SelectionAnswer(BaseModel):
    question_id: str = Field(alias="questionId")
    selected_answers: list[SelectedAnswer] = Field(alias="selectedAnswers")


class ImageAnswer(BaseModel):
    question_id: str = Field(alias="questionId")
    images: list[ImageRef]


class UnrecognizedAnswer(BaseModel):
    question_id: str | None = Field(default=None, alias="questionId")
    keys: list[str] = Field(default_factory=list)


Answer = Union[ValueAnswer, TimestampAnswer, LocationAnswer, SelectionAnswer, ImageAnswer, UnrecognizedAnswer]

# Shape discriminators, in the precedence the form export uses.
ANSWER_SHAPES: tuple[tuple[str, type[BaseModel]], ...] = (
    ("value", ValueAnswer),
    ("timestamp", TimestampAnswer),
    ("locationInput", LocationAnswer),
    ("selectedAnswers", SelectionAnswer),
    ("images", ImageAnswer),
)


class RawSubmission(BaseModel):
    """A form submission as returned by the ConnectTeam forms API."""

    model_config = ConfigDict(populate_by_name=True)

    form_submission_id: str = Field(alias="formSubmissionId")
    submitting_user_id: int | str | None = Field(default=None, alias="submittingUserId")
    submission_timestamp: float | None = Field(default=None, alias="submissionTimestamp")
    submission_timezone: str | None = Field(default=None, alias="submissionTimezone")
    entry_num: int | None = Field(default=None, alias="entryNum")
    answers: list[dict[str, Any]] = Field(default_factory=list)
    manager_fields: list[dict[str, Any]] = Field(default_factory=list, alias="managerFields")

    @field_validator("form_submission_id", mode="before")
    @classmethod
    def _coerce_identifier(cls, value: Any) -> str:
        return str(value)
