"""Parser for ConnectTeam form exports downloaded as Excel workbooks."""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from datetime import datetime, time, timedelta, timezone
from pathlib import Path
from typing import Any

import pandas as pd

from servicepro.domain import Submission
from servicepro.extractors.connecteam_form import clean_text, strip_html
from servicepro.utils.logging import get_logger

LOGGER = get_logger(__name__)

EXCEL_EPOCH = datetime(1899, 12, 30, tzinfo=timezone.utc)

_CLOCK_TIME = re.compile(r"(\d{1,2}):(\d{2})\s*([AaPp][Mm])?")


@dataclass
class ExcelParseResult:
    submissions: list[Submission] = field(default_factory=list)
    rows_parsed: int = 0
    rows_skipped: int = 0


def _normalise_columns(dataframe: pd.DataFrame) -> pd.DataFrame:
    renamed = {col: str(col).strip() for col in dataframe.columns}
    dataframe = dataframe.rename(columns=renamed)
    return dataframe.dropna(how="all")


def _find_column(dataframe: pd.DataFrame, keywords: list[str]) -> str | None:
    lowered = {str(column).lower(): column for column in dataframe.columns}
    for keyword in keywords:
        if keyword in lowered:
            return lowered[keyword]
    for keyword in keywords:
        for name, column in lowered.items():
            if name.startswith(keyword):
                return column
    return None


def _cell(row: pd.Series, column: str | None) -> Any:
    if column is None:
        return None
    value = row.get(column)
    if value is None or pd.isna(value):
        return None
    return value


def _parse_clock(value: Any) -> time | None:
    if isinstance(value, time):
        return value
    if isinstance(value, datetime):
        return value.time()
    match = _CLOCK_TIME.search(str(value or ""))
    if not match:
        return None
    hours, minutes = int(match.group(1)), int(match.group(2))
    meridiem = (match.group(3) or "").upper()
    if meridiem == "PM" and hours != 12:
        hours += 12
    elif meridiem == "AM" and hours == 12:
        hours = 0
    if hours > 23 or minutes > 59:
        return None
    return time(hours, minutes)


def _parse_date(value: Any) -> datetime | None:
    if value is None:
        return None
    if isinstance(value, datetime):
        day = value
    elif isinstance(value, str):
        parsed = pd.to_datetime(value, errors="coerce")
        if pd.isna(parsed):
            return None
        day = parsed.to_pydatetime()
    else:
        # Excel serial day number
        try:
            day = EXCEL_EPOCH + timedelta(days=int(float(value)))
        except (TypeError, ValueError, OverflowError):
            return None
    return datetime(day.year, day.month, day.day, tzinfo=timezone.utc)


def _on_day(day: datetime, clock: time | None) -> datetime | None:
    if clock is None:
        return None
    return day.replace(hour=clock.hour, minute=clock.minute)


def _photo_urls(value: Any) -> list[str]:
    urls: list[str] = []
    for line in str(value or "").splitlines():
        url = line.strip()
        if url.startswith("http") and url not in urls:
            urls.append(url)
    return urls


def submission_id_for(timestamp: datetime) -> str:
    return f"excel-{timestamp.astimezone(timezone.utc).strftime('%Y-%m-%dT%H:%M:%S.000Z')}"


def parse(path: Path, sheet_name: str | int = 0) -> ExcelParseResult:
    dataframe = pd.read_excel(path, sheet_name=sheet_name)
    dataframe = _normalise_columns(dataframe)
    result = ExcelParseResult(rows_parsed=len(dataframe))

    location_column = _find_column(dataframe, ["job location"])
    date_column = _find_column(dataframe, ["submission date"])
    if not location_column or not date_column:
        LOGGER.warning("%s does not look like a ConnectTeam export (columns: %s)", path.name, list(dataframe.columns))
        result.rows_skipped = result.rows_parsed
        return result

    columns = {
        "time": _find_column(dataframe, ["submission time"]),
        "technician": _find_column(dataframe, ["full name"]),
        "start": _find_column(dataframe, ["start time"]),
        "end": _find_column(dataframe, ["end time"]),
        "job_type": _find_column(dataframe, ["job type"]),
        "work": _find_column(dataframe, ["what was done?", "what was done"]),
        "additional": _find_column(dataframe, ["additional notes"]),
        "materials": _find_column(dataframe, ["parts/material needed", "parts/materials needed"]),
        "manager_note": _find_column(dataframe, ["note"]),
        "status": _find_column(dataframe, ["status"]),
        "before": _find_column(dataframe, ["before photos"]),
        "after": _find_column(dataframe, ["after photos"]),
    }

    for _, row in dataframe.iterrows():
        location = clean_text(_cell(row, location_column))
        day = _parse_date(_cell(row, date_column))
        if not location or day is None:
            result.rows_skipped += 1
            continue

        timestamp = _on_day(day, _parse_clock(_cell(row, columns["time"]))) or day
        result.submissions.append(
            Submission(
                submission_id=submission_id_for(timestamp),
                job_location=location,
                job_type=clean_text(_cell(row, columns["job_type"])),
                work_description=clean_text(_cell(row, columns["work"])),
                additional_notes=clean_text(_cell(row, columns["additional"])),
                parts_materials_needed=clean_text(_cell(row, columns["materials"])),
                manager_note=strip_html(_cell(row, columns["manager_note"])),
                manager_status=clean_text(_cell(row, columns["status"])),
                submission_timestamp=timestamp,
                technician_name=clean_text(_cell(row, columns["technician"])),
                start_time=_on_day(day, _parse_clock(_cell(row, columns["start"]))),
                end_time=_on_day(day, _parse_clock(_cell(row, columns["end"]))),
                before_photos=_photo_urls(_cell(row, columns["before"])),
                after_photos=_photo_urls(_cell(row, columns["after"])),
            )
        )

    LOGGER.info("parsed %d submissions from %s (%d skipped)", len(result.submissions), path.name, result.rows_skipped)
    return result
