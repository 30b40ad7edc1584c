from __future__ import annotations

import re

SUFFIX_ABBREVIATIONS: dict[str, str] = {
    "street": "st",
    "road": "rd",
    "avenue": "ave",
    "drive": "dr",
    "lane": "ln",
    "court": "ct",
    "circle": "cir",
    "parkway": "pkwy",
    "place": "pl",
    "boulevard": "blvd",
}

_SUFFIX_PATTERN = re.compile(r"\b(" + "|".join(SUFFIX_ABBREVIATIONS) + r")\b")


def normalize(address: str | None) -> str:
    """Canonical form of a postal address used for equality matching only."""

    if not address:
        return ""
    collapsed = " ".join(address.lower().split())
    return _SUFFIX_PATTERN.sub(lambda match: SUFFIX_ABBREVIATIONS[match.group(1)], collapsed)
