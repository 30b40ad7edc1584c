#!/usr/bin/env python
from __future__ import annotations

import argparse
from datetime import date
from pathlib import Path

from openpyxl import Workbook

HEADER = [
    "#",
    "Full name",
    "Submission Date",
    "Submission Time",
    "Start Time",
    "End Time",
    "Job Location📍",
    "Job Type",
    "What was done?",
    "Additional notes",
    "Parts/material needed",
    "Note",
    "Status",
    "Before Photos",
    "After Photos",
]


def main() -> None:
    parser = argparse.ArgumentParser(description="Generate a sample ConnectTeam job form export workbook")
    parser.add_argument("--output", required=True, help="Output path (.xlsx)")
    parser.add_argument("--address", default="123 Main Street, Springfield", help="Job location to use")
    parser.add_argument("--technician", default="Alex Rivera", help="Technician full name")
    parser.add_argument("--day", default=date.today().isoformat(), help="Submission date, YYYY-MM-DD")
    args = parser.parse_args()

    day = date.fromisoformat(args.day)

    workbook = Workbook()
    sheet = workbook.active
    sheet.title = "Submissions"
    sheet.append(HEADER)
    sheet.append([
        1,
        args.technician,
        day,
        "10:36 AM",
        "9:00 AM",
        "11:30 AM",
        args.address,
        "Install",
        "Set condenser pad and ran line set",
        "Customer asked about thermostat upgrade",
        "3/4 copper line set, 2x 90 elbows",
        "<p>Call customer before Friday</p>",
        "Working on it",
        "https://example.com/photos/before-1.jpg\nhttps://example.com/photos/before-2.jpg",
        "https://example.com/photos/after-1.jpg",
    ])
    sheet.append([
        2,
        args.technician,
        day,
        "2:15 PM",
        "1:00 PM",
        "2:00 PM",
        "",
        "Service",
        "Site visit without address",
        "N/A",
        "n/a",
        "",
        "",
        "",
        "",
    ])

    output = Path(args.output)
    output.parent.mkdir(parents=True, exist_ok=True)
    workbook.save(output)
    print(f"ConnectTeam sample export written to: {output}")


if __name__ == "__main__":
    main()
