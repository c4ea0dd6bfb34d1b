"""CSV serialization helpers."""

from __future__ import annotations

import csv
from pathlib import Path

from .models import PhoneRecord
from .storage import to_iso

CSV_FIELDS = ["Phone Number", "Source", "Timestamp"]


def record_to_row(record: PhoneRecord) -> dict[str, str]:
    return {
        "Phone Number": record.phone_number,
        "Source": record.source,
        "Timestamp": to_iso(record.timestamp) or "",
    }


def write_records(path: str, records: list[PhoneRecord]) -> int:
    """Write phone records to CSV with a stable schema; return rows written."""
    output_path = Path(path)
    with output_path.open("w", newline="", encoding="utf-8") as file_obj:
        writer = csv.DictWriter(file_obj, fieldnames=CSV_FIELDS, quoting=csv.QUOTE_ALL)
        writer.writeheader()
        for record in records:
            writer.writerow(record_to_row(record))
    return len(records)
