"""JSON backup export and import."""

from __future__ import annotations

import json
from datetime import datetime
from pathlib import Path
from typing import Any

from .errors import ConfigError, StorageError
from .models import PhoneRecord, Source
from .storage import (
    JsonFileStorage,
    record_from_dict,
    record_to_dict,
    source_from_dict,
    source_to_dict,
    to_iso,
    utc_now,
)
from .validation import url_key, validate_source_url


def build_backup(
    storage: JsonFileStorage, *, exported_at: datetime | None = None
) -> dict[str, Any]:
    return {
        "phoneNumbers": [record_to_dict(record) for record in storage.get_phone_records()],
        "websites": [source_to_dict(source) for source in storage.get_sources()],
        "exportedAt": to_iso(exported_at or utc_now()),
    }


def export_backup(storage: JsonFileStorage, path: str) -> dict[str, Any]:
    """Write all phone numbers and websites to a JSON file."""
    backup = build_backup(storage)
    Path(path).write_text(json.dumps(backup, indent=2), encoding="utf-8")
    return backup


def _parse_websites(websites: list[Any]) -> list[Source]:
    """Validate website entries and drop case-insensitive URL duplicates."""
    sources: list[Source] = []
    seen: set[str] = set()
    for item in websites:
        if not isinstance(item, dict):
            raise StorageError(f"Backup website entry is not an object: {item!r}")
        if not isinstance(item.get("enabled", True), bool):
            raise StorageError(
                f"Backup website {item.get('url')!r} has a non-boolean 'enabled'."
            )
        try:
            url = validate_source_url(str(item.get("url", "")))
            source = source_from_dict({**item, "url": url})
        except (ConfigError, TypeError, ValueError) as exc:
            raise StorageError(f"Backup contains an invalid website: {exc}") from exc
        if url_key(url) in seen:
            continue
        seen.add(url_key(url))
        sources.append(source)
    return sources


def parse_backup(payload: Any) -> tuple[list[Source], list[PhoneRecord]]:
    """Validate a decoded backup and return its sources and records."""
    if not isinstance(payload, dict):
        raise StorageError("Backup must be a JSON object.")
    numbers = payload.get("phoneNumbers")
    websites = payload.get("websites")
    if not isinstance(numbers, list) or not isinstance(websites, list):
        raise StorageError("Backup must contain 'phoneNumbers' and 'websites' arrays.")
    sources = _parse_websites(websites)
    try:
        records = [record_from_dict(item) for item in numbers]
    except (KeyError, TypeError, ValueError) as exc:
        raise StorageError(f"Backup contains an invalid entry: {exc}") from exc
    seen: set[str] = set()
    unique_records: list[PhoneRecord] = []
    for record in records:
        if record.phone_number in seen:
            continue
        seen.add(record.phone_number)
        unique_records.append(record)
    return sources, unique_records


def import_backup(storage: JsonFileStorage, path: str) -> tuple[int, int]:
    """Replace storage content with a backup file; return (sources, records) counts."""
    try:
        payload = json.loads(Path(path).read_text(encoding="utf-8"))
    except (OSError, ValueError) as exc:
        raise StorageError(f"Cannot read backup {path}: {exc}") from exc
    sources, records = parse_backup(payload)
    storage.replace_all(sources=sources, records=records)
    return len(sources), len(records)
