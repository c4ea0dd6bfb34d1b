"""JSON-file storage for sources, phone records and scheduler settings."""

from __future__ import annotations

import json
import logging
import os
import tempfile
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path
from threading import Lock
from typing import Any

from filelock import FileLock

from .config import DEFAULT_INTERVAL_MINUTES, DEFAULT_SOURCES
from .errors import ConfigError, StorageError
from .models import PhoneRecord, ScheduleState, ScrapingStats, Source
from .validation import url_key, validate_source_url

WEBSITES_KEY = "websites"
PHONE_NUMBERS_KEY = "phone_numbers"
SCHEDULER_KEY = "scheduler"


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def to_iso(value: datetime | None) -> str | None:
    """Serialize a timestamp as UTC ISO-8601 with a Z suffix."""
    if value is None:
        return None
    return value.astimezone(timezone.utc).isoformat().replace("+00:00", "Z")


def from_iso(value: Any) -> datetime | None:
    if not value:
        return None
    parsed = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def source_to_dict(source: Source) -> dict[str, Any]:
    return {
        "url": source.url,
        "enabled": source.enabled,
        "lastScraped": to_iso(source.last_scraped_at),
        "addedAt": to_iso(source.added_at),
    }


def source_from_dict(data: dict[str, Any]) -> Source:
    return Source(
        url=str(data["url"]),
        enabled=bool(data.get("enabled", True)),
        last_scraped_at=from_iso(data.get("lastScraped")),
        added_at=from_iso(data.get("addedAt")),
    )


def record_to_dict(record: PhoneRecord) -> dict[str, Any]:
    return {
        "id": record.id,
        "phoneNumber": record.phone_number,
        "source": record.source,
        "timestamp": to_iso(record.timestamp),
    }


def record_from_dict(data: dict[str, Any]) -> PhoneRecord:
    timestamp = from_iso(data.get("timestamp")) or utc_now()
    return PhoneRecord(
        id=str(data["id"]),
        phone_number=str(data["phoneNumber"]),
        source=str(data.get("source", "")),
        timestamp=timestamp,
    )


class JsonFileStorage:
    """Key-value store persisted as one JSON document.

    Every mutation re-reads the file, applies the change and atomically replaces
    the document while holding a lock file next to the store. Separate
    processes sharing one store therefore never interleave their updates.
    """

    def __init__(self, path: str, *, logger: logging.Logger) -> None:
        self._path = Path(path)
        self._logger = logger
        self._lock = Lock()
        self._file_lock = FileLock(f"{self._path}.lock")

    @property
    def path(self) -> Path:
        return self._path

    @property
    def run_lock_path(self) -> str:
        """Lock file that marks a scrape batch in progress on this store."""
        return f"{self._path}.run.lock"

    @contextmanager
    def _locked(self) -> Iterator[None]:
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            raise StorageError(f"Cannot create directory for {self._path}: {exc}") from exc
        with self._lock, self._file_lock:
            yield

    def _read(self) -> dict[str, Any]:
        if not self._path.exists():
            return {}
        try:
            payload = json.loads(self._path.read_text(encoding="utf-8") or "{}")
        except (OSError, ValueError) as exc:
            raise StorageError(f"Cannot read storage file {self._path}: {exc}") from exc
        if not isinstance(payload, dict):
            raise StorageError(f"Storage file {self._path} does not hold a JSON object.")
        return payload

    def _write(self, payload: dict[str, Any]) -> None:
        try:
            fd, tmp_name = tempfile.mkstemp(prefix=".sms_patrol-", dir=str(self._path.parent))
        except OSError as exc:
            raise StorageError(f"Cannot write storage file {self._path}: {exc}") from exc
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as file_obj:
                json.dump(payload, file_obj, indent=2)
            os.replace(tmp_name, self._path)
        except OSError as exc:
            Path(tmp_name).unlink(missing_ok=True)
            raise StorageError(f"Cannot write storage file {self._path}: {exc}") from exc

    # Sources

    def get_sources(self) -> list[Source]:
        with self._locked():
            return [source_from_dict(item) for item in self._read().get(WEBSITES_KEY, [])]

    def get_enabled_sources(self) -> list[Source]:
        return [source for source in self.get_sources() if source.enabled]

    def add_source(self, url: str, *, now: datetime | None = None) -> Source:
        """Add a source; raises ConfigError for invalid or duplicate URLs."""
        value = validate_source_url(url)
        with self._locked():
            payload = self._read()
            websites = payload.get(WEBSITES_KEY, [])
            if any(url_key(item["url"]) == url_key(value) for item in websites):
                raise ConfigError(f"{value} is already in the source list.")
            source = Source(url=value, enabled=True, added_at=now or utc_now())
            websites.append(source_to_dict(source))
            payload[WEBSITES_KEY] = websites
            self._write(payload)
        self._logger.info("Added source %s", value)
        return source

    def import_default_sources(self, *, now: datetime | None = None) -> list[Source]:
        """Add built-in sources not already present and return the ones added."""
        added_at = now or utc_now()
        with self._locked():
            payload = self._read()
            websites = payload.get(WEBSITES_KEY, [])
            existing = {url_key(item["url"]) for item in websites}
            added = [
                Source(url=url, enabled=True, added_at=added_at)
                for url in DEFAULT_SOURCES
                if url_key(url) not in existing
            ]
            if added:
                websites.extend(source_to_dict(source) for source in added)
                payload[WEBSITES_KEY] = websites
                self._write(payload)
        return added

    def remove_source(self, url: str) -> bool:
        with self._locked():
            payload = self._read()
            websites = payload.get(WEBSITES_KEY, [])
            kept = [item for item in websites if url_key(item["url"]) != url_key(url)]
            if len(kept) == len(websites):
                return False
            payload[WEBSITES_KEY] = kept
            self._write(payload)
        self._logger.info("Removed source %s", url)
        return True

    def set_source_enabled(self, url: str, enabled: bool) -> bool:
        return self._update_source(url, {"enabled": enabled})

    def update_source_last_scraped(self, url: str, timestamp: datetime) -> None:
        self._update_source(url, {"lastScraped": to_iso(timestamp)})

    def _update_source(self, url: str, changes: dict[str, Any]) -> bool:
        with self._locked():
            payload = self._read()
            for item in payload.get(WEBSITES_KEY, []):
                if url_key(item["url"]) == url_key(url):
                    item.update(changes)
                    self._write(payload)
                    return True
        return False

    # Phone records

    def get_phone_records(self) -> list[PhoneRecord]:
        with self._locked():
            return [record_from_dict(item) for item in self._read().get(PHONE_NUMBERS_KEY, [])]

    def append_phone_records(self, records: list[PhoneRecord]) -> int:
        """Store records whose number is not yet known; return how many were stored."""
        with self._locked():
            payload = self._read()
            existing = payload.get(PHONE_NUMBERS_KEY, [])
            seen = {item["phoneNumber"] for item in existing}
            fresh: list[dict[str, Any]] = []
            for record in records:
                if record.phone_number in seen:
                    continue
                seen.add(record.phone_number)
                fresh.append(record_to_dict(record))
            if fresh:
                payload[PHONE_NUMBERS_KEY] = existing + fresh
                self._write(payload)
        return len(fresh)

    # Scheduler

    def _schedule_from(self, payload: dict[str, Any]) -> ScheduleState:
        data = payload.get(SCHEDULER_KEY) or {}
        try:
            active = bool(data.get("active", False))
            interval = int(data.get("intervalMinutes", DEFAULT_INTERVAL_MINUTES))
            next_run_at = from_iso(data.get("nextRunAt"))
            if active != (next_run_at is not None):
                self._logger.warning(
                    "Inconsistent scheduler settings in storage; treating as inactive"
                )
                return ScheduleState(active=False, interval_minutes=interval)
            return ScheduleState(active=active, interval_minutes=interval, next_run_at=next_run_at)
        except (AttributeError, TypeError, ValueError, ConfigError) as exc:
            raise StorageError(f"Invalid scheduler settings in {self._path}: {exc}") from exc

    @staticmethod
    def _schedule_to_dict(state: ScheduleState) -> dict[str, Any]:
        return {
            "active": state.active,
            "intervalMinutes": state.interval_minutes,
            "nextRunAt": to_iso(state.next_run_at),
        }

    def get_schedule_state(self) -> ScheduleState:
        with self._locked():
            return self._schedule_from(self._read())

    def set_schedule_state(self, state: ScheduleState) -> None:
        with self._locked():
            payload = self._read()
            payload[SCHEDULER_KEY] = self._schedule_to_dict(state)
            self._write(payload)

    def update_schedule_state(
        self, update: Callable[[ScheduleState], ScheduleState]
    ) -> ScheduleState:
        """Read, transform and write scheduler settings as one locked step."""
        with self._locked():
            payload = self._read()
            state = update(self._schedule_from(payload))
            payload[SCHEDULER_KEY] = self._schedule_to_dict(state)
            self._write(payload)
        return state

    # Bulk operations

    def replace_all(self, *, sources: list[Source], records: list[PhoneRecord]) -> None:
        """Replace sources and records wholesale, as a backup import does."""
        with self._locked():
            payload = self._read()
            payload[WEBSITES_KEY] = [source_to_dict(source) for source in sources]
            payload[PHONE_NUMBERS_KEY] = [record_to_dict(record) for record in records]
            self._write(payload)

    def reset(self) -> None:
        """Delete all sources and records and switch the scheduler off."""
        with self._locked():
            payload = self._read()
            interval = (payload.get(SCHEDULER_KEY) or {}).get(
                "intervalMinutes", DEFAULT_INTERVAL_MINUTES
            )
            self._write(
                {
                    WEBSITES_KEY: [],
                    PHONE_NUMBERS_KEY: [],
                    SCHEDULER_KEY: {
                        "active": False,
                        "intervalMinutes": interval,
                        "nextRunAt": None,
                    },
                }
            )
        self._logger.info("Storage reset: all sources and phone numbers deleted")

    def get_stats(self) -> ScrapingStats:
        sources = self.get_sources()
        records = self.get_phone_records()
        scraped = [source.last_scraped_at for source in sources if source.last_scraped_at]
        return ScrapingStats(
            total_numbers=len(records),
            unique_numbers=len({record.phone_number for record in records}),
            last_scraped=max(scraped) if scraped else None,
            active_sources=sum(1 for source in sources if source.enabled),
            total_sources=len(sources),
        )
