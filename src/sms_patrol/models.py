"""Protocols and lightweight model types."""

from __future__ import annotations

import json
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Protocol

from .errors import ConfigError, ParseError
from .validation import validate_interval


@dataclass(frozen=True)
class FetchedContent:
    """Body and declared content type of one successful response."""

    url: str
    text: str
    content_type: str = ""
    status_code: int = 200
    via_proxy: bool = False

    @property
    def is_json(self) -> bool:
        return "application/json" in self.content_type.lower()

    def json(self) -> Any:
        """Decode the body as JSON or raise ParseError."""
        try:
            return json.loads(self.text)
        except ValueError as exc:
            raise ParseError(f"Response from {self.url} is not valid JSON: {exc}") from exc


@dataclass
class Source:
    """A website scraped for phone numbers."""

    url: str
    enabled: bool = True
    last_scraped_at: datetime | None = None
    added_at: datetime | None = None


@dataclass(frozen=True)
class PhoneRecord:
    """A normalized phone number seen on a source."""

    id: str
    phone_number: str
    source: str
    timestamp: datetime


@dataclass(frozen=True)
class ScheduleState:
    """Recurring scrape settings; next_run_at is set exactly when active."""

    active: bool = False
    interval_minutes: int = 60
    next_run_at: datetime | None = None

    def __post_init__(self) -> None:
        validate_interval(self.interval_minutes)
        if self.active and self.next_run_at is None:
            raise ConfigError("An active schedule needs a next run time.")
        if not self.active and self.next_run_at is not None:
            raise ConfigError("An inactive schedule cannot have a next run time.")


@dataclass(frozen=True)
class ScrapeResult:
    """Raw candidates produced by one strategy for one URL."""

    candidates: list[str]
    strategy: str
    placeholder: bool = False


@dataclass(frozen=True)
class ScrapeOutcome:
    """Aggregate result of one orchestrator run."""

    success: bool
    new_record_count: int
    total_candidates_processed: int
    message: str
    sources_total: int = 0
    sources_failed: int = 0
    placeholder_sources: tuple[str, ...] = ()


@dataclass(frozen=True)
class ProbeTiming:
    started_at: datetime
    finished_at: datetime
    duration_ms: int


@dataclass(frozen=True)
class ProbeResult:
    """Diagnostic result of scraping a single URL without persisting anything."""

    success: bool
    phone_numbers: list[str]
    timing: ProbeTiming
    strategy: str = ""
    placeholder: bool = False
    error: str | None = None


@dataclass(frozen=True)
class ScrapingStats:
    total_numbers: int
    unique_numbers: int
    last_scraped: datetime | None
    active_sources: int
    total_sources: int


class Fetcher(Protocol):
    """Contract for content fetchers."""

    def fetch(self, url: str) -> FetchedContent:
        """Return the response content or raise FetchError."""


class Scraper(Protocol):
    """Contract for per-source scraping strategies."""

    name: str

    def matches(self, url: str) -> bool:
        """Return True when this strategy knows how to handle the URL."""

    def scrape(self, url: str) -> ScrapeResult:
        """Return raw phone candidates found at the URL."""


class PatrolStorage(Protocol):
    """Storage operations consumed by the orchestrator and scheduler."""

    def get_enabled_sources(self) -> list[Source]:
        """Return enabled sources in insertion order."""

    def append_phone_records(self, records: list[PhoneRecord]) -> int:
        """Persist records with unseen numbers and return how many were added."""

    def update_source_last_scraped(self, url: str, timestamp: datetime) -> None:
        """Record when a source was last visited."""

    def get_schedule_state(self) -> ScheduleState:
        """Return the persisted scheduler settings."""

    def update_schedule_state(
        self, update: Callable[[ScheduleState], ScheduleState]
    ) -> ScheduleState:
        """Apply ``update`` to the persisted scheduler settings in one atomic step."""


@dataclass
class BatchCounters:
    """Mutable tallies kept while a batch runs."""

    new_records: int = 0
    processed: int = 0
    failures: int = 0
    placeholder_sources: list[str] = field(default_factory=list)
