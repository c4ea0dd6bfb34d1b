"""Scrape orchestration across all enabled sources."""

from __future__ import annotations

import logging
import time
import uuid
from collections.abc import Callable, Iterable
from datetime import datetime

from tqdm import tqdm

from .config import PatrolConfig
from .fetchers import ProxyFallbackFetcher, make_session
from .models import (
    BatchCounters,
    PatrolStorage,
    PhoneRecord,
    ProbeResult,
    ProbeTiming,
    ScrapeOutcome,
    Source,
)
from .storage import utc_now
from .strategies import StrategyRegistry, build_default_registry
from .validation import clean_candidates

Clock = Callable[[], datetime]

NO_SOURCES_MESSAGE = "No enabled sources to scrape"


def build_records(numbers: list[str], *, source: str, timestamp: datetime) -> list[PhoneRecord]:
    """Tag normalized numbers with their source and the batch timestamp."""
    return [
        PhoneRecord(id=uuid.uuid4().hex, phone_number=number, source=source, timestamp=timestamp)
        for number in numbers
    ]


def summarize(counters: BatchCounters, total: int) -> str:
    succeeded = total - counters.failures
    message = (
        f"Scraped {counters.new_records} new phone numbers from {succeeded}/{total} websites"
    )
    if counters.failures:
        message += f"; {counters.failures} failed"
    if counters.placeholder_sources:
        message += f"; placeholder data (not stored) from {len(counters.placeholder_sources)}"
    return message


class ScrapeOrchestrator:
    """Visit enabled sources one after another and persist what they yield."""

    def __init__(
        self,
        *,
        storage: PatrolStorage,
        registry: StrategyRegistry,
        logger: logging.Logger,
        clock: Clock = utc_now,
        show_progress: bool = False,
    ) -> None:
        self._storage = storage
        self._registry = registry
        self._logger = logger
        self._clock = clock
        self._show_progress = show_progress

    def scrape_all(self) -> ScrapeOutcome:
        """Run one batch; individual source failures never abort it."""
        sources = self._storage.get_enabled_sources()
        if not sources:
            return ScrapeOutcome(
                success=False,
                new_record_count=0,
                total_candidates_processed=0,
                message=NO_SOURCES_MESSAGE,
            )

        batch_time = self._clock()
        counters = BatchCounters()
        self._logger.info("Starting to scrape %d websites", len(sources))

        iterator: Iterable[Source] = sources
        if self._show_progress:
            iterator = tqdm(sources, total=len(sources), desc="scraping sources")
        for source in iterator:
            try:
                self._scrape_source(source, batch_time, counters)
            except Exception as exc:
                counters.failures += 1
                self._logger.warning("Error scraping %s: %s", source.url, exc)
            self._storage.update_source_last_scraped(source.url, batch_time)

        outcome = ScrapeOutcome(
            success=counters.failures < len(sources),
            new_record_count=counters.new_records,
            total_candidates_processed=counters.processed,
            message=summarize(counters, len(sources)),
            sources_total=len(sources),
            sources_failed=counters.failures,
            placeholder_sources=tuple(counters.placeholder_sources),
        )
        self._logger.info(outcome.message)
        return outcome

    def _scrape_source(self, source: Source, batch_time: datetime, counters: BatchCounters) -> None:
        scraper = self._registry.resolve(source.url)
        self._logger.debug("Scraping %s with %s strategy", source.url, scraper.name)
        result = scraper.scrape(source.url)
        numbers = clean_candidates(result.candidates)
        self._logger.info("Found %d phone numbers on %s", len(numbers), source.url)

        if result.placeholder:
            counters.placeholder_sources.append(source.url)
            return
        if not numbers:
            return
        records = build_records(numbers, source=source.url, timestamp=batch_time)
        counters.new_records += self._storage.append_phone_records(records)
        counters.processed += len(numbers)

    def probe_source(self, url: str) -> ProbeResult:
        """Scrape one URL without persisting anything, surfacing any error."""
        started_at = self._clock()
        started = time.perf_counter()
        scraper = self._registry.resolve(url)
        try:
            result = scraper.scrape(url)
            numbers = clean_candidates(result.candidates)
        except Exception as exc:
            self._logger.error("Probe of %s failed: %s", url, exc)
            return ProbeResult(
                success=False,
                phone_numbers=[],
                timing=self._timing(started_at, started),
                strategy=scraper.name,
                error=str(exc) or exc.__class__.__name__,
            )
        return ProbeResult(
            success=True,
            phone_numbers=numbers,
            timing=self._timing(started_at, started),
            strategy=scraper.name,
            placeholder=result.placeholder,
        )

    def _timing(self, started_at: datetime, started: float) -> ProbeTiming:
        return ProbeTiming(
            started_at=started_at,
            finished_at=self._clock(),
            duration_ms=int((time.perf_counter() - started) * 1000),
        )


def build_orchestrator(
    config: PatrolConfig, *, storage: PatrolStorage, logger: logging.Logger
) -> ScrapeOrchestrator:
    """Build concrete fetch and strategy dependencies around a storage handle."""
    fetcher = ProxyFallbackFetcher(
        session=make_session(config.user_agent),
        proxy_template=config.proxy_template,
        timeout=config.request_timeout,
        logger=logger,
    )
    return ScrapeOrchestrator(
        storage=storage,
        registry=build_default_registry(fetcher=fetcher, logger=logger),
        logger=logger,
        show_progress=config.show_progress,
    )
