import logging
from collections.abc import Callable
from datetime import datetime, timezone
from pathlib import Path

from sms_patrol.config import PatrolConfig
from sms_patrol.errors import FetchError
from sms_patrol.models import PhoneRecord, ScheduleState, ScrapeResult, Source
from sms_patrol.pipeline import NO_SOURCES_MESSAGE, ScrapeOrchestrator, build_orchestrator
from sms_patrol.storage import JsonFileStorage
from sms_patrol.strategies import StrategyRegistry

BATCH_TIME = datetime(2026, 3, 1, 8, 30, tzinfo=timezone.utc)
LOGGER = logging.getLogger("test")


class DummyStorage:
    def __init__(self, urls: list[str]) -> None:
        self.sources = [Source(url=url) for url in urls]
        self.records: list[PhoneRecord] = []
        self.last_scraped: dict[str, datetime] = {}
        self.state = ScheduleState()

    def get_enabled_sources(self) -> list[Source]:
        return [source for source in self.sources if source.enabled]

    def append_phone_records(self, records: list[PhoneRecord]) -> int:
        known = {record.phone_number for record in self.records}
        fresh = [record for record in records if record.phone_number not in known]
        self.records.extend(fresh)
        return len(fresh)

    def update_source_last_scraped(self, url: str, timestamp: datetime) -> None:
        self.last_scraped[url] = timestamp

    def get_schedule_state(self) -> ScheduleState:
        return self.state

    def update_schedule_state(
        self, update: Callable[[ScheduleState], ScheduleState]
    ) -> ScheduleState:
        self.state = update(self.state)
        return self.state


class DummyScraper:
    name = "dummy"

    def __init__(
        self, results: dict[str, list[str] | Exception], placeholder: bool = False
    ) -> None:
        self.results = results
        self.placeholder = placeholder
        self.calls: list[str] = []

    def matches(self, url: str) -> bool:
        return True

    def scrape(self, url: str) -> ScrapeResult:
        self.calls.append(url)
        outcome = self.results[url]
        if isinstance(outcome, Exception):
            raise outcome
        return ScrapeResult(candidates=outcome, strategy=self.name, placeholder=self.placeholder)


def _orchestrator(storage: object, scraper: DummyScraper) -> ScrapeOrchestrator:
    return ScrapeOrchestrator(
        storage=storage,  # type: ignore[arg-type]
        registry=StrategyRegistry(fallback=scraper),
        logger=LOGGER,
        clock=lambda: BATCH_TIME,
    )


def test_no_enabled_sources_is_unsuccessful_without_side_effects() -> None:
    storage = DummyStorage(["https://a.example/"])
    storage.sources[0].enabled = False
    scraper = DummyScraper({})
    outcome = _orchestrator(storage, scraper).scrape_all()
    assert outcome.success is False
    assert outcome.new_record_count == 0
    assert outcome.message == NO_SOURCES_MESSAGE
    assert scraper.calls == []
    assert storage.last_scraped == {}


def test_failing_source_does_not_abort_batch() -> None:
    urls = ["https://one.example/", "https://two.example/", "https://three.example/"]
    storage = DummyStorage(urls)
    scraper = DummyScraper(
        {
            urls[0]: ["+1 202 555 0179", "12345"],
            urls[1]: FetchError("blocked"),
            urls[2]: ["(415) 555-2671", "+442071234567"],
        }
    )
    outcome = _orchestrator(storage, scraper).scrape_all()

    assert scraper.calls == urls
    assert outcome.success is True
    assert outcome.sources_failed == 1
    assert outcome.new_record_count == 3
    assert outcome.total_candidates_processed == 3
    assert outcome.message.startswith("Scraped 3 new phone numbers from 2/3 websites")
    assert {record.phone_number for record in storage.records} == {
        "+12025550179",
        "4155552671",
        "+442071234567",
    }
    assert all(record.timestamp == BATCH_TIME for record in storage.records)
    assert [record.source for record in storage.records] == [urls[0], urls[2], urls[2]]
    assert storage.last_scraped == {url: BATCH_TIME for url in urls}


def test_all_sources_failing_is_unsuccessful() -> None:
    urls = ["https://one.example/", "https://two.example/"]
    storage = DummyStorage(urls)
    scraper = DummyScraper({url: RuntimeError("boom") for url in urls})
    outcome = _orchestrator(storage, scraper).scrape_all()
    assert outcome.success is False
    assert outcome.sources_failed == 2
    assert storage.last_scraped == {url: BATCH_TIME for url in urls}


def test_known_numbers_from_other_sources_are_not_new(tmp_path: Path) -> None:
    storage = JsonFileStorage(str(tmp_path / "store.json"), logger=LOGGER)
    storage.add_source("https://one.example/")
    storage.add_source("https://two.example/")
    scraper = DummyScraper(
        {"https://one.example/": ["+12025550179"], "https://two.example/": ["+12025550179"]}
    )
    outcome = _orchestrator(storage, scraper).scrape_all()
    assert outcome.new_record_count == 1
    assert outcome.total_candidates_processed == 2
    records = storage.get_phone_records()
    assert [record.source for record in records] == ["https://one.example/"]
    assert all(source.last_scraped_at == BATCH_TIME for source in storage.get_sources())


def test_placeholder_numbers_are_reported_but_not_stored() -> None:
    storage = DummyStorage(["https://api.example/disposable"])
    scraper = DummyScraper({"https://api.example/disposable": ["+12025550179"]}, placeholder=True)
    outcome = _orchestrator(storage, scraper).scrape_all()
    assert outcome.success is True
    assert outcome.placeholder_sources == ("https://api.example/disposable",)
    assert storage.records == []
    assert "placeholder" in outcome.message


def test_probe_source_reports_numbers_and_timing() -> None:
    storage = DummyStorage([])
    scraper = DummyScraper({"https://a.example/": ["+1 202 555 0179", "+12025550179", "bad"]})
    result = _orchestrator(storage, scraper).probe_source("https://a.example/")
    assert result.success is True
    assert result.phone_numbers == ["+12025550179"]
    assert result.strategy == "dummy"
    assert result.error is None
    assert result.timing.duration_ms >= 0
    assert result.timing.started_at == BATCH_TIME
    assert storage.records == []


def test_probe_source_surfaces_error_message() -> None:
    scraper = DummyScraper({"https://a.example/": FetchError("proxy refused")})
    result = _orchestrator(DummyStorage([]), scraper).probe_source("https://a.example/")
    assert result.success is False
    assert result.phone_numbers == []
    assert result.error == "proxy refused"


def test_build_orchestrator_wires_default_registry(tmp_path: Path) -> None:
    config = PatrolConfig(storage_path=str(tmp_path / "store.json"), show_progress=False)
    storage = JsonFileStorage(config.storage_path, logger=LOGGER)
    orchestrator = build_orchestrator(config, storage=storage, logger=LOGGER)
    assert orchestrator.scrape_all().message == NO_SOURCES_MESSAGE
