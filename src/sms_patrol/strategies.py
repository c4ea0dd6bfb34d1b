"""Per-source scraping strategies and URL-pattern dispatch."""

from __future__ import annotations

import logging
from collections.abc import Callable
from typing import Any

from .errors import FetchError, ParseError
from .extraction import (
    extract_candidates,
    extract_candidates_from_json,
    extract_landmark_texts,
    loose_digit_scan,
)
from .models import FetchedContent, Fetcher, Scraper, ScrapeResult
from .validation import is_likely_phone_number, is_strict_phone_number

# Returned when a known disposable-number API refuses us. Always flagged as placeholder.
PLACEHOLDER_NUMBERS = (
    "+12025550179",
    "+14155552671",
    "+17185559723",
    "+18045551168",
    "+19175554492",
    "+442071234567",
    "+61261234567",
    "+33123456789",
    "+491234567890",
    "+81345678901",
)


def _text_or_json_candidates(content: FetchedContent, logger: logging.Logger) -> list[str]:
    if content.is_json:
        try:
            return sorted(extract_candidates_from_json(content.json()))
        except ParseError as exc:
            logger.debug("%s; falling back to text extraction", exc)
    return sorted(extract_candidates(content.text))


class GenericScraper:
    """Dispatch on the declared content type: JSON extractor or text extractor."""

    name = "generic"

    def __init__(self, *, fetcher: Fetcher, logger: logging.Logger) -> None:
        self._fetcher = fetcher
        self._logger = logger

    def matches(self, url: str) -> bool:
        return True

    def scrape(self, url: str) -> ScrapeResult:
        content = self._fetcher.fetch(url)
        return ScrapeResult(
            candidates=_text_or_json_candidates(content, self._logger), strategy=self.name
        )


class JsonDocumentScraper:
    """Raw JSON documents such as number lists hosted on GitHub."""

    name = "json-document"

    def __init__(self, *, fetcher: Fetcher, logger: logging.Logger) -> None:
        self._fetcher = fetcher
        self._logger = logger

    def matches(self, url: str) -> bool:
        lowered = url.lower()
        return "github" in lowered and "json" in lowered

    def scrape(self, url: str) -> ScrapeResult:
        content = self._fetcher.fetch(url)
        try:
            candidates = extract_candidates_from_json(content.json())
        except ParseError as exc:
            self._logger.debug("%s; scanning raw body instead", exc)
            candidates = extract_candidates(content.text)
        return ScrapeResult(candidates=sorted(candidates), strategy=self.name)


class StructuredApiScraper:
    """JSON phone APIs with a handful of known response shapes."""

    name = "structured-api"

    def __init__(
        self,
        *,
        fetcher: Fetcher,
        logger: logging.Logger,
        url_marker: str = "deviceandbrowserinfo.com/api/phones",
        placeholder_marker: str = "/disposable",
    ) -> None:
        self._fetcher = fetcher
        self._logger = logger
        self._url_marker = url_marker
        self._placeholder_marker = placeholder_marker

    def matches(self, url: str) -> bool:
        return self._url_marker in url.lower()

    def phone_field(self, url: str) -> str:
        """Field carrying the number in list responses for this endpoint."""
        return "number" if self._placeholder_marker in url.lower() else "phone"

    def scrape(self, url: str) -> ScrapeResult:
        try:
            content = self._fetcher.fetch(url)
        except FetchError as exc:
            if self._placeholder_marker not in url.lower():
                raise
            self._logger.warning(
                "Could not fetch %s (%s); returning %d placeholder numbers",
                url,
                exc,
                len(PLACEHOLDER_NUMBERS),
            )
            return ScrapeResult(
                candidates=list(PLACEHOLDER_NUMBERS), strategy=self.name, placeholder=True
            )

        try:
            payload = content.json()
        except ParseError as exc:
            self._logger.debug("%s; scanning raw body instead", exc)
            candidates = sorted(extract_candidates(content.text))
            return ScrapeResult(candidates=candidates, strategy=self.name)

        candidates = self.parse_payload(payload, self.phone_field(url))
        if not candidates:
            self._logger.info("Could not parse phone numbers from %s response", url)
        return ScrapeResult(candidates=candidates, strategy=self.name)

    def parse_payload(self, payload: Any, phone_field: str) -> list[str]:
        """Try the known shapes in order and return the first non-empty result."""
        parsers: tuple[Callable[[Any], list[str]], ...] = (
            lambda data: self._from_object_list(data, phone_field),
            self._from_phones_property,
            self._from_any_arrays,
        )
        for parser in parsers:
            found = parser(payload)
            if found:
                return found
        return []

    @staticmethod
    def _from_object_list(payload: Any, phone_field: str) -> list[str]:
        if not isinstance(payload, list):
            return []
        output: list[str] = []
        for item in payload:
            if isinstance(item, dict) and isinstance(item.get(phone_field), str):
                output.append(item[phone_field])
        return output

    @staticmethod
    def _from_phones_property(payload: Any) -> list[str]:
        if not isinstance(payload, dict):
            return []
        phones = payload.get("phones")
        if not isinstance(phones, list):
            return []
        return [str(item) for item in phones if isinstance(item, (str, int))]

    @staticmethod
    def _from_any_arrays(payload: Any) -> list[str]:
        if not isinstance(payload, dict):
            return []
        output: list[str] = []
        for value in payload.values():
            if not isinstance(value, list):
                continue
            output.extend(
                item for item in value if isinstance(item, str) and is_strict_phone_number(item)
            )
        return output


class LandmarkHtmlScraper:
    """Sites whose listings put numbers in known DOM containers."""

    name = "html-landmark"

    def __init__(
        self, *, fetcher: Fetcher, logger: logging.Logger, domains: tuple[str, ...]
    ) -> None:
        self._fetcher = fetcher
        self._logger = logger
        self._domains = domains

    def matches(self, url: str) -> bool:
        lowered = url.lower()
        return any(domain in lowered for domain in self._domains)

    def scrape(self, url: str) -> ScrapeResult:
        html = self._fetcher.fetch(url).text

        found = [text for text in extract_landmark_texts(html) if is_likely_phone_number(text)]
        if found:
            return ScrapeResult(candidates=found, strategy=self.name)

        self._logger.debug("No landmark containers on %s, using pattern extraction", url)
        found = sorted(extract_candidates(html))
        if found:
            return ScrapeResult(candidates=found, strategy=self.name)

        self._logger.debug("Pattern extraction empty on %s, using loose scan", url)
        return ScrapeResult(candidates=loose_digit_scan(html), strategy=self.name)


class StrategyRegistry:
    """Ordered URL-pattern dispatch with a generic fallback."""

    def __init__(self, *, fallback: Scraper) -> None:
        self._fallback = fallback
        self._scrapers: list[Scraper] = []

    def register(self, scraper: Scraper) -> None:
        self._scrapers.append(scraper)

    def resolve(self, url: str) -> Scraper:
        for scraper in self._scrapers:
            if scraper.matches(url):
                return scraper
        return self._fallback

    @property
    def names(self) -> list[str]:
        return [scraper.name for scraper in self._scrapers] + [self._fallback.name]


def build_default_registry(*, fetcher: Fetcher, logger: logging.Logger) -> StrategyRegistry:
    """Register every built-in strategy, most specific first."""
    registry = StrategyRegistry(fallback=GenericScraper(fetcher=fetcher, logger=logger))
    registry.register(StructuredApiScraper(fetcher=fetcher, logger=logger))
    registry.register(JsonDocumentScraper(fetcher=fetcher, logger=logger))
    registry.register(
        LandmarkHtmlScraper(fetcher=fetcher, logger=logger, domains=("receive-sms-free.cc",))
    )
    return registry
