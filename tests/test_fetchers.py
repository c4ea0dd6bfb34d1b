import logging
from typing import Any

import pytest
import requests

from sms_patrol.errors import FetchError, ParseError
from sms_patrol.fetchers import ProxyFallbackFetcher, build_proxy_url, make_session
from sms_patrol.models import FetchedContent

PROXY_TEMPLATE = "https://relay.example/?{url}"


class FakeResponse:
    def __init__(
        self, *, status_code: int = 200, text: str = "", content_type: str = "text/html"
    ) -> None:
        self.status_code = status_code
        self.text = text
        self.headers = {"Content-Type": content_type}

    def raise_for_status(self) -> None:
        if self.status_code >= 400:
            raise requests.HTTPError(f"http error {self.status_code}")


class FakeSession:
    def __init__(self, mapping: dict[str, FakeResponse | Exception]) -> None:
        self.mapping = mapping
        self.calls: list[str] = []
        self.timeouts: list[float] = []

    def get(self, url: str, **kwargs: Any) -> FakeResponse:
        self.calls.append(url)
        self.timeouts.append(kwargs["timeout"])
        outcome = self.mapping[url]
        if isinstance(outcome, Exception):
            raise outcome
        return outcome


def _fetcher(session: FakeSession) -> ProxyFallbackFetcher:
    return ProxyFallbackFetcher(
        session=session,  # type: ignore[arg-type]
        proxy_template=PROXY_TEMPLATE,
        timeout=12.0,
        logger=logging.getLogger("test"),
    )


TARGET = "https://example.com/numbers?page=1"
PROXIED = "https://relay.example/?https%3A%2F%2Fexample.com%2Fnumbers%3Fpage%3D1"


def test_build_proxy_url_encodes_target() -> None:
    assert build_proxy_url(PROXY_TEMPLATE, TARGET) == PROXIED


def test_direct_success_skips_proxy() -> None:
    session = FakeSession({TARGET: FakeResponse(text="<p>+12025550179</p>")})
    content = _fetcher(session).fetch(TARGET)
    assert content.text == "<p>+12025550179</p>"
    assert content.via_proxy is False
    assert session.calls == [TARGET]
    assert session.timeouts == [12.0]


def test_error_status_falls_back_to_proxy() -> None:
    session = FakeSession(
        {
            TARGET: FakeResponse(status_code=403),
            PROXIED: FakeResponse(text='{"phones": []}', content_type="application/json"),
        }
    )
    content = _fetcher(session).fetch(TARGET)
    assert content.via_proxy is True
    assert content.url == TARGET
    assert content.is_json is True
    assert session.calls == [TARGET, PROXIED]


def test_network_error_falls_back_to_proxy() -> None:
    session = FakeSession(
        {TARGET: requests.ConnectionError("refused"), PROXIED: FakeResponse(text="ok")}
    )
    assert _fetcher(session).fetch(TARGET).text == "ok"


def test_both_attempts_failing_raises_fetch_error_with_cause() -> None:
    timeout = requests.Timeout("proxy timed out")
    session = FakeSession({TARGET: FakeResponse(status_code=500), PROXIED: timeout})
    with pytest.raises(FetchError) as excinfo:
        _fetcher(session).fetch(TARGET)
    assert excinfo.value.__cause__ is timeout
    assert session.calls == [TARGET, PROXIED]


def test_proxy_error_status_raises_fetch_error() -> None:
    session = FakeSession(
        {TARGET: FakeResponse(status_code=403), PROXIED: FakeResponse(status_code=502)}
    )
    with pytest.raises(FetchError):
        _fetcher(session).fetch(TARGET)


def test_unsupported_url_is_rejected_without_network() -> None:
    session = FakeSession({})
    with pytest.raises(FetchError):
        _fetcher(session).fetch("file:///etc/passwd")
    assert session.calls == []


def test_fetched_content_json_errors_raise_parse_error() -> None:
    content = FetchedContent(url=TARGET, text="<html>", content_type="application/json")
    with pytest.raises(ParseError):
        content.json()


def test_make_session_sets_user_agent() -> None:
    session = make_session("my-agent")
    assert session.headers["User-Agent"] == "my-agent"
