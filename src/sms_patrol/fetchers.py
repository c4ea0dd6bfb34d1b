"""HTTP fetcher with a single proxy-relay fallback."""

from __future__ import annotations

import logging
from urllib.parse import quote

from requests import Response, Session
from requests.adapters import HTTPAdapter
from requests.exceptions import RequestException

from .errors import FetchError
from .models import FetchedContent
from .validation import is_supported_url

ACCEPT_HEADER = "text/html,application/xhtml+xml,application/json;q=0.9,*/*;q=0.8"


def make_session(user_agent: str) -> Session:
    """Create a requests session without transport-level retries."""
    session = Session()
    session.headers.update({"User-Agent": user_agent, "Accept": ACCEPT_HEADER})
    adapter = HTTPAdapter(max_retries=0)
    session.mount("https://", adapter)
    session.mount("http://", adapter)
    return session


def build_proxy_url(template: str, url: str) -> str:
    """Wrap a target URL into the relay template, fully percent-encoded."""
    return template.replace("{url}", quote(url, safe=""))


class ProxyFallbackFetcher:
    """Direct GET first, then exactly one attempt through the proxy relay."""

    def __init__(
        self,
        *,
        session: Session,
        proxy_template: str,
        timeout: float,
        logger: logging.Logger,
    ) -> None:
        self._session = session
        self._proxy_template = proxy_template
        self._timeout = timeout
        self._logger = logger

    def fetch(self, url: str) -> FetchedContent:
        if not is_supported_url(url):
            raise FetchError(f"Unsupported URL: {url}")
        try:
            response = self._get(url)
            return self._to_content(url, response, via_proxy=False)
        except RequestException as exc:
            self._logger.debug("Direct fetch failed for %s: %s", url, exc)

        proxy_url = build_proxy_url(self._proxy_template, url)
        self._logger.debug("Retrying %s through proxy relay", url)
        try:
            response = self._get(proxy_url)
            return self._to_content(url, response, via_proxy=True)
        except RequestException as exc:
            raise FetchError(f"Failed to fetch {url} directly and via proxy: {exc}") from exc

    def _get(self, url: str) -> Response:
        response = self._session.get(url, timeout=self._timeout)
        response.raise_for_status()
        return response

    @staticmethod
    def _to_content(url: str, response: Response, *, via_proxy: bool) -> FetchedContent:
        return FetchedContent(
            url=url,
            text=str(response.text),
            content_type=str(response.headers.get("Content-Type", "")),
            status_code=int(response.status_code),
            via_proxy=via_proxy,
        )
