"""Pure extraction utilities for phone-number candidates."""

from __future__ import annotations

import json
import re
from typing import Any

from bs4 import BeautifulSoup

from .validation import digits_only

PHONE_PATTERNS = (
    # International: +<country><subscriber>
    re.compile(r"\+\d{1,3}\d{6,14}"),
    # North America: xxx-xxx-xxxx and (xxx) xxx-xxxx
    re.compile(r"\d{3}[-.\s]?\d{3}[-.\s]?\d{4}"),
    re.compile(r"\(\d{3}\)\s?\d{3}[-.\s]?\d{4}"),
    # Grouped digits seen on European and Asian listings
    re.compile(r"\d{5}[-.\s]?\d{6}"),
    re.compile(r"\d{4}[-.\s]?\d{3}[-.\s]?\d{3}"),
)
LOOSE_RUN_REGEX = re.compile(r"\+?\(?\d[\d\-() ]{8,22}\d")

LANDMARK_SELECTORS = (
    "div.number",
    "span.number",
    "td.phone",
    "div.phone-number",
)

LOOSE_MIN_DIGITS = 10
LOOSE_MAX_DIGITS = 15


def extract_candidates(text: str) -> set[str]:
    """Return every phone-shaped substring matched by any pattern family."""
    candidates: set[str] = set()
    for pattern in PHONE_PATTERNS:
        candidates.update(match.group(0) for match in pattern.finditer(text or ""))
    return candidates


def json_to_text(data: Any) -> str:
    """Serialize decoded JSON to its compact flat form."""
    return json.dumps(data, separators=(",", ":"), ensure_ascii=False)


def extract_candidates_from_json(data: Any) -> set[str]:
    """Run the text patterns over a serialized JSON document."""
    return extract_candidates(json_to_text(data))


def extract_landmark_texts(html: str, selectors: tuple[str, ...] = LANDMARK_SELECTORS) -> list[str]:
    """Collect inner text of known phone containers and tel: link targets."""
    soup = BeautifulSoup(html or "", "html.parser")
    texts: list[str] = []
    for element in soup.select(", ".join(selectors)):
        value = element.get_text(" ", strip=True)
        if value:
            texts.append(value)
    for anchor in soup.find_all("a", href=True):
        href = str(anchor["href"]).strip()
        if href.lower().startswith("tel:"):
            value = href.split(":", maxsplit=1)[1].strip()
            if value:
                texts.append(value)
    return texts


def loose_digit_scan(html: str) -> list[str]:
    """Last-resort scan for digit-dense table rows and bracketed/dashed runs."""
    soup = BeautifulSoup(html or "", "html.parser")
    found: list[str] = []
    for row in soup.find_all("tr"):
        digits = digits_only(row.get_text(" ", strip=True))
        if LOOSE_MIN_DIGITS <= len(digits) <= LOOSE_MAX_DIGITS:
            found.append(f"+{digits}")

    for match in LOOSE_RUN_REGEX.finditer(soup.get_text(" ")):
        value = match.group(0).strip()
        if LOOSE_MIN_DIGITS <= len(digits_only(value)) <= LOOSE_MAX_DIGITS:
            found.append(value)
    return found
