"""Validation, normalization and runtime guardrails."""

from __future__ import annotations

import re
from collections.abc import Iterable
from pathlib import Path
from urllib.parse import urlparse

from .errors import ConfigError

MIN_PHONE_DIGITS = 7
MAX_PHONE_DIGITS = 15
ALLOWED_INTERVALS = (1, 15, 30, 60, 120, 360, 720, 1440)

NON_DIGIT_REGEX = re.compile(r"\D")
PHONE_SHAPE_REGEX = re.compile(r"[\d+\-() .]+")
STRICT_PHONE_REGEX = re.compile(r"\+?[0-9]{6,15}")


def digits_only(value: str) -> str:
    """Strip every non-digit character."""
    return NON_DIGIT_REGEX.sub("", value or "")


def is_likely_phone_number(candidate: str) -> bool:
    """Return True when a raw candidate plausibly is a phone number.

    Digit count must be within 7..15. An explicit international prefix (``+`` or
    ``00``) is accepted as is; anything else must consist solely of digits and
    the usual separators.
    """
    digit_count = len(digits_only(candidate))
    if digit_count < MIN_PHONE_DIGITS or digit_count > MAX_PHONE_DIGITS:
        return False
    if candidate.startswith("+") or candidate.startswith("00"):
        return True
    return bool(PHONE_SHAPE_REGEX.fullmatch(candidate))


def is_strict_phone_number(value: str) -> bool:
    """Return True for bare digit strings with an optional leading plus."""
    return bool(STRICT_PHONE_REGEX.fullmatch(value))


def normalize_phone_number(candidate: str) -> str:
    """Reduce a candidate to its digits, keeping a leading plus."""
    digits = digits_only(candidate)
    return f"+{digits}" if candidate.startswith("+") else digits


def clean_candidates(candidates: Iterable[str]) -> list[str]:
    """Validate, normalize and dedupe candidates preserving first-seen order."""
    if isinstance(candidates, (set, frozenset)):
        candidates = sorted(candidates)
    output: list[str] = []
    seen: set[str] = set()
    for raw in candidates:
        value = raw.strip()
        if not is_likely_phone_number(value):
            continue
        normalized = normalize_phone_number(value)
        if normalized in seen:
            continue
        seen.add(normalized)
        output.append(normalized)
    return output


def is_supported_url(url: str) -> bool:
    """Allow only absolute HTTP(S) URLs with a hostname."""
    parsed = urlparse(url)
    return parsed.scheme in {"http", "https"} and bool(parsed.netloc)


def validate_source_url(url: str) -> str:
    """Return the stripped URL or raise ConfigError when it cannot be scraped."""
    value = (url or "").strip()
    if not is_supported_url(value):
        raise ConfigError(
            f"Invalid URL {value!r}: include http:// or https:// and a hostname."
        )
    return value


def url_key(url: str) -> str:
    """Identity key used for duplicate source detection."""
    return url.strip().lower()


def validate_interval(minutes: int) -> int:
    """Return the interval when it is one of the allowed scheduler values."""
    if minutes not in ALLOWED_INTERVALS:
        allowed = ", ".join(str(item) for item in ALLOWED_INTERVALS)
        raise ConfigError(f"Interval must be one of {allowed} minutes, got {minutes}.")
    return minutes


def load_lines_from_file(path: str) -> list[str]:
    """Load non-empty lines from a UTF-8 text file."""
    content = Path(path).read_text(encoding="utf-8")
    return [line.strip() for line in content.splitlines() if line.strip()]


def validate_runtime_constraints(
    *,
    storage_path: str,
    request_timeout: float,
    poll_interval: float,
    proxy_template: str,
) -> None:
    """Validate CLI/runtime configuration and raise ConfigError on invalid values."""
    if not storage_path:
        raise ConfigError("--storage must not be empty.")
    if request_timeout <= 0:
        raise ConfigError("--timeout must be > 0.")
    if poll_interval <= 0:
        raise ConfigError("--poll-interval must be > 0.")
    if "{url}" not in proxy_template:
        raise ConfigError("--proxy-template must contain a {url} placeholder.")
    if not is_supported_url(proxy_template.replace("{url}", "")):
        raise ConfigError("--proxy-template must be an absolute http(s) URL.")
