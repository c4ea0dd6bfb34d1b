"""Runtime configuration model."""

from __future__ import annotations

from dataclasses import dataclass

from .validation import validate_runtime_constraints

DEFAULT_USER_AGENT = "SMSPatrol/1.0 (+https://github.com/sms-patrol/sms-patrol)"
DEFAULT_REQUEST_TIMEOUT = 15.0
DEFAULT_POLL_INTERVAL = 1.0
DEFAULT_INTERVAL_MINUTES = 60
DEFAULT_STORAGE_PATH = "sms_patrol.json"
DEFAULT_PROXY_TEMPLATE = "https://corsproxy.io/?{url}"

DEFAULT_SOURCES = (
    "https://receive-sms-free.cc/",
    "https://receive-smss.com/",
    "https://receive-sms.cc/",
    "https://spytm.com/",
    "https://quackr.io/",
    "https://onlinesim.io/",
    "https://smstome.com/",
    "https://receive-sms-online.info/",
    "https://app.smsplaza.io/",
    "https://textrapp.com/",
    "https://temporary-phone-number.com/",
    "https://sms24.me/",
    "https://sms-activate.guru/",
    "https://anonymsms.com/",
    "https://krispcall.com/virtual-phone-number",
    "https://deviceandbrowserinfo.com/api/phones/disposable",
    "https://raw.githubusercontent.com/iP1SMS/disposable-phone-numbers/refs/heads/master/number-list.json",
)


@dataclass(frozen=True)
class PatrolConfig:
    """Validated configuration used by the scraper and scheduler."""

    storage_path: str = DEFAULT_STORAGE_PATH
    user_agent: str = DEFAULT_USER_AGENT
    request_timeout: float = DEFAULT_REQUEST_TIMEOUT
    proxy_template: str = DEFAULT_PROXY_TEMPLATE
    poll_interval: float = DEFAULT_POLL_INTERVAL
    show_progress: bool = True

    def __post_init__(self) -> None:
        validate_runtime_constraints(
            storage_path=self.storage_path,
            request_timeout=self.request_timeout,
            poll_interval=self.poll_interval,
            proxy_template=self.proxy_template,
        )
