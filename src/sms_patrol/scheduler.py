"""Recurring scrape scheduler with a single-run guard."""

from __future__ import annotations

import enum
import logging
import threading
from collections.abc import Callable
from datetime import datetime, timedelta
from typing import Protocol

from filelock import FileLock, Timeout

from .models import PatrolStorage, ScheduleState, ScrapeOutcome
from .storage import utc_now
from .validation import validate_interval

Clock = Callable[[], datetime]


class Orchestrator(Protocol):
    def scrape_all(self) -> ScrapeOutcome:
        """Run one scrape batch."""


class SchedulerPhase(enum.Enum):
    IDLE = "idle"
    ARMED = "armed"
    RUNNING = "running"


def format_time_remaining(remaining: timedelta | None) -> str:
    """Render a countdown as ``"<minutes>m <seconds>s"``."""
    if remaining is None:
        return ""
    total = max(0, int(remaining.total_seconds()))
    minutes, seconds = divmod(total, 60)
    return f"{minutes}m {seconds}s"


class Scheduler:
    """Drive the orchestrator from persisted schedule settings.

    ``tick`` is meant to be called about once per second. It starts a run when
    ``next_run_at`` has passed. Manual triggers go through the same guard, so at
    most one batch is ever in flight; attempts made while one is running are
    ignored. With ``run_lock_path`` set the guard also spans processes sharing
    the lock file. After every run the next run is computed from the completion
    time.
    """

    def __init__(
        self,
        *,
        storage: PatrolStorage,
        orchestrator: Orchestrator,
        logger: logging.Logger,
        clock: Clock = utc_now,
        run_lock_path: str | None = None,
    ) -> None:
        self._storage = storage
        self._orchestrator = orchestrator
        self._logger = logger
        self._clock = clock
        self._run_lock = threading.Lock()
        self._batch_lock = FileLock(run_lock_path) if run_lock_path else None

    @property
    def state(self) -> ScheduleState:
        return self._storage.get_schedule_state()

    @property
    def phase(self) -> SchedulerPhase:
        if self._run_lock.locked():
            return SchedulerPhase.RUNNING
        return SchedulerPhase.ARMED if self.state.active else SchedulerPhase.IDLE

    def set_active(self, active: bool) -> ScheduleState:
        def apply(current: ScheduleState) -> ScheduleState:
            if active:
                return self._armed(current.interval_minutes, self._clock())
            return ScheduleState(active=False, interval_minutes=current.interval_minutes)

        state = self._storage.update_schedule_state(apply)
        self._logger.info(
            "Scheduler %s", f"armed for {to_text(state.next_run_at)}" if active else "stopped"
        )
        return state

    def set_interval(self, minutes: int) -> ScheduleState:
        validate_interval(minutes)

        def apply(current: ScheduleState) -> ScheduleState:
            if current.active:
                return self._armed(minutes, self._clock())
            return ScheduleState(active=False, interval_minutes=minutes)

        return self._storage.update_schedule_state(apply)

    def get_next_run(self) -> datetime | None:
        return self.state.next_run_at

    def get_time_remaining(self, now: datetime | None = None) -> timedelta | None:
        next_run_at = self.get_next_run()
        if next_run_at is None:
            return None
        remaining = next_run_at - (now or self._clock())
        return max(remaining, timedelta(0))

    def tick(self, now: datetime | None = None) -> ScrapeOutcome | None:
        """Start a run if one is due; return its outcome or None."""
        state = self.state
        if not state.active or state.next_run_at is None:
            return None
        if (now or self._clock()) < state.next_run_at:
            return None
        return self._run("scheduled")

    def trigger_manual(self) -> ScrapeOutcome | None:
        """Run immediately unless a run is already in flight."""
        return self._run("manual")

    def run_forever(self, stop_event: threading.Event, poll_interval: float = 1.0) -> None:
        """Poll until ``stop_event`` is set; errors of one run do not stop the loop."""
        self._logger.info("Scheduler loop started (poll every %.1fs)", poll_interval)
        while not stop_event.is_set():
            try:
                self.tick()
            except Exception:
                self._logger.exception("Scheduled scrape failed")
            stop_event.wait(poll_interval)
        self._logger.info("Scheduler loop stopped")

    def _run(self, trigger: str) -> ScrapeOutcome | None:
        if not self._run_lock.acquire(blocking=False):
            self._logger.info("Ignoring %s scrape: a scrape is already running", trigger)
            return None
        try:
            if self._batch_lock is not None:
                try:
                    self._batch_lock.acquire(timeout=0)
                except Timeout:
                    self._logger.info(
                        "Ignoring %s scrape: another process is already scraping", trigger
                    )
                    return None
            try:
                self._logger.info("Starting %s scrape", trigger)
                return self._orchestrator.scrape_all()
            finally:
                try:
                    self._rearm()
                finally:
                    if self._batch_lock is not None:
                        self._batch_lock.release()
        finally:
            self._run_lock.release()

    def _rearm(self) -> None:
        def apply(current: ScheduleState) -> ScheduleState:
            if not current.active:
                return current
            return self._armed(current.interval_minutes, self._clock())

        state = self._storage.update_schedule_state(apply)
        if state.active:
            self._logger.info("Next scheduled scrape at %s", to_text(state.next_run_at))

    @staticmethod
    def _armed(interval_minutes: int, now: datetime) -> ScheduleState:
        return ScheduleState(
            active=True,
            interval_minutes=interval_minutes,
            next_run_at=now + timedelta(minutes=interval_minutes),
        )


def to_text(value: datetime | None) -> str:
    return value.isoformat() if value else "-"
