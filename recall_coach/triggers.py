"""
Time-based review triggers.

Fires the coach's periodic entry points and hands the results to a Delivery:
- morning:  ReviewCoach.handle_due             (daily)
- evening:  ReviewCoach.handle_evening_summary (daily)
- weekly:   ReviewCoach.handle_weekly_report   (once a week)

Runs in a background thread with an explicit start/stop lifecycle.
"""

from __future__ import annotations

import threading
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import UTC, datetime, time, timedelta
from zoneinfo import ZoneInfo

from loguru import logger

from .clock import Clock, ensure_utc, system_clock
from .delivery import Delivery
from .tutor import ReviewCoach


def parse_clock_time(value: str) -> time:
    """Parse 'HH:MM'."""
    hours, minutes = value.split(":")
    return time(int(hours), int(minutes))


def next_occurrence(after: datetime, at: time, tz: ZoneInfo, weekday: int | None = None) -> datetime:
    """
    The first wall-clock time strictly after ``after``.

    Args:
        after: Reference instant
        at: Local time of day
        tz: Zone the time of day is expressed in
        weekday: Monday=0 .. Sunday=6 for weekly jobs, None for daily

    Returns:
        The next run time, in UTC
    """
    local = ensure_utc(after).astimezone(tz)
    candidate = local.replace(hour=at.hour, minute=at.minute, second=0, microsecond=0)
    if weekday is not None:
        candidate += timedelta(days=(weekday - candidate.weekday()) % 7)
    if candidate <= local:
        candidate += timedelta(days=7 if weekday is not None else 1)
    return candidate.astimezone(UTC)


@dataclass
class TriggerJob:
    """One periodic entry point."""

    name: str
    handler: Callable[[], str]
    at: time
    weekday: int | None = None
    next_run: datetime | None = None

    def schedule_after(self, moment: datetime, tz: ZoneInfo) -> None:
        self.next_run = next_occurrence(moment, self.at, tz, self.weekday)


@dataclass
class TriggerStatus:
    """Current trigger loop status."""

    is_running: bool = False
    total_runs: int = 0
    failed_runs: int = 0
    failed_deliveries: int = 0
    last_run_at: dict[str, datetime] = field(default_factory=dict)
    error_message: str | None = None


@dataclass
class ReviewTriggers:
    """
    Background trigger loop.

    Usage:
        triggers = ReviewTriggers(coach, ConsoleDelivery())
        triggers.start()
        # ... process runs ...
        triggers.stop()
    """

    coach: ReviewCoach
    delivery: Delivery
    channel: str | None = None
    poll_seconds: float | None = None
    clock: Clock | None = None

    # Internal state
    jobs: list[TriggerJob] = field(default_factory=list)
    _status: TriggerStatus = field(default_factory=TriggerStatus)
    _thread: threading.Thread | None = field(default=None, repr=False)
    _stop_event: threading.Event = field(default_factory=threading.Event, repr=False)

    def __post_init__(self) -> None:
        settings = self.coach.settings
        self.clock = self.clock or self.coach.clock or system_clock
        if self.channel is None:
            self.channel = settings.delivery_channel
        if self.poll_seconds is None:
            self.poll_seconds = settings.trigger_poll_seconds
        self.tz = settings.tzinfo

        if not self.jobs:
            self.jobs = [
                TriggerJob("morning", self.coach.handle_due, parse_clock_time(settings.morning_review_time)),
                TriggerJob(
                    "evening",
                    self.coach.handle_evening_summary,
                    parse_clock_time(settings.evening_review_time),
                ),
                TriggerJob(
                    "weekly",
                    self.coach.handle_weekly_report,
                    parse_clock_time(settings.weekly_report_time),
                    weekday=settings.weekly_report_weekday,
                ),
            ]
        now = self.clock()
        for job in self.jobs:
            if job.next_run is None:
                job.schedule_after(now, self.tz)

    @property
    def status(self) -> TriggerStatus:
        """Get current trigger status."""
        return self._status

    def start(self) -> bool:
        """
        Start the background loop.

        Returns:
            True once the loop is running
        """
        if self._status.is_running:
            logger.warning("Review triggers already running")
            return True

        self._stop_event.clear()
        self._status.is_running = True
        self._thread = threading.Thread(
            target=self._loop,
            name="review-triggers",
            daemon=True,
        )
        self._thread.start()

        for job in self.jobs:
            logger.info(f"Trigger '{job.name}' next run at {job.next_run:%Y-%m-%d %H:%M} UTC")
        return True

    def stop(self) -> None:
        """Stop the loop gracefully."""
        if not self._status.is_running:
            return

        logger.info("Stopping review triggers...")
        self._stop_event.set()

        if self._thread and self._thread.is_alive():
            self._thread.join(timeout=5.0)

        self._status.is_running = False
        logger.info("Review triggers stopped")

    def _loop(self) -> None:
        while not self._stop_event.is_set():
            self.run_pending()
            if self._stop_event.wait(timeout=self.poll_seconds):
                break

    def run_pending(self, now: datetime | None = None) -> list[tuple[str, str]]:
        """
        Run every job whose time has come.

        A failing job or delivery is logged and the job rescheduled; neither
        stops the loop.

        Returns:
            (job name, result text) for each job that produced a result
        """
        moment = ensure_utc(now) if now else self.clock()
        results: list[tuple[str, str]] = []

        for job in self.jobs:
            if job.next_run is None or job.next_run > moment:
                continue

            logger.debug(f"Running trigger '{job.name}'")
            try:
                text = job.handler()
            except Exception as exc:
                logger.exception(f"Trigger '{job.name}' failed: {exc}")
                self._status.failed_runs += 1
                self._status.error_message = str(exc)
                text = None
            finally:
                job.schedule_after(moment, self.tz)

            self._status.total_runs += 1
            self._status.last_run_at[job.name] = moment

            if not text:
                continue
            self._deliver(job.name, text)
            results.append((job.name, text))

        return results

    def _deliver(self, name: str, text: str) -> bool:
        """Send one result; a raising delivery counts as a failed one."""
        try:
            delivered = self.delivery.send(self.channel or "", text)
        except Exception as exc:
            logger.exception(f"Delivery of '{name}' to '{self.channel}' raised: {exc}")
            delivered = False
        else:
            if not delivered:
                logger.warning(f"Delivery of '{name}' to '{self.channel}' failed")

        if not delivered:
            self._status.failed_deliveries += 1
        return delivered
