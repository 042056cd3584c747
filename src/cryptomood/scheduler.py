"""Scheduled trigger for analysis cycles.

Cadences are written as five-field cron expressions
(``minute hour day month weekday``). Only the shapes the service needs are
understood; anything else is rejected at startup:

    ``M * * * *``     every hour at minute M
    ``M H * * *``     every day at H:M
    ``*/N * * * *``   every N minutes
    ``* * * * *``     every minute
"""

from __future__ import annotations

import asyncio
import logging
import threading
from collections.abc import Awaitable, Callable
from typing import Any, Literal

import schedule
from pydantic import BaseModel, ConfigDict

logger = logging.getLogger(__name__)


class Cadence(BaseModel):
    model_config = ConfigDict(frozen=True)

    kind: Literal["hourly", "daily", "minutes"]
    minute: int = 0
    hour: int = 0
    interval: int = 1

    def describe(self) -> str:
        if self.kind == "hourly":
            return f"every hour at minute {self.minute}"
        if self.kind == "daily":
            return f"every day at {self.hour:02d}:{self.minute:02d}"
        if self.interval == 1:
            return "every minute"
        return f"every {self.interval} minutes"


def _field(value: str, name: str, upper: int) -> int:
    if not value.isdigit():
        raise ValueError(f"{name} must be a number, got {value!r}")
    number = int(value)
    if number > upper:
        raise ValueError(f"{name} must be between 0 and {upper}, got {number}")
    return number


def parse_cron(expression: str) -> Cadence:
    """Translate a supported cron expression into a ``Cadence``."""
    parts = expression.split()
    if len(parts) != 5:
        raise ValueError(f"expected 5 fields, got {len(parts)} in {expression!r}")
    minute, hour, day, month, weekday = parts
    if (day, month, weekday) != ("*", "*", "*"):
        raise ValueError(f"day, month and weekday must be '*' in {expression!r}")

    if minute == "*" and hour == "*":
        return Cadence(kind="minutes", interval=1)
    if minute.startswith("*/") and hour == "*":
        interval = _field(minute[2:], "minute step", 59)
        if interval == 0:
            raise ValueError("minute step must be positive")
        return Cadence(kind="minutes", interval=interval)
    if hour == "*":
        return Cadence(kind="hourly", minute=_field(minute, "minute", 59))
    return Cadence(
        kind="daily",
        minute=_field(minute, "minute", 59),
        hour=_field(hour, "hour", 23),
    )


def register(scheduler: schedule.Scheduler, cadence: Cadence, job: Callable[[], Any]) -> schedule.Job:
    if cadence.kind == "hourly":
        return scheduler.every().hour.at(f":{cadence.minute:02d}").do(job)
    if cadence.kind == "daily":
        return scheduler.every().day.at(f"{cadence.hour:02d}:{cadence.minute:02d}").do(job)
    return scheduler.every(cadence.interval).minutes.do(job)


class CycleScheduler:
    """Fires *cycle* on a cron cadence from a background thread.

    Failures of a scheduled cycle are logged and the scheduler waits for
    the next tick.
    """

    def __init__(
        self,
        cycle: Callable[[], Awaitable[Any]],
        expression: str,
        poll_seconds: float = 1.0,
    ) -> None:
        self.cadence = parse_cron(expression)
        self.expression = expression
        self._cycle = cycle
        self._poll_seconds = poll_seconds
        self._scheduler = schedule.Scheduler()
        self._stop = threading.Event()
        self._thread: threading.Thread | None = None
        register(self._scheduler, self.cadence, self.trigger)

    # ── public ──────────────────────────────────────────────────────────

    def trigger(self) -> None:
        """Run one cycle to completion on a private event loop."""
        logger.info("Triggered scheduled sentiment analysis")
        try:
            outcome = asyncio.run(self._cycle())
        except Exception:
            logger.exception("Scheduled analysis failed")
            return
        logger.info("Scheduled analysis finished: %s", getattr(outcome, "status", outcome))

    def start(self) -> None:
        if self._thread is not None:
            return
        logger.info("Scheduling sentiment analysis %s (%s)", self.cadence.describe(), self.expression)
        self._stop.clear()
        self._thread = threading.Thread(target=self._run, name="cycle-scheduler", daemon=True)
        self._thread.start()

    def stop(self, timeout: float | None = None) -> None:
        self._stop.set()
        if self._thread is not None:
            self._thread.join(timeout)
            self._thread = None

    @property
    def next_run(self) -> Any:
        return self._scheduler.next_run

    # ── private ─────────────────────────────────────────────────────────

    def _run(self) -> None:
        while not self._stop.wait(self._poll_seconds):
            self._scheduler.run_pending()
