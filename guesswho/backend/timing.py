"""Clock and timer helpers injected into sessions and the registry."""

from __future__ import annotations

from datetime import datetime, timezone
import threading
from typing import Callable, Protocol


Clock = Callable[[], datetime]


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class TimerHandle(Protocol):
    def cancel(self) -> None:
        """Prevent the callback from running if it has not started yet."""


class Scheduler(Protocol):
    def call_later(self, delay_seconds: float, callback: Callable[[], None]) -> TimerHandle:
        """Run callback once after delay_seconds and return a cancellable handle."""


class ThreadingScheduler:
    """Runs callbacks on daemon timer threads so pending timers never block shutdown."""

    def call_later(self, delay_seconds: float, callback: Callable[[], None]) -> TimerHandle:
        timer = threading.Timer(delay_seconds, callback)
        timer.daemon = True
        timer.start()
        return timer
