# huewatch/throttle.py

from __future__ import annotations

import threading
import time
from datetime import timedelta
from enum import Enum, auto
from typing import Callable, Dict, Optional


class NotificationKind(Enum):
    START = auto()      # interval in progress -> light on
    ABSENCE = auto()    # nothing active / not started yet -> light off


class Throttle:
    """
    Lets a notification through at most once per `interval`.

    A never-triggered (or reset) throttle always allows the next call.
    """

    def __init__(self, interval: timedelta, clock: Callable[[], float] = time.monotonic):
        self.interval = interval
        self._clock = clock
        self._last_trigger: Optional[float] = None
        self._lock = threading.Lock()

    def allow(self) -> bool:
        with self._lock:
            now = self._clock()
            if (
                self._last_trigger is not None
                and now - self._last_trigger < self.interval.total_seconds()
            ):
                return False
            self._last_trigger = now
            return True

    def reset(self):
        with self._lock:
            self._last_trigger = None


class ThrottleGate:
    """One independent Throttle per NotificationKind."""

    def __init__(
        self,
        start_cooldown: timedelta,
        absence_cooldown: timedelta,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._throttles: Dict[NotificationKind, Throttle] = {
            NotificationKind.START: Throttle(start_cooldown, clock),
            NotificationKind.ABSENCE: Throttle(absence_cooldown, clock),
        }

    def allow(self, kind: NotificationKind) -> bool:
        return self._throttles[kind].allow()

    def reset(self, kind: NotificationKind):
        self._throttles[kind].reset()

    def reset_all(self):
        for throttle in self._throttles.values():
            throttle.reset()
