# huewatch/scheduler.py

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, replace
from datetime import date, datetime, tzinfo
from enum import Enum, auto
from typing import Callable, Optional, Tuple

from dateutil.tz import gettz

from .config import (
    ABSENCE_COOLDOWN,
    LOCAL_TZ,
    START_COOLDOWN,
    TICK_PERIOD,
)
from .google_calendar import SourceError, build_intervals
from .light import NotifierRegistry
from .schedule import Interval, consolidate, select_upcoming
from .throttle import NotificationKind, ThrottleGate

logger = logging.getLogger(__name__)


class Observation(Enum):
    """What a single tick saw (and acted on). Derived every tick, never stored."""
    DAY_CHANGED = auto()
    NO_UPCOMING = auto()
    YET_TO_START = auto()
    IN_PROGRESS = auto()
    ENDED = auto()


@dataclass(frozen=True)
class ScheduleSnapshot:
    intervals: Tuple[Interval, ...] = ()
    upcoming: Optional[Interval] = None
    day: Optional[date] = None


class Scheduler:
    """
    Owns the day's consolidated intervals and the upcoming pointer.

      - sync(): fetch today's events, merge them, pick the upcoming interval,
        reset throttles. Called at startup, on day rollover and by the webhook.
      - tick(): one poll-loop step; decides whether to notify start/end.
      - start()/stop(): run tick() every tick_period on a background thread.

    State is replaced as a whole under one lock, so readers always get a
    consistent (intervals, upcoming, day) triple. sync() never runs twice at
    once. Notifications go out without holding the state lock.
    """

    def __init__(
        self,
        source,
        calendar_id: str,
        notifiers: NotifierRegistry,
        throttles: Optional[ThrottleGate] = None,
        local_tz: Optional[tzinfo] = None,
        clock: Optional[Callable[[], datetime]] = None,
        tick_period: float = TICK_PERIOD,
    ):
        self.source = source
        self.calendar_id = calendar_id
        self.notifiers = notifiers
        self.throttles = throttles or ThrottleGate(START_COOLDOWN, ABSENCE_COOLDOWN)
        self.local_tz = local_tz or gettz(LOCAL_TZ)
        self._clock = clock or (lambda: datetime.now(tz=self.local_tz))
        self.tick_period = max(0.1, tick_period)

        self._state = ScheduleSnapshot()
        self._state_lock = threading.RLock()
        self._sync_lock = threading.Lock()

        self._stop = threading.Event()
        self._thread: Optional[threading.Thread] = None

    # ---------- read accessors ----------

    def snapshot(self) -> ScheduleSnapshot:
        with self._state_lock:
            return self._state

    @property
    def upcoming(self) -> Optional[Interval]:
        return self.snapshot().upcoming

    # ---------- sync ----------

    def sync(self, now: Optional[datetime] = None) -> ScheduleSnapshot:
        """
        Rebuild intervals and the upcoming pointer for the day containing now.

        Raises google_calendar.SourceError if the fetch fails; the previous
        snapshot is kept in that case.
        """
        with self._sync_lock:
            self.throttles.reset_all()

            now = self._local(now)
            start_of_day = now.replace(hour=0, minute=0, second=0, microsecond=0)
            end_of_day = now.replace(hour=23, minute=59, second=59, microsecond=0)

            events = self.source.list_events(self.calendar_id, start_of_day, end_of_day)

            intervals = build_intervals(events, now, self.local_tz)
            merged = consolidate(intervals)
            upcoming = select_upcoming(merged, now)

            logger.info(f"[Scheduler] {len(intervals)} events in calendar (sorted by start time)")
            for idx, interval in enumerate(sorted(intervals, key=lambda i: i.start or now), 1):
                logger.info(f"[Scheduler]   {idx}) {interval.summary}")
            logger.info(f"[Scheduler] {len(merged)} merged intervals")
            for idx, interval in enumerate(merged, 1):
                logger.info(f"[Scheduler]   {idx}) {interval!r}")
            if upcoming is not None:
                logger.info(f"[Scheduler] Upcoming interval is {upcoming.summary!r}")

            snapshot = ScheduleSnapshot(tuple(merged), upcoming, now.date())
            with self._state_lock:
                self._state = snapshot
            return snapshot

    # ---------- poll loop ----------

    def tick(self, now: Optional[datetime] = None) -> Observation:
        """
        One evaluation step. Exactly one branch fires, in priority order:
        day rollover, no upcoming interval, not started yet, in progress, ended.
        """
        now = self._local(now)
        today = now.date()
        snapshot = self.snapshot()

        if snapshot.day != today:
            logger.info(f"[Scheduler] Day changed ({snapshot.day} → {today}), syncing calendar")
            # Marker moves even if the sync fails; the webhook can still resync.
            with self._state_lock:
                self._state = replace(self._state, day=today)
            try:
                self.sync(now)
            except SourceError as e:
                logger.error(f"[Scheduler] Error syncing calendar after day change: {e}")
            return Observation.DAY_CHANGED

        upcoming = snapshot.upcoming

        if upcoming is None:
            if self.throttles.allow(NotificationKind.ABSENCE):
                logger.info("[Scheduler] No upcoming interval, light off")
                self.notifiers.interval_ended(None)
            return Observation.NO_UPCOMING

        if upcoming.is_yet_to_start(now):
            if self.throttles.allow(NotificationKind.ABSENCE):
                logger.info(f"[Scheduler] {upcoming.summary!r} not started yet, light off")
                self.notifiers.interval_ended(None)
            return Observation.YET_TO_START

        if upcoming.in_progress(now):
            if self.throttles.allow(NotificationKind.START):
                logger.info(f"[Scheduler] {upcoming.summary!r} in progress. Notifying subscribers...")
                self.notifiers.interval_started(upcoming)
            return Observation.IN_PROGRESS

        if upcoming.has_ended(now):
            logger.info(f"[Scheduler] {upcoming.summary!r} ended. Notifying subscribers...")
            self.notifiers.interval_ended(upcoming)
            self._advance(upcoming, now)
            return Observation.ENDED

        # Only reachable for an invalid interval, which consolidate() never keeps.
        return Observation.NO_UPCOMING

    def _advance(self, ended: Interval, now: datetime):
        with self._state_lock:
            if self._state.upcoming is not ended:
                # a sync already replaced the pointer
                return
            upcoming = select_upcoming(self._state.intervals, now)
            self._state = replace(self._state, upcoming=upcoming)
        if upcoming is not None:
            logger.info(f"[Scheduler] Upcoming interval is {upcoming.summary!r}")

    def run(self):
        """Blocking loop; returns after stop()."""
        logger.info(f"[Scheduler] Watching calendar {self.calendar_id!r} every {self.tick_period}s")
        while not self._stop.is_set():
            try:
                self.tick()
            except Exception:
                logger.exception("[Scheduler] Tick failed")
            self._stop.wait(self.tick_period)
        logger.info("[Scheduler] Stopped watching")

    def start(self):
        if self._thread and self._thread.is_alive():
            return
        self._stop.clear()
        self._thread = threading.Thread(target=self.run, name="huewatch-poll", daemon=True)
        self._thread.start()

    def stop(self, timeout: Optional[float] = None):
        self._stop.set()
        if self._thread and self._thread.is_alive():
            self._thread.join(timeout=timeout)

    # ---------- helpers ----------

    def _local(self, now: Optional[datetime]) -> datetime:
        return (now or self._clock()).astimezone(self.local_tz)
