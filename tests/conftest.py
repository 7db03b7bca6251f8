"""Shared fixtures: a fixed local day, fake calendar source, recording observer."""

from datetime import datetime, timedelta

import pytest
from dateutil.tz import gettz

from huewatch.google_calendar import WatchChannel
from huewatch.light import IntervalObserver, NotifierRegistry
from huewatch.scheduler import Scheduler
from huewatch.schedule import Interval
from huewatch.throttle import ThrottleGate

TZ = gettz("America/Toronto")
COOLDOWN = timedelta(minutes=5)


def at(hour, minute=0, second=0, day=12):
    """A local timestamp on 2024-06-12 (or another June day)."""
    return datetime(2024, 6, day, hour, minute, second, tzinfo=TZ)


def make_interval(summary, start, end, description=""):
    return Interval(summary=summary, description=description or summary.lower(), start=start, end=end)


def google_event(summary, start, end, **extra):
    event = {
        "summary": summary,
        "description": summary.lower(),
        "status": "confirmed",
        "start": {"dateTime": start.isoformat() if isinstance(start, datetime) else start},
        "end": {"dateTime": end.isoformat() if isinstance(end, datetime) else end},
    }
    event.update(extra)
    return event


class FakeSource:
    def __init__(self, events=None):
        self.events = list(events or [])
        self.error = None
        self.calls = []

        # watch channels
        self.expiration = None
        self.watch_error = None
        self.registered = 0
        self.watches = []
        self.stopped = []

    def list_events(self, calendar_id, time_min, time_max):
        self.calls.append((calendar_id, time_min, time_max))
        if self.error is not None:
            raise self.error
        return list(self.events)

    def register_watch(self, calendar_id, address, ttl):
        if self.watch_error is not None:
            raise self.watch_error
        self.registered += 1
        channel = WatchChannel(f"chan-{self.registered}", f"res-{self.registered}", self.expiration)
        self.watches.append(channel)
        return channel

    def stop_watch(self, channel):
        self.stopped.append(channel)


class RecordingObserver(IntervalObserver):
    def __init__(self):
        self.calls = []

    def on_interval_start(self, interval):
        self.calls.append(("start", interval))

    def on_interval_end(self, interval):
        self.calls.append(("end", interval))


class ManualClock:
    """Monotonic-style clock for throttles, advanced by hand."""

    def __init__(self, value=1000.0):
        self.value = value

    def __call__(self):
        return self.value

    def advance(self, delta: timedelta):
        self.value += delta.total_seconds()


class WallClock:
    """Aware-datetime clock for the scheduler; also advances the throttle clock."""

    def __init__(self, now, mono):
        self.now = now
        self.mono = mono

    def __call__(self):
        return self.now

    def set(self, now):
        self.mono.advance(now - self.now)
        self.now = now


@pytest.fixture
def source():
    return FakeSource()


@pytest.fixture
def observer():
    return RecordingObserver()


@pytest.fixture
def mono():
    return ManualClock()


@pytest.fixture
def clock(mono):
    return WallClock(at(8), mono)


@pytest.fixture
def scheduler(source, observer, mono, clock):
    notifiers = NotifierRegistry()
    notifiers.register(observer)
    return Scheduler(
        source,
        "primary",
        notifiers,
        throttles=ThrottleGate(COOLDOWN, COOLDOWN, clock=mono),
        local_tz=TZ,
        clock=clock,
        tick_period=0.1,
    )
