# huewatch/light.py
"""
Light control through the hue agent, plus the observer registry that fans
interval transitions out to every registered sink.

Main API:
    light = HueAgentLight("http://hue-agent:8000", LightSettings(mirek=366))
    light.turn_on()
    light.turn_off()

    notifiers = NotifierRegistry()
    notifiers.register(light)
    notifiers.interval_started(interval)
    notifiers.interval_ended(interval)

Notes on the hue agent:
- Everything goes to POST {base_url}/light/state with a JSON body
  {"on": bool, "mirek"?: int, "brightness"?: int}.
- The response body is only logged. A failed call is logged and dropped;
  the poll loop re-sends once the matching throttle lets it.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import List, Optional

import requests

from .config import HTTP_TIMEOUT
from .schedule import Interval

logger = logging.getLogger(__name__)


class IntervalObserver:
    """Something that reacts to a busy interval starting or ending."""

    def on_interval_start(self, interval: Interval):
        pass

    def on_interval_end(self, interval: Optional[Interval]):
        """interval is None when nothing is active at all."""
        pass


class NotifierRegistry:
    """Observers are called in registration order; one failing does not stop the rest."""

    def __init__(self):
        self._observers: List[IntervalObserver] = []

    def register(self, observer: IntervalObserver):
        self._observers.append(observer)

    def interval_started(self, interval: Interval):
        for observer in list(self._observers):
            try:
                observer.on_interval_start(interval)
            except Exception:
                logger.exception(f"[Notify] {type(observer).__name__} failed on interval start")

    def interval_ended(self, interval: Optional[Interval]):
        for observer in list(self._observers):
            try:
                observer.on_interval_end(interval)
            except Exception:
                logger.exception(f"[Notify] {type(observer).__name__} failed on interval end")


@dataclass
class LightSettings:
    # Colour temperature in mireds; None leaves the agent's current value.
    mirek: Optional[int] = None
    # 0..100; None leaves the agent's current value.
    brightness: Optional[int] = None


def constrain(x, lo, hi):
    return max(lo, min(hi, x))


class HueAgentLight(IntervalObserver):
    STATE_PATH = "/light/state"

    def __init__(
        self,
        base_url: str,
        settings: Optional[LightSettings] = None,
        timeout: float = HTTP_TIMEOUT,
        session: Optional[requests.Session] = None,
    ):
        self.url = base_url.rstrip("/") + self.STATE_PATH
        self.settings = settings or LightSettings()
        self.timeout = timeout
        self.session = session or requests.Session()

    # ---------------- observer hooks ----------------

    def on_interval_start(self, interval: Interval):
        logger.info(f"[Light] {interval.summary!r} started")
        self.turn_on()

    def on_interval_end(self, interval: Optional[Interval]):
        if interval is not None:
            logger.info(f"[Light] {interval.summary!r} ended")
        self.turn_off()

    # ---------------- light API ----------------

    def turn_on(self) -> bool:
        payload = {"on": True}
        if self.settings.mirek is not None:
            payload["mirek"] = int(self.settings.mirek)
        if self.settings.brightness is not None:
            payload["brightness"] = constrain(int(self.settings.brightness), 0, 100)
        return self.set_state(payload)

    def turn_off(self) -> bool:
        return self.set_state({"on": False})

    def set_state(self, payload: dict) -> bool:
        """
        Send one state change. Returns True if the agent answered 2xx.
        Never raises on network trouble.
        """
        try:
            res = self.session.post(self.url, json=payload, timeout=self.timeout)
        except requests.RequestException as e:
            logger.error(f"[Light] Error notifying hue agent at {self.url}: {e}")
            return False

        logger.info(f"[Light] {payload} -> {res.status_code}")
        if res.text:
            logger.debug(f"[Light] Response body: {res.text}")

        if not res.ok:
            logger.warning(f"[Light] Hue agent rejected {payload}: {res.status_code} {res.text}")
            return False

        return True
