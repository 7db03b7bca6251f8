# huewatch/google_calendar.py

from __future__ import annotations

import json
import logging
import os.path
import threading
import time
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone, tzinfo
from typing import Callable, List, Optional

from dateutil.parser import isoparse
from dateutil.tz import gettz

from google.auth.exceptions import TransportError
from google.auth.transport.requests import Request
from google.oauth2 import service_account
from google.oauth2.credentials import Credentials
from google_auth_oauthlib.flow import InstalledAppFlow
from googleapiclient.discovery import build
from googleapiclient.errors import HttpError
from httplib2 import HttpLib2Error

from .config import (
    GOOGLE_SCOPES,
    GOOGLE_TOKEN_FILE,
    GOOGLE_CREDENTIALS_FILE,
    LOCAL_TZ,
    WATCH_RENEW_MARGIN,
)
from .schedule import Interval

logger = logging.getLogger(__name__)

CHANNEL_TYPE_WEBHOOK = "web_hook"


class SourceError(Exception):
    """Calendar could not be read (or watched). The caller decides if it is fatal."""


# --------- A. Credentials --------- #

def get_credentials(credentials_file: str = GOOGLE_CREDENTIALS_FILE,
                    token_file: str = GOOGLE_TOKEN_FILE):
    """
    Service-account key files are used as-is. Anything else is treated as an
    OAuth client secret: reuse/refresh token_file, or run the browser flow once
    and cache the result there.
    """
    with open(credentials_file) as f:
        info = json.load(f)
    if info.get("type") == "service_account":
        logger.info(f"[Google] Using service account {info.get('client_email')}")
        return service_account.Credentials.from_service_account_info(info, scopes=GOOGLE_SCOPES)

    creds = None
    if os.path.exists(token_file):
        creds = Credentials.from_authorized_user_file(token_file, GOOGLE_SCOPES)
    if not creds or not creds.valid:
        if creds and creds.expired and creds.refresh_token:
            logger.info("[Google] Refreshing access token...")
            creds.refresh(Request())
        else:
            logger.info("[Google] Running OAuth flow...")
            flow = InstalledAppFlow.from_client_secrets_file(credentials_file, GOOGLE_SCOPES)
            creds = flow.run_local_server(port=0)
        with open(token_file, "w") as token:
            token.write(creds.to_json())
            logger.info(f"[Google] Saved token to {token_file}")
    return creds


# --------- B. Event source --------- #

@dataclass(frozen=True)
class WatchChannel:
    id: str
    resource_id: Optional[str]
    expiration: Optional[datetime]


class GoogleCalendarSource:
    """
    The three calls huewatch needs from Google Calendar:
    list_events, register_watch and stop_watch.

    The discovery client is not thread-safe, so calls are serialized.
    """

    def __init__(self, credentials):
        self.service = build("calendar", "v3", credentials=credentials)
        self._lock = threading.Lock()

    def list_events(self, calendar_id: str, time_min: datetime, time_max: datetime) -> List[dict]:
        """
        All events in [time_min, time_max], following pagination.
        time_min/time_max must be aware datetimes.
        """
        items: List[dict] = []
        page_token = None
        with self._lock:
            while True:
                try:
                    result = self.service.events().list(
                        calendarId=calendar_id,
                        timeMin=time_min.isoformat(),
                        timeMax=time_max.isoformat(),
                        singleEvents=True,
                        orderBy="startTime",
                        pageToken=page_token,
                    ).execute()
                except (HttpError, TransportError, HttpLib2Error, OSError) as e:
                    raise SourceError(f"listing events of {calendar_id!r} failed: {e}") from e

                items.extend(result.get("items", []))
                page_token = result.get("nextPageToken")
                if not page_token:
                    break

        logger.info(f"[Google] Fetched {len(items)} events.")
        return items

    def register_watch(self, calendar_id: str, address: str, ttl: timedelta) -> WatchChannel:
        body = {
            "id": str(uuid.uuid4()),
            "type": CHANNEL_TYPE_WEBHOOK,
            "address": address,
            "expiration": int((time.time() + ttl.total_seconds()) * 1000),
        }
        with self._lock:
            try:
                result = self.service.events().watch(calendarId=calendar_id, body=body).execute()
            except (HttpError, TransportError, HttpLib2Error, OSError) as e:
                raise SourceError(f"watching {calendar_id!r} failed: {e}") from e

        expiration = None
        if result.get("expiration"):
            expiration = datetime.fromtimestamp(int(result["expiration"]) / 1000, tz=timezone.utc)
        channel = WatchChannel(
            id=result["id"],
            resource_id=result.get("resourceId"),
            expiration=expiration,
        )
        logger.info(f"[Google] Watching {calendar_id!r} via channel {channel.id} (expires {expiration})")
        return channel

    def stop_watch(self, channel: WatchChannel):
        with self._lock:
            try:
                self.service.channels().stop(
                    body={"id": channel.id, "resourceId": channel.resource_id}
                ).execute()
            except (HttpError, TransportError, HttpLib2Error, OSError) as e:
                raise SourceError(f"stopping channel {channel.id} failed: {e}") from e
        logger.info(f"[Google] Stopped channel {channel.id}")


class WatchKeeper:
    """
    Keeps one push-notification channel alive for a calendar.

    renew() registers a channel when there is none, and registers a fresh
    one once the current channel is within `margin` of its expiration. The
    new id is swapped in before the old channel is stopped, so channel_id()
    always names a live channel. A failed registration keeps the old one.
    """

    def __init__(self, source, calendar_id: str, address: str, ttl: timedelta,
                 margin: timedelta = WATCH_RENEW_MARGIN,
                 clock: Optional[Callable[[], datetime]] = None):
        self.source = source
        self.calendar_id = calendar_id
        self.address = address
        self.ttl = ttl
        self.margin = min(margin, ttl / 2)
        self._clock = clock or (lambda: datetime.now(tz=timezone.utc))

        self._channel: Optional[WatchChannel] = None
        self._expires_at: Optional[datetime] = None
        self._lock = threading.Lock()

    def channel_id(self) -> Optional[str]:
        channel = self._channel
        return channel.id if channel else None

    def is_due(self, now: Optional[datetime] = None) -> bool:
        if self._channel is None:
            return True
        return (now or self._clock()) >= self._expires_at - self.margin

    def renew(self, now: Optional[datetime] = None) -> bool:
        """
        Returns True if a new channel was installed.
        Raises SourceError if registering fails.
        """
        with self._lock:
            now = now or self._clock()
            if not self.is_due(now):
                return False
            old = self._channel
            channel = self.source.register_watch(self.calendar_id, self.address, self.ttl)
            self._channel = channel
            # Google may omit the expiration; fall back to the ttl we asked for.
            self._expires_at = channel.expiration or now + self.ttl

        if old is not None:
            logger.info(f"[Google] Renewed channel {old.id} -> {channel.id}")
            try:
                self.source.stop_watch(old)
            except SourceError as e:
                logger.warning(f"[Google] Could not stop replaced channel: {e}")
        return True

    def close(self):
        """Stop the current channel, if any. Raises SourceError on failure."""
        with self._lock:
            channel, self._channel = self._channel, None
        if channel is not None:
            self.source.stop_watch(channel)


# --------- C. Events → Intervals --------- #

def parse_timestamp(raw: Optional[str], local_tz: tzinfo) -> Optional[datetime]:
    """
    Parse an RFC 3339 timestamp once. Returns None (and logs) if it is
    missing or malformed, so the record ends up invalid instead of crashing.
    """
    if not raw:
        logger.warning("[Schedule] Missing timestamp")
        return None
    try:
        parsed = isoparse(raw)
    except (ValueError, OverflowError) as e:
        logger.warning(f"[Schedule] Error parsing time {raw!r}: {e}")
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(local_tz)


def build_intervals(events: List[dict], now: datetime,
                    local_tz: Optional[tzinfo] = None) -> List[Interval]:
    """
    Turn raw Google events into Intervals.

    - cancelled events are dropped
    - all-day events (date only, no dateTime) are skipped
    - recurring events get their start moved to today's date; their end is
      left alone, so an instance whose end now falls before its start
      (crosses midnight, or a stale instance date) is rejected
    """
    local_tz = local_tz or gettz(LOCAL_TZ)
    today = now.astimezone(local_tz).date()
    intervals: List[Interval] = []

    for e in events:
        summary = (e.get("summary") or "").strip()

        if e.get("status") == "cancelled":
            continue

        start_info = e.get("start") or {}
        end_info = e.get("end") or {}
        if "dateTime" not in start_info and "date" in start_info:
            logger.debug(f"[Schedule] Skipping all-day event {summary!r}")
            continue

        interval = Interval(
            summary=summary,
            description=e.get("description") or "",
            start=parse_timestamp(start_info.get("dateTime"), local_tz),
            end=parse_timestamp(end_info.get("dateTime"), local_tz),
            is_recurring=bool(e.get("recurrence") or e.get("recurringEventId")),
        )

        if interval.is_recurring and interval.start is not None:
            interval = interval.on_day(today)
            if interval.end is not None and interval.end < interval.start:
                logger.warning(
                    f"[Schedule] Rejecting recurring event {summary!r}: ends "
                    f"{interval.end.isoformat()} before its start on {today}; "
                    "recurring events spanning midnight are not supported"
                )
                continue

        intervals.append(interval)

    logger.info(f"[Schedule] Built {len(intervals)} intervals from {len(events)} events.")
    return intervals
