# huewatch/config.py

import os
from datetime import timedelta

from dotenv import load_dotenv

# Values already in the environment win over the file.
load_dotenv(os.getenv("HUEWATCH_ENV_FILE", ".env"))


def _optional_int(name):
    raw = os.getenv(name, "").strip()
    return int(raw) if raw else None


# Timezone used for day boundaries and recurring-start normalization
LOCAL_TZ = os.getenv("LOCAL_TZ", "America/Toronto")

# Google Calendar
CALENDAR_ID = os.getenv("CALENDAR_ID", "primary")
GOOGLE_SCOPES = ["https://www.googleapis.com/auth/calendar.readonly"]
GOOGLE_TOKEN_FILE = os.getenv("GOOGLE_TOKEN_FILE", "token.json")
GOOGLE_CREDENTIALS_FILE = os.getenv("GOOGLE_CREDENTIALS_FILE", "credentials.json")

# Push notifications (webhook). Empty endpoint = no watch channel.
NOTIFICATION_CHANNEL_ENDPOINT = os.getenv("NOTIFICATION_CHANNEL_ENDPOINT", "")
GOOG_CHANNEL_ID_HEADER = "X-Goog-Channel-Id"
GOOG_RESOURCE_STATE_HEADER = "X-Goog-Resource-State"
WATCH_TTL = timedelta(hours=int(os.getenv("WATCH_TTL_HOURS", "24")))
# Re-register the channel this long before it expires; checked every WATCH_CHECK_PERIOD seconds
WATCH_RENEW_MARGIN = timedelta(minutes=int(os.getenv("WATCH_RENEW_MARGIN_MINUTES", "60")))
WATCH_CHECK_PERIOD = float(os.getenv("WATCH_CHECK_PERIOD", "60"))

# Poll loop
TICK_PERIOD = float(os.getenv("TICK_PERIOD", "1.0"))

# Cooldowns between repeated notifications of the same kind
START_COOLDOWN = timedelta(seconds=int(os.getenv("START_COOLDOWN_SECONDS", "300")))
ABSENCE_COOLDOWN = timedelta(seconds=int(os.getenv("ABSENCE_COOLDOWN_SECONDS", "300")))

# Hue agent (light sink)
HUE_AGENT_BASE_URL = os.getenv("HUE_AGENT_BASE_URL", "http://localhost:8000")
LIGHT_MIREK = _optional_int("LIGHT_MIREK")
LIGHT_BRIGHTNESS = _optional_int("LIGHT_BRIGHTNESS")
HTTP_TIMEOUT = float(os.getenv("HTTP_TIMEOUT", "5"))

# Webhook / health server
HTTP_HOST = os.getenv("HTTP_HOST", "localhost")
HTTP_PORT = int(os.getenv("HTTP_PORT", "8080"))

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
