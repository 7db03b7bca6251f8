# huewatch/__main__.py

import logging
import signal
import threading

from werkzeug.serving import make_server

from .config import (
    CALENDAR_ID,
    HTTP_HOST,
    HTTP_PORT,
    HUE_AGENT_BASE_URL,
    LIGHT_BRIGHTNESS,
    LIGHT_MIREK,
    LOG_LEVEL,
    NOTIFICATION_CHANNEL_ENDPOINT,
    WATCH_CHECK_PERIOD,
    WATCH_TTL,
)
from .google_calendar import GoogleCalendarSource, SourceError, WatchKeeper, get_credentials
from .light import HueAgentLight, LightSettings, NotifierRegistry
from .scheduler import Scheduler
from .server import create_app

logger = logging.getLogger("huewatch")


def main():
    logging.basicConfig(
        level=LOG_LEVEL,
        format="%(asctime)s %(levelname)s %(name)s %(message)s",
    )

    # Calendar access (fatal if credentials are unusable)
    source = GoogleCalendarSource(get_credentials())

    # Sinks, called in registration order
    notifiers = NotifierRegistry()
    notifiers.register(
        HueAgentLight(HUE_AGENT_BASE_URL, LightSettings(mirek=LIGHT_MIREK, brightness=LIGHT_BRIGHTNESS))
    )

    scheduler = Scheduler(source, CALENDAR_ID, notifiers)
    try:
        scheduler.sync()
    except SourceError as e:
        # day marker is still unset, so the first tick syncs again
        logger.error(f"[Main] Initial sync failed: {e}")

    watch = None
    if NOTIFICATION_CHANNEL_ENDPOINT:
        watch = WatchKeeper(source, CALENDAR_ID, NOTIFICATION_CHANNEL_ENDPOINT, WATCH_TTL)
    app = create_app(scheduler, watch.channel_id if watch else lambda: None)
    server = make_server(HTTP_HOST, HTTP_PORT, app, threaded=True)

    stop = threading.Event()

    def request_stop(signum, _frame):
        logger.info(f"[Main] Received signal {signum}, shutting down...")
        stop.set()

    signal.signal(signal.SIGINT, request_stop)
    signal.signal(signal.SIGTERM, request_stop)

    http_thread = threading.Thread(target=server.serve_forever, name="huewatch-http", daemon=True)
    http_thread.start()
    logger.info(f"[Main] Serving webhook on http://{HTTP_HOST}:{HTTP_PORT}")

    try:
        # Google posts a "sync" message as soon as the channel exists, so serve first.
        if watch:
            watch.renew()
        else:
            logger.warning("[Main] NOTIFICATION_CHANNEL_ENDPOINT not set; webhook calls will be rejected")

        scheduler.start()
        logger.info("[Main] huewatch started. Press Ctrl+C to exit.")
        while not stop.wait(WATCH_CHECK_PERIOD):
            if watch is None:
                continue
            try:
                watch.renew()
            except SourceError as e:
                logger.error(f"[Main] Could not renew watch channel, retrying: {e}")
    finally:
        server.shutdown()
        scheduler.stop(timeout=5)
        if watch is not None:
            try:
                watch.close()
            except SourceError as e:
                logger.error(f"[Main] Could not stop watch channel: {e}")
        logger.info("[Main] Exiting...")


if __name__ == "__main__":
    main()
