# huewatch/server.py

from __future__ import annotations

import logging
from typing import Callable, Optional

from flask import Flask, request

from .config import GOOG_CHANNEL_ID_HEADER, GOOG_RESOURCE_STATE_HEADER
from .google_calendar import SourceError
from .scheduler import Scheduler

logger = logging.getLogger(__name__)


def create_app(scheduler: Scheduler, channel_id: Callable[[], Optional[str]]) -> Flask:
    """
    Routes:
      POST /notify (and /webhook)  Google push notification -> resync
      GET  /healthcheck            liveness probe

    channel_id returns the id of the currently registered watch channel,
    or None if there is none (every notification is then rejected).
    """
    app = Flask(__name__)

    @app.route("/notify", methods=["POST"])
    @app.route("/webhook", methods=["POST"])
    def notify():
        expected = channel_id()
        received = request.headers.get(GOOG_CHANNEL_ID_HEADER)
        state = request.headers.get(GOOG_RESOURCE_STATE_HEADER, "")
        if not expected or received != expected:
            if state == "sync":
                # Google's handshake for a channel whose registration has not returned yet.
                logger.debug(f"[Webhook] Ignoring sync message for channel {received!r}")
                return "403. Forbidden", 403
            logger.warning(
                f"[Webhook] 403 Forbidden: channel id {received!r} does not match or is missing"
            )
            return "403. Forbidden", 403

        logger.info(f"[Webhook] Calendar change notification ({state or 'unknown state'})")
        try:
            scheduler.sync()
        except SourceError as e:
            logger.error(f"[Webhook] Error syncing calendar: {e}")
        return "200 OK", 200

    @app.route("/healthcheck", methods=["GET"])
    def healthcheck():
        return "ok", 200

    return app
