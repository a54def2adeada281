"""
Push relay for the system update log.

The relay is a subscriber of the log, not a second data path: every record the
SystemUpdateService durably appends is re-emitted to connected Socket.IO clients.
"""
from flask import current_app, request

from tracker.logging_config import get_logger

logger = get_logger(__name__)

SYSTEM_UPDATE_EVENT = "system_update"
SUBSCRIBERS_KEY = "system_update_subscribers"


def make_socketio_subscriber(socketio, event_name=SYSTEM_UPDATE_EVENT):
    def broadcast_system_update(payload):
        socketio.emit(event_name, payload)
        logger.debug("System update broadcast", update_id=payload.get("id"), event_name=event_name)
    return broadcast_system_update


def register_subscriber(app, subscriber):
    app.extensions.setdefault(SUBSCRIBERS_KEY, []).append(subscriber)


def get_subscribers():
    return list(current_app.extensions.get(SUBSCRIBERS_KEY, []))


def init_relay(app, socketio):
    """Wire the Socket.IO fan-out onto the system update log for this app."""
    register_subscriber(app, make_socketio_subscriber(socketio))

    @socketio.on("connect")
    def handle_connect(auth=None):
        logger.info(
            "Terminal connected",
            sid=request.sid,
            user_id=request.headers.get("X-User-Id", "anonymous"),
            role=request.headers.get("X-User-Role", "operator"),
        )

    @socketio.on("disconnect")
    def handle_disconnect(*args):
        logger.info("Terminal disconnected", sid=request.sid)
