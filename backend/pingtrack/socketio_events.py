from flask import current_app
from flask_socketio import emit

from pingtrack import socketio

NAMESPACE = '/ws'


class SocketIOBroadcaster:
    """Publishes ping batches to every client connected on /ws."""

    def __init__(self, namespace: str = NAMESPACE):
        self.namespace = namespace

    def publish(self, event, payload) -> None:
        # socketio.emit since this runs from a background task
        socketio.emit(event, payload, namespace=self.namespace)


def _init_payload():
    scheduler = current_app.extensions.get('ping_scheduler')
    if scheduler is None:
        return {'servers': [], 'last': None}
    last = scheduler.last_batch
    return {
        'servers': [r.to_dict() for r in scheduler.roster],
        'last': last.to_message() if last else None,
    }


def handle_connect():
    emit('connected', {'message': 'Connected to /ws'})
    emit('init', _init_payload())


def handle_ping(data):
    emit('pong', data or {})


def register_socketio_handlers() -> None:
    """Register Socket.IO event handlers on the /ws namespace."""
    socketio.on_event('connect', handle_connect, namespace=NAMESPACE)
    socketio.on_event('ping', handle_ping, namespace=NAMESPACE)
