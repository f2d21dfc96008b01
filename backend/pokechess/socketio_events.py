from flask_socketio import emit
from flask import current_app, request
from pokechess import socketio, lobby
from typing import Any, Dict, Optional
import json

NAME_MAX_LEN = 64


def _get_sid() -> str:
    # type: ignore: request.sid exists in Socket.IO context
    return request.sid  # type: ignore


def _field(data: Dict[str, Any], *names: str) -> Any:
    """First present value among ``names``; raw clients use camelCase."""
    for name in names:
        if data.get(name) is not None:
            return data[name]
    return None


def _as_payload(kind: str, data: Any) -> Optional[Dict[str, Any]]:
    if data is None:
        return {}
    if isinstance(data, dict):
        return data
    current_app.logger.warning(f"[malformed] sid={_get_sid()} kind={kind} payload={data!r}")
    return None


def handle_connect(auth=None):
    lobby.connect(_get_sid())
    emit('connected', {'message': 'Connected to /ws'})


def handle_disconnect(reason=None):
    lobby.disconnect(_get_sid())


def handle_join_room(data=None):
    data = _as_payload('join_room', data)
    if data is None:
        return
    room_key = _field(data, 'room_key', 'roomId')
    if not isinstance(room_key, str) or not room_key:
        current_app.logger.warning(f"[malformed] sid={_get_sid()} join_room without room_key")
        return
    # Names are rating keys: used verbatim, over-long ones refused
    name = _field(data, 'display_name', 'username')
    if not isinstance(name, str) or not name.strip():
        name = current_app.config.get('ANONYMOUS_NAME', 'Anonymous')
    if len(name) > NAME_MAX_LEN:
        current_app.logger.warning(f"[malformed] sid={_get_sid()} display_name longer than {NAME_MAX_LEN}")
        return
    character = data.get('character')
    lobby.join(lobby.connect(_get_sid()), room_key, name, character)


def handle_move(data=None):
    data = _as_payload('move', data)
    if data is None:
        return
    lobby.move(lobby.connect(_get_sid()), data.get('move'))


def handle_surrender(data=None):
    lobby.surrender(lobby.connect(_get_sid()))


def handle_reset(data=None):
    lobby.reset(lobby.connect(_get_sid()))


def handle_chat(data=None):
    data = _as_payload('chat', data)
    if data is None:
        return
    text = data.get('text')
    if not isinstance(text, str):
        current_app.logger.warning(f"[malformed] sid={_get_sid()} chat without text")
        return
    lobby.chat(lobby.connect(_get_sid()), text)


_DISPATCH = {
    'join_room': handle_join_room,
    'move': handle_move,
    'surrender': handle_surrender,
    'reset': handle_reset,
    'chat': handle_chat,
}


def handle_message(raw=None):
    """Envelope form used by plain WebSocket clients: ``{"type": "MOVE", ...}``."""
    data = raw
    if isinstance(raw, (str, bytes)):
        try:
            data = json.loads(raw)
        except ValueError:
            current_app.logger.warning(f"[malformed] sid={_get_sid()} unparseable message")
            return
    if not isinstance(data, dict) or not isinstance(data.get('type'), str):
        current_app.logger.warning(f"[malformed] sid={_get_sid()} message without type")
        return
    handler = _DISPATCH.get(data['type'].lower().replace('-', '_'))
    if handler is None:
        current_app.logger.warning(f"[malformed] sid={_get_sid()} unknown type={data['type']}")
        return
    handler(data)


def register_socketio_handlers(namespace: str = '/ws') -> None:
    """Register Socket.IO event handlers on ``namespace``."""
    socketio.on_event('connect', handle_connect, namespace=namespace)
    socketio.on_event('disconnect', handle_disconnect, namespace=namespace)
    socketio.on_event('message', handle_message, namespace=namespace)
    for event, handler in _DISPATCH.items():
        socketio.on_event(event, handler, namespace=namespace)
