from flask import current_app, request
from flask_socketio import join_room, leave_room
from typing import Callable, Dict, Optional
import threading

from turfwar import socketio
from turfwar.errors import GameError
from turfwar.realtime.packet_type import PacketType

NAMESPACE = '/ws'


def user_room(user_id: int) -> str:
    return f"user:{user_id}"


class PacketProcessor:
    """Routes inbound packets to handlers and sends packets to sockets and users.

    Handlers are called as ``handler(packet, sid)``. A ``GameError`` raised by a
    handler is answered with an error message to the sending socket; any other
    exception is logged and answered with a generic server error message.
    """

    def __init__(self):
        self.handlers: Dict[PacketType, Callable] = {}
        self._sessions: Dict[str, int] = {}
        self._lock = threading.Lock()

    def reset(self) -> None:
        with self._lock:
            self._sessions = {}

    def register_handler(self, packet_type: PacketType, handler: Callable, namespace: str = NAMESPACE) -> None:
        self.handlers[packet_type] = handler

        def _dispatch(data=None):
            self.receive_packet(packet_type, data)

        socketio.on_event(packet_type.value, _dispatch, namespace=namespace)

    def receive_packet(self, packet_type: PacketType, packet) -> None:
        sid = request.sid  # type: ignore
        handler = self.handlers.get(packet_type)
        if handler is None:
            current_app.logger.warning(f"[packet-unhandled] type={packet_type.value} sid={sid}")
            return
        if not isinstance(packet, dict):
            packet = {}
        try:
            handler(packet, sid)
        except GameError as exc:
            current_app.logger.info(f"[packet-rejected] type={packet_type.value} sid={sid} reason={exc.message}")
            self.send_message(exc.message, error=True, dialog=True, sid=sid)
        except Exception:
            current_app.logger.exception(f"[packet-error] type={packet_type.value} sid={sid}")
            self.send_message('The request failed, a server error occurred.', error=True, dialog=True, sid=sid)

    # ---- Sessions ----

    def authenticate(self, sid: str, user_id: int) -> None:
        with self._lock:
            self._sessions[sid] = user_id
        join_room(user_room(user_id), sid=sid, namespace=NAMESPACE)

    def end_session(self, sid: str) -> Optional[int]:
        with self._lock:
            user_id = self._sessions.pop(sid, None)
        if user_id is not None:
            try:
                leave_room(user_room(user_id), sid=sid, namespace=NAMESPACE)
            except (KeyError, ValueError):
                pass
        return user_id

    def get_session_user(self, sid: str) -> Optional[int]:
        with self._lock:
            return self._sessions.get(sid)

    def is_user_online(self, user_id: int) -> bool:
        with self._lock:
            return user_id in self._sessions.values()

    # ---- Sending ----

    def send_packet(self, packet_type: PacketType, payload, sid: str) -> None:
        socketio.emit(packet_type.value, payload, to=sid, namespace=NAMESPACE)

    def send_packet_user(self, packet_type: PacketType, payload, user_id: int) -> None:
        socketio.emit(packet_type.value, payload, to=user_room(user_id), namespace=NAMESPACE)

    def send_message(self, message: str, error: bool = False, dialog: bool = False, toast: bool = False,
                     ttl: Optional[int] = None, sid: Optional[str] = None, user_id: Optional[int] = None,
                     **extra) -> None:
        payload = {'message': message, 'error': error, 'dialog': dialog, 'toast': toast}
        if ttl is not None:
            payload['ttl'] = ttl
        payload.update(extra)
        if sid is not None:
            self.send_packet(PacketType.MESSAGE_RESPONSE, payload, sid)
        elif user_id is not None:
            self.send_packet_user(PacketType.MESSAGE_RESPONSE, payload, user_id)


packet_processor = PacketProcessor()
