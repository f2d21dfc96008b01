"""Connection-facing service: owns the registry, connection contexts and delivery.

Socket.IO handlers parse payloads and call into :class:`Lobby`; it runs the
room transition, delivers the resulting events to open connections, then
performs the side effects (rating records, computer replies).
"""
import random
import threading
from functools import partial
from typing import Any, Dict, Iterable, Optional

from flask import current_app
from sqlalchemy.exc import SQLAlchemyError

from pokechess import db
from pokechess.services import rating
from pokechess.services.opponent import FlavorText, choose_move
from pokechess.services.registry import RoomRegistry
from pokechess.services.room import FIRST, SECOND, ConnectionContext, Envelope, Outcome, Room
from pokechess.services.rules import ChessRules
from pokechess.services.scheduler import schedule_computer_move


class Lobby:

    def __init__(self):
        self.app = None
        self.socketio = None
        self.registry: Optional[RoomRegistry] = None
        self.rules = ChessRules()
        self.rng = random.Random()
        self.connections: Dict[str, ConnectionContext] = {}
        self._connections_lock = threading.Lock()
        self.emit = None

    def init_app(self, app, socketio) -> None:
        self.app = app
        self.socketio = socketio
        self.registry = RoomRegistry(self._make_room)
        self.flavor = FlavorText(app.config.get('FLAVOR_TEXT_PATH'))
        self.connections = {}
        namespace = app.config.get('SOCKETIO_NAMESPACE', '/ws')

        def _emit(sid: str, event: str, payload: Dict[str, Any]) -> None:
            socketio.emit(event, payload, to=sid, namespace=namespace)

        self.emit = _emit
        app.extensions['pokechess_lobby'] = self

    def _make_room(self, key: str) -> Room:
        cfg = self.app.config
        return Room(
            key,
            self.rules,
            computer_prefix=cfg.get('COMPUTER_ROOM_PREFIX', 'ai'),
            anonymous_name=cfg.get('ANONYMOUS_NAME', 'Anonymous'),
            spectator_label=cfg.get('SPECTATOR_LABEL', 'Spectator'),
        )

    # ---- connection lifecycle ----

    def connect(self, sid: str) -> ConnectionContext:
        with self._connections_lock:
            ctx = self.connections.get(sid)
            if ctx is None:
                ctx = ConnectionContext(sid=sid)
                self.connections[sid] = ctx
            return ctx

    def disconnect(self, sid: str) -> None:
        with self._connections_lock:
            ctx = self.connections.pop(sid, None)
        if ctx is None:
            return
        ctx.open = False
        self._leave_current(ctx)

    def _leave_current(self, ctx: ConnectionContext) -> None:
        key = ctx.room_key
        if not key:
            return
        room = self.registry.get(key)
        if room is None:
            ctx.room_key = None
            ctx.role = None
            return
        if room.leave(ctx) and self.registry.remove(key):
            current_app.logger.info(f"[room-closed] room={key}")

    # ---- commands ----

    def join(self, ctx: ConnectionContext, room_key: str, name: str, character: Any = None) -> None:
        if ctx.room_key == room_key:
            room = self.registry.get(room_key)
            if room is not None:
                # Same room again: keep the seat, resend the snapshot
                self._settle(room, room.resend_snapshot(ctx))
                return
        if ctx.room_key is not None:
            self._leave_current(ctx)
        outcome = None
        while outcome is None:
            room = self.registry.get_or_create(room_key)
            # A discarded room was emptied between lookup and join; fetch a fresh one
            outcome = room.join(ctx, name, character)
        current_app.logger.info(f"[join] room={room_key} sid={ctx.sid} role={ctx.role} name={name}")
        self._settle(room, outcome)

    def move(self, ctx: ConnectionContext, candidate: Any) -> None:
        room = self._room_of(ctx)
        if room is None:
            return
        outcome = room.move(ctx, candidate)
        if outcome.messages:
            current_app.logger.info(f"[move] room={room.key} sid={ctx.sid} candidate={candidate}")
        self._settle(room, outcome)

    def surrender(self, ctx: ConnectionContext) -> None:
        room = self._room_of(ctx)
        if room is None:
            return
        outcome = room.surrender(ctx)
        if outcome.messages:
            current_app.logger.info(f"[surrender] room={room.key} sid={ctx.sid} role={ctx.role}")
        self._settle(room, outcome)

    def reset(self, ctx: ConnectionContext) -> None:
        room = self._room_of(ctx)
        if room is None:
            return
        outcome = room.reset(ctx)
        if outcome.messages:
            current_app.logger.info(f"[reset] room={room.key} sid={ctx.sid}")
        self._settle(room, outcome)

    def chat(self, ctx: ConnectionContext, text: str) -> None:
        room = self._room_of(ctx)
        if room is None:
            return
        self._settle(room, room.chat(ctx, text))

    def play_computer_move(self, room_key: str, expected_turn: str = SECOND) -> None:
        room = self.registry.get(room_key)
        if room is None:
            current_app.logger.info(f"[computer-skip] room={room_key} gone")
            return
        outcome = room.computer_move(expected_turn, partial(choose_move, rng=self.rng))
        if outcome is None:
            current_app.logger.info(f"[computer-skip] room={room_key} no longer {expected_turn} to move")
            return
        self._settle(room, outcome)
        self._send_flavor_text(room)

    # ---- side effects ----

    def _room_of(self, ctx: ConnectionContext) -> Optional[Room]:
        if not ctx.room_key:
            return None
        return self.registry.get(ctx.room_key)

    def _settle(self, room: Room, outcome: Outcome) -> None:
        self.deliver(outcome.messages)
        if outcome.seated_name:
            self._ensure_account(outcome.seated_name)
        if outcome.result:
            self._record_result(room.key, *outcome.result)
        if outcome.computer_turn:
            schedule_computer_move(self.app, self.socketio, self.play_computer_move, room.key, SECOND)

    def deliver(self, messages: Iterable[Envelope]) -> None:
        """Send each envelope to its connection, skipping closed ones."""
        for envelope in messages:
            if not envelope.conn.open:
                continue
            self.emit(envelope.conn.sid, envelope.event, envelope.payload)

    def _ensure_account(self, name: str) -> None:
        try:
            rating.get_or_create(name)
        except SQLAlchemyError:
            db.session.rollback()
            current_app.logger.exception(f"[rating-fail] could not create record for {name}")

    def _record_result(self, room_key: str, winner: str, loser: str) -> None:
        try:
            won, lost = rating.apply_result(winner, loser, k=current_app.config.get('ELO_K_FACTOR', rating.K_FACTOR))
        except SQLAlchemyError:
            db.session.rollback()
            current_app.logger.exception(f"[rating-fail] room={room_key} winner={winner} loser={loser}")
            return
        current_app.logger.info(
            f"[rating] room={room_key} winner={winner}:{won.rating} loser={loser}:{lost.rating}"
        )

    def _send_flavor_text(self, room: Room) -> None:
        first = room.seat_connection(FIRST)
        if first is None or not first.open:
            return
        try:
            line = self.flavor.random_line(self.rng)
        except (OSError, UnicodeDecodeError):
            current_app.logger.exception(f"[flavor-fail] room={room.key} path={self.flavor.path}")
            return
        if line:
            self.emit(first.sid, 'flavor_text', {'text': line})
