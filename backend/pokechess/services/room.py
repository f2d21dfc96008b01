"""One match: two seats, spectators, position, history and turn.

Every public method runs under the room's lock and returns an :class:`Outcome`
describing what to send and which side effects to run. Delivery, rating writes
and computer replies are left to the caller so a transition never waits on a
socket or the database.
"""
import threading
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Tuple

from pokechess.services.rules import IllegalMoveError

FIRST = 'w'
SECOND = 'b'
SPECTATOR = 's'
SEATS = (FIRST, SECOND)

WAITING = 'waiting'
ACTIVE = 'active'
CONCLUDED = 'concluded'


def other_seat(seat: str) -> str:
    return SECOND if seat == FIRST else FIRST


@dataclass(eq=False)
class ConnectionContext:
    """Per-socket state: which room and role this connection holds."""
    sid: str
    room_key: Optional[str] = None
    role: Optional[str] = None
    open: bool = True


@dataclass
class Envelope:
    conn: ConnectionContext
    event: str
    payload: Dict[str, Any]


@dataclass
class Outcome:
    messages: List[Envelope] = field(default_factory=list)
    # (winner name, loser name) when the result should be rated
    result: Optional[Tuple[str, str]] = None
    # Name seated by a join; its rating record must exist
    seated_name: Optional[str] = None
    computer_turn: bool = False


@dataclass
class Seat:
    conn: Optional[ConnectionContext] = None
    name: Optional[str] = None
    character: Any = None

    def clear(self) -> None:
        self.conn = None
        self.name = None
        self.character = None


class Room:

    def __init__(self, key: str, rules, computer_prefix: str = 'ai',
                 anonymous_name: str = 'Anonymous', spectator_label: str = 'Spectator'):
        self.key = key
        self.rules = rules
        self.computer_prefix = computer_prefix
        self.anonymous_name = anonymous_name
        self.spectator_label = spectator_label
        self.position = rules.initial_position()
        self.history: List[Dict[str, Any]] = []
        self.seats = {FIRST: Seat(), SECOND: Seat()}
        self.spectators = set()
        self.winner: Optional[str] = None
        self.surrendered = False
        # Set by the registry once the room is dropped
        self.discarded = False
        self.lock = threading.RLock()

    @property
    def is_computer_room(self) -> bool:
        return bool(self.computer_prefix) and self.key.startswith(self.computer_prefix)

    @property
    def turn(self) -> str:
        return self.rules.current_turn(self.position)

    @property
    def state(self) -> str:
        if self.winner or self.surrendered or self.rules.is_game_over(self.position):
            return CONCLUDED
        needed = 1 if self.is_computer_room else 2
        if self.seated_count() < needed:
            return WAITING
        return ACTIVE

    def seated_count(self) -> int:
        return sum(1 for seat in self.seats.values() if seat.conn is not None)

    def is_empty(self) -> bool:
        with self.lock:
            return self.seated_count() == 0 and not self.spectators

    def has_players(self) -> bool:
        with self.lock:
            return self.seated_count() > 0

    def seat_connection(self, seat: str) -> Optional[ConnectionContext]:
        with self.lock:
            return self.seats[seat].conn

    def members(self) -> List[ConnectionContext]:
        conns = [self.seats[s].conn for s in SEATS if self.seats[s].conn is not None]
        return conns + list(self.spectators)

    # ---- transitions ----

    def join(self, conn: ConnectionContext, name: str, character: Any = None) -> Optional[Outcome]:
        """Seat ``conn`` or add it as a spectator. ``None`` if the room was discarded."""
        with self.lock:
            if self.discarded:
                return None
            role = self._assign(conn, name, character)
            conn.room_key = self.key
            conn.role = role

            outcome = Outcome()
            if role in SEATS:
                outcome.seated_name = name
            outcome.messages.append(Envelope(conn, 'init_snapshot', self._snapshot(role)))

            if role in SEATS:
                opponent = self.seats[other_seat(role)].conn
                if opponent is not None:
                    outcome.messages.append(Envelope(opponent, 'opponent_joined', {
                        'character': character,
                        'username': name,
                    }))
            return outcome

    def resend_snapshot(self, conn: ConnectionContext) -> Outcome:
        """Snapshot for a member asking again; seat and game are untouched."""
        outcome = Outcome()
        with self.lock:
            if self._is_member(conn):
                outcome.messages.append(Envelope(conn, 'init_snapshot', self._snapshot(conn.role)))
            return outcome

    def move(self, conn: ConnectionContext, candidate: Any) -> Outcome:
        outcome = Outcome()
        with self.lock:
            if not self._holds_seat(conn) or self.state == CONCLUDED:
                return outcome
            if self.turn != conn.role:
                return outcome
            try:
                self.position, record = self.rules.apply_move(self.position, candidate)
            except IllegalMoveError:
                outcome.messages.append(Envelope(conn, 'error', {'message': 'Invalid move'}))
                return outcome
            self._record_move(record, outcome)
            if self.is_computer_room and self.turn == SECOND and not self.rules.is_game_over(self.position):
                outcome.computer_turn = True
            return outcome

    def computer_move(self, expected_turn: str, chooser: Callable) -> Optional[Outcome]:
        """Play the scripted side. ``None`` when the room moved on in the meantime."""
        with self.lock:
            if self.discarded or not self.is_computer_room or self.surrendered:
                return None
            if self.turn != expected_turn or self.rules.is_game_over(self.position):
                return None
            choice = chooser(self.rules.legal_moves(self.position))
            if choice is None:
                return None
            self.position, record = self.rules.apply_move(self.position, choice)
            outcome = Outcome()
            self._record_move(record, outcome)
            return outcome

    def surrender(self, conn: ConnectionContext) -> Outcome:
        outcome = Outcome()
        with self.lock:
            if not self._holds_seat(conn) or self.state == CONCLUDED:
                return outcome
            self.winner = other_seat(conn.role)
            self.surrendered = True
            outcome.result = self._rated_pair(self.winner)
            self._broadcast(outcome, 'game_update', {
                'fen': self.rules.serialize(self.position),
                'history': list(self.history),
                'turn': self.turn,
                'is_surrender': True,
                'winner': self.winner,
            })
            return outcome

    def reset(self, conn: ConnectionContext) -> Outcome:
        outcome = Outcome()
        with self.lock:
            if not self._is_member(conn):
                return outcome
            self.position = self.rules.initial_position()
            self.history = []
            self.winner = None
            self.surrendered = False
            self._broadcast(outcome, 'game_update', {
                'fen': self.rules.serialize(self.position),
                'history': [],
                'turn': FIRST,
            })
            return outcome

    def chat(self, conn: ConnectionContext, text: str) -> Outcome:
        outcome = Outcome()
        with self.lock:
            if not self._is_member(conn):
                return outcome
            if conn.role in SEATS:
                label = self.seats[conn.role].name or self.anonymous_name
            else:
                label = self.spectator_label
            self._broadcast(outcome, 'chat', {'username': label, 'text': text})
            return outcome

    def leave(self, conn: ConnectionContext) -> bool:
        """Vacate ``conn``'s seat or spectator slot. Returns True once the room is empty."""
        with self.lock:
            for seat in self.seats.values():
                if seat.conn is conn:
                    seat.clear()
            self.spectators.discard(conn)
            if conn.room_key == self.key:
                conn.room_key = None
                conn.role = None
            return self.is_empty()

    # ---- internals ----

    def _assign(self, conn, name, character) -> str:
        open_seats = (FIRST,) if self.is_computer_room else SEATS
        for seat_name in open_seats:
            seat = self.seats[seat_name]
            if seat.conn is None:
                seat.conn = conn
                seat.name = name
                seat.character = character
                return seat_name
        self.spectators.add(conn)
        return SPECTATOR

    def _holds_seat(self, conn) -> bool:
        return (not self.discarded and conn.role in SEATS
                and self.seats[conn.role].conn is conn)

    def _is_member(self, conn) -> bool:
        return not self.discarded and (self._holds_seat(conn) or conn in self.spectators)

    def _record_move(self, record, outcome: Outcome) -> None:
        self.history.append(record)
        payload = {
            'fen': self.rules.serialize(self.position),
            'last_move': record,
            'history': list(self.history),
            'turn': self.turn,
        }
        if self.rules.is_checkmate(self.position):
            self.winner = record['color']
            payload['winner'] = self.winner
            outcome.result = self._rated_pair(self.winner)
        self._broadcast(outcome, 'game_update', payload)

    def _rated_pair(self, winner_seat: str) -> Optional[Tuple[str, str]]:
        if self.is_computer_room:
            return None
        winner = self.seats[winner_seat].name
        loser = self.seats[other_seat(winner_seat)].name
        if not winner or not loser or winner == loser:
            return None
        if self.anonymous_name in (winner, loser):
            return None
        return winner, loser

    def _broadcast(self, outcome: Outcome, event: str, payload: Dict[str, Any]) -> None:
        for member in self.members():
            outcome.messages.append(Envelope(member, event, payload))

    def _snapshot(self, role: str) -> Dict[str, Any]:
        opponent = self.seats[SECOND if role == FIRST else FIRST]
        return {
            'fen': self.rules.serialize(self.position),
            'color': role,
            'history': list(self.history),
            'turn': self.turn,
            'opponent_character': opponent.character if opponent.conn is not None else None,
            'opponent_username': opponent.name if opponent.conn is not None else None,
            'players': {seat: self.seats[seat].name for seat in SEATS},
            'state': self.state,
            'winner': self.winner,
        }
