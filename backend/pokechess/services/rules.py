"""Adapter over the ``chess`` library.

Rooms never inspect a position directly; they go through :class:`ChessRules`
so the legality oracle stays swappable.
"""
from typing import Any, Dict, List, Tuple

import chess

WHITE = 'w'
BLACK = 'b'


class IllegalMoveError(ValueError):
    """Raised for a candidate that is malformed or not legal in the position."""


class ChessRules:

    def initial_position(self) -> chess.Board:
        return chess.Board()

    def serialize(self, position: chess.Board) -> str:
        return position.fen()

    def deserialize(self, fen: str) -> chess.Board:
        return chess.Board(fen)

    def current_turn(self, position: chess.Board) -> str:
        return WHITE if position.turn == chess.WHITE else BLACK

    def is_checkmate(self, position: chess.Board) -> bool:
        return position.is_checkmate()

    def is_game_over(self, position: chess.Board) -> bool:
        return position.is_game_over()

    def legal_moves(self, position: chess.Board) -> List[Dict[str, Any]]:
        """Every legal move as a verbose record, captures carry ``captured``."""
        return [self._describe(position, move) for move in position.legal_moves]

    def apply_move(self, position: chess.Board, candidate: Any) -> Tuple[chess.Board, Dict[str, Any]]:
        """Validate ``candidate`` and return ``(new_position, move_record)``.

        The input position is left untouched.
        """
        move = self._parse(position, candidate)
        if move not in position.legal_moves:
            raise IllegalMoveError(f"Illegal move {move.uci()} in {position.fen()}")
        record = self._describe(position, move)
        board = position.copy()
        board.push(move)
        record['after'] = board.fen()
        return board, record

    def _parse(self, position: chess.Board, candidate: Any) -> chess.Move:
        if not isinstance(candidate, dict):
            raise IllegalMoveError('Move must be an object')
        try:
            from_square = chess.parse_square(str(candidate.get('from', '')).lower())
            to_square = chess.parse_square(str(candidate.get('to', '')).lower())
        except ValueError as exc:
            raise IllegalMoveError(f"Bad square in {candidate!r}") from exc

        # Promotion is only read for a pawn reaching the last rank; queen by default
        promotion = None
        if position.piece_type_at(from_square) == chess.PAWN and chess.square_rank(to_square) in (0, 7):
            symbol = candidate.get('promotion') or 'q'
            try:
                promotion = chess.Piece.from_symbol(str(symbol).lower()).piece_type
            except ValueError as exc:
                raise IllegalMoveError(f"Bad promotion piece {symbol!r}") from exc
        return chess.Move(from_square, to_square, promotion=promotion)

    def _describe(self, position: chess.Board, move: chess.Move) -> Dict[str, Any]:
        piece = position.piece_at(move.from_square)
        record = {
            'color': WHITE if piece.color == chess.WHITE else BLACK,
            'from': chess.square_name(move.from_square),
            'to': chess.square_name(move.to_square),
            'piece': piece.symbol().lower(),
            'san': position.san(move),
            'lan': move.uci(),
            'before': position.fen(),
        }
        if position.is_capture(move):
            if position.is_en_passant(move):
                record['captured'] = 'p'
            else:
                record['captured'] = position.piece_at(move.to_square).symbol().lower()
        if move.promotion:
            record['promotion'] = chess.piece_symbol(move.promotion)
        return record
