import math
import threading
from typing import List, Tuple

from sqlalchemy.exc import IntegrityError

from pokechess import db
from pokechess.models import Account

K_FACTOR = 32
SCALE = 400

# Serializes apply_result so both deltas come from one consistent snapshot
_apply_lock = threading.Lock()


def expected_score(rating: float, opponent_rating: float) -> float:
    return 1 / (1 + 10 ** ((opponent_rating - rating) / SCALE))


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def rating_deltas(winner_rating: int, loser_rating: int, k: int = K_FACTOR) -> Tuple[int, int]:
    """Return the new ``(winner, loser)`` ratings after a decisive game."""
    new_winner = _round_half_up(winner_rating + k * (1 - expected_score(winner_rating, loser_rating)))
    new_loser = _round_half_up(loser_rating + k * (0 - expected_score(loser_rating, winner_rating)))
    return new_winner, new_loser


def get_or_create(name: str) -> Account:
    """Fetch the record for ``name``, committing a default one on first reference."""
    account = Account.query.filter_by(username=name).first()
    if account is not None:
        return account
    account = Account(username=name)
    db.session.add(account)
    try:
        db.session.commit()
    except IntegrityError:
        # Another handler created it first
        db.session.rollback()
        account = Account.query.filter_by(username=name).one()
    return account


def apply_result(winner: str, loser: str, k: int = K_FACTOR) -> Tuple[Account, Account]:
    """Record a decisive result: ratings move, winner gets a win, loser a loss."""
    with _apply_lock:
        won = get_or_create(winner)
        lost = get_or_create(loser)
        try:
            won.rating, lost.rating = rating_deltas(won.rating, lost.rating, k)
            won.wins = (won.wins or 0) + 1
            lost.losses = (lost.losses or 0) + 1
            db.session.add(won)
            db.session.add(lost)
            db.session.commit()
        except Exception:
            db.session.rollback()
            raise
    return won, lost


def top_n(n: int) -> List[Account]:
    """Highest rated first; ties keep insertion order."""
    return Account.query.order_by(Account.rating.desc(), Account.id.asc()).limit(n).all()
