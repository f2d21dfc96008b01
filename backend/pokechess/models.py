from pokechess import db

DEFAULT_RATING = 1200


class Account(db.Model):
    """Rating record for one display name. Rows are never deleted."""
    __tablename__ = 'account'
    id = db.Column(db.Integer, primary_key=True)
    username = db.Column(db.String(64), unique=True, nullable=False, index=True)
    rating = db.Column(db.Integer, default=DEFAULT_RATING, nullable=False)
    wins = db.Column(db.Integer, default=0, nullable=False)
    losses = db.Column(db.Integer, default=0, nullable=False)

    def to_dict(self):
        return {
            'username': self.username,
            'rating': self.rating,
            'wins': self.wins,
            'losses': self.losses,
        }
