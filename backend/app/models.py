from datetime import datetime, timezone

from app import db, bcrypt
from flask_login import UserMixin

DIFFICULTY_TIERS = ('easy', 'medium', 'hard')
# Upper bound of an Integer primary key
MAX_ID = 2 ** 31 - 1


def utcnow():
    # Stored naive, always UTC
    return datetime.now(timezone.utc).replace(tzinfo=None)


def id_in_range(value):
    return 0 < value <= MAX_ID


def _iso(value):
    return value.isoformat() if value else None


class User(UserMixin, db.Model):
    __tablename__ = 'user'
    id = db.Column(db.Integer, primary_key=True)
    username = db.Column(db.String(64), unique=True, nullable=False, index=True)
    password_hash = db.Column(db.String(256), nullable=False)
    # Running sum of final_score over this user's live play results
    total_points = db.Column(db.Integer, default=0, nullable=False, index=True)
    is_admin = db.Column(db.Boolean, default=False, nullable=False)
    created_at = db.Column(db.DateTime, default=utcnow, nullable=False)
    play_results = db.relationship('PlayResult', back_populates='user', lazy='dynamic')

    def set_password(self, password):
        self.password_hash = bcrypt.generate_password_hash(password).decode('utf-8')

    def check_password(self, password):
        return bcrypt.check_password_hash(self.password_hash, password)

    def to_dict(self):
        return {
            'id': self.id,
            'username': self.username,
            'total_points': self.total_points,
            'is_admin': self.is_admin,
        }


class Game(db.Model):
    __tablename__ = 'game'
    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(128), unique=True, nullable=False)
    category = db.Column(db.String(32), nullable=False, default='speed', index=True)
    difficulty = db.Column(db.String(16), nullable=False, default='medium')
    # Number of plays ever submitted; not reduced when a play is moderated away
    popularity = db.Column(db.Integer, default=0, nullable=False, index=True)
    created_at = db.Column(db.DateTime, default=utcnow, nullable=False)
    play_results = db.relationship('PlayResult', back_populates='game', lazy='dynamic')

    def to_dict(self):
        return {
            'id': self.id,
            'name': self.name,
            'category': self.category,
            'difficulty': self.difficulty,
            'popularity': self.popularity,
        }


class PlayResult(db.Model):
    """One completed game attempt. Rows are inserted once and never updated."""
    __tablename__ = 'play_result'
    __table_args__ = (
        db.Index('ix_play_result_user_created', 'user_id', 'created_at'),
        db.Index('ix_play_result_game_final', 'game_id', 'final_score'),
        db.Index('ix_play_result_user_game_final', 'user_id', 'game_id', 'final_score'),
        db.UniqueConstraint('user_id', 'submission_key', name='uq_play_result_user_submission_key'),
    )
    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey('user.id'), nullable=False)
    game_id = db.Column(db.Integer, db.ForeignKey('game.id'), nullable=False)
    speed_score = db.Column(db.Integer, nullable=False, default=0)
    accuracy_score = db.Column(db.Integer, nullable=False, default=0)
    consistency_score = db.Column(db.Integer, nullable=False, default=0)
    final_score = db.Column(db.Integer, nullable=False, index=True)
    difficulty = db.Column(db.String(16), nullable=False, default='medium')
    # Multiplier applied at composition time, kept for audit
    multiplier = db.Column(db.Float, nullable=False, default=1.0)
    time_taken = db.Column(db.Float, nullable=False, default=0)
    submission_key = db.Column(db.String(128), nullable=True)
    created_at = db.Column(db.DateTime, default=utcnow, nullable=False)

    user = db.relationship('User', back_populates='play_results')
    game = db.relationship('Game', back_populates='play_results')

    def to_dict(self):
        return {
            'id': self.id,
            'user_id': self.user_id,
            'game_id': self.game_id,
            'speed_score': self.speed_score,
            'accuracy_score': self.accuracy_score,
            'consistency_score': self.consistency_score,
            'final_score': self.final_score,
            'difficulty': self.difficulty,
            'multiplier': self.multiplier,
            'time_taken': self.time_taken,
            'created_at': _iso(self.created_at),
        }
