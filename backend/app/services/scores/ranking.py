from typing import List

from sqlalchemy import func, select

from app import db
from app.models import Game, PlayResult, User, id_in_range
from .errors import NotFound


def parse_limit(raw, default: int = 100, cap: int = 1000) -> int:
    """Parse a ``limit`` query value; junk or < 1 gives the default, values above ``cap`` are capped."""
    try:
        limit = int(raw)
    except (TypeError, ValueError):
        limit = default
    if limit < 1:
        limit = default
    return min(limit, cap)


def parse_offset(raw) -> int:
    try:
        return max(0, int(raw))
    except (TypeError, ValueError):
        return 0


def get_user(user_id: int) -> User:
    user = db.session.get(User, user_id) if id_in_range(user_id) else None
    if not user:
        raise NotFound('User not found')
    return user


def _count_above(points: int) -> int:
    return db.session.execute(
        select(func.count(User.id)).where(User.total_points > points)
    ).scalar_one()


def rank_of(user_id: int) -> int:
    """1 + number of users with strictly more points. Equal totals share a rank."""
    return 1 + _count_above(get_user(user_id).total_points)


def points_to_next_rank(user_id: int) -> int:
    points = get_user(user_id).total_points
    next_total = db.session.execute(
        select(func.min(User.total_points)).where(User.total_points > points)
    ).scalar_one()
    return next_total - points if next_total is not None else 0


def user_rank(user_id: int) -> dict:
    user = get_user(user_id)
    return {
        'rank': rank_of(user.id),
        'total_points': user.total_points,
        'points_to_next_rank': points_to_next_rank(user.id),
    }


def global_leaderboard(limit: int, offset: int = 0) -> List[dict]:
    rows = db.session.execute(
        select(User.id, User.username, User.total_points)
        .order_by(User.total_points.desc(), User.created_at, User.id)
        .offset(offset)
        .limit(limit)
    ).all()
    board = []
    rank = None
    previous = None
    for position, (user_id, username, points) in enumerate(rows, start=offset + 1):
        if rank is None:
            rank = 1 + _count_above(points)
        elif points != previous:
            rank = position
        previous = points
        board.append({
            'rank': rank,
            'user_id': user_id,
            'username': username,
            'total_points': points,
        })
    return board


def game_leaderboard(game_id: int, limit: int, offset: int = 0) -> List[dict]:
    """A game's plays by final score; equal scores list the earliest play first."""
    if not id_in_range(game_id) or not db.session.get(Game, game_id):
        raise NotFound('Game not found')
    rows = db.session.execute(
        select(PlayResult, User.username)
        .join(User, PlayResult.user_id == User.id)
        .where(PlayResult.game_id == game_id)
        .order_by(PlayResult.final_score.desc(), PlayResult.created_at, PlayResult.id)
        .offset(offset)
        .limit(limit)
    ).all()
    return [
        {
            'rank': position,
            'score_id': play.id,
            'user_id': play.user_id,
            'username': username,
            'final_score': play.final_score,
            'created_at': play.created_at.isoformat() if play.created_at else None,
        }
        for position, (play, username) in enumerate(rows, start=offset + 1)
    ]
