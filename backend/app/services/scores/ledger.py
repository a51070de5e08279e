from typing import List, Optional, Tuple

from flask import current_app
from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import joinedload

from app import db
from app.models import Game, PlayResult, id_in_range
from .composer import ComposedScore
from .errors import NotFound, StorageFailure
from .normalizer import round_half_up


def find_game(game_id: int) -> Game:
    game = db.session.get(Game, game_id) if id_in_range(game_id) else None
    if not game:
        raise NotFound('Game not found')
    return game


def get_play(play_id: int) -> PlayResult:
    play = db.session.get(PlayResult, play_id) if id_in_range(play_id) else None
    if not play:
        raise NotFound('Score not found')
    return play


def find_by_submission_key(user_id: int, submission_key: str) -> Optional[PlayResult]:
    return PlayResult.query.filter_by(user_id=user_id, submission_key=submission_key).first()


def record_play(user_id: int, game_id: int, composed: ComposedScore, time_taken: float,
                submission_key: Optional[str] = None) -> Tuple[PlayResult, bool]:
    """Insert and commit one play. Returns ``(play, created)``.

    ``created`` is False when a concurrent request already stored a play
    under the same submission key; that stored play is returned instead.
    """
    metrics = composed.metrics
    play = PlayResult(
        user_id=user_id,
        game_id=game_id,
        speed_score=metrics.speed,
        accuracy_score=metrics.accuracy,
        consistency_score=metrics.consistency,
        final_score=composed.final_score,
        difficulty=composed.difficulty,
        multiplier=composed.multiplier,
        time_taken=time_taken,
        submission_key=submission_key,
    )
    try:
        db.session.add(play)
        db.session.commit()
    except IntegrityError as exc:
        db.session.rollback()
        existing = find_by_submission_key(user_id, submission_key) if submission_key else None
        if existing:
            return existing, False
        current_app.logger.error(f"[ledger-write-fail] user={user_id} game={game_id} err={exc}")
        raise StorageFailure('Your play was not recorded. Please try again.') from exc
    except SQLAlchemyError as exc:
        db.session.rollback()
        current_app.logger.error(f"[ledger-write-fail] user={user_id} game={game_id} err={exc}")
        raise StorageFailure('Your play was not recorded. Please try again.') from exc
    return play, True


def remove_play(play: PlayResult) -> None:
    """Stage deletion of a play. The caller commits together with the point reversal."""
    db.session.delete(play)


def user_history(user_id: int) -> List[PlayResult]:
    """All of a user's plays, newest first."""
    return (
        PlayResult.query
        .options(joinedload(PlayResult.game))
        .filter_by(user_id=user_id)
        .order_by(PlayResult.created_at.desc(), PlayResult.id.desc())
        .all()
    )


def summarize(plays: List[PlayResult]) -> dict:
    if not plays:
        return {
            'games_played': 0,
            'total_points': 0,
            'average_score': 0,
            'best_score': 0,
            'latest_score': 0,
            'average_speed': 0,
            'average_accuracy': 0,
            'average_consistency': 0,
        }
    count = len(plays)
    finals = [p.final_score for p in plays]
    return {
        'games_played': count,
        'total_points': sum(finals),
        'average_score': round_half_up(sum(finals) / count),
        'best_score': max(finals),
        'latest_score': finals[0],
        'average_speed': round_half_up(sum(p.speed_score for p in plays) / count),
        'average_accuracy': round_half_up(sum(p.accuracy_score for p in plays) / count),
        'average_consistency': round_half_up(sum(p.consistency_score for p in plays) / count),
    }


def per_game_stats(user_id: int) -> List[dict]:
    stmt = (
        select(
            Game.id,
            Game.name,
            func.count(PlayResult.id),
            func.sum(PlayResult.final_score),
            func.max(PlayResult.final_score),
            func.avg(PlayResult.final_score),
        )
        .join(Game, PlayResult.game_id == Game.id)
        .where(PlayResult.user_id == user_id)
        .group_by(Game.id, Game.name)
        .order_by(func.sum(PlayResult.final_score).desc(), Game.id)
    )
    return [
        {
            'game_id': game_id,
            'game_name': name,
            'plays': plays,
            'total_points': int(total or 0),
            'best_score': int(best or 0),
            'average_score': round_half_up(float(avg or 0)),
        }
        for game_id, name, plays, total, best, avg in db.session.execute(stmt).all()
    ]
