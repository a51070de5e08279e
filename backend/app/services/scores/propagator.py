"""Keep ``User.total_points`` and ``Game.popularity`` in step with the ledger.

Both counters change through single UPDATE statements so concurrent plays by
the same user never lose an increment. A user's total is floored at zero on
the way down, which means it can end up below the ledger sum when deletions
race. ``reconcile_totals`` recomputes totals from the ledger and repairs that
drift, along with plays whose propagation step failed.

A play sits between its ledger commit and its increment for a short window.
A reconciliation pass that lands inside it writes a total that already
includes the play, and the increment then counts it a second time, so the
total overshoots until the next pass. Passing ``grace_seconds`` skips users
and games with plays that recent.
"""

from datetime import timedelta
from typing import Iterable, Optional

from flask import current_app
from sqlalchemy import case, func, select, update
from sqlalchemy.exc import SQLAlchemyError

from app import db
from app.models import Game, PlayResult, User, utcnow
from .errors import StorageFailure


def apply_delta(user_id: int, game_id: int, delta: int, count_play: bool = False) -> None:
    """Stage atomic counter updates in the current transaction. Does not commit."""
    new_total = User.total_points + delta
    result = db.session.execute(
        update(User)
        .where(User.id == user_id)
        .values(total_points=case((new_total < 0, 0), else_=new_total))
        .execution_options(synchronize_session=False)
    )
    if result.rowcount == 0:
        raise StorageFailure(f'User {user_id} not found while updating points')
    if count_play:
        result = db.session.execute(
            update(Game)
            .where(Game.id == game_id)
            .values(popularity=Game.popularity + 1)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            raise StorageFailure(f'Game {game_id} not found while updating popularity')


def propagate_play(user_id: int, game_id: int, final_score: int) -> None:
    """Credit a freshly recorded play to the user's total and the game's popularity."""
    try:
        apply_delta(user_id, game_id, final_score, count_play=True)
        db.session.commit()
    except StorageFailure:
        db.session.rollback()
        raise
    except SQLAlchemyError as exc:
        db.session.rollback()
        raise StorageFailure('Aggregate update failed') from exc


def _ledger_sum_for_user():
    return (
        select(func.coalesce(func.sum(PlayResult.final_score), 0))
        .where(PlayResult.user_id == User.id)
        .scalar_subquery()
    )


def _ledger_count_for_game():
    return (
        select(func.count(PlayResult.id))
        .where(PlayResult.game_id == Game.id)
        .scalar_subquery()
    )


def reconcile_totals(user_ids: Optional[Iterable[int]] = None, grace_seconds: float = 0) -> dict:
    """Rewrite drifted user totals to their ledger sums.

    Also lifts game popularity to at least the number of plays still on
    record. Popularity is never lowered since it counts every play ever made.
    Users and games with a play newer than ``grace_seconds`` are left for a
    later pass. Safe to run repeatedly.
    """
    ids = list(user_ids) if user_ids is not None else None
    sums = dict(
        db.session.execute(
            select(PlayResult.user_id, func.sum(PlayResult.final_score)).group_by(PlayResult.user_id)
        ).all()
    )
    counts = dict(
        db.session.execute(
            select(PlayResult.game_id, func.count(PlayResult.id)).group_by(PlayResult.game_id)
        ).all()
    )

    user_query = select(User.id, User.total_points)
    if ids is not None:
        user_query = user_query.where(User.id.in_(ids))
    game_query = select(Game.id, Game.popularity)
    if grace_seconds and grace_seconds > 0:
        cutoff = utcnow() - timedelta(seconds=grace_seconds)
        user_query = user_query.where(
            User.id.not_in(select(PlayResult.user_id).where(PlayResult.created_at >= cutoff))
        )
        game_query = game_query.where(
            Game.id.not_in(select(PlayResult.game_id).where(PlayResult.created_at >= cutoff))
        )
    drifted_users = [
        {'user_id': uid, 'before': total, 'after': int(sums.get(uid) or 0)}
        for uid, total in db.session.execute(user_query).all()
        if total != int(sums.get(uid) or 0)
    ]
    drifted_games = [
        {'game_id': gid, 'before': popularity, 'after': int(counts.get(gid, 0))}
        for gid, popularity in db.session.execute(game_query).all()
        if popularity < int(counts.get(gid, 0))
    ]

    try:
        if drifted_users:
            # Ledger sum taken inside the UPDATE; see the module docstring on the grace window
            db.session.execute(
                update(User)
                .where(User.id.in_([row['user_id'] for row in drifted_users]))
                .values(total_points=_ledger_sum_for_user())
                .execution_options(synchronize_session=False)
            )
        if drifted_games:
            live = _ledger_count_for_game()
            db.session.execute(
                update(Game)
                .where(Game.id.in_([row['game_id'] for row in drifted_games]))
                .values(popularity=case((Game.popularity < live, live), else_=Game.popularity))
                .execution_options(synchronize_session=False)
            )
        db.session.commit()
    except SQLAlchemyError as exc:
        db.session.rollback()
        current_app.logger.error(f"[reconcile] failed err={exc}")
        raise StorageFailure('Reconciliation failed') from exc

    for row in drifted_users:
        current_app.logger.info(f"[reconcile] user={row['user_id']} total {row['before']} -> {row['after']}")
    for row in drifted_games:
        current_app.logger.info(f"[reconcile] game={row['game_id']} popularity {row['before']} -> {row['after']}")
    return {'users': drifted_users, 'games': drifted_games}
