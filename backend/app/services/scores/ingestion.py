"""Score submission and moderation pipelines.

Submission runs validating -> composing -> persisting -> propagating. The
ledger commit is the durability boundary: once it succeeds the play counts,
and a failure afterwards surfaces as ``PropagationFailure`` rather than a
plain error. The totals it left behind are repaired by reconciliation.
"""

import math
from typing import Mapping, Optional

from flask import current_app
from sqlalchemy.exc import SQLAlchemyError

from app import db
from . import ledger, propagator
from .composer import ScoringPolicy, breakdown, breakdown_for_play, compose, normalize_tier
from .errors import PropagationFailure, StorageFailure, ValidationFailed
from .normalizer import normalize_metrics, to_number

MAX_SUBMISSION_KEY_LENGTH = 128


def load_policy() -> ScoringPolicy:
    return ScoringPolicy.from_config(current_app.config)


def _coerce_id(value, field: str) -> int:
    if value is None or isinstance(value, bool) or value == '':
        raise ValidationFailed(f'{field} is required')
    if isinstance(value, float) and not (math.isfinite(value) and value.is_integer()):
        raise ValidationFailed(f'{field} must be an integer')
    try:
        return int(value)
    except (TypeError, ValueError, OverflowError):
        raise ValidationFailed(f'{field} must be an integer')


def _clean_key(value) -> Optional[str]:
    if value is None:
        return None
    key = str(value).strip()
    if not key:
        return None
    if len(key) > MAX_SUBMISSION_KEY_LENGTH:
        raise ValidationFailed(f'submissionKey must be at most {MAX_SUBMISSION_KEY_LENGTH} characters')
    return key


def _time_taken(payload: Mapping) -> float:
    value = to_number(payload.get('timeTaken'))
    return value if math.isfinite(value) and value > 0 else 0.0


def _replayed(play, policy: ScoringPolicy) -> dict:
    return {
        'play_result': play.to_dict(),
        'breakdown': breakdown_for_play(play, policy),
        'points_earned': play.final_score,
        'replayed': True,
    }


def submit_score(user_id: int, game_id, payload: Mapping,
                 policy: Optional[ScoringPolicy] = None,
                 submission_key: Optional[str] = None) -> dict:
    """Record one play and credit it to the user's total and the game's popularity.

    Returns ``play_result``, ``breakdown``, ``points_earned`` and ``replayed``.
    Raises ``ValidationFailed``, ``NotFound``, ``StorageFailure`` (nothing
    recorded) or ``PropagationFailure`` (recorded, totals lagging).
    """
    if not isinstance(payload, Mapping):
        raise ValidationFailed('Score payload must be a JSON object')
    game = ledger.find_game(_coerce_id(game_id, 'gameId'))
    game_pk = game.id
    key = _clean_key(submission_key if submission_key is not None else payload.get('submissionKey'))
    policy = policy or load_policy()

    if key:
        existing = ledger.find_by_submission_key(user_id, key)
        if existing:
            current_app.logger.info(f"[score-replay] user={user_id} game={game_pk} score={existing.id} key={key}")
            return _replayed(existing, policy)

    # Tier comes from the catalog at submission time; the client hint only fills a gap
    tier = normalize_tier(game.difficulty, fallback=None) or normalize_tier(payload.get('difficulty'))
    metrics = normalize_metrics(
        game.category, payload, float(current_app.config.get('DEFAULT_TIME_BUDGET_SEC', 60))
    )
    composed = compose(metrics, tier, policy)

    play, created = ledger.record_play(user_id, game_pk, composed, _time_taken(payload), submission_key=key)
    if not created:
        current_app.logger.info(f"[score-replay] user={user_id} game={game_pk} score={play.id} key={key}")
        return _replayed(play, policy)

    result = {
        'play_result': play.to_dict(),
        'breakdown': breakdown(composed.metrics, composed.final_score, composed.difficulty, composed.multiplier, policy),
        'points_earned': composed.final_score,
        'replayed': False,
    }

    try:
        propagator.propagate_play(user_id, game_pk, composed.final_score)
    except StorageFailure as exc:
        current_app.logger.error(
            f"[propagate-fail] user={user_id} game={game_pk} score={result['play_result']['id']} "
            f"points={composed.final_score} err={exc}"
        )
        raise PropagationFailure(
            'Your play was recorded, but your points may be briefly out of date.',
            result['play_result'],
            composed.final_score,
        ) from exc

    current_app.logger.info(
        f"[score-submit] user={user_id} game={game_pk} score={result['play_result']['id']} "
        f"final={composed.final_score} tier={composed.difficulty} x{composed.multiplier}"
    )
    return result


def delete_score(score_id) -> dict:
    """Moderation delete: reverse the play's points (floored at zero), then remove it.

    The decrement and the delete commit together. Game popularity is left
    alone because it counts every play ever made.
    """
    play = ledger.get_play(_coerce_id(score_id, 'scoreId'))
    info = play.to_dict()
    points = play.final_score
    try:
        propagator.apply_delta(play.user_id, play.game_id, -points)
        ledger.remove_play(play)
        db.session.commit()
    except StorageFailure:
        db.session.rollback()
        raise
    except SQLAlchemyError as exc:
        db.session.rollback()
        current_app.logger.error(f"[score-delete-fail] score={info['id']} err={exc}")
        raise StorageFailure('Score was not deleted. Please try again.') from exc

    current_app.logger.info(
        f"[score-delete] score={info['id']} user={info['user_id']} game={info['game_id']} deducted={points}"
    )
    return {'points_deducted': points, 'score': info}
