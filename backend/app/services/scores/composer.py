"""Compose sub-metrics and difficulty into the final integer score.

The weights and difficulty multipliers live in a ``ScoringPolicy`` value
object. Callers build it once per submission so that a single composition
never mixes two configurations.
"""

from dataclasses import dataclass, field
from typing import Iterable, Mapping, NamedTuple, Optional

from app.models import DIFFICULTY_TIERS
from .normalizer import Metrics, clamp_metric, round_half_up, to_number

MULTIPLIER_TABLES = {
    'standard': {'easy': 1.0, 'medium': 1.25, 'hard': 1.5},
    'boosted': {'easy': 1.0, 'medium': 1.5, 'hard': 2.0},
}
DEFAULT_TIER = 'medium'


def _standard_table():
    return dict(MULTIPLIER_TABLES['standard'])


@dataclass(frozen=True)
class ScoringPolicy:
    speed_weight: float = 0.4
    accuracy_weight: float = 0.4
    consistency_weight: float = 0.2
    multipliers: Mapping[str, float] = field(default_factory=_standard_table)

    @classmethod
    def from_config(cls, config: Mapping) -> 'ScoringPolicy':
        table = dict(MULTIPLIER_TABLES.get(config.get('SCORING_POLICY') or 'standard', MULTIPLIER_TABLES['standard']))
        for tier in DIFFICULTY_TIERS:
            override = config.get(f'{tier.upper()}_MULTIPLIER')
            if override is not None:
                table[tier] = override
        return cls(
            speed_weight=max(0.0, to_number(config.get('SCORE_SPEED_WEIGHT'), 0.4)),
            accuracy_weight=max(0.0, to_number(config.get('SCORE_ACCURACY_WEIGHT'), 0.4)),
            consistency_weight=max(0.0, to_number(config.get('SCORE_CONSISTENCY_WEIGHT'), 0.2)),
            multipliers={tier: max(0.0, to_number(value, 1.0)) for tier, value in table.items()},
        )

    def multiplier_for(self, difficulty: Optional[str]) -> float:
        return float(self.multipliers.get(difficulty, 1.0))


class ComposedScore(NamedTuple):
    metrics: Metrics
    difficulty: str
    multiplier: float
    final_score: int


def normalize_tier(difficulty: Optional[str], fallback: Optional[str] = DEFAULT_TIER) -> Optional[str]:
    tier = (difficulty or '').strip().lower() if isinstance(difficulty, str) else ''
    return tier if tier in DIFFICULTY_TIERS else fallback


def compose(metrics: Metrics, difficulty: str, policy: ScoringPolicy) -> ComposedScore:
    """Weighted sum of clamped sub-metrics times the tier multiplier, rounded half-up."""
    speed, accuracy, consistency = (clamp_metric(v) for v in metrics)
    weighted = (
        speed * policy.speed_weight
        + accuracy * policy.accuracy_weight
        + consistency * policy.consistency_weight
    )
    multiplier = policy.multiplier_for(difficulty)
    final_score = max(0, round_half_up(weighted * multiplier))
    return ComposedScore(metrics, difficulty, multiplier, final_score)


def breakdown(metrics: Metrics, final_score: int, difficulty: str, multiplier: float, policy: ScoringPolicy) -> dict:
    """Per-metric value, weight (percent) and contribution for display."""
    def _part(value, weight):
        return {
            'value': value,
            'weight': round(weight * 100, 2),
            'contribution': round_half_up(value * weight),
        }

    return {
        'speed': _part(metrics.speed, policy.speed_weight),
        'accuracy': _part(metrics.accuracy, policy.accuracy_weight),
        'consistency': _part(metrics.consistency, policy.consistency_weight),
        'difficulty': difficulty,
        'multiplier': multiplier,
        'total': final_score,
    }


def breakdown_for_play(play, policy: ScoringPolicy) -> dict:
    """Breakdown of a stored play.

    The tier, multiplier and total are the ones recorded with the play. Weights
    are not stored, so the per-metric weight and contribution reflect
    ``policy`` as it is now.
    """
    metrics = Metrics(play.speed_score, play.accuracy_score, play.consistency_score)
    return breakdown(metrics, play.final_score, play.difficulty, play.multiplier, policy)


def skill_impact(plays: Iterable) -> dict:
    plays = list(plays)
    if not plays:
        return {'focus': 0, 'reflex': 0, 'accuracy': 0, 'consistency': 0}
    count = len(plays)
    avg_speed = sum(p.speed_score or 0 for p in plays) / count
    avg_accuracy = sum(p.accuracy_score or 0 for p in plays) / count
    avg_consistency = sum(p.consistency_score or 0 for p in plays) / count
    return {
        'focus': round_half_up((avg_accuracy + avg_consistency) / 2),
        'reflex': round_half_up(avg_speed),
        'accuracy': round_half_up(avg_accuracy),
        'consistency': round_half_up(avg_consistency),
    }
