"""Turn raw, game-specific telemetry into speed/accuracy/consistency metrics.

Every game category has its own derivation rule. Unknown categories fall back
to the generic rule, and malformed numbers fall back to field defaults, so
normalization never rejects a payload. All outputs are integers in [0, 100].
"""

import math
from typing import Callable, Dict, Mapping, NamedTuple, Optional, Tuple

METRIC_MIN = 0
METRIC_MAX = 100


class Metrics(NamedTuple):
    speed: int
    accuracy: int
    consistency: int


class Telemetry(NamedTuple):
    score: float
    time_taken: float
    max_time: float
    correct_answers: float
    total_questions: float
    attempts: float

    @classmethod
    def from_payload(cls, payload: Mapping, default_time_budget: float) -> 'Telemetry':
        return cls(
            score=to_number(payload.get('score')),
            time_taken=to_number(payload.get('timeTaken')),
            max_time=to_number(payload.get('maxTime'), default_time_budget),
            correct_answers=to_number(payload.get('correctAnswers')),
            total_questions=to_number(payload.get('totalQuestions')),
            attempts=to_number(payload.get('attempts'), 1),
        )


def to_number(value, default: float = 0.0) -> float:
    """Coerce a JSON value to float, substituting ``default`` for junk."""
    if value is None or isinstance(value, bool):
        return default
    try:
        number = float(value)
    except OverflowError:
        # Integers too large for a float; the clamp takes them to a bound
        if isinstance(value, int):
            return math.inf if value > 0 else -math.inf
        return default
    except (TypeError, ValueError):
        return default
    if math.isnan(number):
        return default
    return number


def round_half_up(value: float) -> int:
    # Python's round() is banker's rounding; scores round .5 upward
    return int(math.floor(value + 0.5))


def clamp_metric(value) -> float:
    return max(float(METRIC_MIN), min(float(METRIC_MAX), to_number(value)))


def to_metric(value) -> int:
    return round_half_up(clamp_metric(value))


def _time_fraction(t: Telemetry) -> Optional[float]:
    """Time remaining as a percentage of the budget, or None if unusable."""
    if not (t.max_time and t.time_taken):
        return None
    return (t.max_time - t.time_taken) / t.max_time * 100


def _speed_from_time(t: Telemetry, floor: float, fallback: float) -> float:
    frac = _time_fraction(t)
    return min(100, frac + floor) if frac is not None else fallback


def _ratio_accuracy(t: Telemetry, score_factor: float) -> float:
    if t.total_questions:
        return t.correct_answers / t.total_questions * 100
    return min(100, t.score * score_factor)


def _retry_decay(t: Telemetry, per_retry: float, fallback: float) -> float:
    if not t.attempts:
        return fallback
    return max(0, 100 - (t.attempts - 1) * per_retry)


def _speed_rule(t):
    speed = _speed_from_time(t, floor=50, fallback=70)
    accuracy = min(100, t.score) if t.score else 50
    return speed, accuracy, 70


def _logic_rule(t):
    accuracy = _ratio_accuracy(t, score_factor=2)
    speed = _speed_from_time(t, floor=30, fallback=60)
    consistency = _retry_decay(t, per_retry=10, fallback=80)
    return speed, accuracy, consistency


def _puzzle_rule(t):
    accuracy = _ratio_accuracy(t, score_factor=2)
    consistency = _retry_decay(t, per_retry=15, fallback=75)
    speed = _speed_from_time(t, floor=20, fallback=50)
    return speed, accuracy, consistency


def _memory_rule(t):
    accuracy = _ratio_accuracy(t, score_factor=3)
    consistency = _retry_decay(t, per_retry=15, fallback=75)
    speed = _speed_from_time(t, floor=20, fallback=50)
    return speed, accuracy, consistency


def _reflex_rule(t):
    speed = min(100, t.score) if t.score else 50
    return speed, 80, 70


def _generic_rule(t):
    return min(100, t.score * 0.8), min(100, t.score * 1.2), 70


_RULES: Dict[str, Callable[[Telemetry], Tuple[float, float, float]]] = {
    'speed': _speed_rule,
    'logic': _logic_rule,
    'puzzle': _puzzle_rule,
    'memory': _memory_rule,
    'reflex': _reflex_rule,
}


def is_enhanced(payload: Mapping) -> bool:
    return bool(payload.get('finalMetricsProvided'))


def metrics_from_values(speed, accuracy, consistency) -> Metrics:
    return Metrics(to_metric(speed), to_metric(accuracy), to_metric(consistency))


def normalize_metrics(category: Optional[str], payload: Mapping, default_time_budget: float = 60.0) -> Metrics:
    """Return the three sub-metrics for a submission payload.

    Enhanced payloads (``finalMetricsProvided``) already carry the metrics;
    they are only clamped. Raw payloads go through the category rule.
    """
    if is_enhanced(payload):
        return metrics_from_values(
            payload.get('speedScore'),
            payload.get('accuracyScore'),
            payload.get('consistencyScore'),
        )
    key = (category or '').strip().lower()
    rule = _RULES.get(key, _generic_rule)
    telemetry = Telemetry.from_payload(payload, default_time_budget)
    return metrics_from_values(*rule(telemetry))
