import pytest

from app.services.scores.composer import (
    ScoringPolicy, breakdown, breakdown_for_play, compose, normalize_tier, skill_impact,
)
from app.services.scores.normalizer import Metrics, normalize_metrics, round_half_up, to_number


STANDARD = ScoringPolicy()


def test_medium_scenario_rounds_half_up():
    # 0.4*80 + 0.4*90 + 0.2*70 = 82; 82 * 1.25 = 102.5 -> 103
    composed = compose(Metrics(80, 90, 70), 'medium', STANDARD)
    assert composed.final_score == 103
    assert composed.multiplier == 1.25


@pytest.mark.parametrize('metrics, tier, expected', [
    (Metrics(80, 90, 70), 'easy', 82),
    (Metrics(80, 90, 70), 'hard', 123),
    (Metrics(100, 100, 100), 'hard', 150),
    (Metrics(0, 0, 0), 'hard', 0),
    (Metrics(55, 0, 1), 'medium', 28),
])
def test_weighted_sum_times_tier_multiplier(metrics, tier, expected):
    assert compose(metrics, tier, STANDARD).final_score == expected


def test_out_of_range_inputs_are_clamped():
    high = compose(Metrics(150, 90, 70), 'medium', STANDARD)
    capped = compose(Metrics(100, 90, 70), 'medium', STANDARD)
    low = compose(Metrics(-20, 90, 70), 'medium', STANDARD)
    floor = compose(Metrics(0, 90, 70), 'medium', STANDARD)
    assert high.final_score == capped.final_score
    assert low.final_score == floor.final_score
    assert low.final_score >= 0


def test_compose_is_deterministic():
    first = compose(Metrics(33, 67, 12), 'hard', STANDARD)
    second = compose(Metrics(33, 67, 12), 'hard', STANDARD)
    assert first == second


def test_unknown_tier_uses_neutral_multiplier():
    assert compose(Metrics(80, 90, 70), 'legendary', STANDARD).final_score == 82


def test_boosted_policy_and_overrides_from_config():
    boosted = ScoringPolicy.from_config({'SCORING_POLICY': 'boosted'})
    assert boosted.multipliers == {'easy': 1.0, 'medium': 1.5, 'hard': 2.0}
    assert compose(Metrics(80, 90, 70), 'hard', boosted).final_score == 164

    custom = ScoringPolicy.from_config({
        'SCORING_POLICY': 'standard',
        'HARD_MULTIPLIER': 3.0,
        'SCORE_SPEED_WEIGHT': -1,
    })
    assert custom.multiplier_for('hard') == 3.0
    assert custom.multiplier_for('medium') == 1.25
    assert custom.speed_weight == 0.0


def test_unknown_policy_name_falls_back_to_standard():
    policy = ScoringPolicy.from_config({'SCORING_POLICY': 'mystery'})
    assert policy.multipliers == {'easy': 1.0, 'medium': 1.25, 'hard': 1.5}


def test_normalize_tier():
    assert normalize_tier(' Hard ') == 'hard'
    assert normalize_tier('nightmare') == 'medium'
    assert normalize_tier(None, fallback=None) is None


def test_breakdown_reports_weights_and_contributions():
    parts = breakdown(Metrics(80, 90, 70), 103, 'medium', 1.25, STANDARD)
    assert parts['speed'] == {'value': 80, 'weight': 40.0, 'contribution': 32}
    assert parts['accuracy'] == {'value': 90, 'weight': 40.0, 'contribution': 36}
    assert parts['consistency'] == {'value': 70, 'weight': 20.0, 'contribution': 14}
    assert parts['total'] == 103
    assert parts['multiplier'] == 1.25


def test_round_half_up():
    assert round_half_up(102.5) == 103
    assert round_half_up(2.5) == 3
    assert round_half_up(2.49) == 2


class TestNormalizer:
    def test_enhanced_payload_bypasses_rules_and_clamps(self):
        payload = {
            'finalMetricsProvided': True,
            'speedScore': 150,
            'accuracyScore': -20,
            'consistencyScore': '75.5',
            'score': 9999,
        }
        assert normalize_metrics('speed', payload) == Metrics(100, 0, 76)

    def test_speed_game_uses_time_remaining_with_floor(self):
        fast = normalize_metrics('speed', {'score': 85, 'timeTaken': 30, 'maxTime': 60})
        assert fast == Metrics(100, 85, 70)
        # Almost out of time still earns the additive baseline
        slow = normalize_metrics('speed', {'score': 85, 'timeTaken': 59, 'maxTime': 60})
        assert slow.speed == 52

    def test_speed_game_over_budget_clamps_to_zero(self):
        assert normalize_metrics('speed', {'score': 10, 'timeTaken': 90, 'maxTime': 60}).speed == 0

    def test_speed_game_defaults_without_timing(self):
        assert normalize_metrics('speed', {}) == Metrics(70, 50, 70)

    def test_logic_game_accuracy_ratio_and_retry_decay(self):
        payload = {'correctAnswers': 8, 'totalQuestions': 10, 'timeTaken': 30, 'maxTime': 60, 'attempts': 3}
        assert normalize_metrics('logic', payload) == Metrics(80, 80, 80)

    def test_logic_game_heavy_retries_floor_at_zero(self):
        assert normalize_metrics('logic', {'attempts': 20}).consistency == 0

    def test_puzzle_game_falls_back_to_score(self):
        assert normalize_metrics('puzzle', {'score': 30, 'attempts': 3}) == Metrics(50, 60, 70)

    def test_memory_game(self):
        payload = {'score': 40, 'timeTaken': 45, 'maxTime': 60, 'attempts': 1}
        assert normalize_metrics('memory', payload) == Metrics(45, 100, 100)

    def test_reflex_game(self):
        assert normalize_metrics('reflex', {'score': 0}) == Metrics(50, 80, 70)
        assert normalize_metrics('reflex', {'score': 130}).speed == 100

    def test_default_time_budget_applies_when_max_time_missing(self):
        assert normalize_metrics('speed', {'timeTaken': 15}, default_time_budget=30).speed == 100
        assert normalize_metrics('speed', {'timeTaken': 15}, default_time_budget=60).speed == 100
        assert normalize_metrics('logic', {'timeTaken': 45}, default_time_budget=60).speed == 55

    def test_unknown_category_uses_generic_rule(self):
        assert normalize_metrics('trivia', {'score': 50}) == Metrics(40, 60, 70)
        assert normalize_metrics(None, {'score': 50}) == Metrics(40, 60, 70)

    def test_junk_values_degrade_to_defaults(self):
        assert normalize_metrics('trivia', {'score': 'abc', 'timeTaken': None}) == Metrics(0, 0, 70)

    def test_oversized_integers_clamp_to_the_bounds(self):
        payload = {
            'finalMetricsProvided': True,
            'speedScore': 10 ** 400,
            'accuracyScore': -(10 ** 400),
            'consistencyScore': 70,
        }
        assert normalize_metrics('speed', payload) == Metrics(100, 0, 70)
        assert normalize_metrics('reflex', {'score': 10 ** 400}).speed == 100
        assert normalize_metrics('trivia', {'score': -(10 ** 400)}) == Metrics(0, 0, 70)

    @pytest.mark.parametrize('category', ['speed', 'logic', 'puzzle', 'memory', 'reflex', 'other'])
    def test_oversized_telemetry_stays_in_range(self, category):
        huge = 10 ** 400
        payload = {'score': huge, 'timeTaken': -huge, 'maxTime': huge,
                   'correctAnswers': huge, 'totalQuestions': huge, 'attempts': huge}
        for value in normalize_metrics(category, payload):
            assert 0 <= value <= 100

    @pytest.mark.parametrize('category', ['speed', 'logic', 'puzzle', 'memory', 'reflex', 'other'])
    def test_outputs_stay_in_range(self, category):
        payload = {'score': 10 ** 6, 'timeTaken': -500, 'maxTime': 60,
                   'correctAnswers': 50, 'totalQuestions': 10, 'attempts': -3}
        for value in normalize_metrics(category, payload):
            assert 0 <= value <= 100
            assert isinstance(value, int)


def test_skill_impact_averages():
    class Play:
        def __init__(self, speed, accuracy, consistency):
            self.speed_score = speed
            self.accuracy_score = accuracy
            self.consistency_score = consistency

    impact = skill_impact([Play(80, 90, 70), Play(60, 70, 50)])
    assert impact == {'focus': 70, 'reflex': 70, 'accuracy': 80, 'consistency': 60}
    assert skill_impact([]) == {'focus': 0, 'reflex': 0, 'accuracy': 0, 'consistency': 0}


@pytest.mark.parametrize('raw, expected', [
    (10 ** 400, float('inf')),
    (-(10 ** 400), float('-inf')),
    ('1e400', float('inf')),
    ('nan', 0.0),
    ([1], 0.0),
])
def test_to_number_never_raises(raw, expected):
    assert to_number(raw) == expected


def test_stored_play_breakdown_keeps_its_multiplier_and_total():
    class Play:
        speed_score, accuracy_score, consistency_score = 80, 90, 70
        final_score, difficulty, multiplier = 103, 'medium', 1.25

    boosted = ScoringPolicy.from_config({'SCORING_POLICY': 'boosted', 'SCORE_SPEED_WEIGHT': 0.5})
    parts = breakdown_for_play(Play(), boosted)

    assert parts['multiplier'] == 1.25
    assert parts['total'] == 103
    assert parts['difficulty'] == 'medium'
    # Weights are read from the policy passed in
    assert parts['speed'] == {'value': 80, 'weight': 50.0, 'contribution': 40}
