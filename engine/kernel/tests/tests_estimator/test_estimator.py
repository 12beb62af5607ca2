"""
ZenB Estimator -- Belief Update Tests

Covers:
  - Bounds: every point estimate, confidence and error stay in range over
    long runs with hostile input (NaN heart rate, huge dt, hidden frames)
  - Heart-rate correction and its confidence gate
  - Distraction pulls attention down and breaks rhythm
  - Target selection per pattern
  - Convergence toward the target on a calm session
"""

import math
import random

import pytest

from engine.kernel.estimator import AdaptiveStateEstimator
from engine.kernel.patterns import BREATHING_PATTERNS
from engine.kernel.types import BeliefState, Observation


def obs(dt=0.1, **kwargs):
    return Observation(timestamp=0.0, delta_time=dt, **kwargs)


def run(estimator, ticks, dt=0.1, **kwargs):
    for _ in range(ticks):
        estimator.update(obs(dt, **kwargs), dt)
    return estimator.belief


def assert_in_bounds(b: BeliefState):
    for value in (b.arousal, b.attention, b.rhythm_alignment, b.confidence):
        assert 0.0 <= value <= 1.0
    for value in (b.arousal_variance, b.attention_variance, b.rhythm_variance, b.prediction_error):
        assert value >= 0.0
        assert math.isfinite(value)


# ============================================================================
# Bounds
# ============================================================================


class TestBounds:
    def test_random_inputs_stay_in_range(self):
        rng = random.Random(7)
        estimator = AdaptiveStateEstimator()
        for i in range(2000):
            dt = rng.choice([0.0, 0.016, 0.1, 0.5, 3.0])
            hr = rng.choice([None, 40.0, 75.0, 190.0, float("nan"), float("inf")])
            conf = rng.choice([None, 0.0, 0.4, 0.9, 1.0, float("nan")])
            b = estimator.update(
                obs(
                    dt,
                    heart_rate=hr,
                    hr_confidence=conf,
                    visibility_state=rng.choice(["visible", "hidden"]),
                    user_interaction=rng.choice([None, "pause", "touch"]),
                ),
                dt,
            )
            assert_in_bounds(b)

    @pytest.mark.parametrize("dt", [float("nan"), float("inf"), -1.0])
    def test_bad_dt_treated_as_zero(self, dt):
        estimator = AdaptiveStateEstimator()
        b = estimator.update(obs(), dt)
        assert b.arousal == 0.5
        assert b.arousal_variance == BeliefState().arousal_variance
        assert_in_bounds(b)

    def test_prediction_error_bounded_by_one(self):
        estimator = AdaptiveStateEstimator(BeliefState(arousal=1.0, attention=0.0, rhythm_alignment=0.0))
        b = estimator.update(obs(0.0), 0.0)
        assert b.prediction_error <= 1.0


# ============================================================================
# Heart rate
# ============================================================================


class TestHeartRateCorrection:
    def test_high_heart_rate_raises_arousal(self):
        with_hr = AdaptiveStateEstimator()
        without = AdaptiveStateEstimator()
        a = run(with_hr, 20, heart_rate=120.0, hr_confidence=0.9).arousal
        b = run(without, 20).arousal
        assert a > b

    def test_correction_shrinks_variance(self):
        estimator = AdaptiveStateEstimator()
        before = estimator.belief.arousal_variance
        b = estimator.update(obs(0.1, heart_rate=70.0, hr_confidence=0.9), 0.1)
        assert b.arousal_variance < before

    @pytest.mark.parametrize("conf", [0.5, 0.3, None, float("nan")])
    def test_low_confidence_ignored(self, conf):
        gated = AdaptiveStateEstimator()
        plain = AdaptiveStateEstimator()
        a = gated.update(obs(0.1, heart_rate=120.0, hr_confidence=conf), 0.1)
        b = plain.update(obs(0.1), 0.1)
        assert a.arousal == b.arousal
        assert a.arousal_variance == b.arousal_variance

    def test_nan_heart_rate_ignored(self):
        gated = AdaptiveStateEstimator()
        plain = AdaptiveStateEstimator()
        a = gated.update(obs(0.1, heart_rate=float("nan"), hr_confidence=0.9), 0.1)
        b = plain.update(obs(0.1), 0.1)
        assert a.arousal == b.arousal


# ============================================================================
# Distraction
# ============================================================================


class TestDistraction:
    def test_hidden_lowers_attention(self):
        focused = run(AdaptiveStateEstimator(), 10).attention
        distracted = run(AdaptiveStateEstimator(), 10, visibility_state="hidden").attention
        assert distracted < focused

    def test_pause_interaction_counts_as_distraction(self):
        estimator = AdaptiveStateEstimator()
        start = estimator.belief.attention
        b = run(estimator, 5, user_interaction="pause")
        assert b.attention < start

    def test_distraction_breaks_rhythm(self):
        estimator = AdaptiveStateEstimator()
        built = run(estimator, 50).rhythm_alignment
        assert built > 0.3
        broken = run(estimator, 5, visibility_state="hidden").rhythm_alignment
        assert broken < built

    def test_focus_keeps_variance_above_floor(self):
        b = run(AdaptiveStateEstimator(), 500)
        assert b.attention_variance >= 0.05
        assert b.rhythm_variance >= 0.05


# ============================================================================
# Targets and convergence
# ============================================================================


class TestTargets:
    def test_default_target_without_pattern(self):
        estimator = AdaptiveStateEstimator()
        estimator.set_protocol(None)
        assert estimator.target_key == "default"

    @pytest.mark.parametrize(
        "pattern_id, key",
        [("4-7-8", "parasympathetic"), ("coherence", "balanced"), ("wim-hof", "sympathetic")],
    )
    def test_pattern_targets(self, pattern_id, key):
        estimator = AdaptiveStateEstimator()
        estimator.set_protocol(BREATHING_PATTERNS[pattern_id])
        assert estimator.target_key == key

    def test_calm_minute_converges_below_success_threshold(self):
        estimator = AdaptiveStateEstimator()
        estimator.set_protocol(BREATHING_PATTERNS["coherence"])
        b = run(estimator, 600)
        assert b.prediction_error < 0.5
        assert b.confidence > 0.5

    def test_reset_restores_initial_belief(self):
        estimator = AdaptiveStateEstimator()
        run(estimator, 50, heart_rate=110.0, hr_confidence=0.9)
        estimator.reset()
        assert estimator.belief == BeliefState.initial()
