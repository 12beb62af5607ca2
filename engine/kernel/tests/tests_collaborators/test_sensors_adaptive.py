"""
ZenB Collaborators -- sensor observations and adaptive pacing helpers.
"""

import math

import pytest

from engine.kernel.adaptive import (
    AdaptiveEngine,
    PIDController,
    estimate_resonance_frequency,
    suggest_pattern,
)
from engine.kernel.patterns import BREATHING_PATTERNS
from engine.kernel.sensors import VitalSigns, make_observation


# ============================================================================
# Sensors
# ============================================================================


class TestMakeObservation:
    def test_usable_vitals_pass_through(self):
        obs = make_observation(0.1, 100.0, VitalSigns(heart_rate=68.0, confidence=0.8, signal_quality="good"))
        assert obs.heart_rate == 68.0
        assert obs.hr_confidence == 0.8
        assert obs.timestamp == 100.0
        assert obs.delta_time == 0.1

    @pytest.mark.parametrize(
        "vitals",
        [
            None,
            VitalSigns(heart_rate=70.0, confidence=0.0),
            VitalSigns(heart_rate=float("nan"), confidence=0.9),
            VitalSigns(heart_rate=0.0, confidence=0.9),
        ],
    )
    def test_unusable_vitals_dropped(self, vitals):
        obs = make_observation(0.1, 100.0, vitals)
        assert obs.heart_rate is None
        assert obs.hr_confidence is None

    def test_confidence_capped_at_one(self):
        obs = make_observation(0.1, 100.0, VitalSigns(heart_rate=70.0, confidence=1.7))
        assert obs.hr_confidence == 1.0

    def test_hidden_and_interaction(self):
        obs = make_observation(0.1, 100.0, hidden=True, interaction="touch")
        assert obs.visibility_state == "hidden"
        assert obs.user_interaction == "touch"
        assert obs.is_distracted


# ============================================================================
# PID
# ============================================================================


class StepClock:
    def __init__(self):
        self.now = 0.0

    def __call__(self):
        return self.now


class TestPIDController:
    def test_integral_anti_windup(self):
        clock = StepClock()
        pid = PIDController(kp=0.0, ki=1.0, kd=0.0, clock=clock)
        clock.now = 100.0
        assert pid.update(1.0, 0.0) == 10.0
        clock.now = 200.0
        assert pid.update(1.0, 0.0) == 10.0

    def test_zero_dt_has_no_derivative(self):
        clock = StepClock()
        pid = PIDController(kp=1.0, ki=0.0, kd=5.0, clock=clock)
        assert pid.update(0.5, 0.0) == 0.5

    def test_reset(self):
        clock = StepClock()
        pid = PIDController(kp=0.0, ki=1.0, kd=0.0, clock=clock)
        clock.now = 5.0
        pid.update(1.0, 0.0)
        pid.reset()
        assert pid.update(1.0, 0.0) == 0.0


# ============================================================================
# Adaptive engine
# ============================================================================


class TestAdaptiveEngine:
    def test_low_confidence_returns_pattern_unchanged(self):
        engine = AdaptiveEngine(clock=StepClock())
        box = BREATHING_PATTERNS["box"]
        assert engine.optimize_pattern(box, confidence=0.3, arousal=0.9, rhythm_alignment=0.1) is box

    def test_low_coherence_lengthens_phases_within_bounds(self):
        engine = AdaptiveEngine(clock=StepClock())
        box = BREATHING_PATTERNS["box"]
        adjusted = engine.optimize_pattern(box, confidence=0.9, arousal=0.3, rhythm_alignment=0.0)
        for phase, seconds in box.timings.items():
            if seconds > 0:
                assert seconds < adjusted.timings[phase] <= seconds * 1.15 + 1e-9
        assert adjusted.id == "box"

    def test_on_target_is_unchanged(self):
        engine = AdaptiveEngine(clock=StepClock())
        calm = BREATHING_PATTERNS["calm"]
        adjusted = engine.optimize_pattern(calm, confidence=0.9, arousal=0.3, rhythm_alignment=0.75)
        assert adjusted.timings == calm.timings

    def test_breath_floor_of_two_seconds(self):
        engine = AdaptiveEngine(clock=StepClock())
        awake = BREATHING_PATTERNS["awake"]
        adjusted = engine.optimize_pattern(awake, confidence=0.9, arousal=0.0, rhythm_alignment=1.0)
        assert adjusted.timings["exhale"] >= 2.0
        assert adjusted.timings["inhale"] >= 2.0


class TestSuggestions:
    @pytest.mark.parametrize("hr, freq", [(55.0, 0.09), (65.0, 0.10), (80.0, 0.11)])
    def test_resonance_frequency(self, hr, freq):
        assert math.isclose(estimate_resonance_frequency(hr), freq)

    @pytest.mark.parametrize(
        "arousal, attention, hour, expected",
        [
            (0.8, 0.5, 14, "4-7-8"),
            (0.4, 0.2, 23, "deep-relax"),
            (0.4, 0.6, 7, "awake"),
            (0.4, 0.6, 15, "coherence"),
        ],
    )
    def test_suggest_pattern(self, arousal, attention, hour, expected):
        assert suggest_pattern(arousal, attention, hour) == expected
        assert expected in BREATHING_PATTERNS
