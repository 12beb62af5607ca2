"""
ZenB Kernel: Adaptive State Estimator

Kalman-style predict/correct filter over three latent dimensions: arousal,
attention and rhythm alignment. This is not free-energy minimization; the
"prediction error" is a weighted distance from the protocol's target state
and is used as a stress proxy.

  predict:  each point estimate relaxes toward the target with
            alpha = 1 - exp(-dt / tau); each variance grows by noise * dt.
  correct:  heart rate (when confident) corrects arousal; distraction signals
            pull attention down and break rhythm, otherwise both recover.
  diagnose: prediction_error and confidence.

The estimator never raises. Missing observation fields skip their correction
term and leave the other dimensions untouched.
"""

from __future__ import annotations

import logging
import math
from dataclasses import replace

from engine.kernel.patterns import PROTOCOL_TARGETS, target_key_for
from engine.kernel.types import BeliefState, BreathPattern, Observation, clamp

logger = logging.getLogger(__name__)

# Process noise: how much the dynamics model is trusted
PROCESS_NOISE = 0.01
# Measurement noise: how much each observation channel is trusted
MEASUREMENT_NOISE_HR = 0.15
MEASUREMENT_NOISE_CONTEXT = 0.05

# Time constants (seconds). Attention reacts fastest, arousal is stickiest.
TAU_AROUSAL = 15.0
TAU_ATTENTION = 5.0
TAU_RHYTHM = 10.0

# Heart rate normalization: 50 bpm -> 0.0, 120 bpm -> 1.0
HR_BASELINE = 50.0
HR_SPAN = 70.0
HR_MIN_CONFIDENCE = 0.5

DISTRACTED_ATTENTION = 0.1
ATTENTION_RECOVERY_RATE = 0.15
RHYTHM_BUILD_RATE = 0.1
RHYTHM_BREAK_RATE = 0.5
VARIANCE_FLOOR = 0.05

# Weights for prediction_error
W_AROUSAL = 0.4
W_ATTENTION = 0.3
W_RHYTHM = 0.3


def _alpha(dt: float, tau: float) -> float:
    return 1.0 - math.exp(-dt / tau)


def _finite(value: float | None) -> bool:
    return value is not None and isinstance(value, (int, float)) and math.isfinite(value)


class AdaptiveStateEstimator:
    """Keeps a BeliefState across ticks. One instance per kernel."""

    def __init__(self, belief: BeliefState | None = None) -> None:
        self._belief = belief or BeliefState.initial()
        self._target_key = "default"

    @property
    def belief(self) -> BeliefState:
        return self._belief

    @property
    def target_key(self) -> str:
        return self._target_key

    @property
    def target(self) -> tuple[float, float, float]:
        return PROTOCOL_TARGETS[self._target_key]

    def set_protocol(self, pattern: BreathPattern | None) -> None:
        """Select the target vector for the bound pattern."""
        key = target_key_for(pattern)
        if key != self._target_key:
            logger.debug("estimator: target %s -> %s", self._target_key, key)
            self._target_key = key

    def reset(self, belief: BeliefState | None = None) -> None:
        self._belief = belief or BeliefState.initial()

    def update(self, obs: Observation, dt: float) -> BeliefState:
        """Run one predict/correct/diagnose step and return the new belief."""
        if not _finite(dt) or dt < 0:
            dt = 0.0

        predicted = self._predict(dt)
        corrected = self._correct(predicted, obs, dt)
        self._belief = replace(
            corrected,
            prediction_error=self._prediction_error(corrected),
            confidence=self._confidence(corrected, obs),
        )
        return self._belief

    # -----------------------------------------------------------------------
    # Steps
    # -----------------------------------------------------------------------

    def _predict(self, dt: float) -> BeliefState:
        b = self._belief
        t_arousal, t_attention, t_rhythm = self.target

        return replace(
            b,
            arousal=clamp(b.arousal + _alpha(dt, TAU_AROUSAL) * (t_arousal - b.arousal)),
            attention=clamp(b.attention + _alpha(dt, TAU_ATTENTION) * (t_attention - b.attention)),
            rhythm_alignment=clamp(
                b.rhythm_alignment + _alpha(dt, TAU_RHYTHM) * (t_rhythm - b.rhythm_alignment)
            ),
            arousal_variance=b.arousal_variance + PROCESS_NOISE * dt,
            attention_variance=b.attention_variance + PROCESS_NOISE * dt,
            rhythm_variance=b.rhythm_variance + PROCESS_NOISE * dt,
            prediction_error=0.0,
            confidence=0.0,
        )

    def _correct(self, predicted: BeliefState, obs: Observation, dt: float) -> BeliefState:
        arousal = predicted.arousal
        arousal_var = predicted.arousal_variance
        attention = predicted.attention
        attention_var = predicted.attention_variance
        rhythm = predicted.rhythm_alignment
        rhythm_var = predicted.rhythm_variance

        # Arousal from heart rate
        if (
            _finite(obs.heart_rate)
            and _finite(obs.hr_confidence)
            and obs.hr_confidence > HR_MIN_CONFIDENCE
        ):
            normalized_hr = clamp((obs.heart_rate - HR_BASELINE) / HR_SPAN)
            gain = arousal_var / (arousal_var + MEASUREMENT_NOISE_HR)
            arousal = arousal + gain * (normalized_hr - arousal)
            arousal_var = (1.0 - gain) * arousal_var

        # Attention and rhythm from interaction context
        if obs.is_distracted:
            gain = attention_var / (attention_var + MEASUREMENT_NOISE_CONTEXT)
            attention = attention + gain * (DISTRACTED_ATTENTION - attention)
            attention_var = (1.0 - gain) * attention_var
            rhythm = max(0.0, rhythm - RHYTHM_BREAK_RATE * dt)
        else:
            attention = min(1.0, attention + ATTENTION_RECOVERY_RATE * dt)
            attention_var = max(VARIANCE_FLOOR, attention_var - 0.02 * dt)
            rhythm = min(1.0, rhythm + RHYTHM_BUILD_RATE * dt)
            rhythm_var = max(VARIANCE_FLOOR, rhythm_var - 0.01 * dt)

        return replace(
            predicted,
            arousal=clamp(arousal),
            attention=clamp(attention),
            rhythm_alignment=clamp(rhythm),
            arousal_variance=arousal_var,
            attention_variance=attention_var,
            rhythm_variance=rhythm_var,
        )

    # -----------------------------------------------------------------------
    # Diagnostics
    # -----------------------------------------------------------------------

    def _prediction_error(self, belief: BeliefState) -> float:
        t_arousal, t_attention, t_rhythm = self.target
        mse = (
            W_AROUSAL * (belief.arousal - t_arousal) ** 2
            + W_ATTENTION * (belief.attention - t_attention) ** 2
            + W_RHYTHM * (belief.rhythm_alignment - t_rhythm) ** 2
        )
        return math.sqrt(mse)

    def _confidence(self, belief: BeliefState, obs: Observation) -> float:
        mean_variance = (
            belief.arousal_variance + belief.attention_variance + belief.rhythm_variance
        ) / 3.0
        certainty = 1.0 - min(1.0, mean_variance)
        # Absent or zero sensor confidence counts as "no penalty"
        sensor_quality = obs.hr_confidence if _finite(obs.hr_confidence) and obs.hr_confidence > 0 else 1.0
        product = max(0.0, certainty * clamp(sensor_quality) * belief.attention)
        return clamp(product ** (1.0 / 3.0))
