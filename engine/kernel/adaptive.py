"""
ZenB Kernel: Adaptive Pacing

Optional helpers that adjust or suggest a pattern from the current belief.
Not part of the dispatch pipeline; a driver may call them between sessions
or feed an optimized pattern into its own catalog.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import replace

from engine.kernel.types import BreathPattern, now_ts

INTEGRAL_LIMIT = 10.0
MAX_ADJUSTMENT = 0.15
MIN_CONFIDENCE = 0.5
MIN_BREATH_SECONDS = 2.0


class PIDController:
    """PID loop with integral anti-windup. Gains default to a gentle loop."""

    def __init__(
        self,
        kp: float = 0.5,
        ki: float = 0.1,
        kd: float = 0.2,
        clock: Callable[[], float] = now_ts,
    ) -> None:
        self.kp = kp
        self.ki = ki
        self.kd = kd
        self._clock = clock
        self._integral = 0.0
        self._last_error = 0.0
        self._last_time = clock()

    def update(self, target: float, current: float) -> float:
        now = self._clock()
        dt = now - self._last_time
        self._last_time = now

        error = target - current
        self._integral = max(-INTEGRAL_LIMIT, min(INTEGRAL_LIMIT, self._integral + error * dt))
        derivative = (error - self._last_error) / dt if dt > 0 else 0.0
        self._last_error = error

        return self.kp * error + self.ki * self._integral + self.kd * derivative

    def reset(self) -> None:
        self._integral = 0.0
        self._last_error = 0.0
        self._last_time = self._clock()


class AdaptiveEngine:
    """
    Stretches or shortens a pattern's phases (at most +/-15%) to push rhythm
    alignment toward 0.75 and arousal toward 0.3.

    Positive correction lengthens phases (calming), negative shortens them.
    """

    TARGET_COHERENCE = 0.75
    TARGET_AROUSAL = 0.3

    def __init__(self, clock: Callable[[], float] = now_ts) -> None:
        self.coherence_pid = PIDController(0.3, 0.05, 0.1, clock=clock)
        self.arousal_pid = PIDController(0.4, 0.08, 0.15, clock=clock)

    def optimize_pattern(
        self,
        pattern: BreathPattern,
        *,
        confidence: float,
        arousal: float,
        rhythm_alignment: float,
    ) -> BreathPattern:
        """Return an adjusted copy, or the pattern itself when data is unreliable."""
        if confidence < MIN_CONFIDENCE:
            return pattern

        coherence_correction = self.coherence_pid.update(self.TARGET_COHERENCE, rhythm_alignment)
        arousal_correction = self.arousal_pid.update(self.TARGET_AROUSAL, arousal)
        correction = coherence_correction * 0.6 + arousal_correction * 0.4

        factor = max(1 - MAX_ADJUSTMENT, min(1 + MAX_ADJUSTMENT, 1 + correction * MAX_ADJUSTMENT))
        t = pattern.timings
        return replace(
            pattern,
            timings={
                "inhale": max(MIN_BREATH_SECONDS, t["inhale"] * factor),
                "holdIn": max(0.0, t["holdIn"] * factor),
                "exhale": max(MIN_BREATH_SECONDS, t["exhale"] * factor),
                "holdOut": max(0.0, t["holdOut"] * factor),
            },
        )

    def reset(self) -> None:
        self.coherence_pid.reset()
        self.arousal_pid.reset()


def estimate_resonance_frequency(heart_rate: float) -> float:
    """
    Breathing frequency (Hz) likely to maximize HRV coherence.
    Lower resting heart rate maps to a slower resonance rate.
    """
    if heart_rate < 60:
        return 0.09
    if heart_rate < 70:
        return 0.10
    return 0.11


def suggest_pattern(arousal: float, attention: float, hour: int) -> str:
    """Pick a pattern id for the current state and local hour (0-23)."""
    if arousal > 0.7:
        return "4-7-8"
    if attention < 0.3 and hour >= 22:
        return "deep-relax"
    if 6 <= hour < 9:
        return "awake"
    return "coherence"
