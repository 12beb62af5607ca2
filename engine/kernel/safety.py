"""
ZenB Kernel: Safety Registry, Circuit Breaker and Tier Gating

Pure policy functions over SafetyProfile values. Nothing here touches the
kernel; the session-completion collaborator computes a whole new registry
with apply_session_outcome() and pushes it via Kernel.load_safety_registry().

Session outcome:
  success  = duration > 45 s and final prediction_error < 0.5  -> push 1.0
  adverse  = anything else                                      -> push 0.0,
             stress score + 1
  The last 5 outcomes are kept, oldest dropped first.

Circuit breaker:
  stress score > 5 -> lock the pattern for 24 h and reset the score to 0.

Tier gating (consulted before LOAD_PROTOCOL / START_SESSION):
  tier 1: open unless the pattern itself is locked
  tier 2: >= 5 quality sessions (> 60 s) overall, and this pattern's
          resonance average >= 0.4 when it has any history
  tier 3: >= 20 quality sessions and >= 5 perfect (1.0) outcomes summed
          across every pattern's registry entry
"""

from __future__ import annotations

import math
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, replace

from engine.kernel.types import (
    RESONANCE_WINDOW,
    SAFETY_LOCK_SECONDS,
    STRESS_TRIP_THRESHOLD,
    BreathPattern,
    SafetyProfile,
    SessionHistoryItem,
)

SUCCESS_MIN_DURATION = 45.0
SUCCESS_MAX_PREDICTION_ERROR = 0.5

QUALITY_SESSION_SECONDS = 60.0
TIER2_MIN_SESSIONS = 5
TIER2_MIN_RESONANCE = 0.4
TIER3_MIN_SESSIONS = 20
TIER3_MIN_PERFECT = 5


# ---------------------------------------------------------------------------
# Outcomes and circuit breaker
# ---------------------------------------------------------------------------


def is_successful_session(duration_sec: float, prediction_error: float) -> bool:
    return duration_sec > SUCCESS_MIN_DURATION and prediction_error < SUCCESS_MAX_PREDICTION_ERROR


def push_resonance(history: Iterable[float], value: float) -> tuple[float, ...]:
    """Append to the sliding window, evicting the oldest past RESONANCE_WINDOW."""
    window = (*history, value)
    return window[-RESONANCE_WINDOW:]


def record_outcome(profile: SafetyProfile, success: bool, now: float) -> SafetyProfile:
    """Return the profile after one session outcome. The input is not touched."""
    if success:
        return replace(profile, resonance_history=push_resonance(profile.resonance_history, 1.0))

    stress = profile.cumulative_stress_score + 1
    lock_until = profile.safety_lock_until
    if stress > STRESS_TRIP_THRESHOLD:
        lock_until = now + SAFETY_LOCK_SECONDS
        stress = 0

    return replace(
        profile,
        resonance_history=push_resonance(profile.resonance_history, 0.0),
        cumulative_stress_score=stress,
        last_incident_timestamp=now,
        safety_lock_until=lock_until,
    )


def apply_session_outcome(
    registry: Mapping[str, SafetyProfile],
    pattern_id: str,
    duration_sec: float,
    prediction_error: float,
    now: float,
) -> dict[str, SafetyProfile]:
    """
    Full updated registry after a session of pattern_id ends.
    Creates the profile lazily. The input mapping is never modified.
    """
    updated = dict(registry)
    profile = updated.get(pattern_id) or SafetyProfile(pattern_id=pattern_id)
    success = is_successful_session(duration_sec, prediction_error)
    updated[pattern_id] = record_outcome(profile, success, now)
    return updated


def is_locked(profile: SafetyProfile | None, now: float) -> bool:
    return profile is not None and profile.safety_lock_until > now


def lock_remaining_hours(profile: SafetyProfile, now: float) -> int:
    """Whole hours left on the lock, rounded up. Zero when unlocked."""
    remaining = profile.safety_lock_until - now
    if remaining <= 0:
        return 0
    return math.ceil(remaining / 3600.0)


def resonance_average(profile: SafetyProfile | None) -> float | None:
    if profile is None or not profile.resonance_history:
        return None
    return sum(profile.resonance_history) / len(profile.resonance_history)


# ---------------------------------------------------------------------------
# Tier gating
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class AccessDecision:
    """Whether a pattern may be selected, and why not."""

    locked: bool
    reason: str | None = None

    @property
    def allowed(self) -> bool:
        return not self.locked


def count_quality_sessions(history: Iterable[SessionHistoryItem]) -> int:
    return sum(1 for item in history if item.duration_sec > QUALITY_SESSION_SECONDS)


def count_perfect_sessions(registry: Mapping[str, SafetyProfile]) -> int:
    return sum(
        sum(1 for value in profile.resonance_history if value == 1.0)
        for profile in registry.values()
    )


def check_pattern_access(
    pattern: BreathPattern,
    registry: Mapping[str, SafetyProfile],
    history: Iterable[SessionHistoryItem],
    now: float,
) -> AccessDecision:
    """Decide whether the user may pick this pattern right now."""
    profile = registry.get(pattern.id)

    if is_locked(profile, now):
        hours = lock_remaining_hours(profile, now)
        return AccessDecision(True, f"Safety lock active ({hours}h)")

    if pattern.tier == 1:
        return AccessDecision(False)

    quality = count_quality_sessions(history)

    if pattern.tier == 2:
        if quality < TIER2_MIN_SESSIONS:
            return AccessDecision(
                True, f"Complete {TIER2_MIN_SESSIONS - quality} more sessions to unlock"
            )
        average = resonance_average(profile)
        if average is not None and average < TIER2_MIN_RESONANCE:
            return AccessDecision(True, "Recent sessions show stress. Try a tier 1 pattern.")
        return AccessDecision(False)

    if quality < TIER3_MIN_SESSIONS:
        return AccessDecision(True, f"Advanced. Need {TIER3_MIN_SESSIONS - quality} more sessions.")
    if count_perfect_sessions(registry) < TIER3_MIN_PERFECT:
        return AccessDecision(True, f"Requires greater stability ({TIER3_MIN_PERFECT} perfect sessions).")
    return AccessDecision(False)
