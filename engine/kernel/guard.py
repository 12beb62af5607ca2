"""
ZenB Kernel: Safety Guard

Pure function: (event, state_before) -> event | None

Consulted before every dispatch. Returns the event unchanged, a replacement
SAFETY_INTERDICTION, or None to drop the event entirely (no log entry, no
reduce, no notification).

Rules, first match wins:
  1. START_SESSION while SAFETY_LOCK          -> REJECT_START    (risk 1.0)
  2. BELIEF_UPDATE with prediction_error > 0.95
     after more than 10 s of session          -> EMERGENCY_HALT  (risk 0.95)
  3. LOAD_PROTOCOL for a pattern whose registry
     entry is locked past the event timestamp -> PATTERN_LOCKED  (risk 0.8)

"Now" is the incoming event's timestamp, so the guard stays deterministic
under replay.
"""

from __future__ import annotations

from collections.abc import Callable

from engine.kernel.events import safety_interdiction
from engine.kernel.types import SAFETY_LOCK, BeliefState, Event, RuntimeState

SafetyGuard = Callable[[Event, RuntimeState], "Event | None"]

EMERGENCY_PREDICTION_ERROR = 0.95
EMERGENCY_MIN_SESSION_SECONDS = 10.0

REJECT_START = "REJECT_START"
EMERGENCY_HALT = "EMERGENCY_HALT"
PATTERN_LOCKED = "PATTERN_LOCKED"


def default_safety_guard(event: Event, state: RuntimeState) -> Event | None:
    if state.status == SAFETY_LOCK and event.type == "START_SESSION":
        return safety_interdiction(
            1.0, REJECT_START, source_type=event.type, timestamp=event.timestamp
        )

    if event.type == "BELIEF_UPDATE":
        belief = event.get("belief")
        if (
            isinstance(belief, BeliefState)
            and belief.prediction_error > EMERGENCY_PREDICTION_ERROR
            and state.session_duration > EMERGENCY_MIN_SESSION_SECONDS
        ):
            return safety_interdiction(
                0.95, EMERGENCY_HALT, source_type=event.type, timestamp=event.timestamp
            )

    if event.type == "LOAD_PROTOCOL":
        pattern_id = event.get("pattern_id")
        profile = state.safety_registry.get(pattern_id) if isinstance(pattern_id, str) else None
        if profile is not None and profile.safety_lock_until > event.timestamp:
            return safety_interdiction(
                0.8, PATTERN_LOCKED, source_type=event.type, timestamp=event.timestamp
            )

    return event


def chain_guards(*guards: SafetyGuard) -> SafetyGuard:
    """
    Compose guards left to right. Each guard sees the previous guard's output;
    a None from any guard drops the event.
    """

    def _chained(event: Event, state: RuntimeState) -> Event | None:
        current: Event | None = event
        for guard in guards:
            if current is None:
                return None
            current = guard(current, state)
        return current

    return _chained
