"""
ZenB Kernel: Reducer

Pure function: (state, event) -> state
No side effects. No IO. No clock reads. Deterministic.

Given the same sequence of events, produces the same state every time.
Each event kind touches only the fields it owns. Kinds outside EVENT_TYPES,
and known kinds whose payload is malformed or whose precondition fails,
return the input state object unchanged.

phase_elapsed and session_duration are not reducer output; the kernel fills
them in afterwards with with_derived().
"""

from __future__ import annotations

from collections.abc import Callable, Mapping
from dataclasses import replace
from types import MappingProxyType
from typing import Any

from engine.kernel.patterns import BREATHING_PATTERNS
from engine.kernel.types import (
    HALTED,
    IDLE,
    PAUSED,
    PHASES,
    RUNNING,
    SAFETY_LOCK,
    BeliefState,
    BreathPattern,
    Event,
    Observation,
    RuntimeState,
    SafetyProfile,
)

Handler = Callable[[RuntimeState, Event, Mapping[str, BreathPattern]], RuntimeState]

# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def initial_state(now: float = 0.0) -> RuntimeState:
    """The state at boot: IDLE, no pattern, empty registry."""
    return RuntimeState(boot_timestamp=now, last_update_timestamp=now)


def reduce(
    state: RuntimeState,
    event: Event,
    patterns: Mapping[str, BreathPattern] = BREATHING_PATTERNS,
) -> RuntimeState:
    """
    Apply one event to the current state. Never raises.

    patterns is the catalog LOAD_PROTOCOL resolves ids against.
    """
    handler = _HANDLERS.get(event.type)
    if handler is None:
        # Forward-compatible: unknown kinds are an explicit no-op
        return state
    return handler(state, event, patterns)


def replay(
    events: list[Event],
    patterns: Mapping[str, BreathPattern] = BREATHING_PATTERNS,
    *,
    now: float = 0.0,
) -> RuntimeState:
    """
    Rebuild state from scratch by reducing over all events.
    replay(events) == reduce(reduce(reduce(initial(), e1), e2), e3)...
    """
    state = initial_state(now)
    for event in events:
        state = reduce(state, event, patterns)
    return state


def with_derived(state: RuntimeState, now: float) -> RuntimeState:
    """Fill in phase_elapsed / session_duration. Both are zero unless RUNNING."""
    if state.status != RUNNING:
        if state.phase_elapsed == 0.0 and state.session_duration == 0.0:
            return state
        return replace(state, phase_elapsed=0.0, session_duration=0.0)
    return replace(
        state,
        phase_elapsed=max(0.0, now - state.phase_start_time),
        session_duration=max(0.0, now - state.session_start_time) if state.session_start_time > 0 else 0.0,
    )


# ---------------------------------------------------------------------------
# Handlers
# ---------------------------------------------------------------------------


def _handle_boot(state: RuntimeState, event: Event, patterns: Any) -> RuntimeState:
    return replace(state, status=IDLE, last_update_timestamp=event.timestamp)


def _handle_load_protocol(
    state: RuntimeState, event: Event, patterns: Mapping[str, BreathPattern]
) -> RuntimeState:
    if state.status == SAFETY_LOCK:
        return state
    pattern_id = event.get("pattern_id")
    if not isinstance(pattern_id, str):
        return state
    pattern = patterns.get(pattern_id)
    if pattern is None:
        return state

    belief = replace(state.belief, rhythm_alignment=0.0, prediction_error=0.0, confidence=0.0)
    return replace(
        state,
        pattern=pattern,
        phase=PHASES[0],
        phase_start_time=event.timestamp,
        phase_duration=pattern.duration(PHASES[0]),
        cycle_count=0,
        session_start_time=0.0,
        paused_at=event.timestamp if state.status == PAUSED else 0.0,
        belief=belief,
        last_update_timestamp=event.timestamp,
    )


def _handle_start_session(state: RuntimeState, event: Event, patterns: Any) -> RuntimeState:
    if state.pattern is None:
        return state
    return replace(
        state,
        status=RUNNING,
        session_start_time=event.timestamp,
        phase_start_time=event.timestamp,
        paused_at=0.0,
        last_update_timestamp=event.timestamp,
    )


def _handle_interruption(state: RuntimeState, event: Event, patterns: Any) -> RuntimeState:
    if state.status != RUNNING:
        return state
    return replace(
        state,
        status=PAUSED,
        paused_at=event.timestamp,
        last_update_timestamp=event.timestamp,
    )


def _handle_resume(state: RuntimeState, event: Event, patterns: Any) -> RuntimeState:
    if state.status != PAUSED:
        return state
    pause_duration = max(0.0, event.timestamp - state.paused_at)
    return replace(
        state,
        status=RUNNING,
        phase_start_time=state.phase_start_time + pause_duration,
        paused_at=0.0,
        last_update_timestamp=event.timestamp,
    )


def _handle_halt(state: RuntimeState, event: Event, patterns: Any) -> RuntimeState:
    return replace(state, status=HALTED, paused_at=0.0, last_update_timestamp=event.timestamp)


def _handle_safety_interdiction(state: RuntimeState, event: Event, patterns: Any) -> RuntimeState:
    return replace(state, status=SAFETY_LOCK, last_update_timestamp=event.timestamp)


def _handle_phase_transition(state: RuntimeState, event: Event, patterns: Any) -> RuntimeState:
    to_phase = event.get("to")
    if state.pattern is None or to_phase not in PHASES:
        return state
    return replace(
        state,
        phase=to_phase,
        phase_start_time=event.timestamp,
        phase_duration=state.pattern.duration(to_phase),
        last_update_timestamp=event.timestamp,
    )


def _handle_cycle_complete(state: RuntimeState, event: Event, patterns: Any) -> RuntimeState:
    count = event.get("count")
    if not isinstance(count, int) or isinstance(count, bool) or count < 0:
        return state
    return replace(state, cycle_count=count, last_update_timestamp=event.timestamp)


def _handle_belief_update(state: RuntimeState, event: Event, patterns: Any) -> RuntimeState:
    belief = event.get("belief")
    if not isinstance(belief, BeliefState):
        return state
    return replace(state, belief=belief, last_update_timestamp=event.timestamp)


def _handle_tick(state: RuntimeState, event: Event, patterns: Any) -> RuntimeState:
    observation = event.get("observation")
    if observation is not None and not isinstance(observation, Observation):
        return state
    return replace(state, last_observation=observation, last_update_timestamp=event.timestamp)


def _handle_load_safety_registry(state: RuntimeState, event: Event, patterns: Any) -> RuntimeState:
    registry = event.get("registry")
    if not isinstance(registry, Mapping):
        return state
    if not all(isinstance(p, SafetyProfile) for p in registry.values()):
        return state
    # Replace, never merge
    return replace(
        state,
        safety_registry=MappingProxyType(dict(registry)),
        last_update_timestamp=event.timestamp,
    )


# ---------------------------------------------------------------------------
# Dispatch table
# ---------------------------------------------------------------------------

_HANDLERS: dict[str, Handler] = {
    "BOOT": _handle_boot,
    "LOAD_PROTOCOL": _handle_load_protocol,
    "START_SESSION": _handle_start_session,
    "TICK": _handle_tick,
    "BELIEF_UPDATE": _handle_belief_update,
    "PHASE_TRANSITION": _handle_phase_transition,
    "CYCLE_COMPLETE": _handle_cycle_complete,
    "INTERRUPTION": _handle_interruption,
    "RESUME": _handle_resume,
    "HALT": _handle_halt,
    "SAFETY_INTERDICTION": _handle_safety_interdiction,
    "LOAD_SAFETY_REGISTRY": _handle_load_safety_registry,
}
