"""
ZenB Kernel: Event Construction

Factory functions for creating well-formed kernel events, one per event kind.
Used by the kernel's tick pipeline and convenience commands, by drivers, and
by tests to build events concisely.

Also converts events to and from JSON-safe dicts for the event store and the
replay tool.
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any

from engine.kernel.types import (
    BeliefState,
    Event,
    Observation,
    SafetyProfile,
    now_ts,
)


def make_event(type: str, payload: dict[str, Any] | None = None, *, timestamp: float | None = None) -> Event:
    """
    Build an Event from minimal inputs. Timestamp defaults to now.

    Accepts any type string; kinds outside EVENT_TYPES reduce as no-ops.
    """
    return Event(
        type=type,
        timestamp=now_ts() if timestamp is None else timestamp,
        payload=dict(payload or {}),
    )


def boot(*, timestamp: float | None = None) -> Event:
    return make_event("BOOT", timestamp=timestamp)


def load_protocol(pattern_id: str, *, timestamp: float | None = None) -> Event:
    return make_event("LOAD_PROTOCOL", {"pattern_id": pattern_id}, timestamp=timestamp)


def start_session(*, timestamp: float | None = None) -> Event:
    return make_event("START_SESSION", timestamp=timestamp)


def tick(dt: float, observation: Observation, *, timestamp: float | None = None) -> Event:
    return make_event("TICK", {"dt": dt, "observation": observation}, timestamp=timestamp)


def belief_update(belief: BeliefState, *, timestamp: float | None = None) -> Event:
    return make_event("BELIEF_UPDATE", {"belief": belief}, timestamp=timestamp)


def phase_transition(from_phase: str, to_phase: str, *, timestamp: float | None = None) -> Event:
    return make_event("PHASE_TRANSITION", {"from": from_phase, "to": to_phase}, timestamp=timestamp)


def cycle_complete(count: int, *, timestamp: float | None = None) -> Event:
    return make_event("CYCLE_COMPLETE", {"count": count}, timestamp=timestamp)


def interruption(kind: str = "pause", *, timestamp: float | None = None) -> Event:
    """kind is "pause" (user) or "background" (app hidden)."""
    return make_event("INTERRUPTION", {"kind": kind}, timestamp=timestamp)


def resume(*, timestamp: float | None = None) -> Event:
    return make_event("RESUME", timestamp=timestamp)


def halt(reason: str = "user", *, timestamp: float | None = None) -> Event:
    return make_event("HALT", {"reason": reason}, timestamp=timestamp)


def safety_interdiction(
    risk_level: float,
    action: str,
    *,
    source_type: str | None = None,
    timestamp: float | None = None,
) -> Event:
    payload: dict[str, Any] = {"risk_level": risk_level, "action": action}
    if source_type is not None:
        payload["source_type"] = source_type
    return make_event("SAFETY_INTERDICTION", payload, timestamp=timestamp)


def load_safety_registry(
    registry: Mapping[str, SafetyProfile], *, timestamp: float | None = None
) -> Event:
    return make_event("LOAD_SAFETY_REGISTRY", {"registry": dict(registry)}, timestamp=timestamp)


# ---------------------------------------------------------------------------
# Serialization
# ---------------------------------------------------------------------------


def event_to_dict(event: Event) -> dict[str, Any]:
    """JSON-safe representation. Domain objects in the payload become dicts."""
    payload: dict[str, Any] = {}
    for key, value in event.payload.items():
        if isinstance(value, (BeliefState, Observation)):
            payload[key] = value.to_dict()
        elif key == "registry" and isinstance(value, Mapping):
            payload[key] = {
                pid: p.to_dict() if isinstance(p, SafetyProfile) else p
                for pid, p in value.items()
            }
        else:
            payload[key] = value
    return {"type": event.type, "timestamp": event.timestamp, "payload": payload}


def event_from_dict(d: dict[str, Any]) -> Event:
    """Inverse of event_to_dict. Unknown kinds keep their raw payload."""
    payload = dict(d.get("payload", {}))
    event_type = d["type"]

    if event_type == "BELIEF_UPDATE" and isinstance(payload.get("belief"), dict):
        payload["belief"] = BeliefState.from_dict(payload["belief"])
    elif event_type == "TICK" and isinstance(payload.get("observation"), dict):
        payload["observation"] = Observation.from_dict(payload["observation"])
    elif event_type == "LOAD_SAFETY_REGISTRY" and isinstance(payload.get("registry"), dict):
        payload["registry"] = {
            pid: SafetyProfile.from_dict({"pattern_id": pid, **p})
            for pid, p in payload["registry"].items()
        }

    return Event(type=event_type, timestamp=float(d.get("timestamp", 0.0)), payload=payload)
