"""
ZenB Kernel: Shared Types

Data classes used across the sequencer, estimator, guard, reducer and kernel.
These are the contracts that bind the kernel together.

All values are immutable. A new RuntimeState is produced for every dispatched
event; nothing in the kernel edits one in place. Mapping fields (pattern
timings, the safety registry) are read-only MappingProxyType views, which also
makes BreathPattern and RuntimeState unhashable.

Time is always a float number of seconds. Absolute times are Unix epoch
seconds (time.time()), durations are plain seconds.
"""

from __future__ import annotations

import time
from collections.abc import Mapping
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any

# ---------------------------------------------------------------------------
# Vocabularies
# ---------------------------------------------------------------------------

IDLE = "IDLE"
RUNNING = "RUNNING"
PAUSED = "PAUSED"
HALTED = "HALTED"
SAFETY_LOCK = "SAFETY_LOCK"

RUNTIME_STATUSES: set[str] = {IDLE, RUNNING, PAUSED, HALTED, SAFETY_LOCK}

# Fixed cyclic order. Index arithmetic in the sequencer depends on it.
PHASES: tuple[str, ...] = ("inhale", "holdIn", "exhale", "holdOut")

EVENT_TYPES: set[str] = {
    "BOOT",
    "LOAD_PROTOCOL",
    "START_SESSION",
    "TICK",
    "BELIEF_UPDATE",
    "PHASE_TRANSITION",
    "CYCLE_COMPLETE",
    "INTERRUPTION",
    "RESUME",
    "HALT",
    "SAFETY_INTERDICTION",
    "LOAD_SAFETY_REGISTRY",
}

USER_INTERACTIONS: set[str] = {"pause", "resume", "touch"}
VISIBILITY_STATES: set[str] = {"visible", "hidden"}

# Circuit breaker / registry constants
RESONANCE_WINDOW = 5
STRESS_TRIP_THRESHOLD = 5
SAFETY_LOCK_SECONDS = 24 * 60 * 60


# ---------------------------------------------------------------------------
# Data classes
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class BreathPattern:
    """
    A breathing protocol. Timings are seconds per phase; a zero skips the phase.
    Tier gates selection (1 = always open, 3 = advanced).
    """

    id: str
    label: str
    timings: Mapping[str, float]
    tier: int = 1
    recommended_cycles: int = 6
    tag: str = ""
    description: str = ""
    color_theme: str = "neutral"

    def __post_init__(self) -> None:
        if self.tier not in (1, 2, 3):
            raise ValueError(f"tier must be 1, 2 or 3, got {self.tier!r}")
        timings: dict[str, float] = {}
        for phase in PHASES:
            if phase not in self.timings:
                raise ValueError(f"pattern {self.id!r} is missing a duration for {phase!r}")
            value = float(self.timings[phase])
            if value < 0:
                raise ValueError(f"pattern {self.id!r} has a negative {phase!r} duration")
            timings[phase] = value
        object.__setattr__(self, "timings", MappingProxyType(timings))

    def duration(self, phase: str) -> float:
        return self.timings.get(phase, 0.0)

    @property
    def cycle_seconds(self) -> float:
        return sum(self.timings.values())

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "label": self.label,
            "tag": self.tag,
            "description": self.description,
            "timings": dict(self.timings),
            "color_theme": self.color_theme,
            "recommended_cycles": self.recommended_cycles,
            "tier": self.tier,
        }

    @classmethod
    def from_dict(cls, d: dict[str, Any]) -> BreathPattern:
        return cls(
            id=d["id"],
            label=d.get("label", d["id"]),
            timings=d["timings"],
            tier=d.get("tier", 1),
            recommended_cycles=d.get("recommended_cycles", 6),
            tag=d.get("tag", ""),
            description=d.get("description", ""),
            color_theme=d.get("color_theme", "neutral"),
        )


@dataclass(frozen=True)
class BeliefState:
    """
    The estimator's current guess of the user's state.

    arousal:   0.0 (drowsy) -> 1.0 (panic)
    attention: 0.0 (dissociated) -> 1.0 (hyper-focused)
    rhythm_alignment: 0.0 (arrhythmia) -> 1.0 (resonance)
    """

    arousal: float = 0.5
    attention: float = 0.5
    rhythm_alignment: float = 0.0
    arousal_variance: float = 0.2
    attention_variance: float = 0.2
    rhythm_variance: float = 0.3
    prediction_error: float = 0.0
    confidence: float = 0.0

    @classmethod
    def initial(cls) -> BeliefState:
        return cls()

    def to_dict(self) -> dict[str, float]:
        return {
            "arousal": self.arousal,
            "attention": self.attention,
            "rhythm_alignment": self.rhythm_alignment,
            "arousal_variance": self.arousal_variance,
            "attention_variance": self.attention_variance,
            "rhythm_variance": self.rhythm_variance,
            "prediction_error": self.prediction_error,
            "confidence": self.confidence,
        }

    @classmethod
    def from_dict(cls, d: dict[str, Any]) -> BeliefState:
        default = cls()
        return cls(**{name: float(d.get(name, getattr(default, name))) for name in default.to_dict()})


@dataclass(frozen=True)
class Observation:
    """One sensor/context sample, delivered once per frame by the driver."""

    timestamp: float
    delta_time: float
    visibility_state: str = "visible"
    user_interaction: str | None = None
    heart_rate: float | None = None
    hr_confidence: float | None = None

    @property
    def is_distracted(self) -> bool:
        return self.user_interaction == "pause" or self.visibility_state == "hidden"

    def to_dict(self) -> dict[str, Any]:
        d: dict[str, Any] = {
            "timestamp": self.timestamp,
            "delta_time": self.delta_time,
            "visibility_state": self.visibility_state,
        }
        if self.user_interaction is not None:
            d["user_interaction"] = self.user_interaction
        if self.heart_rate is not None:
            d["heart_rate"] = self.heart_rate
        if self.hr_confidence is not None:
            d["hr_confidence"] = self.hr_confidence
        return d

    @classmethod
    def from_dict(cls, d: dict[str, Any]) -> Observation:
        return cls(
            timestamp=d.get("timestamp", 0.0),
            delta_time=d.get("delta_time", 0.0),
            visibility_state=d.get("visibility_state", "visible"),
            user_interaction=d.get("user_interaction"),
            heart_rate=d.get("heart_rate"),
            hr_confidence=d.get("hr_confidence"),
        )


@dataclass(frozen=True)
class SafetyProfile:
    """
    Per-pattern safety record. Created lazily on the first completed session
    and never deleted. safety_lock_until == 0 means unlocked.
    """

    pattern_id: str
    cumulative_stress_score: int = 0
    last_incident_timestamp: float = 0.0
    safety_lock_until: float = 0.0
    resonance_history: tuple[float, ...] = ()

    def to_dict(self) -> dict[str, Any]:
        return {
            "pattern_id": self.pattern_id,
            "cumulative_stress_score": self.cumulative_stress_score,
            "last_incident_timestamp": self.last_incident_timestamp,
            "safety_lock_until": self.safety_lock_until,
            "resonance_history": list(self.resonance_history),
        }

    @classmethod
    def from_dict(cls, d: dict[str, Any]) -> SafetyProfile:
        return cls(
            pattern_id=d["pattern_id"],
            cumulative_stress_score=int(d.get("cumulative_stress_score", 0)),
            last_incident_timestamp=float(d.get("last_incident_timestamp", 0.0)),
            safety_lock_until=float(d.get("safety_lock_until", 0.0)),
            resonance_history=tuple(float(v) for v in d.get("resonance_history", ())),
        )


@dataclass(frozen=True)
class SessionHistoryItem:
    """A finished session as kept in the user's history list."""

    id: str
    timestamp: float
    duration_sec: float
    pattern_id: str
    cycles: int
    final_belief: BeliefState = field(default_factory=BeliefState)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "timestamp": self.timestamp,
            "duration_sec": self.duration_sec,
            "pattern_id": self.pattern_id,
            "cycles": self.cycles,
            "final_belief": self.final_belief.to_dict(),
        }

    @classmethod
    def from_dict(cls, d: dict[str, Any]) -> SessionHistoryItem:
        return cls(
            id=d["id"],
            timestamp=d["timestamp"],
            duration_sec=d["duration_sec"],
            pattern_id=d["pattern_id"],
            cycles=d.get("cycles", 0),
            final_belief=BeliefState.from_dict(d.get("final_belief", {})),
        )


@dataclass(frozen=True)
class Event:
    """
    Kernel event envelope for the bounded event log.
    The reducer reads only `type`, `timestamp` and `payload`.
    """

    type: str
    timestamp: float
    payload: dict[str, Any] = field(default_factory=dict)

    def get(self, key: str, default: Any = None) -> Any:
        return self.payload.get(key, default)


@dataclass(frozen=True)
class RuntimeState:
    """
    The single source of truth. Replaced wholesale on every dispatch.

    phase_elapsed and session_duration are derived by the kernel after each
    reduce and are never persisted or replayed.
    """

    version: int = 2
    status: str = IDLE
    boot_timestamp: float = 0.0
    last_update_timestamp: float = 0.0

    # Protocol
    pattern: BreathPattern | None = None

    # Phase machine
    phase: str = "inhale"
    phase_start_time: float = 0.0
    phase_duration: float = 0.0
    cycle_count: int = 0
    session_start_time: float = 0.0
    paused_at: float = 0.0

    # Belief
    belief: BeliefState = field(default_factory=BeliefState)

    # Safety registry (pattern id -> profile)
    safety_registry: Mapping[str, SafetyProfile] = field(default_factory=lambda: MappingProxyType({}))

    # Derived / UI cache
    phase_elapsed: float = 0.0
    session_duration: float = 0.0
    last_observation: Observation | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "version": self.version,
            "status": self.status,
            "boot_timestamp": self.boot_timestamp,
            "last_update_timestamp": self.last_update_timestamp,
            "pattern": self.pattern.to_dict() if self.pattern else None,
            "phase": self.phase,
            "phase_start_time": self.phase_start_time,
            "phase_duration": self.phase_duration,
            "cycle_count": self.cycle_count,
            "session_start_time": self.session_start_time,
            "paused_at": self.paused_at,
            "belief": self.belief.to_dict(),
            "safety_registry": {pid: p.to_dict() for pid, p in sorted(self.safety_registry.items())},
            "phase_elapsed": self.phase_elapsed,
            "session_duration": self.session_duration,
            "last_observation": self.last_observation.to_dict() if self.last_observation else None,
        }


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def now_ts() -> float:
    """Current wall-clock time in epoch seconds."""
    return time.time()


def clamp(value: float, low: float = 0.0, high: float = 1.0) -> float:
    return max(low, min(high, value))
