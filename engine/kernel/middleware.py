"""
ZenB Kernel: Middleware

Side-effect hooks run synchronously after each commit with
(event, state_before, state_after). The kernel catches and logs anything a
middleware raises, but well-behaved middleware should not raise at all.

The cue middlewares drive the audio/haptic collaborators through the
CueSink protocol; rendering and sample playback live outside the kernel.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Protocol

from engine.kernel.kernel import Middleware
from engine.kernel.types import RUNNING, Event, RuntimeState

logger = logging.getLogger(__name__)


class CueSink(Protocol):
    """Audio/haptic output device. Implemented outside the kernel."""

    def play_cue(self, cue: str, duration: float) -> None: ...

    def haptic(self, cue: str, strength: str) -> None: ...


class EventWriter(Protocol):
    def append(self, event: Event) -> None: ...


@dataclass(frozen=True)
class FeedbackSettings:
    """The slice of user settings the cue middlewares read."""

    sound_enabled: bool = True
    haptic_enabled: bool = True
    haptic_strength: str = "medium"


def phase_to_cue(phase: str) -> str:
    """Both holds share one cue."""
    if phase in ("holdIn", "holdOut"):
        return "hold"
    return phase


def _is_running_transition(event: Event, after: RuntimeState) -> bool:
    return event.type == "PHASE_TRANSITION" and after.status == RUNNING


def audio_middleware(sink: CueSink, settings: FeedbackSettings) -> Middleware:
    """Play the destination phase's cue on every running transition."""

    def _audio(event: Event, before: RuntimeState, after: RuntimeState) -> None:
        if not settings.sound_enabled or not _is_running_transition(event, after):
            return
        sink.play_cue(phase_to_cue(after.phase), after.phase_duration)

    return _audio


def haptic_middleware(sink: CueSink, settings: FeedbackSettings) -> Middleware:
    """Pulse the haptic motor on every running transition."""

    def _haptic(event: Event, before: RuntimeState, after: RuntimeState) -> None:
        if not settings.haptic_enabled or not _is_running_transition(event, after):
            return
        sink.haptic(phase_to_cue(after.phase), settings.haptic_strength)

    return _haptic


def interdiction_logging_middleware(event: Event, before: RuntimeState, after: RuntimeState) -> None:
    if event.type != "SAFETY_INTERDICTION":
        return
    logger.warning(
        "safety interdiction: action=%s risk=%.2f replaced=%s status %s -> %s",
        event.get("action"),
        event.get("risk_level", 0.0),
        event.get("source_type"),
        before.status,
        after.status,
    )


def event_recording_middleware(writer: EventWriter) -> Middleware:
    """Forward every committed event to a persistent writer."""

    def _record(event: Event, before: RuntimeState, after: RuntimeState) -> None:
        writer.append(event)

    return _record
