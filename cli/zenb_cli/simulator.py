"""Simulated session: drives a Kernel frame by frame on a fake clock."""
from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass

from engine.config import settings
from engine.kernel.kernel import Kernel
from engine.kernel.middleware import (
    FeedbackSettings,
    audio_middleware,
    event_recording_middleware,
    interdiction_logging_middleware,
)
from engine.kernel.sensors import VitalSigns, make_observation
from engine.kernel.types import RUNNING, SAFETY_LOCK, Event, RuntimeState, SessionHistoryItem, now_ts
from engine.persistence.event_store import BufferedEventWriter
from engine.persistence.settings_store import SettingsStore

logger = logging.getLogger(__name__)


class SimClock:
    """Callable clock that only moves when advanced."""

    def __init__(self, start: float = 0.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, dt: float) -> None:
        self.now += dt


class ConsoleCueSink:
    """Prints each phase cue with its offset from session start."""

    def __init__(self, clock: Callable[[], float], echo: Callable[[str], None] = print) -> None:
        self._clock = clock
        self._echo = echo
        self.start = clock()

    def play_cue(self, cue: str, duration: float) -> None:
        self._echo(f"  {self._clock() - self.start:7.1f}s  {cue:<7} {duration:4.1f}s")

    def haptic(self, cue: str, strength: str) -> None:
        pass


@dataclass
class SimulationResult:
    state: RuntimeState
    frames: int
    history_item: SessionHistoryItem | None = None
    blocked_reason: str | None = None


def run_simulation(
    store: SettingsStore,
    pattern_id: str,
    seconds: float,
    *,
    fps: float = 30.0,
    heart_rate: float | None = None,
    writer: BufferedEventWriter | None = None,
    clock: SimClock | None = None,
    echo: Callable[[str], None] = print,
) -> SimulationResult:
    """
    Run one session of `seconds` simulated seconds.

    The store is rehydrated into the kernel first and receives the outcome
    at the end. Frames are at most Settings.MAX_TICK_DT long.
    """
    clock = clock or SimClock(now_ts())
    kernel = Kernel(clock=clock)
    kernel.init()
    store.rehydrate(kernel)

    pattern = kernel.patterns.get(pattern_id)
    if pattern is None:
        return SimulationResult(kernel.get_state(), 0, blocked_reason=f"unknown pattern '{pattern_id}'")

    decision = store.check_access(pattern)
    if decision.locked:
        return SimulationResult(kernel.get_state(), 0, blocked_reason=decision.reason)

    sink = ConsoleCueSink(clock, echo)
    kernel.use(audio_middleware(sink, FeedbackSettings(sound_enabled=True, haptic_enabled=False)))
    kernel.use(interdiction_logging_middleware)
    if writer is not None:
        kernel.use(event_recording_middleware(writer))

    def _cycles(event: Event, before: RuntimeState, after: RuntimeState) -> None:
        if event.type == "CYCLE_COMPLETE":
            echo(f"  -- cycle {after.cycle_count}")

    kernel.use(_cycles)

    kernel.load_protocol(pattern_id)
    if kernel.get_state().status == SAFETY_LOCK:
        return SimulationResult(kernel.get_state(), 0, blocked_reason="pattern is safety locked")

    kernel.start_session()
    started = kernel.get_state()
    echo(f"  {0.0:7.1f}s  {started.phase:<7} {started.phase_duration:4.1f}s")

    dt = min(1.0 / fps, settings.MAX_TICK_DT)
    vitals = VitalSigns(heart_rate, 0.9, "good") if heart_rate is not None else None
    frames = 0
    while clock() - sink.start < seconds and kernel.get_state().status == RUNNING:
        clock.advance(dt)
        kernel.tick(dt, make_observation(dt, clock(), vitals))
        frames += 1

    if kernel.get_state().status == SAFETY_LOCK:
        logger.warning("simulate: session ended by safety interdiction after %d frames", frames)

    item = store.finish_session(kernel, reason="complete")
    return SimulationResult(kernel.get_state(), frames, history_item=item)
