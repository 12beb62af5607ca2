"""
ZenB Kernel: Orchestrator

Owns the current RuntimeState, the bounded event log, the subscriber list
and the middleware chain. Ties the guard, reducer, sequencer and estimator
together.

dispatch(event):
  1. snapshot state_before
  2. guard (may replace the event, or drop it)
  3. append to the event log (oldest evicted past capacity)
  4. reduce
  5. derive phase_elapsed / session_duration from the clock
  6. commit
  7. middleware(event, before, after), in registration order
  8. notify subscribers

Middleware and subscriber failures are logged and never stop the fan-out.
A dispatch issued from inside a middleware or subscriber is queued and runs
after the current notification finishes, so the log keeps dispatch order.

Single-writer: one driver calls tick()/dispatch() per step. No threads, no
awaits inside the kernel. Construct one Kernel at process start and hand it
to collaborators explicitly.
"""

from __future__ import annotations

import logging
from collections import deque
from collections.abc import Callable, Mapping

from engine.config import settings
from engine.kernel import events
from engine.kernel.estimator import AdaptiveStateEstimator
from engine.kernel.guard import SafetyGuard, default_safety_guard
from engine.kernel.patterns import BREATHING_PATTERNS
from engine.kernel.phase_machine import is_cycle_boundary, next_phase
from engine.kernel.reducer import initial_state, reduce, with_derived
from engine.kernel.types import (
    RUNNING,
    BreathPattern,
    Event,
    Observation,
    RuntimeState,
    SafetyProfile,
    now_ts,
)

logger = logging.getLogger(__name__)

Subscriber = Callable[[RuntimeState], None]
Middleware = Callable[[Event, RuntimeState, RuntimeState], None]


class Kernel:
    """
    The authoritative session state machine.

    Usage:
        with Kernel() as kernel:
            kernel.load_protocol("box")
            kernel.start_session()
            while running:
                kernel.tick(dt, observation)
    """

    def __init__(
        self,
        *,
        clock: Callable[[], float] = now_ts,
        patterns: Mapping[str, BreathPattern] = BREATHING_PATTERNS,
        guard: SafetyGuard = default_safety_guard,
        estimator: AdaptiveStateEstimator | None = None,
        log_capacity: int | None = None,
    ) -> None:
        self._clock = clock
        self._patterns = patterns
        self._guard = guard
        self._estimator = estimator or AdaptiveStateEstimator()
        self._log: deque[Event] = deque(maxlen=log_capacity or settings.EVENT_LOG_CAPACITY)
        self._subscribers: list[Subscriber] = []
        self._middlewares: list[Middleware] = []
        self._pending: deque[Event] = deque()
        self._dispatching = False
        self._booted = False

        now = clock()
        self._state = with_derived(initial_state(now), now)

    # -----------------------------------------------------------------------
    # Lifecycle
    # -----------------------------------------------------------------------

    def init(self) -> None:
        """Dispatch BOOT. Idempotent."""
        if self._booted:
            return
        self._booted = True
        self.dispatch(events.boot(timestamp=self._clock()))
        logger.info("kernel: booted with %d patterns", len(self._patterns))

    def dispose(self) -> None:
        """Drop subscribers, middleware and anything still queued."""
        self._subscribers.clear()
        self._middlewares.clear()
        self._pending.clear()
        self._booted = False

    def __enter__(self) -> Kernel:
        self.init()
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.dispose()

    # -----------------------------------------------------------------------
    # Public API
    # -----------------------------------------------------------------------

    @property
    def clock(self) -> Callable[[], float]:
        return self._clock

    @property
    def patterns(self) -> Mapping[str, BreathPattern]:
        return self._patterns

    @property
    def estimator(self) -> AdaptiveStateEstimator:
        return self._estimator

    @property
    def log_capacity(self) -> int:
        return self._log.maxlen or 0

    def dispatch(self, event: Event) -> None:
        """
        Run one event through the pipeline. Returns nothing; a dropped event
        and an applied one look the same to the caller.
        """
        self._pending.append(event)
        if self._dispatching:
            logger.debug("kernel: queued re-entrant %s", event.type)
            return

        self._dispatching = True
        try:
            while self._pending:
                self._process(self._pending.popleft())
        except BaseException:
            self._pending.clear()
            raise
        finally:
            self._dispatching = False

    def tick(self, dt: float, observation: Observation) -> None:
        """
        Advance one frame: belief update, phase transition (and cycle
        completion) if the phase has run its course, then TICK.

        dt should already be clamped by the driver (see Settings.MAX_TICK_DT).
        Raises MalformedPatternError if the bound pattern has no playable phase.
        """
        now = self._clock()

        self._estimator.set_protocol(self._state.pattern)
        belief = self._estimator.update(observation, dt)
        self.dispatch(events.belief_update(belief, timestamp=now))

        state = self._state
        if state.status == RUNNING and state.pattern is not None:
            elapsed = now - state.phase_start_time
            if elapsed >= state.phase_duration:
                to_phase = next_phase(state.phase, state.pattern)
                self.dispatch(events.phase_transition(state.phase, to_phase, timestamp=now))
                if is_cycle_boundary(to_phase):
                    self.dispatch(events.cycle_complete(self._state.cycle_count + 1, timestamp=now))

        self.dispatch(events.tick(dt, observation, timestamp=now))

    def get_state(self) -> RuntimeState:
        return self._state

    def subscribe(self, callback: Subscriber) -> Callable[[], None]:
        """
        Register a state listener. It is called once right away with the
        current state. Returns a function that unsubscribes it.
        """
        self._subscribers.append(callback)
        self._call_subscriber(callback, self._state)

        def unsubscribe() -> None:
            if callback in self._subscribers:
                self._subscribers.remove(callback)

        return unsubscribe

    def use(self, middleware: Middleware) -> None:
        self._middlewares.append(middleware)

    def load_safety_registry(self, registry: Mapping[str, SafetyProfile]) -> None:
        """Swap in a complete registry. Replaces, never merges."""
        self.dispatch(events.load_safety_registry(registry, timestamp=self._clock()))

    def get_log_buffer(self) -> list[Event]:
        """Oldest first. A copy; mutating it does not touch the kernel."""
        return list(self._log)

    # -----------------------------------------------------------------------
    # Commands (one event each, stamped with the kernel clock)
    # -----------------------------------------------------------------------

    def load_protocol(self, pattern_id: str) -> None:
        self.dispatch(events.load_protocol(pattern_id, timestamp=self._clock()))

    def start_session(self) -> None:
        self.dispatch(events.start_session(timestamp=self._clock()))

    def pause(self, kind: str = "pause") -> None:
        self.dispatch(events.interruption(kind, timestamp=self._clock()))

    def resume(self) -> None:
        self.dispatch(events.resume(timestamp=self._clock()))

    def halt(self, reason: str = "user") -> None:
        self.dispatch(events.halt(reason, timestamp=self._clock()))

    # -----------------------------------------------------------------------
    # Internal
    # -----------------------------------------------------------------------

    def _process(self, event: Event) -> None:
        before = self._state

        guarded = self._guard(event, before)
        if guarded is None:
            logger.debug("kernel: guard dropped %s", event.type)
            return
        if guarded is not event:
            logger.debug("kernel: guard replaced %s with %s", event.type, guarded.type)

        self._log.append(guarded)

        after = with_derived(reduce(before, guarded, self._patterns), self._clock())
        self._state = after

        if guarded.type == "LOAD_PROTOCOL" and after.belief is not before.belief:
            # Keep the estimator on the belief the protocol load reset
            self._estimator.reset(after.belief)

        for middleware in list(self._middlewares):
            try:
                middleware(guarded, before, after)
            except Exception:
                logger.exception("kernel: middleware %r failed on %s", middleware, guarded.type)

        for callback in list(self._subscribers):
            self._call_subscriber(callback, after)

    def _call_subscriber(self, callback: Subscriber, state: RuntimeState) -> None:
        try:
            callback(state)
        except Exception:
            logger.exception("kernel: subscriber %r failed", callback)
