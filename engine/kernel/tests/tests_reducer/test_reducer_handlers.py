"""
ZenB Reducer -- Per-Event Handler Tests

One class per event kind. Each event touches only the fields it owns;
an event whose precondition fails, or whose payload is malformed, returns
the input state object unchanged.
"""

from dataclasses import replace

import pytest

from engine.kernel import events
from engine.kernel.patterns import BREATHING_PATTERNS
from engine.kernel.reducer import initial_state, reduce
from engine.kernel.types import (
    HALTED,
    IDLE,
    PAUSED,
    RUNNING,
    SAFETY_LOCK,
    BeliefState,
    Observation,
    SafetyProfile,
)

T0 = 1_700_000_000.0


# ============================================================================
# Helpers
# ============================================================================


def loaded(pattern_id="box"):
    state = reduce(initial_state(T0), events.boot(timestamp=T0))
    return reduce(state, events.load_protocol(pattern_id, timestamp=T0 + 1))


def running(pattern_id="box"):
    return reduce(loaded(pattern_id), events.start_session(timestamp=T0 + 2))


# ============================================================================
# Lifecycle
# ============================================================================


class TestBoot:
    def test_boot_sets_idle(self):
        state = reduce(initial_state(T0), events.boot(timestamp=T0 + 5))
        assert state.status == IDLE
        assert state.last_update_timestamp == T0 + 5


class TestLoadProtocol:
    def test_binds_pattern_and_resets_phase(self):
        state = loaded("4-7-8")
        assert state.pattern is BREATHING_PATTERNS["4-7-8"]
        assert state.phase == "inhale"
        assert state.phase_duration == 4.0
        assert state.phase_start_time == T0 + 1
        assert state.cycle_count == 0
        assert state.session_start_time == 0.0

    def test_resets_rhythm_error_and_confidence_only(self):
        base = replace(
            initial_state(T0),
            belief=BeliefState(
                arousal=0.8,
                attention=0.3,
                rhythm_alignment=0.9,
                prediction_error=0.7,
                confidence=0.6,
            ),
        )
        state = reduce(base, events.load_protocol("calm", timestamp=T0))
        assert state.belief.rhythm_alignment == 0.0
        assert state.belief.prediction_error == 0.0
        assert state.belief.confidence == 0.0
        assert state.belief.arousal == 0.8
        assert state.belief.attention == 0.3

    def test_reload_mid_session_resets_cycles(self):
        state = reduce(running(), events.cycle_complete(3, timestamp=T0 + 50))
        state = reduce(state, events.load_protocol("calm", timestamp=T0 + 60))
        assert state.cycle_count == 0
        assert state.pattern.id == "calm"

    @pytest.mark.parametrize("pattern_id", ["no-such-pattern", 42, None])
    def test_unknown_or_invalid_id_is_noop(self, pattern_id):
        state = initial_state(T0)
        event = events.make_event("LOAD_PROTOCOL", {"pattern_id": pattern_id}, timestamp=T0)
        assert reduce(state, event) is state

    def test_ignored_under_safety_lock(self):
        state = reduce(initial_state(T0), events.safety_interdiction(0.8, "PATTERN_LOCKED", timestamp=T0))
        assert reduce(state, events.load_protocol("box", timestamp=T0 + 1)) is state

    def test_resolves_against_given_catalog(self):
        catalog = {"only": replace(BREATHING_PATTERNS["calm"], id="only")}
        state = reduce(initial_state(T0), events.load_protocol("box", timestamp=T0), catalog)
        assert state.pattern is None
        state = reduce(state, events.load_protocol("only", timestamp=T0), catalog)
        assert state.pattern.id == "only"


class TestStartSession:
    def test_requires_pattern(self):
        state = initial_state(T0)
        assert reduce(state, events.start_session(timestamp=T0)) is state

    def test_starts_running(self):
        state = running()
        assert state.status == RUNNING
        assert state.session_start_time == T0 + 2
        assert state.phase_start_time == T0 + 2

    def test_load_while_paused_restarts_pause_clock(self):
        state = reduce(running(), events.interruption(timestamp=T0 + 3))
        state = reduce(state, events.load_protocol("calm", timestamp=T0 + 5))
        assert state.status == PAUSED
        assert state.paused_at == T0 + 5
        state = reduce(state, events.resume(timestamp=T0 + 6))
        assert state.status == RUNNING
        assert state.phase_start_time == T0 + 6


class TestInterruptionAndResume:
    def test_pause_only_from_running(self):
        state = loaded()
        assert reduce(state, events.interruption(timestamp=T0 + 3)) is state

    def test_pause_records_pause_start(self):
        state = reduce(running(), events.interruption("background", timestamp=T0 + 3))
        assert state.status == PAUSED
        assert state.paused_at == T0 + 3

    def test_resume_only_from_paused(self):
        state = running()
        assert reduce(state, events.resume(timestamp=T0 + 3)) is state

    def test_resume_shifts_phase_start_by_pause_length(self):
        state = reduce(running(), events.interruption(timestamp=T0 + 3))
        state = reduce(state, events.resume(timestamp=T0 + 10))
        assert state.status == RUNNING
        assert state.phase_start_time == T0 + 2 + 7
        assert state.session_start_time == T0 + 2
        assert state.paused_at == 0.0

    def test_resume_with_clock_behind_pause_shifts_nothing(self):
        state = reduce(running(), events.interruption(timestamp=T0 + 3))
        state = reduce(state, events.resume(timestamp=T0 + 1))
        assert state.phase_start_time == T0 + 2


class TestHaltAndInterdiction:
    @pytest.mark.parametrize("build", [initial_state, lambda t: loaded(), lambda t: running()])
    def test_halt_from_any_status(self, build):
        state = reduce(build(T0), events.halt("user", timestamp=T0 + 30))
        assert state.status == HALTED

    def test_halt_clears_safety_lock(self):
        state = reduce(running(), events.safety_interdiction(0.95, "EMERGENCY_HALT", timestamp=T0 + 20))
        assert state.status == SAFETY_LOCK
        assert reduce(state, events.halt(timestamp=T0 + 21)).status == HALTED

    def test_interdiction_keeps_pattern(self):
        state = reduce(running(), events.safety_interdiction(0.95, "EMERGENCY_HALT", timestamp=T0 + 20))
        assert state.pattern.id == "box"


# ============================================================================
# Phase machine events
# ============================================================================


class TestPhaseTransition:
    def test_moves_to_destination(self):
        state = reduce(running(), events.phase_transition("inhale", "holdIn", timestamp=T0 + 6))
        assert state.phase == "holdIn"
        assert state.phase_start_time == T0 + 6
        assert state.phase_duration == 4.0

    def test_unknown_phase_is_noop(self):
        state = running()
        event = events.phase_transition("inhale", "sideways", timestamp=T0 + 6)
        assert reduce(state, event) is state

    def test_without_pattern_is_noop(self):
        state = initial_state(T0)
        assert reduce(state, events.phase_transition("inhale", "exhale", timestamp=T0)) is state


class TestCycleComplete:
    def test_sets_count(self):
        assert reduce(running(), events.cycle_complete(4, timestamp=T0 + 64)).cycle_count == 4

    @pytest.mark.parametrize("count", [-1, True, "3", 2.0, None])
    def test_invalid_count_is_noop(self, count):
        state = running()
        event = events.make_event("CYCLE_COMPLETE", {"count": count}, timestamp=T0)
        assert reduce(state, event) is state


# ============================================================================
# Belief / observation / registry
# ============================================================================


class TestBeliefUpdate:
    def test_replaces_belief(self):
        belief = BeliefState(arousal=0.3, prediction_error=0.2, confidence=0.7)
        state = reduce(running(), events.belief_update(belief, timestamp=T0 + 3))
        assert state.belief is belief

    def test_dict_payload_is_noop(self):
        state = running()
        event = events.make_event("BELIEF_UPDATE", {"belief": {"arousal": 0.3}}, timestamp=T0)
        assert reduce(state, event) is state


class TestTick:
    def test_records_observation(self):
        obs = Observation(timestamp=T0 + 3, delta_time=0.1, heart_rate=70.0, hr_confidence=0.9)
        state = reduce(running(), events.tick(0.1, obs, timestamp=T0 + 3))
        assert state.last_observation is obs
        assert state.last_update_timestamp == T0 + 3

    def test_bad_observation_is_noop(self):
        state = running()
        event = events.make_event("TICK", {"dt": 0.1, "observation": "frame"}, timestamp=T0)
        assert reduce(state, event) is state


class TestLoadSafetyRegistry:
    def test_replaces_never_merges(self):
        first = {"box": SafetyProfile(pattern_id="box", cumulative_stress_score=2)}
        second = {"calm": SafetyProfile(pattern_id="calm")}
        state = reduce(initial_state(T0), events.load_safety_registry(first, timestamp=T0))
        state = reduce(state, events.load_safety_registry(second, timestamp=T0 + 1))
        assert set(state.safety_registry) == {"calm"}

    def test_state_holds_its_own_copy(self):
        registry = {"box": SafetyProfile(pattern_id="box")}
        state = reduce(initial_state(T0), events.load_safety_registry(registry, timestamp=T0))
        registry["calm"] = SafetyProfile(pattern_id="calm")
        assert set(state.safety_registry) == {"box"}

    def test_registry_is_read_only(self):
        state = reduce(
            initial_state(T0),
            events.load_safety_registry({"box": SafetyProfile(pattern_id="box")}, timestamp=T0),
        )
        with pytest.raises(TypeError):
            state.safety_registry["calm"] = SafetyProfile(pattern_id="calm")
        with pytest.raises(TypeError):
            initial_state(T0).safety_registry["box"] = SafetyProfile(pattern_id="box")

    def test_empty_registry_clears(self):
        state = reduce(
            initial_state(T0),
            events.load_safety_registry({"box": SafetyProfile(pattern_id="box")}, timestamp=T0),
        )
        state = reduce(state, events.load_safety_registry({}, timestamp=T0 + 1))
        assert state.safety_registry == {}

    @pytest.mark.parametrize("registry", [["box"], {"box": {"pattern_id": "box"}}, None])
    def test_malformed_registry_is_noop(self, registry):
        state = initial_state(T0)
        event = events.make_event("LOAD_SAFETY_REGISTRY", {"registry": registry}, timestamp=T0)
        assert reduce(state, event) is state
