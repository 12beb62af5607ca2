"""
ZenB Kernel: the session control and safety plane.

Components:
  phase_machine  next phase / cycle boundary over the fixed 4-phase cycle
  estimator      Kalman-style belief over arousal, attention, rhythm
  guard          (event, state) -> event | None, runs before every dispatch
  reducer        (state, event) -> state  (pure, deterministic)
  kernel         owns state, event log, middleware and subscribers
  safety         registry outcomes, circuit breaker, tier gating
"""

from engine.kernel.errors import KernelError, MalformedPatternError
from engine.kernel.estimator import AdaptiveStateEstimator
from engine.kernel.guard import chain_guards, default_safety_guard
from engine.kernel.kernel import Kernel
from engine.kernel.patterns import BREATHING_PATTERNS, get_pattern
from engine.kernel.phase_machine import is_cycle_boundary, next_phase
from engine.kernel.reducer import initial_state, reduce, replay
from engine.kernel.safety import apply_session_outcome, check_pattern_access

__all__ = [
    "Kernel",
    "KernelError",
    "MalformedPatternError",
    "AdaptiveStateEstimator",
    "default_safety_guard",
    "chain_guards",
    "BREATHING_PATTERNS",
    "get_pattern",
    "next_phase",
    "is_cycle_boundary",
    "initial_state",
    "reduce",
    "replay",
    "apply_session_outcome",
    "check_pattern_access",
]
