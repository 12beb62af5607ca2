"""
ZenB Kernel: Phase Sequencer

Pure functions over the fixed cycle inhale -> holdIn -> exhale -> holdOut.
Zero-duration phases are skipped. Entering inhale closes one breath cycle.
"""

from __future__ import annotations

from engine.kernel.errors import MalformedPatternError
from engine.kernel.types import PHASES, BreathPattern


def validate_pattern(pattern: BreathPattern) -> None:
    """Raise MalformedPatternError if no phase has a non-zero duration."""
    if not any(pattern.duration(phase) > 0 for phase in PHASES):
        raise MalformedPatternError(pattern.id)


def next_phase(current: str, pattern: BreathPattern) -> str:
    """
    Next phase with a non-zero duration, wrapping past holdOut to inhale.

    The search covers one full cycle. A pattern with a single non-zero phase
    returns that phase again; an all-zero pattern raises.
    """
    start = PHASES.index(current) if current in PHASES else 0
    for step in range(1, len(PHASES) + 1):
        candidate = PHASES[(start + step) % len(PHASES)]
        if pattern.duration(candidate) > 0:
            return candidate
    raise MalformedPatternError(pattern.id)


def is_cycle_boundary(phase: str) -> bool:
    """A transition into inhale completes one cycle."""
    return phase == PHASES[0]
