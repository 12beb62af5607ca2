"""
ZenB Kernel: Sensor Contract

What the (external) camera vitals pipeline hands the kernel, and how a
driver turns it into an Observation. A missing or zero-confidence reading is
"no new information", never an error.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Protocol

from engine.kernel.types import Observation

SIGNAL_QUALITIES: set[str] = {"excellent", "good", "fair", "poor"}


@dataclass(frozen=True)
class VitalSigns:
    """Best-effort heart-rate estimate from the vitals pipeline."""

    heart_rate: float
    confidence: float
    signal_quality: str = "fair"
    snr: float = 0.0
    motion_level: float = 0.0

    @property
    def usable(self) -> bool:
        return (
            math.isfinite(self.heart_rate)
            and math.isfinite(self.confidence)
            and self.heart_rate > 0
            and self.confidence > 0
        )


class VitalsSource(Protocol):
    def latest(self) -> VitalSigns | None: ...


def make_observation(
    dt: float,
    now: float,
    vitals: VitalSigns | None = None,
    *,
    hidden: bool = False,
    interaction: str | None = None,
) -> Observation:
    """Build the per-frame Observation, dropping unusable vitals."""
    heart_rate: float | None = None
    hr_confidence: float | None = None
    if vitals is not None and vitals.usable:
        heart_rate = vitals.heart_rate
        hr_confidence = min(1.0, vitals.confidence)

    return Observation(
        timestamp=now,
        delta_time=dt,
        visibility_state="hidden" if hidden else "visible",
        user_interaction=interaction,
        heart_rate=heart_rate,
        hr_confidence=hr_confidence,
    )
