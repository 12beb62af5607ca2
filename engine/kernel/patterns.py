"""
ZenB Kernel: Protocol Catalog

The built-in breathing patterns and the estimator target each one drives the
belief toward.
"""

from __future__ import annotations

from engine.kernel.types import BreathPattern

# ---------------------------------------------------------------------------
# Patterns
# ---------------------------------------------------------------------------


def _pattern(
    pattern_id: str,
    label: str,
    tag: str,
    description: str,
    timings: tuple[float, float, float, float],
    color_theme: str,
    recommended_cycles: int,
    tier: int,
) -> BreathPattern:
    inhale, hold_in, exhale, hold_out = timings
    return BreathPattern(
        id=pattern_id,
        label=label,
        tag=tag,
        description=description,
        timings={"inhale": inhale, "holdIn": hold_in, "exhale": exhale, "holdOut": hold_out},
        color_theme=color_theme,
        recommended_cycles=recommended_cycles,
        tier=tier,
    )


BREATHING_PATTERNS: dict[str, BreathPattern] = {
    p.id: p
    for p in (
        _pattern("4-7-8", "Tranquility", "Sleep & Anxiety",
                 "A natural tranquilizer for the nervous system.",
                 (4, 7, 8, 0), "warm", 4, 1),
        _pattern("box", "Focus", "Concentration",
                 "Equal four-count box used to steady performance under load.",
                 (4, 4, 4, 4), "neutral", 6, 1),
        _pattern("calm", "Balance", "Coherence",
                 "Restores balance to heart rate variability.",
                 (4, 0, 6, 0), "cool", 8, 1),
        _pattern("coherence", "Coherence", "Heart Health",
                 "Six breaths a minute, the resonance rate for most adults.",
                 (6, 0, 6, 0), "cool", 10, 2),
        _pattern("deep-relax", "Deep Rest", "Stress Relief",
                 "Doubled exhalation to engage the parasympathetic system.",
                 (4, 0, 8, 0), "warm", 6, 1),
        _pattern("7-11", "7-11", "Deep Calm",
                 "Long exhale technique for panic and deep anxiety.",
                 (7, 0, 11, 0), "warm", 4, 2),
        _pattern("awake", "Energize", "Wake Up",
                 "Fast rhythm to raise alertness.",
                 (4, 0, 2, 0), "cool", 15, 2),
        _pattern("triangle", "Triangle", "Yoga",
                 "Three equal sides for emotional stability.",
                 (4, 4, 4, 0), "neutral", 8, 1),
        _pattern("tactical", "Tactical", "Advanced Focus",
                 "Extended box breathing for high-stress situations.",
                 (5, 5, 5, 5), "neutral", 5, 2),
        _pattern("buteyko", "Light Air", "Health",
                 "Reduced breathing to improve oxygen uptake.",
                 (3, 0, 3, 4), "cool", 12, 3),
        _pattern("wim-hof", "Tummo Power", "Immunity",
                 "Deep inhale, let go, long retention. Repeat.",
                 (2, 0, 1, 15), "warm", 30, 3),
    )
}


def get_pattern(pattern_id: str) -> BreathPattern | None:
    """Lookup a built-in pattern. Returns None for unknown ids."""
    return BREATHING_PATTERNS.get(pattern_id)


# ---------------------------------------------------------------------------
# Estimator targets
# ---------------------------------------------------------------------------

# (arousal, attention, rhythm_alignment)
PROTOCOL_TARGETS: dict[str, tuple[float, float, float]] = {
    # Parasympathetic dominance (sleep, anxiety reduction)
    "parasympathetic": (0.2, 0.5, 0.8),
    # Balanced autonomic state (HRV coherence)
    "balanced": (0.4, 0.7, 0.9),
    # Sympathetic activation (energizing)
    "sympathetic": (0.7, 0.8, 0.6),
    "default": (0.5, 0.6, 0.7),
}

PATTERN_TO_TARGET: dict[str, str] = {
    "4-7-8": "parasympathetic",
    "deep-relax": "parasympathetic",
    "7-11": "parasympathetic",
    "buteyko": "parasympathetic",
    "coherence": "balanced",
    "calm": "balanced",
    "box": "balanced",
    "triangle": "balanced",
    "tactical": "balanced",
    "awake": "sympathetic",
    "wim-hof": "sympathetic",
}


def target_key_for(pattern: BreathPattern | None) -> str:
    if pattern is None:
        return "default"
    return PATTERN_TO_TARGET.get(pattern.id, "default")
