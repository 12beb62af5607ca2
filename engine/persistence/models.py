"""Pydantic models for the persisted settings document."""

from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, Field

from engine.kernel.types import BeliefState, SafetyProfile, SessionHistoryItem


class SafetyProfileModel(BaseModel):
    """One registry entry as stored on disk."""

    pattern_id: str
    cumulative_stress_score: int = Field(default=0, ge=0)
    last_incident_timestamp: float = 0.0
    safety_lock_until: float = 0.0  # epoch seconds, 0 = unlocked
    resonance_history: list[float] = Field(default_factory=list, max_length=5)

    model_config = {"extra": "forbid"}

    def to_profile(self) -> SafetyProfile:
        return SafetyProfile(
            pattern_id=self.pattern_id,
            cumulative_stress_score=self.cumulative_stress_score,
            last_incident_timestamp=self.last_incident_timestamp,
            safety_lock_until=self.safety_lock_until,
            resonance_history=tuple(self.resonance_history),
        )

    @classmethod
    def from_profile(cls, profile: SafetyProfile) -> SafetyProfileModel:
        return cls(**profile.to_dict())


class BeliefModel(BaseModel):
    arousal: float = Field(ge=0.0, le=1.0)
    attention: float = Field(ge=0.0, le=1.0)
    rhythm_alignment: float = Field(ge=0.0, le=1.0)
    arousal_variance: float = Field(ge=0.0)
    attention_variance: float = Field(ge=0.0)
    rhythm_variance: float = Field(ge=0.0)
    prediction_error: float = Field(ge=0.0)
    confidence: float = Field(ge=0.0, le=1.0)

    model_config = {"extra": "forbid"}


class SessionHistoryModel(BaseModel):
    """A finished session in the history list."""

    id: str
    timestamp: float
    duration_sec: float = Field(ge=0.0)
    pattern_id: str
    cycles: int = Field(default=0, ge=0)
    final_belief: BeliefModel

    model_config = {"extra": "forbid"}

    def to_item(self) -> SessionHistoryItem:
        return SessionHistoryItem(
            id=self.id,
            timestamp=self.timestamp,
            duration_sec=self.duration_sec,
            pattern_id=self.pattern_id,
            cycles=self.cycles,
            final_belief=BeliefState(**self.final_belief.model_dump()),
        )

    @classmethod
    def from_item(cls, item: SessionHistoryItem) -> SessionHistoryModel:
        return cls(**item.to_dict())


class UserSettingsModel(BaseModel):
    """User preferences that affect the kernel's collaborators."""

    sound_enabled: bool = True
    haptic_enabled: bool = True
    haptic_strength: Literal["light", "medium", "heavy"] = "medium"
    language: Literal["en", "vi"] = "en"
    sound_pack: str = "musical"
    camera_vitals_enabled: bool = False
    streak: int = Field(default=0, ge=0)
    last_breath_date: str = ""  # YYYY-MM-DD, local time
    last_used_pattern: str = "4-7-8"
    safety_registry: dict[str, SafetyProfileModel] = Field(default_factory=dict)

    model_config = {"extra": "forbid"}


class SettingsDocument(BaseModel):
    """Everything persisted across restarts."""

    version: int = 1
    user_settings: UserSettingsModel = Field(default_factory=UserSettingsModel)
    history: list[SessionHistoryModel] = Field(default_factory=list)
    has_seen_onboarding: bool = False

    model_config = {"extra": "forbid"}

    def registry(self) -> dict[str, SafetyProfile]:
        return {pid: m.to_profile() for pid, m in self.user_settings.safety_registry.items()}

    def history_items(self) -> list[SessionHistoryItem]:
        return [m.to_item() for m in self.history]
