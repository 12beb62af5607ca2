"""
Settings store: user preferences, session history and the safety registry.

Sits outside the kernel. On start it pushes the saved registry into the
kernel (rehydrate); when a session ends it runs the session-completion
policy, pushes the whole updated registry back, and persists.

Operations: load, save, rehydrate, finish_session, register_session_complete

MemorySettingsStore keeps the document in memory for tests.
JsonSettingsStore keeps it in a single JSON file.
"""

from __future__ import annotations

import json
import logging
import os
import secrets
from collections.abc import Callable
from datetime import datetime, timedelta
from pathlib import Path

from pydantic import ValidationError

from engine.kernel.kernel import Kernel
from engine.kernel.middleware import FeedbackSettings
from engine.kernel.safety import AccessDecision, apply_session_outcome, check_pattern_access
from engine.kernel.types import (
    PAUSED,
    RUNNING,
    SAFETY_LOCK,
    BreathPattern,
    SafetyProfile,
    SessionHistoryItem,
    now_ts,
)
from engine.persistence.models import (
    SafetyProfileModel,
    SessionHistoryModel,
    SettingsDocument,
)

logger = logging.getLogger(__name__)

HISTORY_LIMIT = 100
# Statuses in which a started session is still unrecorded
OPEN_SESSION_STATUSES = (RUNNING, PAUSED, SAFETY_LOCK)
HISTORY_MIN_SECONDS = 10.0
STREAK_MIN_SECONDS = 30.0


# ---------------------------------------------------------------------------
# Exceptions
# ---------------------------------------------------------------------------


class SettingsParseError(Exception):
    """Settings file exists but is not a valid settings document."""
    pass


# ---------------------------------------------------------------------------
# Store
# ---------------------------------------------------------------------------


class SettingsStore:
    """
    Abstract settings store.
    Subclasses implement _read() and _write(); everything else is shared.
    """

    def __init__(self, clock: Callable[[], float] = now_ts) -> None:
        self._clock = clock
        self._document = SettingsDocument()
        self._recorded_start = 0.0

    # -- storage hooks ------------------------------------------------------

    def _read(self) -> SettingsDocument | None:
        """Fetch the stored document. Returns None if nothing is stored yet."""
        raise NotImplementedError

    def _write(self, document: SettingsDocument) -> None:
        raise NotImplementedError

    # -- document -----------------------------------------------------------

    @property
    def document(self) -> SettingsDocument:
        return self._document

    def load(self) -> SettingsDocument:
        stored = self._read()
        self._document = stored if stored is not None else SettingsDocument()
        return self._document

    def save(self) -> None:
        self._write(self._document)

    def registry(self) -> dict[str, SafetyProfile]:
        return self._document.registry()

    def history(self) -> list[SessionHistoryItem]:
        return self._document.history_items()

    def feedback_settings(self) -> FeedbackSettings:
        us = self._document.user_settings
        return FeedbackSettings(
            sound_enabled=us.sound_enabled,
            haptic_enabled=us.haptic_enabled,
            haptic_strength=us.haptic_strength,
        )

    def update_settings(self, **changes: object) -> None:
        """Change user settings fields (validated) and persist."""
        current = self._document.user_settings.model_dump()
        current.update(changes)
        user_settings = type(self._document.user_settings).model_validate(current)
        self._document = self._document.model_copy(update={"user_settings": user_settings})
        self.save()

    def clear_history(self) -> None:
        self._document = self._document.model_copy(update={"history": []})
        self.save()

    def complete_onboarding(self) -> None:
        self._document = self._document.model_copy(update={"has_seen_onboarding": True})
        self.save()

    # -- kernel bridge ------------------------------------------------------

    def rehydrate(self, kernel: Kernel) -> None:
        """Load from storage and inject the saved safety registry into the kernel."""
        self.load()
        registry = self.registry()
        kernel.load_safety_registry(registry)
        logger.info("settings: rehydrated %d safety profiles", len(registry))

    def check_access(self, pattern: BreathPattern) -> AccessDecision:
        return check_pattern_access(pattern, self.registry(), self.history(), self._clock())

    def finish_session(self, kernel: Kernel, reason: str = "complete") -> SessionHistoryItem | None:
        """
        End the kernel's running session: record the outcome, then HALT.
        Records nothing if no session was started or this one was already
        finished; the kernel is halted either way.
        """
        state = kernel.get_state()
        if (
            state.pattern is None
            or state.session_start_time <= 0
            or state.status not in OPEN_SESSION_STATUSES
            or state.session_start_time == self._recorded_start
        ):
            kernel.halt(reason)
            return None

        duration_sec = max(0.0, kernel.clock() - state.session_start_time)
        self._recorded_start = state.session_start_time
        item = self.register_session_complete(kernel, duration_sec, state.pattern.id, state.cycle_count)
        kernel.halt(reason)
        return item

    def register_session_complete(
        self,
        kernel: Kernel,
        duration_sec: float,
        pattern_id: str,
        cycles: int,
    ) -> SessionHistoryItem | None:
        """
        Session-completion policy. Updates the registry from the final belief,
        pushes the full registry into the kernel, then appends history and
        updates the daily streak. Returns the history item, if one was kept.
        """
        now = self._clock()
        final_belief = kernel.get_state().belief
        previous = self.registry()

        registry = apply_session_outcome(
            previous, pattern_id, duration_sec, final_belief.prediction_error, now
        )
        kernel.load_safety_registry(registry)

        profile = registry[pattern_id]
        before = previous.get(pattern_id)
        if profile.safety_lock_until > now and (before is None or before.safety_lock_until != profile.safety_lock_until):
            logger.warning("settings: circuit breaker tripped for %s, locked until %.0f", pattern_id, profile.safety_lock_until)

        history = list(self._document.history)
        item: SessionHistoryItem | None = None
        if duration_sec > HISTORY_MIN_SECONDS:
            item = SessionHistoryItem(
                id=f"{int(now * 1000)}{secrets.token_hex(2)}",
                timestamp=now,
                duration_sec=duration_sec,
                pattern_id=pattern_id,
                cycles=cycles,
                final_belief=final_belief,
            )
            history = [SessionHistoryModel.from_item(item), *history][:HISTORY_LIMIT]

        us = self._document.user_settings
        streak, last_date = us.streak, us.last_breath_date
        if duration_sec > STREAK_MIN_SECONDS:
            streak, last_date = _next_streak(streak, last_date, now)

        user_settings = us.model_copy(
            update={
                "streak": streak,
                "last_breath_date": last_date,
                "last_used_pattern": pattern_id,
                "safety_registry": {
                    pid: SafetyProfileModel.from_profile(p) for pid, p in registry.items()
                },
            }
        )
        self._document = self._document.model_copy(
            update={"user_settings": user_settings, "history": history}
        )
        self.save()
        logger.info(
            "settings: recorded %s session %.1fs pe=%.3f",
            pattern_id,
            duration_sec,
            final_belief.prediction_error,
        )
        return item


def _next_streak(streak: int, last_date: str, now: float) -> tuple[int, str]:
    """Daily streak: same day keeps it, yesterday extends it, a gap restarts it."""
    today = datetime.fromtimestamp(now).date()
    today_str = today.isoformat()
    yesterday_str = (today - timedelta(days=1)).isoformat()

    if last_date == today_str:
        return streak, last_date
    if last_date == yesterday_str:
        return streak + 1, today_str
    return 1, today_str


# ---------------------------------------------------------------------------
# Implementations
# ---------------------------------------------------------------------------


class MemorySettingsStore(SettingsStore):
    """In-memory storage for testing."""

    def __init__(self, clock: Callable[[], float] = now_ts, document: SettingsDocument | None = None) -> None:
        super().__init__(clock)
        self.stored: SettingsDocument | None = document
        self.saves = 0

    def _read(self) -> SettingsDocument | None:
        return self.stored

    def _write(self, document: SettingsDocument) -> None:
        self.stored = document
        self.saves += 1


class JsonSettingsStore(SettingsStore):
    """Settings document in one JSON file, replaced atomically on save."""

    def __init__(self, path: Path | str, clock: Callable[[], float] = now_ts) -> None:
        super().__init__(clock)
        self.path = Path(path)

    def _read(self) -> SettingsDocument | None:
        if not self.path.exists():
            return None
        try:
            raw = json.loads(self.path.read_text(encoding="utf-8"))
            return SettingsDocument.model_validate(raw)
        except (json.JSONDecodeError, ValidationError) as e:
            raise SettingsParseError(f"{self.path}: {e}") from e

    def _write(self, document: SettingsDocument) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp = self.path.with_suffix(self.path.suffix + ".tmp")
        tmp.write_text(json.dumps(document.model_dump(mode="json"), indent=2), encoding="utf-8")
        os.replace(tmp, self.path)
