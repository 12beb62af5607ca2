"""
ZenB configuration: all environment variables in one place.

Read from environment at import time. Every value has a default so the
kernel runs with no environment at all.
"""

from __future__ import annotations

import os
from pathlib import Path


class Settings:
    """Application settings from environment variables."""

    # Storage (settings JSON + event log JSONL)
    DATA_DIR: str = os.environ.get("ZENB_DATA_DIR", str(Path.home() / ".zenb"))

    # Logging
    LOG_LEVEL: str = os.environ.get("ZENB_LOG_LEVEL", "WARNING")

    # Kernel
    EVENT_LOG_CAPACITY: int = int(os.environ.get("ZENB_EVENT_LOG_CAPACITY", "1000"))
    MAX_TICK_DT: float = float(os.environ.get("ZENB_MAX_TICK_DT", "0.1"))

    # Event store
    EVENT_FLUSH_THRESHOLD: int = int(os.environ.get("ZENB_EVENT_FLUSH_THRESHOLD", "100"))
    EVENT_RETENTION_DAYS: int = int(os.environ.get("ZENB_EVENT_RETENTION_DAYS", "30"))

    @property
    def SETTINGS_PATH(self) -> Path:
        return Path(self.DATA_DIR) / "settings.json"

    @property
    def EVENT_LOG_PATH(self) -> Path:
        return Path(self.DATA_DIR) / "events.jsonl"


# Singleton instance
settings = Settings()
