"""
Event store: durable copy of the kernel's event stream.

The kernel keeps only a bounded in-memory log. A driver that wants a longer
history attaches event_recording_middleware(BufferedEventWriter(store)):
appends are synchronous and buffered, the driver flushes them on its own
schedule (run_periodic_flush) or when the buffer overflows.

Operations: append, flush, get_range, get_by_type, cleanup, replay

MemoryEventStore keeps events in a list (tests).
JsonlEventStore keeps one JSON object per line in a file.
"""

from __future__ import annotations

import asyncio
import json
import logging
import os
from collections.abc import Callable, Mapping
from pathlib import Path

from engine.config import settings
from engine.kernel.events import event_from_dict, event_to_dict
from engine.kernel.patterns import BREATHING_PATTERNS
from engine.kernel.reducer import replay as replay_events
from engine.kernel.types import BreathPattern, Event, RuntimeState, now_ts

logger = logging.getLogger(__name__)

SECONDS_PER_DAY = 86400


# ---------------------------------------------------------------------------
# Storage interface
# ---------------------------------------------------------------------------


class EventStore:
    """
    Abstract event storage.
    Events are kept in timestamp order; equal timestamps keep append order.
    """

    async def append_many(self, events: list[Event]) -> None:
        raise NotImplementedError

    async def get_range(self, start: float, end: float) -> list[Event]:
        """Events with start <= timestamp <= end."""
        raise NotImplementedError

    async def get_by_type(self, event_type: str) -> list[Event]:
        raise NotImplementedError

    async def delete_before(self, cutoff: float) -> int:
        """Drop events older than cutoff. Returns how many were removed."""
        raise NotImplementedError


class MemoryEventStore(EventStore):
    """In-memory storage for testing."""

    def __init__(self) -> None:
        self.events: list[Event] = []

    async def append_many(self, events: list[Event]) -> None:
        self.events.extend(events)
        self.events.sort(key=lambda e: e.timestamp)

    async def get_range(self, start: float, end: float) -> list[Event]:
        return [e for e in self.events if start <= e.timestamp <= end]

    async def get_by_type(self, event_type: str) -> list[Event]:
        return [e for e in self.events if e.type == event_type]

    async def delete_before(self, cutoff: float) -> int:
        kept = [e for e in self.events if e.timestamp >= cutoff]
        removed = len(self.events) - len(kept)
        self.events = kept
        return removed


class JsonlEventStore(EventStore):
    """Append-only JSON Lines file. Reads scan the whole file."""

    def __init__(self, path: Path | str) -> None:
        self.path = Path(path)
        self._lock = asyncio.Lock()

    def _read_all(self) -> list[Event]:
        if not self.path.exists():
            return []
        events: list[Event] = []
        with self.path.open(encoding="utf-8") as f:
            for lineno, line in enumerate(f, start=1):
                line = line.strip()
                if not line:
                    continue
                try:
                    events.append(event_from_dict(json.loads(line)))
                except (json.JSONDecodeError, KeyError, TypeError, ValueError):
                    logger.warning("event store: skipping unreadable line %d in %s", lineno, self.path)
        events.sort(key=lambda e: e.timestamp)
        return events

    async def append_many(self, events: list[Event]) -> None:
        if not events:
            return
        async with self._lock:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            with self.path.open("a", encoding="utf-8") as f:
                for event in events:
                    f.write(json.dumps(event_to_dict(event)) + "\n")

    async def get_range(self, start: float, end: float) -> list[Event]:
        async with self._lock:
            return [e for e in self._read_all() if start <= e.timestamp <= end]

    async def get_by_type(self, event_type: str) -> list[Event]:
        async with self._lock:
            return [e for e in self._read_all() if e.type == event_type]

    async def delete_before(self, cutoff: float) -> int:
        async with self._lock:
            events = self._read_all()
            kept = [e for e in events if e.timestamp >= cutoff]
            if len(kept) == len(events):
                return 0
            tmp = self.path.with_suffix(self.path.suffix + ".tmp")
            with tmp.open("w", encoding="utf-8") as f:
                for event in kept:
                    f.write(json.dumps(event_to_dict(event)) + "\n")
            os.replace(tmp, self.path)
            return len(events) - len(kept)


# ---------------------------------------------------------------------------
# Buffered writer
# ---------------------------------------------------------------------------


class BufferedEventWriter:
    """
    Synchronous append() for use inside middleware; IO happens in flush().

    Once the buffer grows past flush_threshold, needs_flush is set so the
    driver can flush early instead of waiting for the next interval.
    """

    def __init__(
        self,
        store: EventStore,
        *,
        flush_threshold: int | None = None,
        clock: Callable[[], float] = now_ts,
    ) -> None:
        self.store = store
        self.flush_threshold = flush_threshold if flush_threshold is not None else settings.EVENT_FLUSH_THRESHOLD
        self._clock = clock
        self._buffer: list[Event] = []

    @property
    def pending(self) -> int:
        return len(self._buffer)

    @property
    def needs_flush(self) -> bool:
        return len(self._buffer) > self.flush_threshold

    def append(self, event: Event) -> None:
        self._buffer.append(event)
        if len(self._buffer) == self.flush_threshold + 1:
            logger.debug("event store: buffer over %d events, flush requested", self.flush_threshold)

    async def flush(self) -> int:
        """Write the buffer out. On failure the events go back to the front of the buffer."""
        if not self._buffer:
            return 0
        batch, self._buffer = self._buffer, []
        try:
            await self.store.append_many(batch)
        except Exception:
            self._buffer = batch + self._buffer
            raise
        return len(batch)

    async def run_periodic_flush(self, interval: float = 2.0) -> None:
        """Flush every interval seconds (sooner on overflow) until cancelled."""
        try:
            while True:
                waited = 0.0
                step = min(interval, 0.1)
                while waited < interval and not self.needs_flush:
                    await asyncio.sleep(step)
                    waited += step
                await self.flush()
        finally:
            await self.flush()

    async def get_range(self, start: float, end: float) -> list[Event]:
        await self.flush()
        return await self.store.get_range(start, end)

    async def get_by_type(self, event_type: str) -> list[Event]:
        await self.flush()
        return await self.store.get_by_type(event_type)

    async def cleanup(self, retention_days: int | None = None) -> int:
        days = retention_days if retention_days is not None else settings.EVENT_RETENTION_DAYS
        await self.flush()
        removed = await self.store.delete_before(self._clock() - days * SECONDS_PER_DAY)
        if removed:
            logger.info("event store: cleaned up %d old events", removed)
        return removed

    async def replay(self, from_ts: float = 0.0) -> list[Event]:
        """Stored events from from_ts up to now, oldest first."""
        events = await self.get_range(from_ts, self._clock())
        logger.info("event store: replaying %d events from %.0f", len(events), from_ts)
        return events

    async def rebuild_state(
        self,
        from_ts: float = 0.0,
        patterns: Mapping[str, BreathPattern] = BREATHING_PATTERNS,
    ) -> RuntimeState:
        """Fold the stored events through the reducer."""
        events = await self.replay(from_ts)
        return replay_events(events, patterns, now=from_ts)
