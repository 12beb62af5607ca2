"""Main entry point for ZenB CLI."""
from __future__ import annotations

import asyncio
import logging
import math
import sys
from collections import Counter
from pathlib import Path

from zenb_cli import __version__
from zenb_cli.simulator import run_simulation

from engine.config import settings
from engine.kernel.patterns import BREATHING_PATTERNS
from engine.kernel.reducer import replay
from engine.persistence.event_store import BufferedEventWriter, JsonlEventStore
from engine.persistence.settings_store import JsonSettingsStore, MemorySettingsStore, SettingsParseError


def print_help():
    """Print help message."""
    print(f"""
ZenB CLI v{__version__}

Usage:
  zenb [options] <command>

Commands:
  patterns          List breathing patterns with tier and lock status
  simulate          Run a simulated session and record its outcome
  replay FILE       Rebuild kernel state from a JSONL event log

Simulate options:
  --pattern ID      Pattern to breathe (default: last used)
  --seconds N       Session length in simulated seconds
                    (default: the pattern's recommended cycles)
  --hr BPM          Feed a constant heart rate at confidence 0.9
  --fps N           Frames per simulated second (default: 30)
  --no-record       Do not write settings or the event log

Options:
  --debug           Log at DEBUG level
  -h, --help        Show this help
  -v, --version     Show version

Environment:
  ZENB_DATA_DIR     Where settings.json and events.jsonl live (default: ~/.zenb)
  ZENB_LOG_LEVEL    Logging level (default: WARNING)

Examples:
  zenb patterns
  zenb simulate --pattern box --seconds 64
  zenb simulate --pattern coherence --hr 62
  zenb replay ~/.zenb/events.jsonl
""")


def parse_args(args: list[str]) -> dict:
    """
    Parse command line arguments.

    Returns dict with:
        command: str | None (patterns, simulate, replay)
        file: str | None
        pattern: str | None
        seconds: float | None
        hr: float | None
        fps: float
        record: bool
        debug: bool
        show_help: bool
        show_version: bool
    """
    result = {
        "command": None,
        "file": None,
        "pattern": None,
        "seconds": None,
        "hr": None,
        "fps": 30.0,
        "record": True,
        "debug": False,
        "show_help": False,
        "show_version": False,
    }

    def _value(i: int, flag: str, what: str) -> str:
        if i + 1 < len(args):
            return args[i + 1]
        print(f"Error: {flag} requires {what}")
        sys.exit(1)

    def _number(raw: str, flag: str) -> float:
        try:
            value = float(raw)
        except ValueError:
            value = math.nan
        if not math.isfinite(value) or value <= 0:
            print(f"Error: {flag} expects a positive number, got '{raw}'")
            sys.exit(1)
        return value

    i = 0
    while i < len(args):
        arg = args[i]

        if arg in ("patterns", "simulate") and result["command"] is None:
            result["command"] = arg
        elif arg == "replay" and result["command"] is None:
            result["command"] = "replay"
            result["file"] = _value(i, "replay", "a FILE")
            i += 1
        elif arg == "--pattern":
            result["pattern"] = _value(i, arg, "a pattern id")
            i += 1
        elif arg == "--seconds":
            result["seconds"] = _number(_value(i, arg, "a number"), arg)
            i += 1
        elif arg == "--hr":
            result["hr"] = _number(_value(i, arg, "a number"), arg)
            i += 1
        elif arg == "--fps":
            result["fps"] = _number(_value(i, arg, "a number"), arg)
            i += 1
        elif arg == "--no-record":
            result["record"] = False
        elif arg == "--debug":
            result["debug"] = True
        elif arg in ("--help", "-h"):
            result["show_help"] = True
        elif arg in ("--version", "-v"):
            result["show_version"] = True
        elif arg.startswith("-"):
            print(f"Unknown option: {arg}")
            print("Run 'zenb --help' for usage.")
            sys.exit(1)
        else:
            print(f"Unknown command: {arg}")
            print("Run 'zenb --help' for usage.")
            sys.exit(1)

        i += 1

    return result


def load_store() -> JsonSettingsStore:
    """Open the settings file, exiting with a message if it is corrupt."""
    store = JsonSettingsStore(settings.SETTINGS_PATH)
    try:
        store.load()
    except SettingsParseError as e:
        print(f"Error: could not read settings: {e}")
        sys.exit(1)
    return store


def cmd_patterns() -> int:
    store = load_store()
    last_used = store.document.user_settings.last_used_pattern

    for pattern in BREATHING_PATTERNS.values():
        t = pattern.timings
        timing = "-".join(f"{t[p]:g}" for p in ("inhale", "holdIn", "exhale", "holdOut"))
        decision = store.check_access(pattern)
        status = "ok" if decision.allowed else f"locked: {decision.reason}"
        marker = "*" if pattern.id == last_used else " "
        print(f" {marker} {pattern.id:<11} {pattern.label:<22} {timing:<10} tier {pattern.tier}  {status}")

    streak = store.document.user_settings.streak
    if streak:
        print(f"\n  Streak: {streak} day{'s' if streak != 1 else ''}")
    return 0


def cmd_simulate(args: dict) -> int:
    store = load_store()
    pattern_id = args["pattern"] or store.document.user_settings.last_used_pattern
    pattern = BREATHING_PATTERNS.get(pattern_id)
    if pattern is None:
        print(f"Unknown pattern: {pattern_id}")
        print("Run 'zenb patterns' for the list.")
        return 1

    seconds = args["seconds"] or pattern.cycle_seconds * pattern.recommended_cycles

    if not args["record"]:
        store = MemorySettingsStore(document=store.document)

    writer = None
    if args["record"]:
        writer = BufferedEventWriter(JsonlEventStore(settings.EVENT_LOG_PATH))

    print(f"\n  {pattern.label} ({pattern.id}), {seconds:g}s\n")
    result = run_simulation(
        store,
        pattern_id,
        seconds,
        fps=args["fps"],
        heart_rate=args["hr"],
        writer=writer,
    )

    if writer is not None:
        asyncio.run(writer.flush())

    if result.blocked_reason:
        print(f"  Blocked: {result.blocked_reason}")
        return 1

    belief = result.state.belief
    print(f"\n  Cycles:           {result.state.cycle_count}")
    print(f"  Frames:           {result.frames}")
    print(f"  Prediction error: {belief.prediction_error:.3f}")
    print(f"  Confidence:       {belief.confidence:.3f}")
    if result.history_item is None:
        print("  Too short to record.")
    return 0


async def _load_events(path: Path) -> list:
    # Simulated sessions are stamped ahead of the wall clock, so no upper bound.
    return await JsonlEventStore(path).get_range(0.0, math.inf)


def cmd_replay(path_str: str) -> int:
    path = Path(path_str).expanduser()
    if not path.exists():
        print(f"Error: no such file: {path}")
        return 1

    events = asyncio.run(_load_events(path))
    state = replay(events)
    counts = Counter(e.type for e in events)

    print(f"\n  {len(events)} events")
    for event_type, n in sorted(counts.items()):
        print(f"    {event_type:<22} {n}")
    print(f"\n  Status:  {state.status}")
    print(f"  Pattern: {state.pattern.id if state.pattern else '-'}")
    print(f"  Phase:   {state.phase}")
    print(f"  Cycles:  {state.cycle_count}")
    locked = sorted(pid for pid, p in state.safety_registry.items() if p.safety_lock_until > state.last_update_timestamp)
    print(f"  Locked:  {', '.join(locked) or '-'}")
    return 0


def main():
    """Main entry point."""
    args = parse_args(sys.argv[1:])

    if args["show_help"]:
        print_help()
        return

    if args["show_version"]:
        print(f"zenb-cli {__version__}")
        return

    logging.basicConfig(
        level=logging.DEBUG if args["debug"] else settings.LOG_LEVEL.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    if args["command"] == "patterns":
        sys.exit(cmd_patterns())
    elif args["command"] == "simulate":
        sys.exit(cmd_simulate(args))
    elif args["command"] == "replay":
        sys.exit(cmd_replay(args["file"]))
    else:
        print_help()
        sys.exit(1)


if __name__ == "__main__":
    main()
