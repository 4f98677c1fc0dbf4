#!/usr/bin/env python3
"""
Play a breathing technique in the terminal.

Prints one status line per elapsed second and stops after the requested
number of cycles.

Usage:
    python scripts/run_session.py box4
    python scripts/run_session.py 478 --cycles 3 --interval 0.2 --vibration
    python scripts/run_session.py --list
"""

import argparse
import asyncio
import logging
import sys
from pathlib import Path

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

# Configure logging first (before importing other modules)
from breathwork.core.logging import configure_logging

configure_logging(level=logging.WARNING)

from breathwork.core.technique_loader import load_techniques
from breathwork.domain.models.session import StateChange, TimerEvent
from breathwork.services.breathing_controller import BreathingController
from breathwork.services.phase_scheduler import CYCLE_COMPLETE, PhaseScheduler
from breathwork.services.preferences_state import InMemoryStore


def format_status(change: StateChange) -> str:
    snapshot = change.current
    phase = snapshot.current_phase
    if phase is None:
        return f"[{snapshot.elapsed_seconds:>4}s] -"
    marker = " <" if phase.is_last_second else ""
    return (
        f"[{snapshot.elapsed_seconds:>4}s] cycle {snapshot.cycles_completed + 1} "
        f"{phase.phase.name:<8} {phase.time_in_phase + 1}/{phase.duration}{marker}"
    )


async def run(args: argparse.Namespace) -> int:
    registry = load_techniques()
    if args.list:
        for technique in registry:
            print(f"  {technique.id:<14} {technique.pattern:<10} {technique.name}")
        return 0

    controller = BreathingController(
        registry=registry,
        store=InMemoryStore(),
        scheduler=PhaseScheduler(interval=args.interval),
    )
    await controller.initialize()
    await controller.set_sound_enabled(not args.mute)
    await controller.set_vibration_enabled(args.vibration)

    done = asyncio.Event()

    def on_state(change: StateChange) -> None:
        if change.changed("elapsed_seconds") or change.changed("current_phase"):
            print(format_status(change))

    def on_cycle(event: TimerEvent) -> None:
        print(f"-- cycle {event.cycles_completed} complete --")
        if event.cycles_completed >= args.cycles:
            done.set()

    controller.session_state.subscribe(on_state)
    controller.scheduler.on(CYCLE_COMPLETE, on_cycle)

    technique = registry.get(args.technique)
    print(f"{technique.name} ({technique.pattern}), {args.cycles} cycle(s)")
    await controller.start_session(args.technique)
    try:
        await done.wait()
    finally:
        controller.stop_session()
        print(
            f"beeps: {len(controller.audio.played)}  "
            f"pulses: {len(controller.vibration.pulses)}"
        )
        await controller.shutdown()
    return 0


def main() -> int:
    parser = argparse.ArgumentParser(description="Play a breathing technique")
    parser.add_argument("technique", nargs="?", default="box4", help="Technique id")
    parser.add_argument("--cycles", type=int, default=1, help="Cycles to play")
    parser.add_argument(
        "--interval", type=float, default=1.0, help="Seconds per tick (speed up with <1)"
    )
    parser.add_argument("--mute", action="store_true", help="Disable audio cues")
    parser.add_argument("--vibration", action="store_true", help="Enable vibration cues")
    parser.add_argument("--list", action="store_true", help="List techniques and exit")
    args = parser.parse_args()
    try:
        return asyncio.run(run(args))
    except KeyboardInterrupt:
        return 130


if __name__ == "__main__":
    sys.exit(main())
