"""
Phase scheduler: the real-time driver of a breathing session.

Advances session time by one whole second per tick, resolves the active phase
from the technique and publishes events to listeners:

    start           session clock started (current_time 0)
    update          one per elapsed second, strictly increasing current_time
    cycle_complete  after the update whose current_time is a multiple of the
                    technique's total duration
    swap            technique replaced on a running clock, emitted before the
                    update for second 0 of the new technique
    seek            clock moved to an elapsed second by seek()
    pause, resume, stop, reset

Ticks come from an asyncio task that sleeps until absolute deadlines computed
from loop.time(), so a slow listener delays one tick without shifting the
ones after it. With use_clock=False no task is created and the caller drives
tick() directly.
"""

import asyncio
from typing import Any, Callable, Dict, Optional

import structlog

from breathwork.core.config import settings
from breathwork.core.exceptions import StateUpdateFailed
from breathwork.domain.models.session import TimerEvent
from breathwork.domain.models.technique import PhaseInfo, Technique
from breathwork.services.notifier import EventNotifier, Unsubscribe

log = structlog.get_logger(__name__)

START = "start"
UPDATE = "update"
CYCLE_COMPLETE = "cycle_complete"
PAUSE = "pause"
RESUME = "resume"
STOP = "stop"
RESET = "reset"
SWAP = "swap"
SEEK = "seek"

EVENTS = (START, UPDATE, CYCLE_COMPLETE, PAUSE, RESUME, STOP, RESET, SWAP, SEEK)


class PhaseScheduler:
    """Once-per-second session clock.

    States: idle (not running, not paused), running, paused. Running and
    paused are never both true.

    Example:
        scheduler = PhaseScheduler(use_clock=False)
        scheduler.on("update", lambda e: print(e.current_time, e.current_phase))
        scheduler.set_technique(registry.get("box4"))
        scheduler.start()
        scheduler.tick()
    """

    def __init__(self, interval: Optional[float] = None, use_clock: bool = True):
        self.interval = interval if interval is not None else settings.tick_interval_seconds
        if self.interval <= 0:
            raise ValueError(f"interval must be positive, got {self.interval}")
        self.use_clock = use_clock

        self._events = EventNotifier("phase_scheduler")
        self._technique: Optional[Technique] = None
        self._current_time = 0
        self._current_phase: Optional[PhaseInfo] = None
        self._running = False
        self._paused = False
        self._task: Optional[asyncio.Task] = None
        self._generation = 0
        self._disposed = False

    # ==========================================================================
    # Listeners
    # ==========================================================================

    def on(self, event: str, callback: Callable[[TimerEvent], Any]) -> Unsubscribe:
        if event not in EVENTS:
            raise ValueError(f"Unknown scheduler event: {event}")
        return self._events.on(event, callback)

    def off(self, event: str, callback: Callable[[TimerEvent], Any]) -> None:
        self._events.off(event, callback)

    # ==========================================================================
    # Control
    # ==========================================================================

    def set_technique(self, technique: Technique) -> None:
        """Install a technique.

        On a ticking scheduler the clock is stopped, the technique installed
        and the clock restarted at second 0, so a phase index from the old
        technique is never applied to the new one. Idle or paused schedulers
        keep their elapsed time; call rewind() to zero it.
        """
        if technique is None:
            raise StateUpdateFailed("Scheduler technique cannot be None", field="technique")

        if not self._running:
            self._technique = technique
            log.debug("scheduler_technique_installed", technique_id=technique.id)
            return

        self._stop_clock()
        self._technique = technique
        self._current_time = 0
        log.info("scheduler_technique_swapped", technique_id=technique.id)
        self._emit(SWAP)
        self._emit_update()
        self._start_clock()

    def start(self) -> None:
        """Start ticking from second 0.

        Ignored when already running; resumes instead when paused.

        Raises:
            StateUpdateFailed: No technique installed
            RuntimeError: Scheduler was disposed
        """
        if self._disposed:
            raise RuntimeError("PhaseScheduler has been disposed")
        if self._running:
            log.debug("scheduler_start_ignored", reason="already_running")
            return
        if self._paused:
            self.resume()
            return
        if self._technique is None:
            raise StateUpdateFailed(
                "Cannot start scheduler without a technique", field="technique"
            )

        self._start_clock()
        self._current_time = 0
        self._running = True
        log.info(
            "scheduler_started",
            technique_id=self._technique.id,
            interval=self.interval,
        )
        self._emit(START)
        self._emit_update()

    def pause(self) -> None:
        if not self._running:
            return
        self._stop_clock()
        self._running = False
        self._paused = True
        log.info("scheduler_paused", current_time=self._current_time)
        self._emit(PAUSE)

    def resume(self) -> None:
        """Continue ticking; the next tick comes one full interval from now."""
        if not self._paused:
            return
        self._start_clock()
        self._paused = False
        self._running = True
        log.info("scheduler_resumed", current_time=self._current_time)
        self._emit(RESUME)

    def stop(self) -> None:
        """Halt ticking. Idempotent; elapsed time is kept."""
        was_active = self._running or self._paused
        self._stop_clock()
        self._running = False
        self._paused = False
        if was_active:
            log.info("scheduler_stopped", current_time=self._current_time)
            self._emit(STOP)

    def rewind(self) -> None:
        """Zero elapsed time and phase position without changing run state."""
        self._move_to(0)
        self._emit(RESET)

    def seek(self, seconds: int) -> None:
        """Move the clock to an elapsed second without changing run state.

        A ticking clock is re-armed so the next tick is a full interval away.
        """
        if seconds < 0:
            raise ValueError(f"seconds must be >= 0, got {seconds}")
        self._move_to(seconds)
        self._emit(SEEK)

    def _move_to(self, seconds: int) -> None:
        self._current_time = seconds
        self._current_phase = self._technique.phase_at(seconds) if self._technique else None
        if self._running:
            self._stop_clock()
            self._start_clock()

    def reset(self) -> None:
        """Stop and zero elapsed time and phase position."""
        self.stop()
        self.rewind()

    def tick(self) -> None:
        """Advance one second. Does nothing unless running."""
        if not self._running or self._technique is None:
            return

        self._current_time += 1
        if not self._emit_update():
            return

        total = self._technique.total_duration
        if self._current_time % total == 0:
            log.debug(
                "cycle_complete",
                current_time=self._current_time,
                cycles=self._current_time // total,
            )
            self._emit(CYCLE_COMPLETE)

    def dispose(self) -> None:
        """Stop, drop every listener and the technique. Start is refused afterwards."""
        self.stop()
        self._events.clear()
        self._technique = None
        self._current_phase = None
        self._disposed = True
        log.debug("scheduler_disposed")

    # ==========================================================================
    # Accessors
    # ==========================================================================

    @property
    def is_running(self) -> bool:
        return self._running

    @property
    def is_paused(self) -> bool:
        return self._paused

    @property
    def technique(self) -> Optional[Technique]:
        return self._technique

    @property
    def current_time(self) -> int:
        return self._current_time

    @property
    def current_phase(self) -> Optional[PhaseInfo]:
        return self._current_phase

    @property
    def total_duration(self) -> int:
        return self._technique.total_duration if self._technique else 0

    def elapsed_time(self) -> int:
        return self._current_time

    def remaining_time(self) -> int:
        """Seconds left in the current cycle."""
        total = self.total_duration
        if total == 0:
            return 0
        return total - self._current_time % total

    def progress(self) -> float:
        total = self.total_duration
        if total == 0:
            return 0.0
        return min(100.0, self._current_time / total * 100)

    def cycles_completed(self) -> int:
        total = self.total_duration
        return self._current_time // total if total else 0

    def state(self) -> Dict[str, Any]:
        phase = self._current_phase
        return {
            "is_running": self._running,
            "is_paused": self._paused,
            "current_time": self._current_time,
            "total_duration": self.total_duration,
            "technique_id": self._technique.id if self._technique else None,
            "phase_index": phase.phase_index if phase else 0,
            "time_in_phase": phase.time_in_phase if phase else 0,
            "time_left": phase.time_left if phase else 0,
        }

    def capabilities(self) -> Dict[str, Any]:
        return {
            "is_running": self._running,
            "is_paused": self._paused,
            "has_technique": self._technique is not None,
            "technique_id": self._technique.id if self._technique else None,
            "total_duration": self.total_duration,
            "current_time": self._current_time,
            "uses_clock": self.use_clock,
            "interval": self.interval,
            "listener_count": self._events.listener_count(),
        }

    # ==========================================================================
    # Internals
    # ==========================================================================

    def _event(self) -> TimerEvent:
        return TimerEvent(
            current_time=self._current_time,
            total_duration=self.total_duration,
            current_phase=self._current_phase,
            cycles_completed=self.cycles_completed(),
        )

    def _emit(self, event: str) -> None:
        self._events.emit(event, self._event())

    def _emit_update(self) -> bool:
        """Resolve the phase for current_time and publish it.

        Returns False (nothing published) when the phase cannot be resolved.
        """
        try:
            self._current_phase = self._technique.phase_at(self._current_time)
        except (AttributeError, ValueError) as e:
            log.error(
                "phase_resolution_failed",
                current_time=self._current_time,
                error=str(e),
            )
            return False
        self._emit(UPDATE)
        return True

    def _start_clock(self) -> None:
        if not self.use_clock:
            return
        loop = asyncio.get_running_loop()
        self._generation += 1
        self._task = loop.create_task(
            self._run(self._generation), name="phase-scheduler-clock"
        )

    def _stop_clock(self) -> None:
        self._generation += 1
        task, self._task = self._task, None
        if task is not None:
            task.cancel()

    async def _run(self, generation: int) -> None:
        loop = asyncio.get_running_loop()
        deadline = loop.time() + self.interval
        while self._running and generation == self._generation:
            delay = deadline - loop.time()
            if delay > 0:
                await asyncio.sleep(delay)
            if not self._running or generation != self._generation:
                break
            self.tick()
            deadline += self.interval
