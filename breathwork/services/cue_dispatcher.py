"""
Cue dispatcher.

Listens to scheduler update events and fires at most one audio beep and one
vibration pulse per elapsed second. The tick whose phase has exactly one
second left gets the stronger last-second profile; every other tick gets the
regular profile.

Backends are fire-and-forget: an awaitable they return is scheduled on the
running loop and its failure logged, and a backend that raises never reaches
the scheduler.
"""

import asyncio
import inspect
from typing import Any, Callable, Optional, Set

import structlog

from breathwork.core.config import CueProfile, CuesConfig, breathing_config
from breathwork.domain.models.session import TimerEvent
from breathwork.services.phase_scheduler import (
    RESET,
    SEEK,
    START,
    STOP,
    SWAP,
    UPDATE,
    PhaseScheduler,
)
from breathwork.services.preferences_state import PreferencesState
from breathwork.services.protocols import IAudioBackend, IVibrationBackend

log = structlog.get_logger(__name__)

REGULAR = "regular"
LAST_SECOND = "last_second"


class CueDispatcher:
    """Turns scheduler ticks into audio and vibration cues."""

    def __init__(
        self,
        preferences_state: PreferencesState,
        audio: Optional[IAudioBackend] = None,
        vibration: Optional[IVibrationBackend] = None,
        cues: Optional[CuesConfig] = None,
    ):
        self.preferences_state = preferences_state
        self.audio = audio
        self.vibration = vibration
        self.cues = cues or breathing_config.cues
        self._last_time: Optional[int] = None
        self._pending: Set[asyncio.Future] = set()
        self._unsubscribers: list = []

    def attach(self, scheduler: PhaseScheduler, dispatch_updates: bool = True) -> None:
        """Subscribe to a scheduler's events.

        With dispatch_updates=False the owner calls dispatch() itself, e.g.
        only after the tick was applied to the session state.
        """
        for event in (START, STOP, RESET, SWAP, SEEK):
            self._unsubscribers.append(scheduler.on(event, self._forget_last_tick))
        if dispatch_updates:
            self._unsubscribers.append(scheduler.on(UPDATE, self.dispatch))

    def detach(self) -> None:
        for unsubscribe in self._unsubscribers:
            unsubscribe()
        self._unsubscribers.clear()

    def dispatch(self, event: TimerEvent) -> Optional[str]:
        """Fire the cue for one update event.

        Returns:
            "last_second", "regular", or None when nothing was selected
            (unresolved phase or a repeated second)
        """
        phase = event.current_phase
        if phase is None:
            return None
        if event.current_time == self._last_time:
            log.debug("cue_skipped_repeat", current_time=event.current_time)
            return None
        self._last_time = event.current_time

        time_left = phase.time_left
        is_last = type(time_left) is int and time_left == 1
        variant = LAST_SECOND if is_last else REGULAR
        profile: CueProfile = self.cues.last_second if is_last else self.cues.regular

        prefs = self.preferences_state
        if prefs.sound_enabled and self.audio is not None:
            self._fire(
                self.audio.play_beep,
                profile.frequency_hz,
                profile.duration_ms,
                self.scaled_gain(profile.gain),
            )
        if prefs.vibration_enabled and self.vibration is not None:
            self._fire(self.vibration.vibrate, profile.pulse_ms)
        return variant

    def scaled_gain(self, gain: float) -> float:
        """Scale a profile gain by the user's volume relative to the default."""
        default = self.preferences_state.default_sound_volume
        volume = self.preferences_state.sound_volume
        ratio = volume / default if default > 0 else volume
        return max(0.0, min(1.0, gain * ratio))

    @property
    def pending_count(self) -> int:
        return len(self._pending)

    def _forget_last_tick(self, event: TimerEvent) -> None:
        self._last_time = None

    def _fire(self, backend_call: Callable[..., Any], *args: Any) -> None:
        name = getattr(backend_call, "__qualname__", repr(backend_call))
        try:
            result = backend_call(*args)
        except Exception as e:
            log.warning("cue_backend_failed", backend=name, error=str(e))
            return

        if not inspect.isawaitable(result):
            return
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError as e:
            if inspect.iscoroutine(result):
                result.close()
            log.warning("cue_backend_not_scheduled", backend=name, error=str(e))
            return

        future = asyncio.ensure_future(result, loop=loop)
        self._pending.add(future)
        future.add_done_callback(lambda f: self._settle(f, name))

    def _settle(self, future: asyncio.Future, name: str) -> None:
        self._pending.discard(future)
        if future.cancelled():
            return
        error = future.exception()
        if error is not None:
            log.warning("cue_backend_failed", backend=name, error=str(error))
