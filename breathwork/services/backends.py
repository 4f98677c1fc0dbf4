"""
Default cue and theme collaborators.

These satisfy the protocols in services/protocols.py without touching any
real device: cues are logged and remembered so a terminal runner, the HTTP
status endpoint or a test can inspect what would have been played.
"""

from collections import deque
from typing import Deque, List, NamedTuple, Optional

import structlog

from breathwork.core.config import breathing_config

log = structlog.get_logger(__name__)


class Beep(NamedTuple):
    frequency_hz: float
    duration_ms: int
    gain: float


class LoggingAudioBackend:
    """Audio backend that logs each beep and keeps the most recent ones."""

    def __init__(self, keep: int = 32):
        self.played: Deque[Beep] = deque(maxlen=keep)

    def play_beep(self, frequency_hz: float, duration_ms: int, gain: float) -> None:
        beep = Beep(frequency_hz, duration_ms, gain)
        self.played.append(beep)
        log.debug(
            "beep",
            frequency_hz=frequency_hz,
            duration_ms=duration_ms,
            gain=round(gain, 3),
        )


class LoggingVibrationBackend:
    """Vibration backend that logs each pulse and keeps the most recent ones."""

    def __init__(self, keep: int = 32):
        self.pulses: Deque[int] = deque(maxlen=keep)

    def vibrate(self, pulse_ms: int) -> None:
        self.pulses.append(pulse_ms)
        log.debug("vibrate", pulse_ms=pulse_ms)


class ThemeService:
    """Records the applied theme key.

    Colour computation lives in the front-end; this service only validates
    the key against the configured theme list and remembers it.
    """

    def __init__(self, themes: Optional[List[str]] = None, initial: Optional[str] = None):
        self.themes = list(themes) if themes is not None else list(breathing_config.themes)
        self._current: Optional[str] = None
        if initial is not None:
            self.apply_theme(initial)

    def current_theme(self) -> Optional[str]:
        return self._current

    def apply_theme(self, theme: str) -> None:
        if theme not in self.themes:
            raise ValueError(f"Unknown theme: {theme}. Available: {self.themes}")
        previous, self._current = self._current, theme
        if previous != theme:
            log.info("theme_applied", theme=theme, previous=previous)
