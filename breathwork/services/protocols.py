"""
Service protocol definitions (interfaces).

Defines the outward-facing collaborators of the session core using
typing.Protocol. The cue dispatcher and the theme command only see these
shapes; concrete backends (terminal logging, browser bridge, test doubles)
satisfy them structurally.

Backend methods may return None or an awaitable; callers schedule awaitables
without waiting for them.
"""

from typing import Any, Awaitable, Optional, Protocol, Union, runtime_checkable

MaybeAwaitable = Union[None, Awaitable[Any]]


@runtime_checkable
class IAudioBackend(Protocol):
    """
    Protocol for audio output.

    Plays one short tone. Implementations must not block the caller.
    """

    def play_beep(
        self, frequency_hz: float, duration_ms: int, gain: float
    ) -> MaybeAwaitable:
        """
        Play a tone.

        Args:
            frequency_hz: Tone frequency
            duration_ms: Tone length in milliseconds
            gain: Output gain in [0, 1]
        """
        ...


@runtime_checkable
class IVibrationBackend(Protocol):
    """Protocol for haptic output."""

    def vibrate(self, pulse_ms: int) -> MaybeAwaitable:
        """Vibrate for pulse_ms milliseconds."""
        ...


@runtime_checkable
class IThemeService(Protocol):
    """
    Protocol for theme application.

    The theme command records current_theme() before applying so it can
    restore it on undo.
    """

    def current_theme(self) -> Optional[str]:
        """Return the theme key currently applied, or None."""
        ...

    def apply_theme(self, theme: str) -> MaybeAwaitable:
        """
        Apply a theme key.

        Raises:
            ValueError: Unknown theme key
        """
        ...


class KeyValueStore(Protocol):
    """
    Protocol for the persistent string store behind PreferencesState.

    Values are opaque strings (PreferencesState stores JSON).
    """

    async def get(self, key: str) -> Optional[str]:
        """Return the stored value, or None if the key is absent."""
        ...

    async def set(self, key: str, value: str) -> None:
        """Insert or replace a value."""
        ...

    async def delete(self, key: str) -> bool:
        """Remove a key; returns True if something was deleted."""
        ...
