"""Domain models package."""

from .technique import Phase, PhaseInfo, Technique
from .session import SessionSnapshot, StateChange, TimerEvent
from .preferences import FontSize, Preferences

__all__ = [
    "Phase",
    "PhaseInfo",
    "Technique",
    "SessionSnapshot",
    "StateChange",
    "TimerEvent",
    "FontSize",
    "Preferences",
]
