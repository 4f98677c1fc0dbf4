# noqa
from breathwork.services.breathing_controller import BreathingController
from breathwork.services.phase_scheduler import PhaseScheduler
from breathwork.services.preferences_state import InMemoryStore, PreferencesState
from breathwork.services.session_state import SessionState

__all__ = [
    "BreathingController",
    "PhaseScheduler",
    "PreferencesState",
    "InMemoryStore",
    "SessionState",
]
