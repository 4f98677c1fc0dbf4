"""Session domain models for breathing session state tracking.

Core Models:
    - SessionSnapshot: Everything about "where the session is" at one instant
    - StateChange: Payload delivered to SessionState / PreferencesState observers
    - TimerEvent: Payload of PhaseScheduler events

Session Lifecycle:
    1. Created idle with no technique
    2. initialize() installs the default technique (not running)
    3. start -> running; pause <-> resume; stop -> idle (phase kept);
       reset -> idle (phase cleared)
    4. update_timer() advances elapsed time and phase position on every tick
"""

from datetime import datetime
from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field

from breathwork.domain.models.technique import PhaseInfo, Technique


class SessionSnapshot(BaseModel):
    """Mutable-by-replacement session snapshot.

    SessionState never mutates a snapshot in place; every mutation builds a
    new, validated one so observers can hold on to what they received.

    Invariants:
        - is_running and is_paused are never both true
        - is_running implies technique and current_phase are set
    """

    is_running: bool = False
    is_paused: bool = False
    current_technique_id: Optional[str] = None
    technique: Optional[Technique] = None
    elapsed_seconds: int = Field(default=0, ge=0)
    phase_index: int = Field(default=0, ge=0)
    time_in_phase: int = Field(default=0, ge=0)
    time_left: int = Field(default=0, ge=0)
    current_phase: Optional[PhaseInfo] = None
    cycles_completed: int = Field(default=0, ge=0)
    session_start_time: Optional[datetime] = None
    session_duration_ms: int = Field(
        default=0, ge=0, description="Wall-clock time since start, reporting only"
    )

    @property
    def is_active(self) -> bool:
        return self.is_running or self.is_paused


class StateChange(BaseModel):
    """Notification payload: before/after plus the keys that changed."""

    previous: Any
    current: Any
    changes: Dict[str, Dict[str, Any]] = Field(default_factory=dict)

    def changed(self, key: str) -> bool:
        return key in self.changes


class TimerEvent(BaseModel):
    """Payload of every PhaseScheduler event (start, update, cycle_complete, ...)."""

    model_config = ConfigDict(frozen=True)

    current_time: int = Field(ge=0)
    total_duration: int = Field(ge=0)
    current_phase: Optional[PhaseInfo] = None
    cycles_completed: int = Field(default=0, ge=0)
