"""
API request/response schemas.

Pydantic models for API validation and serialization.
"""

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

from breathwork.domain.models.preferences import FontSize
from breathwork.domain.models.technique import Phase, Technique


# ============ TECHNIQUE SCHEMAS ============


class TechniqueSummary(BaseModel):
    """Technique entry in the catalogue listing."""

    id: str
    name: str
    pattern: str
    total_duration: int

    @classmethod
    def from_technique(cls, technique: Technique) -> "TechniqueSummary":
        return cls(
            id=technique.id,
            name=technique.name,
            pattern=technique.pattern,
            total_duration=technique.total_duration,
        )


class TechniqueListResponse(BaseModel):
    techniques: List[TechniqueSummary]
    default_id: str
    total: int


class TechniqueResponse(BaseModel):
    """Full technique definition."""

    id: str
    name: str
    description: str
    benefits: str
    pattern: str
    phases: List[Phase]
    durations_sec: List[int]
    instructions: List[str]
    total_duration: int

    @classmethod
    def from_technique(cls, technique: Technique) -> "TechniqueResponse":
        return cls(**technique.model_dump(), total_duration=technique.total_duration)


# ============ SESSION SCHEMAS ============


class StartSessionRequest(BaseModel):
    """Start a session; without technique_id the selected technique is used."""

    technique_id: Optional[str] = Field(default=None, min_length=1)


class ChangeTechniqueRequest(BaseModel):
    technique_id: str = Field(..., min_length=1)


class SessionStatusResponse(BaseModel):
    """Current position of the session."""

    is_running: bool
    is_paused: bool
    technique_id: Optional[str] = None
    elapsed_seconds: int
    phase_index: int
    phase_key: Optional[str] = None
    phase_name: Optional[str] = None
    time_in_phase: int
    time_left: int
    cycles_completed: int
    session_progress: float
    cycle_progress: float
    phase_progress: float
    session_duration_ms: int


class CommandResponse(BaseModel):
    """Result of a session or theme command plus the state it left behind."""

    success: bool = True
    result: Dict[str, Any] = Field(default_factory=dict)
    session: SessionStatusResponse


class HistoryEntry(BaseModel):
    index: int
    name: str
    kind: str
    description: str
    executed: bool
    undoable: bool


class HistoryResponse(BaseModel):
    entries: List[HistoryEntry]
    can_undo: bool
    can_redo: bool
    current_index: int


# ============ PREFERENCE SCHEMAS ============


class PreferencesUpdate(BaseModel):
    """Partial preference update; only fields that are sent are applied."""

    sound_enabled: Optional[bool] = None
    sound_volume: Optional[float] = Field(default=None, ge=0.0, le=1.0)
    vibration_enabled: Optional[bool] = None
    current_theme: Optional[str] = None
    current_language: Optional[str] = None
    selected_technique_id: Optional[str] = None
    auto_start: Optional[bool] = None
    reduced_motion: Optional[bool] = None
    high_contrast: Optional[bool] = None
    font_size: Optional[FontSize] = None
    color_blind_mode: Optional[bool] = None


class ThemeRequest(BaseModel):
    theme: str = Field(..., min_length=1)
