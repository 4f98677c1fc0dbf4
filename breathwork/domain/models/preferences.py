"""User preference model.

Only sound, vibration, theme and technique selection influence the session
core; the accessibility fields are carried so a persisted document round-trips
without losing what a front-end stored.
"""

from enum import Enum

from pydantic import BaseModel, ConfigDict, Field


class FontSize(str, Enum):
    """Font size preference."""

    SMALL = "small"
    MEDIUM = "medium"
    LARGE = "large"


FONT_SIZE_MULTIPLIERS = {
    FontSize.SMALL: 0.875,
    FontSize.MEDIUM: 1.0,
    FontSize.LARGE: 1.125,
}


class Preferences(BaseModel):
    """User settings relevant to cue gating and session setup."""

    model_config = ConfigDict(validate_assignment=True, use_enum_values=False)

    sound_enabled: bool = True
    sound_volume: float = Field(default=0.25, ge=0.0, le=1.0)
    vibration_enabled: bool = False
    current_theme: str = Field(default="dark", min_length=1)
    current_language: str = Field(default="en", min_length=2)
    selected_technique_id: str = Field(default="box4", min_length=1)
    auto_start: bool = False
    reduced_motion: bool = False
    high_contrast: bool = False
    font_size: FontSize = FontSize.MEDIUM
    color_blind_mode: bool = False

    @property
    def font_size_multiplier(self) -> float:
        return FONT_SIZE_MULTIPLIERS[self.font_size]
