"""
Application settings management.

Settings are loaded from environment variables with .env file support.
Cue and preference defaults come from config/breathing_config.yaml.
All configuration is validated using Pydantic.
"""

from pathlib import Path
from typing import List, Optional

import yaml
from pydantic import BaseModel, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

PROJECT_ROOT = Path(__file__).resolve().parent.parent.parent


class Settings(BaseSettings):
    """
    Application settings loaded from environment.

    Environment variables take precedence over .env file values.
    """

    model_config = SettingsConfigDict(
        env_file=".env", env_file_encoding="utf-8", extra="ignore"
    )

    # ==========================================================================
    # Paths
    # ==========================================================================

    config_dir: Path = Field(
        default=PROJECT_ROOT / "config",
        description="Directory containing YAML configuration files",
    )
    data_dir: Path = Field(
        default=Path("data"), description="Directory for database and other data files"
    )

    # ==========================================================================
    # Database
    # ==========================================================================

    database_path: Path = Field(
        default=Path("data/breathwork.db"),
        description="Path to SQLite database holding persisted preferences",
    )

    # ==========================================================================
    # Session Core
    # ==========================================================================

    default_technique_id: str = Field(
        default="box4", description="Technique installed when the app starts"
    )
    tick_interval_seconds: float = Field(
        default=1.0,
        gt=0.0,
        le=60.0,
        description="Real-time period of one scheduler tick",
    )
    command_history_size: int = Field(
        default=50, ge=1, le=1000, description="Maximum undo/redo history entries"
    )
    preferences_namespace: str = Field(
        default="breathing-app-preferences",
        min_length=1,
        description="Key under which user preferences are persisted",
    )

    # ==========================================================================
    # Server Configuration
    # ==========================================================================

    host: str = Field(default="127.0.0.1", description="Server host address")
    port: int = Field(default=8000, ge=1, le=65535, description="Server port")
    debug: bool = Field(default=False, description="Enable debug mode")


# ============================================================================
# Breathing Configuration (from YAML)
# ============================================================================


class CueProfile(BaseModel):
    """One audio beep plus one vibration pulse."""

    frequency_hz: float = Field(gt=0.0, description="Beep frequency")
    duration_ms: int = Field(gt=0, description="Beep length")
    gain: float = Field(ge=0.0, le=1.0, description="Beep gain at default volume")
    pulse_ms: int = Field(gt=0, description="Vibration pulse length")


class CuesConfig(BaseModel):
    """Regular and last-second cue profiles."""

    regular: CueProfile = Field(
        default_factory=lambda: CueProfile(
            frequency_hz=440.0, duration_ms=80, gain=0.12, pulse_ms=10
        )
    )
    last_second: CueProfile = Field(
        default_factory=lambda: CueProfile(
            frequency_hz=600.0, duration_ms=150, gain=0.3, pulse_ms=50
        )
    )


class PreferenceDefaults(BaseModel):
    """Defaults applied to a fresh PreferencesState."""

    sound_enabled: bool = True
    sound_volume: float = Field(default=0.25, ge=0.0, le=1.0)
    vibration_enabled: bool = False
    current_theme: str = "dark"
    current_language: str = "en"
    selected_technique_id: str = "box4"


class BreathingConfig(BaseModel):
    """
    Complete breathing configuration loaded from breathing_config.yaml.

    Holds cue profiles, preference defaults and the known theme keys.
    """

    cues: CuesConfig = Field(default_factory=CuesConfig)
    preferences: PreferenceDefaults = Field(default_factory=PreferenceDefaults)
    themes: List[str] = Field(
        default_factory=lambda: ["dark", "light", "ocean", "forest", "sunset"]
    )

    @field_validator("themes")
    @classmethod
    def themes_not_empty(cls, v: List[str]) -> List[str]:
        """At least one theme must be configured."""
        if not v:
            raise ValueError("themes must contain at least one theme key")
        return v


def load_breathing_config(config_path: Optional[Path] = None) -> BreathingConfig:
    """
    Load breathing configuration from YAML file.

    Args:
        config_path: Path to breathing_config.yaml. If None, uses default path.

    Returns:
        BreathingConfig with validated settings

    Raises:
        ValueError: If config validation fails
    """
    if config_path is None:
        config_path = PROJECT_ROOT / "config" / "breathing_config.yaml"
        if not config_path.exists():
            cwd_config = Path.cwd() / "config" / "breathing_config.yaml"
            if not cwd_config.exists():
                return BreathingConfig()
            config_path = cwd_config

    config_path = Path(config_path).resolve()

    if not config_path.exists():
        return BreathingConfig()

    with open(config_path) as f:
        config_data = yaml.safe_load(f)

    if not config_data:
        return BreathingConfig()

    return BreathingConfig(**config_data)


# Global settings instance
settings = Settings()

# Global breathing config instance
breathing_config = load_breathing_config()
