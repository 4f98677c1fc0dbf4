"""Repository implementations."""

from breathwork.persistence.repositories.settings_repo import SettingsRepository

__all__ = [
    "SettingsRepository",
]
