"""
User preferences state.

Holds the Preferences relevant to cue gating and session setup, publishes a
StateChange on every change, and persists the whole document as JSON under
one namespace key of a KeyValueStore.
"""

import json
import re
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional

import structlog
from pydantic import ValidationError

from breathwork.core.config import PreferenceDefaults, breathing_config, settings
from breathwork.core.exceptions import StateUpdateFailed, StorageError
from breathwork.domain.models.preferences import FontSize, Preferences
from breathwork.domain.models.session import StateChange
from breathwork.services.notifier import Notifier, Unsubscribe
from breathwork.services.protocols import KeyValueStore

log = structlog.get_logger(__name__)

PREFERENCES_EXPORT_VERSION = "1.0"

_CAMEL_RE = re.compile(r"(?<!^)(?=[A-Z])")


def _snake(key: str) -> str:
    return _CAMEL_RE.sub("_", key).lower()


class InMemoryStore:
    """KeyValueStore kept in a dict, for tests and ephemeral runs."""

    def __init__(self, initial: Optional[Dict[str, str]] = None):
        self.data: Dict[str, str] = dict(initial or {})

    async def get(self, key: str) -> Optional[str]:
        return self.data.get(key)

    async def set(self, key: str, value: str) -> None:
        self.data[key] = value

    async def delete(self, key: str) -> bool:
        return self.data.pop(key, None) is not None


class PreferencesState:
    """Observable user preferences.

    Example:
        prefs = PreferencesState(store=InMemoryStore())
        await prefs.load()
        prefs.set_sound_enabled(False)
        await prefs.save()
    """

    def __init__(
        self,
        defaults: Optional[PreferenceDefaults] = None,
        store: Optional[KeyValueStore] = None,
        namespace: Optional[str] = None,
        themes: Optional[List[str]] = None,
    ):
        self._defaults = defaults or breathing_config.preferences
        self._store = store
        self.namespace = namespace or settings.preferences_namespace
        self._themes = list(themes) if themes is not None else list(breathing_config.themes)
        self._preferences = self._default_preferences()
        self._notifier: Notifier[StateChange] = Notifier("preferences_state")

    # ==========================================================================
    # Observation
    # ==========================================================================

    @property
    def preferences(self) -> Preferences:
        return self._preferences.model_copy()

    def subscribe(self, callback: Callable[[StateChange], None]) -> Unsubscribe:
        return self._notifier.subscribe(callback)

    def unsubscribe(self, callback: Callable[[StateChange], None]) -> None:
        self._notifier.unsubscribe(callback)

    @property
    def themes(self) -> List[str]:
        return list(self._themes)

    # ==========================================================================
    # Accessors
    # ==========================================================================

    @property
    def sound_enabled(self) -> bool:
        return self._preferences.sound_enabled

    @property
    def sound_volume(self) -> float:
        return self._preferences.sound_volume

    @property
    def vibration_enabled(self) -> bool:
        return self._preferences.vibration_enabled

    @property
    def current_theme(self) -> str:
        return self._preferences.current_theme

    @property
    def current_language(self) -> str:
        return self._preferences.current_language

    @property
    def selected_technique_id(self) -> str:
        return self._preferences.selected_technique_id

    @property
    def default_sound_volume(self) -> float:
        return self._defaults.sound_volume

    def font_size_multiplier(self) -> float:
        return self._preferences.font_size_multiplier

    def summary(self) -> Dict[str, Any]:
        p = self._preferences
        return {
            "sound_enabled": p.sound_enabled,
            "vibration_enabled": p.vibration_enabled,
            "theme": p.current_theme,
            "language": p.current_language,
            "font_size": p.font_size.value,
        }

    # ==========================================================================
    # Setters
    # ==========================================================================

    def set_sound_enabled(self, enabled: bool) -> None:
        self._update(sound_enabled=enabled)

    def set_sound_volume(self, volume: float) -> None:
        """Set the volume, clamped into [0, 1]."""
        try:
            volume = float(volume)
        except (TypeError, ValueError) as e:
            raise StateUpdateFailed(
                "Sound volume must be a number", field="sound_volume", value=volume
            ) from e
        self._update(sound_volume=max(0.0, min(1.0, volume)))

    def set_vibration_enabled(self, enabled: bool) -> None:
        self._update(vibration_enabled=enabled)

    def set_current_theme(self, theme: str) -> None:
        """
        Raises:
            StateUpdateFailed: Theme is not one of the configured themes
        """
        if theme not in self._themes:
            raise StateUpdateFailed(
                f"Unknown theme: {theme}",
                field="current_theme",
                value=theme,
                valid_themes=self._themes,
            )
        self._update(current_theme=theme)

    def set_current_language(self, language: str) -> None:
        self._update(current_language=language)

    def set_selected_technique_id(self, technique_id: str) -> None:
        self._update(selected_technique_id=technique_id)

    def set_auto_start(self, auto_start: bool) -> None:
        self._update(auto_start=auto_start)

    def set_reduced_motion(self, reduced: bool) -> None:
        self._update(reduced_motion=reduced)

    def set_high_contrast(self, enabled: bool) -> None:
        self._update(high_contrast=enabled)

    def set_font_size(self, size: str) -> None:
        self._update(font_size=size)

    def set_color_blind_mode(self, enabled: bool) -> None:
        self._update(color_blind_mode=enabled)

    def update_preferences(self, values: Dict[str, Any]) -> Dict[str, Dict[str, Any]]:
        """Apply several fields at once; unknown keys are logged and ignored.

        Returns:
            The changes dict that was published (empty if nothing changed)
        """
        known = {}
        for key, value in values.items():
            if key in Preferences.model_fields:
                known[key] = value
            else:
                log.warning("unknown_preference_ignored", key=key)

        if "sound_volume" in known and isinstance(known["sound_volume"], (int, float)):
            known["sound_volume"] = max(0.0, min(1.0, float(known["sound_volume"])))
        if "current_theme" in known and known["current_theme"] not in self._themes:
            raise StateUpdateFailed(
                f"Unknown theme: {known['current_theme']}",
                field="current_theme",
                value=known["current_theme"],
                valid_themes=self._themes,
            )
        return self._update(**known)

    def reset_to_defaults(self) -> None:
        self._replace(self._default_preferences())
        log.info("preferences_reset")

    # ==========================================================================
    # Normalization and validation
    # ==========================================================================

    @staticmethod
    def normalize(raw: Any) -> Dict[str, Any]:
        """Turn a stored document of any known vintage into snake_case fields.

        Accepts camelCase keys, ``currentTheme`` stored as an object
        (``{"currentTheme": ...}`` or ``{"key": ...}``) and the older nested
        ``theme`` object. Keys that are not preference fields are dropped.
        """
        if not isinstance(raw, dict):
            return {}

        normalized: Dict[str, Any] = {}
        for key, value in raw.items():
            field = _snake(key)
            if field in Preferences.model_fields and value is not None:
                normalized[field] = value

        theme = normalized.get("current_theme")
        if isinstance(theme, dict):
            normalized["current_theme"] = (
                theme.get("currentTheme") or theme.get("current_theme")
                or theme.get("key") or "dark"
            )
        elif theme is not None and not isinstance(theme, str):
            normalized.pop("current_theme")

        nested = raw.get("theme")
        if isinstance(nested, dict):
            normalized["current_theme"] = (
                nested.get("currentTheme") or nested.get("current_theme") or "dark"
            )
        return normalized

    def validate(self) -> bool:
        """Check the current document; problems are logged, not raised."""
        p = self._preferences
        problems = []
        if not 0.0 <= p.sound_volume <= 1.0:
            problems.append("sound_volume")
        if not isinstance(p.font_size, FontSize):
            problems.append("font_size")
        if p.current_theme not in self._themes:
            problems.append("current_theme")
        for field in (
            "sound_enabled",
            "vibration_enabled",
            "auto_start",
            "reduced_motion",
            "high_contrast",
            "color_blind_mode",
        ):
            if not isinstance(getattr(p, field), bool):
                problems.append(field)

        if problems:
            log.error("preferences_invalid", fields=problems)
            return False
        return True

    # ==========================================================================
    # Persistence
    # ==========================================================================

    async def load(self, store: Optional[KeyValueStore] = None) -> bool:
        """Load the persisted document, falling back to defaults.

        Returns:
            True when a stored document was applied
        """
        store = store or self._store
        if store is None:
            return False

        try:
            raw = await store.get(self.namespace)
        except StorageError as e:
            log.warning("preferences_load_failed", error=str(e))
            return False
        if raw is None:
            log.debug("no_stored_preferences", namespace=self.namespace)
            return False

        try:
            values = self.normalize(json.loads(raw))
            candidate = Preferences(**{**self._default_preferences().model_dump(), **values})
        except (ValueError, ValidationError) as e:
            log.warning("stored_preferences_invalid", error=str(e))
            self.reset_to_defaults()
            return False

        if candidate.current_theme not in self._themes:
            log.warning("stored_theme_unknown", theme=candidate.current_theme)
            candidate = candidate.model_copy(
                update={"current_theme": self._defaults.current_theme}
            )
        self._replace(candidate)
        log.info("preferences_loaded", namespace=self.namespace)
        return True

    async def save(self, store: Optional[KeyValueStore] = None) -> None:
        """Write the document under the namespace key.

        Raises:
            StorageError: The store could not be written
        """
        store = store or self._store
        if store is None:
            return
        await store.set(self.namespace, self._preferences.model_dump_json())
        log.debug("preferences_saved", namespace=self.namespace)

    def export_preferences(self) -> Dict[str, Any]:
        return {
            "preferences": self._preferences.model_dump(mode="json"),
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "version": PREFERENCES_EXPORT_VERSION,
        }

    def import_preferences(self, data: Dict[str, Any]) -> None:
        if data.get("preferences"):
            self.update_preferences(self.normalize(data["preferences"]))

    # ==========================================================================
    # Internals
    # ==========================================================================

    def _default_preferences(self) -> Preferences:
        return Preferences(**self._defaults.model_dump())

    def _update(self, **updates: Any) -> Dict[str, Dict[str, Any]]:
        try:
            candidate = Preferences(**{**self._preferences.model_dump(), **updates})
        except ValidationError as e:
            raise StateUpdateFailed(
                "Invalid preference update", field=",".join(updates), value=str(e)
            ) from e
        return self._replace(candidate)

    def _replace(self, candidate: Preferences) -> Dict[str, Dict[str, Any]]:
        previous = self._preferences
        changes = {
            key: {"from": getattr(previous, key), "to": getattr(candidate, key)}
            for key in Preferences.model_fields
            if getattr(previous, key) != getattr(candidate, key)
        }
        self._preferences = candidate
        if changes:
            log.debug("preferences_updated", changed=sorted(changes))
            self._notifier.notify(
                StateChange(
                    previous=previous.model_copy(),
                    current=candidate.model_copy(),
                    changes=changes,
                )
            )
        return changes
