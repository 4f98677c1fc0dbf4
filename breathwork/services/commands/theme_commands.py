"""Theme change command."""

from typing import Any, Dict, List, Optional

import structlog

from breathwork.core.exceptions import CommandExecutionFailed
from breathwork.services.commands.base import Command, CommandContext, CommandKind, resolve
from breathwork.services.preferences_state import PreferencesState

log = structlog.get_logger(__name__)


class ChangeThemeCommand(Command):
    """Record a new theme in preferences and apply it through the theme service.

    The theme service is optional; without one only the preference changes.
    """

    kind = CommandKind.CHANGE_THEME

    def __init__(self, new_theme: str, available_themes: Optional[List[str]] = None):
        super().__init__(f"Change theme to {new_theme}")
        self.new_theme = new_theme
        self.available_themes = available_themes

    def validate(self) -> None:
        if not isinstance(self.new_theme, str) or not self.new_theme:
            raise CommandExecutionFailed(
                "A theme key is required", command=self.name, theme=self.new_theme
            )
        if self.available_themes is not None and self.new_theme not in self.available_themes:
            raise CommandExecutionFailed(
                f"Unknown theme: {self.new_theme}",
                command=self.name,
                theme=self.new_theme,
                valid_themes=self.available_themes,
            )

    async def execute(self, context: CommandContext) -> Dict[str, Any]:
        preferences: PreferencesState = context.require("preferences_state")
        theme_service = context.theme_service

        previous = {
            "theme": preferences.current_theme,
            "applied_theme": theme_service.current_theme() if theme_service else None,
        }
        try:
            await self._apply(context, self.new_theme, self.new_theme)
        except Exception as e:
            try:
                await self._apply(context, previous["theme"], previous["applied_theme"])
            except Exception as rollback_error:
                log.error(
                    "theme_rollback_failed",
                    theme=previous["theme"],
                    error=str(rollback_error),
                )
            raise self._failure("execute", e, theme=self.new_theme) from e

        self.previous_state = previous
        self._mark_executed()
        return {
            "success": True,
            "theme": self.new_theme,
            "previous_theme": previous["theme"],
            "executed_at": self.executed_at,
        }

    async def undo(self, context: CommandContext) -> Dict[str, Any]:
        previous = self._require_previous_state()
        try:
            await self._apply(context, previous["theme"], previous["applied_theme"])
        except Exception as e:
            raise self._failure("undo", e, theme=previous["theme"]) from e
        return {"success": True, "undone": self.name, "theme": previous["theme"]}

    @staticmethod
    async def _apply(
        context: CommandContext, theme: str, applied_theme: Optional[str]
    ) -> None:
        preferences: PreferencesState = context.require("preferences_state")
        if preferences.current_theme != theme:
            preferences.set_current_theme(theme)
        service = context.theme_service
        if service is not None and applied_theme is not None:
            if service.current_theme() != applied_theme:
                await resolve(service.apply_theme(applied_theme))
