"""
Base command class for session-mutating user actions.

Every command captures what it needs to reverse itself before it changes
anything, restores that state if it fails part-way, and reports failures as
CommandExecutionFailed.
"""

import inspect
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import TYPE_CHECKING, Any, Dict, Optional

from breathwork.core.exceptions import (
    BreathworkError,
    CommandExecutionFailed,
    DependencyInjectionFailed,
)

if TYPE_CHECKING:
    from breathwork.services.phase_scheduler import PhaseScheduler
    from breathwork.services.preferences_state import PreferencesState
    from breathwork.services.protocols import IThemeService
    from breathwork.services.session_state import SessionState


class CommandKind(str, Enum):
    """Closed set of command variants the invoker accepts."""

    START = "start"
    PAUSE = "pause"
    RESUME = "resume"
    CHANGE_TECHNIQUE = "change_technique"
    CHANGE_THEME = "change_theme"


@dataclass
class CommandContext:
    """Collaborators a command may act on.

    Commands pull what they need with require(); anything they do not need
    may be left as None.
    """

    session_state: Optional["SessionState"] = None
    scheduler: Optional["PhaseScheduler"] = None
    preferences_state: Optional["PreferencesState"] = None
    theme_service: Optional["IThemeService"] = None

    def require(self, name: str) -> Any:
        """
        Raises:
            DependencyInjectionFailed: The collaborator is missing
        """
        value = getattr(self, name, None)
        if value is None:
            raise DependencyInjectionFailed(
                f"Required dependency '{name}' is not available", dependency=name
            )
        return value


class Command(ABC):
    """
    Abstract base class for commands.

    Subclasses set `kind` and implement execute() and undo(). validate() is
    called by the invoker before execute().
    """

    kind: CommandKind

    def __init__(self, description: str = ""):
        self.description = description
        self.executed_at: Optional[datetime] = None
        self.previous_state: Optional[Dict[str, Any]] = None

    @property
    def name(self) -> str:
        """Return the command name for logging and errors."""
        return self.__class__.__name__

    def validate(self) -> None:
        """
        Check the command's own fields.

        Raises:
            CommandExecutionFailed: The command cannot be executed
        """

    def is_undoable(self) -> bool:
        """A command can be undone once it has captured its previous state."""
        return self.previous_state is not None

    @abstractmethod
    async def execute(self, context: CommandContext) -> Dict[str, Any]:
        """
        Apply the command.

        Returns:
            Result dict describing what was done
        """
        pass

    @abstractmethod
    async def undo(self, context: CommandContext) -> Dict[str, Any]:
        """Reverse a previous execute()."""
        pass

    async def redo(self, context: CommandContext) -> Dict[str, Any]:
        """Re-apply after an undo; by default the same as execute()."""
        return await self.execute(context)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "kind": self.kind.value,
            "description": self.description,
            "executed_at": self.executed_at.isoformat() if self.executed_at else None,
            "undoable": self.is_undoable(),
        }

    def _mark_executed(self) -> None:
        self.executed_at = datetime.now(timezone.utc)

    def _require_previous_state(self) -> Dict[str, Any]:
        if self.previous_state is None:
            raise CommandExecutionFailed(
                "Cannot undo command without previous state", command=self.name
            )
        return self.previous_state

    def _failure(self, action: str, error: Exception, **ids: Any) -> BreathworkError:
        """Wrap an error raised while executing or undoing this command."""
        if isinstance(error, (CommandExecutionFailed, DependencyInjectionFailed)):
            return error
        return CommandExecutionFailed(
            f"Failed to {action} {self.name}: {error}",
            command=self.name,
            original_error=str(error),
            **ids,
        )


async def resolve(result: Any) -> Any:
    """Await a collaborator's result when it returned an awaitable."""
    if inspect.isawaitable(result):
        return await result
    return result
