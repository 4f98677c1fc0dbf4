"""
Command invoker.

Runs one command at a time and keeps a bounded linear undo/redo history.

History model:
    - `_index` points at the last executed command (-1 when nothing is
      executed)
    - executing a new command discards everything after `_index`
    - when the history exceeds max_history the oldest entry is evicted and
      `_index` shifts down with it
"""

from collections import deque
from typing import Any, Deque, Dict, List, Optional

import structlog

from breathwork.core.config import settings
from breathwork.core.exceptions import CommandExecutionFailed
from breathwork.services.commands.base import Command, CommandContext, CommandKind

log = structlog.get_logger(__name__)


class CommandInvoker:
    """Single-flight command runner with undo/redo."""

    def __init__(self, max_history: Optional[int] = None):
        self.max_history = (
            max_history if max_history is not None else settings.command_history_size
        )
        if self.max_history < 1:
            raise ValueError(f"max_history must be >= 1, got {self.max_history}")
        self._history: Deque[Command] = deque()
        self._index = -1
        self._executing = False

    # ==========================================================================
    # Execution
    # ==========================================================================

    async def execute_command(
        self, command: Command, context: CommandContext
    ) -> Dict[str, Any]:
        """
        Validate and execute a command, then record it in the history.

        Raises:
            CommandExecutionFailed: Another command is in flight, the command
                is invalid, or it failed while executing
            DependencyInjectionFailed: The context lacks a collaborator the
                command needs
        """
        self._check_command(command)
        self._acquire(command.name)
        try:
            command.validate()
            try:
                result = await command.execute(context)
            except Exception as e:
                raise self._wrap(command, "execute", e) from e
            self._record(command)
        except Exception as e:
            log.warning("command_failed", command=command.name, error=str(e))
            raise
        finally:
            self._executing = False

        log.info(
            "command_executed",
            command=command.name,
            kind=command.kind.value,
            history_size=len(self._history),
            index=self._index,
        )
        return result

    async def undo(self, context: CommandContext) -> Dict[str, Any]:
        """
        Undo the command at the cursor.

        Raises:
            CommandExecutionFailed: Nothing to undo, the command is not
                undoable, another command is in flight, or undo failed
        """
        self._acquire("undo")
        try:
            if self._index < 0:
                raise CommandExecutionFailed("Nothing to undo", command="undo")
            command = self._history[self._index]
            if not command.is_undoable():
                raise CommandExecutionFailed(
                    "Command cannot be undone", command=command.name
                )
            try:
                result = await command.undo(context)
            except Exception as e:
                raise self._wrap(command, "undo", e) from e
            self._index -= 1
        finally:
            self._executing = False

        log.info("command_undone", command=command.name, index=self._index)
        return result

    async def redo(self, context: CommandContext) -> Dict[str, Any]:
        """
        Re-execute the command after the cursor.

        A failed redo leaves the cursor where it was.

        Raises:
            CommandExecutionFailed: Nothing to redo, another command is in
                flight, or redo failed
        """
        self._acquire("redo")
        try:
            if self._index >= len(self._history) - 1:
                raise CommandExecutionFailed("Nothing to redo", command="redo")
            self._index += 1
            command = self._history[self._index]
            try:
                result = await command.redo(context)
            except Exception as e:
                self._index -= 1
                raise self._wrap(command, "redo", e) from e
        finally:
            self._executing = False

        log.info("command_redone", command=command.name, index=self._index)
        return result

    # ==========================================================================
    # History inspection
    # ==========================================================================

    @property
    def is_executing(self) -> bool:
        return self._executing

    @property
    def current_index(self) -> int:
        return self._index

    def can_undo(self) -> bool:
        return self._index >= 0 and self._history[self._index].is_undoable()

    def can_redo(self) -> bool:
        return self._index < len(self._history) - 1

    def current_command(self) -> Optional[Command]:
        return self._history[self._index] if self._index >= 0 else None

    def history(self) -> List[Dict[str, Any]]:
        """History entries, oldest first."""
        return [
            {
                "index": i,
                "name": command.name,
                "kind": command.kind.value,
                "description": command.description,
                "executed": i <= self._index,
                "undoable": command.is_undoable(),
            }
            for i, command in enumerate(self._history)
        ]

    def clear_history(self) -> None:
        self._history.clear()
        self._index = -1
        log.debug("command_history_cleared")

    def capabilities(self) -> Dict[str, Any]:
        return {
            "can_undo": self.can_undo(),
            "can_redo": self.can_redo(),
            "history_size": len(self._history),
            "current_index": self._index,
            "max_history": self.max_history,
            "is_executing": self._executing,
        }

    # ==========================================================================
    # Internals
    # ==========================================================================

    def _acquire(self, operation: str) -> None:
        if self._executing:
            log.warning("command_rejected_in_flight", operation=operation)
            raise CommandExecutionFailed(
                "Another command is already executing", command=operation
            )
        self._executing = True

    @staticmethod
    def _check_command(command: Any) -> None:
        if not isinstance(command, Command) or not isinstance(
            getattr(command, "kind", None), CommandKind
        ):
            raise CommandExecutionFailed(
                "Not a recognised command",
                command=type(command).__name__,
            )

    @staticmethod
    def _wrap(command: Command, action: str, error: Exception) -> Exception:
        if isinstance(error, CommandExecutionFailed):
            return error
        return command._failure(action, error)

    def _record(self, command: Command) -> None:
        while len(self._history) > self._index + 1:
            self._history.pop()
        self._history.append(command)
        self._index += 1
        if len(self._history) > self.max_history:
            evicted = self._history.popleft()
            self._index -= 1
            log.debug("command_history_evicted", command=evicted.name)
