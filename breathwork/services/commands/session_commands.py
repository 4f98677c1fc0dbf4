"""
Commands that drive the breathing session: start, pause/resume and
technique change.

Each command keeps SessionState and the PhaseScheduler in step; if a step
fails, what already changed is put back before the error is raised.
"""

from typing import Any, Dict, Optional

import structlog

from breathwork.core.exceptions import CommandExecutionFailed
from breathwork.domain.models.technique import Technique
from breathwork.services.commands.base import Command, CommandContext, CommandKind
from breathwork.services.phase_scheduler import PhaseScheduler
from breathwork.services.session_state import SessionState

log = structlog.get_logger(__name__)


def install_technique(
    scheduler: PhaseScheduler, technique: Technique, position: int = 0
) -> None:
    """Hand a technique to the scheduler.

    A ticking scheduler restarts at second 0; an idle or paused one is moved
    to `position`.
    """
    scheduler.set_technique(technique)
    if not scheduler.is_running:
        scheduler.seek(position)


class StartBreathingCommand(Command):
    """Start a session with a technique from second 0."""

    kind = CommandKind.START

    def __init__(self, technique_id: str, technique: Optional[Technique]):
        super().__init__(f"Start {technique_id}")
        self.technique_id = technique_id
        self.technique = technique

    def validate(self) -> None:
        if not self.technique_id or self.technique is None:
            raise CommandExecutionFailed(
                "A technique is required to start a session",
                command=self.name,
                technique_id=self.technique_id,
            )

    async def execute(self, context: CommandContext) -> Dict[str, Any]:
        session: SessionState = context.require("session_state")
        scheduler: PhaseScheduler = context.require("scheduler")

        snapshot = session.snapshot
        previous = {
            "is_running": snapshot.is_running,
            "is_paused": snapshot.is_paused,
            "current_technique_id": snapshot.current_technique_id,
            "technique": snapshot.technique,
        }
        scheduler_technique = scheduler.technique

        try:
            scheduler.stop()
            scheduler.set_technique(self.technique)
            session.seed_technique(self.technique_id, self.technique)
            session.start_session(self.technique_id, self.technique)
            scheduler.start()
        except Exception as e:
            self._rollback(session, scheduler, previous, scheduler_technique)
            raise self._failure("execute", e, technique_id=self.technique_id) from e

        self.previous_state = previous
        self._mark_executed()
        return {
            "success": True,
            "technique_id": self.technique_id,
            "executed_at": self.executed_at,
        }

    async def undo(self, context: CommandContext) -> Dict[str, Any]:
        """Stop the session; a previously running session is not restored."""
        self._require_previous_state()
        session: SessionState = context.require("session_state")
        scheduler: PhaseScheduler = context.require("scheduler")
        try:
            session.stop_session()
            scheduler.reset()
        except Exception as e:
            raise self._failure("undo", e, technique_id=self.technique_id) from e
        return {"success": True, "undone": self.name}

    def _rollback(
        self,
        session: SessionState,
        scheduler: PhaseScheduler,
        previous: Dict[str, Any],
        scheduler_technique: Optional[Technique],
    ) -> None:
        scheduler.stop()
        if scheduler_technique is not None:
            scheduler.set_technique(scheduler_technique)
            scheduler.rewind()
        session.stop_session()
        if previous["technique"] is not None:
            session.restore_position(
                previous["current_technique_id"], previous["technique"], 0, 0
            )
        log.warning("start_rolled_back", technique_id=self.technique_id)


class PauseBreathingCommand(Command):
    """Pause or resume the running session."""

    ACTIONS = ("pause", "resume")

    def __init__(self, action: str = "pause"):
        super().__init__(f"{action.capitalize()} session")
        self.action = action

    @property
    def kind(self) -> CommandKind:  # type: ignore[override]
        return CommandKind.RESUME if self.action == "resume" else CommandKind.PAUSE

    def validate(self) -> None:
        if self.action not in self.ACTIONS:
            raise CommandExecutionFailed(
                f"Unknown pause action: {self.action}",
                command=self.name,
                action=self.action,
            )

    async def execute(self, context: CommandContext) -> Dict[str, Any]:
        session: SessionState = context.require("session_state")
        scheduler: PhaseScheduler = context.require("scheduler")

        previous = {"is_running": session.is_running, "is_paused": session.is_paused}
        try:
            self._apply(self.action, session, scheduler)
        except Exception as e:
            self._restore(previous, session, scheduler)
            raise self._failure(self.action, e) from e

        self.previous_state = previous
        self._mark_executed()
        return {"success": True, "action": self.action, "executed_at": self.executed_at}

    async def undo(self, context: CommandContext) -> Dict[str, Any]:
        previous = self._require_previous_state()
        session: SessionState = context.require("session_state")
        scheduler: PhaseScheduler = context.require("scheduler")
        try:
            self._restore(previous, session, scheduler)
        except Exception as e:
            raise self._failure("undo", e) from e
        return {"success": True, "undone": self.name, "action": self.action}

    @staticmethod
    def _apply(action: str, session: SessionState, scheduler: PhaseScheduler) -> None:
        if action == "pause":
            session.pause_session()
            scheduler.pause()
        else:
            session.resume_session()
            scheduler.resume()

    def _restore(
        self, previous: Dict[str, Any], session: SessionState, scheduler: PhaseScheduler
    ) -> None:
        if previous["is_running"] and session.is_paused:
            self._apply("resume", session, scheduler)
        elif previous["is_paused"] and session.is_running:
            self._apply("pause", session, scheduler)


class ChangeTechniqueCommand(Command):
    """Switch technique; the cycle always restarts at second 0."""

    kind = CommandKind.CHANGE_TECHNIQUE

    def __init__(self, technique_id: str, technique: Optional[Technique]):
        super().__init__(f"Change technique to {technique_id}")
        self.technique_id = technique_id
        self.technique = technique

    def validate(self) -> None:
        if not self.technique_id or self.technique is None:
            raise CommandExecutionFailed(
                "A technique is required to change technique",
                command=self.name,
                technique_id=self.technique_id,
            )

    async def execute(self, context: CommandContext) -> Dict[str, Any]:
        session: SessionState = context.require("session_state")
        scheduler: PhaseScheduler = context.require("scheduler")

        previous = {
            "current_technique_id": session.current_technique_id,
            "technique": session.technique,
            "elapsed_seconds": session.elapsed_seconds,
            "cycles_completed": session.cycles_completed,
        }
        scheduler_technique = scheduler.technique
        scheduler_time = scheduler.current_time

        try:
            session.change_technique(self.technique_id, self.technique)
            install_technique(scheduler, self.technique)
        except Exception as e:
            self._restore_session(session, previous)
            if scheduler_technique is not None:
                install_technique(scheduler, scheduler_technique, scheduler_time)
            raise self._failure("execute", e, technique_id=self.technique_id) from e

        self.previous_state = previous
        self._mark_executed()
        return {
            "success": True,
            "technique_id": self.technique_id,
            "previous_technique_id": previous["current_technique_id"],
            "executed_at": self.executed_at,
        }

    async def undo(self, context: CommandContext) -> Dict[str, Any]:
        """Put the old technique and time fields back.

        The scheduler follows the same rules as execute: a ticking scheduler
        restarts at second 0, otherwise it is moved to the restored position.
        """
        previous = self._require_previous_state()
        session: SessionState = context.require("session_state")
        scheduler: PhaseScheduler = context.require("scheduler")
        try:
            self._restore_session(session, previous)
            if previous["technique"] is not None:
                install_technique(
                    scheduler, previous["technique"], previous["elapsed_seconds"]
                )
        except Exception as e:
            raise self._failure(
                "undo", e, technique_id=previous["current_technique_id"]
            ) from e
        return {
            "success": True,
            "undone": self.name,
            "technique_id": previous["current_technique_id"],
        }

    @staticmethod
    def _restore_session(session: SessionState, previous: Dict[str, Any]) -> None:
        session.restore_position(
            previous["current_technique_id"],
            previous["technique"],
            previous["elapsed_seconds"],
            previous["cycles_completed"],
        )
