"""
Session API routes.

Every mutating endpoint runs through the controller's command invoker, so
a request that arrives while another command is in flight is rejected with
409 rather than interleaved.
"""

from typing import Any, Dict, Optional

from fastapi import APIRouter
import structlog

from breathwork.api.dependencies import ControllerDep
from breathwork.api.schemas import (
    ChangeTechniqueRequest,
    CommandResponse,
    HistoryEntry,
    HistoryResponse,
    SessionStatusResponse,
    StartSessionRequest,
)
from breathwork.services.breathing_controller import BreathingController

log = structlog.get_logger(__name__)

router = APIRouter(prefix="/session", tags=["session"])


def session_status(controller: BreathingController) -> SessionStatusResponse:
    """Build the status response from the controller's session state."""
    state = controller.session_state
    snapshot = state.snapshot
    phase = snapshot.current_phase
    return SessionStatusResponse(
        is_running=snapshot.is_running,
        is_paused=snapshot.is_paused,
        technique_id=snapshot.current_technique_id,
        elapsed_seconds=snapshot.elapsed_seconds,
        phase_index=snapshot.phase_index,
        phase_key=phase.phase.key if phase else None,
        phase_name=phase.phase.name if phase else None,
        time_in_phase=snapshot.time_in_phase,
        time_left=snapshot.time_left,
        cycles_completed=snapshot.cycles_completed,
        session_progress=state.session_progress(),
        cycle_progress=state.cycle_progress(),
        phase_progress=state.phase_progress(),
        session_duration_ms=snapshot.session_duration_ms,
    )


def command_response(
    controller: BreathingController, result: Optional[Dict[str, Any]] = None
) -> CommandResponse:
    return CommandResponse(
        result={k: v for k, v in (result or {}).items() if k != "executed_at"},
        session=session_status(controller),
    )


@router.get("", response_model=SessionStatusResponse)
async def get_session(controller: ControllerDep):
    """Current session position."""
    return session_status(controller)


@router.post("/start", response_model=CommandResponse)
async def start_session(controller: ControllerDep, request: Optional[StartSessionRequest] = None):
    """Start a session from second 0."""
    technique_id = request.technique_id if request else None
    result = await controller.start_session(technique_id)
    return command_response(controller, result)


@router.post("/pause", response_model=CommandResponse)
async def pause_session(controller: ControllerDep):
    result = await controller.pause_session()
    return command_response(controller, result)


@router.post("/resume", response_model=CommandResponse)
async def resume_session(controller: ControllerDep):
    result = await controller.resume_session()
    return command_response(controller, result)


@router.post("/stop", response_model=CommandResponse)
async def stop_session(controller: ControllerDep):
    """Stop and rewind to second 0. Not recorded in the undo history."""
    controller.stop_session()
    return command_response(controller, {"success": True, "stopped": True})


@router.post("/technique", response_model=CommandResponse)
async def change_technique(request: ChangeTechniqueRequest, controller: ControllerDep):
    """Switch technique; a running session restarts at second 0."""
    result = await controller.change_technique(request.technique_id)
    return command_response(controller, result)


@router.post("/undo", response_model=CommandResponse)
async def undo(controller: ControllerDep):
    result = await controller.undo()
    return command_response(controller, result)


@router.post("/redo", response_model=CommandResponse)
async def redo(controller: ControllerDep):
    result = await controller.redo()
    return command_response(controller, result)


@router.get("/history", response_model=HistoryResponse)
async def get_history(controller: ControllerDep):
    """Undo/redo history, oldest first."""
    invoker = controller.invoker
    return HistoryResponse(
        entries=[HistoryEntry(**entry) for entry in invoker.history()],
        can_undo=invoker.can_undo(),
        can_redo=invoker.can_redo(),
        current_index=invoker.current_index,
    )
