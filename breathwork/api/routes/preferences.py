"""
Preference endpoints.
"""

from fastapi import APIRouter

from breathwork.api.dependencies import ControllerDep
from breathwork.api.routes.session import command_response
from breathwork.api.schemas import CommandResponse, PreferencesUpdate, ThemeRequest
from breathwork.domain.models.preferences import Preferences

router = APIRouter(prefix="/preferences", tags=["preferences"])


@router.get("", response_model=Preferences)
async def get_preferences(controller: ControllerDep):
    return controller.preferences_state.preferences


@router.patch("", response_model=Preferences)
async def update_preferences(request: PreferencesUpdate, controller: ControllerDep):
    """Apply the fields that were sent and persist them."""
    values = request.model_dump(exclude_unset=True, exclude_none=True)
    await controller.update_preferences(values)
    return controller.preferences_state.preferences


@router.put("/theme", response_model=CommandResponse)
async def change_theme(request: ThemeRequest, controller: ControllerDep):
    """Change the theme through the command layer so it can be undone."""
    result = await controller.change_theme(request.theme)
    return command_response(controller, result)
