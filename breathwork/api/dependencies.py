"""Dependency injection for API routes."""

from typing import Annotated

from fastapi import Depends, Request

from breathwork.core.exceptions import DependencyInjectionFailed
from breathwork.services.breathing_controller import BreathingController


def get_controller(request: Request) -> BreathingController:
    """FastAPI dependency for the application's BreathingController.

    The controller is built by the lifespan handler and stored on app.state;
    there is exactly one per application.
    """
    controller = getattr(request.app.state, "controller", None)
    if controller is None:
        raise DependencyInjectionFailed(
            "Breathing controller is not available", dependency="controller"
        )
    return controller


# Type aliases for dependency injection
ControllerDep = Annotated[BreathingController, Depends(get_controller)]
