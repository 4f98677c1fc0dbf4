"""
Technique catalogue endpoints.
"""

from fastapi import APIRouter

from breathwork.api.dependencies import ControllerDep
from breathwork.api.schemas import TechniqueListResponse, TechniqueResponse, TechniqueSummary

router = APIRouter(prefix="/techniques", tags=["techniques"])


@router.get("", response_model=TechniqueListResponse)
async def list_techniques(controller: ControllerDep):
    """List every technique in the catalogue."""
    registry = controller.registry
    return TechniqueListResponse(
        techniques=[TechniqueSummary.from_technique(t) for t in registry.all()],
        default_id=registry.default_id,
        total=len(registry),
    )


@router.get("/{technique_id}", response_model=TechniqueResponse)
async def get_technique(technique_id: str, controller: ControllerDep):
    """Get one technique; unknown ids are 404."""
    return TechniqueResponse.from_technique(controller.registry.get(technique_id))
