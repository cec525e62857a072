"""Objects controller: maintenance routes."""

from fastapi import APIRouter, Depends

from api.objects.dto.object import SweepResponse
from api.objects.services.registry import ObjectRegistry
from api.objects.services.registry_provider import get_registry
from cleanup import run_cleanup

router = APIRouter(prefix="/api", tags=["Objects"])


@router.post("/cleanup", response_model=SweepResponse)
async def trigger_cleanup(registry: ObjectRegistry = Depends(get_registry)):
    """Sweep expired objects now, alongside any scheduled sweep."""
    result = await run_cleanup(registry)
    return SweepResponse(deleted_count=result.deleted_count, error_count=result.error_count)
