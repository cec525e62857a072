"""Status controller: expiry and download statistics for a file."""

from fastapi import APIRouter, Depends, Request

from config import BASE_URL
from api.objects.controllers.http_errors import to_http_exception
from api.objects.errors import ObjectStoreError
from api.objects.services.registry import ObjectRegistry
from api.objects.services.registry_provider import get_registry
from api.status.dto.status import StatusResponse
from api.upload.services.upload_service import download_url

router = APIRouter(tags=["Status"])


@router.get("/status/{object_id}", response_model=StatusResponse)
async def get_status(
    request: Request, object_id: str, registry: ObjectRegistry = Depends(get_registry)
):
    try:
        status = await registry.status(object_id)
    except ObjectStoreError as e:
        raise to_http_exception(e) from e

    return StatusResponse(
        **status.model_dump(),
        download_url=download_url(BASE_URL or str(request.base_url), object_id),
    )
