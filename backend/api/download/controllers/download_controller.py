"""Download controller: handles file downloads."""

from fastapi import APIRouter, Depends
from fastapi.responses import Response

from api.download.services import download_service
from api.objects.controllers.http_errors import to_http_exception
from api.objects.errors import ObjectStoreError
from api.objects.services.registry import ObjectRegistry
from api.objects.services.registry_provider import get_registry

router = APIRouter(tags=["Download"])


@router.get("/download/{object_id}")
async def download_file(object_id: str, registry: ObjectRegistry = Depends(get_registry)):
    """Return the file as an attachment if it has not expired."""
    try:
        result = await download_service.get_file_for_download(registry, object_id)
    except ObjectStoreError as e:
        raise to_http_exception(e) from e

    return Response(
        content=result.content,
        media_type=result.content_type,
        headers=download_service.download_headers(result),
    )
