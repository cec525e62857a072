"""Upload controller: handles multipart file uploads."""

from fastapi import APIRouter, Depends, File, Form, HTTPException, Request, UploadFile, status

from config import BASE_URL
from api.objects.controllers.http_errors import to_http_exception
from api.objects.errors import ObjectStoreError
from api.objects.services.registry import ObjectRegistry
from api.objects.services.registry_provider import get_registry
from api.upload.dto.upload import UploadResponse
from api.upload.services import upload_service

router = APIRouter(tags=["Upload"])


@router.post("/upload", response_model=UploadResponse, status_code=status.HTTP_201_CREATED)
async def upload_file(
    request: Request,
    file: UploadFile | None = File(None),
    expires_in_hours: int | None = Form(None),
    registry: ObjectRegistry = Depends(get_registry),
):
    """Upload a file and get back an expiring download link."""
    if file is None:
        raise HTTPException(
            status_code=400,
            detail={"error": "No file uploaded", "message": "Please provide a file to upload"},
        )

    base_url = BASE_URL or str(request.base_url)
    try:
        return await upload_service.save_upload(
            registry=registry,
            file=file,
            base_url=base_url,
            expires_in_hours=expires_in_hours,
        )
    except ObjectStoreError as e:
        raise to_http_exception(e) from e
