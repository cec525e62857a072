"""Upload service: handles file upload logic."""

from datetime import timedelta

from fastapi import UploadFile

from api.objects.errors import AdmissionError
from api.objects.services.registry import ObjectRegistry
from api.upload.dto.upload import UploadResponse

CHUNK_SIZE = 1024 * 1024  # 1MB


def download_url(base_url: str, object_id: str) -> str:
    return f"{base_url.rstrip('/')}/download/{object_id}"


async def read_upload(file: UploadFile, max_size: int) -> bytes:
    """Read the upload into memory, giving up as soon as it exceeds max_size."""
    chunks = []
    size = 0
    while chunk := await file.read(CHUNK_SIZE):
        size += len(chunk)
        if size > max_size:
            raise AdmissionError("size", f"File exceeds max size of {max_size} bytes")
        chunks.append(chunk)
    return b"".join(chunks)


async def save_upload(
    registry: ObjectRegistry,
    file: UploadFile,
    base_url: str,
    expires_in_hours: int | None = None,
) -> UploadResponse:
    """Admit the uploaded file and describe where to fetch it."""
    data = await read_upload(file, registry.config.max_size_bytes)
    ttl = timedelta(hours=expires_in_hours) if expires_in_hours is not None else None
    content_type = file.content_type or "application/octet-stream"
    original_name = file.filename or ""

    result = await registry.admit(
        data=data,
        original_name=original_name,
        content_type=content_type,
        size_bytes=len(data),
        ttl=ttl,
    )

    effective_ttl = ttl if ttl is not None else registry.config.default_ttl
    return UploadResponse(
        url=download_url(base_url, result.object_id),
        object_id=result.object_id,
        original_name=original_name,
        size_bytes=len(data),
        content_type=content_type,
        expires_at=result.expires_at,
        expires_in_hours=int(effective_ttl.total_seconds() // 3600),
    )
