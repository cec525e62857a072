"""Maps registry errors onto HTTP responses."""

from fastapi import HTTPException, status

from api.objects.errors import (
    AdmissionError,
    MetadataWriteError,
    ObjectExpiredError,
    ObjectNotFoundError,
    ObjectStoreError,
    StorageReadError,
    StorageWriteError,
)


def to_http_exception(exc: ObjectStoreError) -> HTTPException:
    if isinstance(exc, AdmissionError):
        code = (
            status.HTTP_413_REQUEST_ENTITY_TOO_LARGE
            if exc.reason == "size"
            else status.HTTP_400_BAD_REQUEST
        )
        return HTTPException(status_code=code, detail={"error": "Upload rejected", "message": str(exc)})

    if isinstance(exc, ObjectNotFoundError):
        return HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail={"error": "File not found", "message": "The requested file does not exist"},
        )

    if isinstance(exc, ObjectExpiredError):
        return HTTPException(
            status_code=status.HTTP_410_GONE,
            detail={
                "error": "File expired",
                "message": "This file has expired and is no longer available",
                "expired_at": exc.expires_at.isoformat(),
            },
        )

    if isinstance(exc, StorageReadError):
        return HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail={"error": "Storage unavailable", "message": "Please try again later"},
        )

    if isinstance(exc, (StorageWriteError, MetadataWriteError)):
        return HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail={"error": "Upload failed", "message": "Failed to store the file"},
        )

    return HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=str(exc))
