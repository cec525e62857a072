"""Registry provider: builds the ObjectRegistry from application configuration."""

from datetime import timedelta

from fastapi import Request
from sqlalchemy.orm import sessionmaker

from config import (
    ALLOWED_MIME_TYPES,
    DEFAULT_EXPIRY_HOURS,
    FILES_DIR,
    MAX_EXPIRY_HOURS,
    MAX_FILE_SIZE,
    STORAGE_TIMEOUT_SECONDS,
)
from database import SessionLocal
from api.objects.repositories.objects_repository import SqlObjectRepository
from api.objects.services.registry import ObjectRegistry, RegistryConfig
from api.objects.storage.blob_store import LocalBlobStore


def build_registry_config() -> RegistryConfig:
    return RegistryConfig(
        allowed_content_types=frozenset(ALLOWED_MIME_TYPES),
        max_size_bytes=MAX_FILE_SIZE,
        default_ttl=timedelta(hours=DEFAULT_EXPIRY_HOURS),
        max_ttl=timedelta(hours=MAX_EXPIRY_HOURS) if MAX_EXPIRY_HOURS > 0 else None,
        operation_timeout=STORAGE_TIMEOUT_SECONDS,
    )


def build_registry(session_factory: sessionmaker = SessionLocal) -> ObjectRegistry:
    return ObjectRegistry(
        config=build_registry_config(),
        blobs=LocalBlobStore(FILES_DIR),
        records=SqlObjectRepository(session_factory),
    )


def get_registry(request: Request) -> ObjectRegistry:
    """FastAPI dependency: the registry created at app startup."""
    return request.app.state.registry
