"""Object store errors.

Every ObjectRegistry operation either returns its result or raises one of
these. Backend adapter errors never leak past the registry.
"""

from datetime import datetime


class ObjectStoreError(Exception):
    """Base class for all registry outcomes other than success."""


class AdmissionError(ObjectStoreError):
    """The upload was rejected before anything was persisted."""

    def __init__(self, reason: str, message: str):
        super().__init__(message)
        self.reason = reason


class StorageWriteError(ObjectStoreError):
    """The blob backend failed or timed out while writing."""


class StorageReadError(ObjectStoreError):
    """A backend failed or timed out while serving a read."""


class MetadataWriteError(ObjectStoreError):
    """The metadata insert failed; the blob written for it was discarded."""


class ObjectNotFoundError(ObjectStoreError):
    def __init__(self, object_id: str):
        super().__init__(f"Object not found: {object_id}")
        self.object_id = object_id


class ObjectExpiredError(ObjectStoreError):
    def __init__(self, object_id: str, expires_at: datetime):
        super().__init__(f"Object expired at {expires_at.isoformat()}: {object_id}")
        self.object_id = object_id
        self.expires_at = expires_at
