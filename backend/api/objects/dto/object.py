"""Object Data Transfer Objects."""

import math
from dataclasses import dataclass
from datetime import datetime, timedelta

from pydantic import BaseModel


@dataclass(frozen=True)
class ObjectRecord:
    """Metadata for one stored object. Timestamps are timezone-aware UTC."""

    object_id: str
    original_name: str
    storage_key: str
    content_type: str
    size_bytes: int
    created_at: datetime
    expires_at: datetime
    download_count: int = 0

    def is_expired(self, now: datetime) -> bool:
        return now > self.expires_at

    def time_remaining(self, now: datetime) -> timedelta:
        return max(timedelta(0), self.expires_at - now)

    def hours_remaining(self, now: datetime) -> int:
        """Whole hours left, rounded up."""
        return math.ceil(self.time_remaining(now).total_seconds() / 3600)


@dataclass(frozen=True)
class AdmitResult:
    object_id: str
    expires_at: datetime


@dataclass(frozen=True)
class FetchResult:
    content: bytes
    content_type: str
    original_name: str
    size_bytes: int


@dataclass(frozen=True)
class SweepResult:
    deleted_count: int = 0
    error_count: int = 0


class ObjectStatus(BaseModel):
    object_id: str
    original_name: str
    size_bytes: int
    content_type: str
    created_at: datetime
    expires_at: datetime
    is_expired: bool
    time_remaining: int
    download_count: int

    @classmethod
    def from_record(cls, record: ObjectRecord, now: datetime) -> "ObjectStatus":
        return cls(
            object_id=record.object_id,
            original_name=record.original_name,
            size_bytes=record.size_bytes,
            content_type=record.content_type,
            created_at=record.created_at,
            expires_at=record.expires_at,
            is_expired=record.is_expired(now),
            time_remaining=record.hours_remaining(now),
            download_count=record.download_count,
        )


class SweepResponse(BaseModel):
    deleted_count: int
    error_count: int
