"""Upload Data Transfer Objects."""

from datetime import datetime

from pydantic import BaseModel


class UploadResponse(BaseModel):
    url: str
    object_id: str
    original_name: str
    size_bytes: int
    content_type: str
    expires_at: datetime
    expires_in_hours: int
