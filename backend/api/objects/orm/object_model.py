"""Stored object ORM model."""

from sqlalchemy import Column, DateTime, Integer, String

from database import Base


class ObjectModel(Base):
    __tablename__ = "objects"

    id = Column(Integer, primary_key=True, autoincrement=True)
    object_id = Column(String(64), unique=True, nullable=False, index=True)
    original_name = Column(String, nullable=False)
    storage_key = Column(String(96), nullable=False)
    content_type = Column(String(255), nullable=False)
    size_bytes = Column(Integer, nullable=False, default=0)
    download_count = Column(Integer, nullable=False, default=0)
    # Naive UTC
    created_at = Column(DateTime, nullable=False)
    expires_at = Column(DateTime, nullable=False, index=True)
