"""Central ORM module: imports all models for Alembic metadata discovery."""

from api.objects.orm import ObjectModel

__all__ = [
    "ObjectModel",
]
