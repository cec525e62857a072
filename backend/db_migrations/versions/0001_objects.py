"""Create objects table.

Revision ID: 0001_objects
Revises:
Create Date: 2024-01-01 00:00:00.000000

"""
from __future__ import annotations

from alembic import op
import sqlalchemy as sa

revision = "0001_objects"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "objects",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("object_id", sa.String(length=64), nullable=False),
        sa.Column("original_name", sa.String(), nullable=False),
        sa.Column("storage_key", sa.String(length=96), nullable=False),
        sa.Column("content_type", sa.String(length=255), nullable=False),
        sa.Column("size_bytes", sa.Integer(), nullable=False),
        sa.Column("download_count", sa.Integer(), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("expires_at", sa.DateTime(), nullable=False),
    )
    op.create_index("ix_objects_object_id", "objects", ["object_id"], unique=True)
    op.create_index("ix_objects_expires_at", "objects", ["expires_at"], unique=False)


def downgrade() -> None:
    op.drop_index("ix_objects_expires_at", table_name="objects")
    op.drop_index("ix_objects_object_id", table_name="objects")
    op.drop_table("objects")
