"""create_sync_tables

Revision ID: 1c4e2a9b7d10
Revises:
Create Date: 2026-10-19 10:12:44.318205

"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = "1c4e2a9b7d10"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        "sync_profiles",
        sa.Column("id", sa.String(length=36), nullable=False),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("source_path", sa.String(length=1000), nullable=False),
        sa.Column("target_path", sa.String(length=1000), nullable=False),
        sa.Column("sync_mode", sa.String(length=20), nullable=False),
        sa.Column("exclude_patterns", sa.Text(), nullable=False),
        sa.Column("preserve_orphans", sa.Boolean(), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("last_synced_at", sa.DateTime(), nullable=True),
        sa.PrimaryKeyConstraint("id"),
    )

    op.create_table(
        "devices",
        sa.Column("id", sa.String(length=36), nullable=False),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("volume_uuid", sa.String(length=255), nullable=False),
        sa.Column("volume_name", sa.String(length=255), nullable=True),
        sa.Column("mount_path", sa.String(length=1000), nullable=True),
        sa.Column("music_folder", sa.String(length=500), nullable=False),
        sa.Column("capacity_bytes", sa.BigInteger(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("last_synced_at", sa.DateTime(), nullable=True),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("volume_uuid"),
    )

    op.create_table(
        "sync_state",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("scope_id", sa.String(length=36), nullable=False),
        sa.Column("relative_path", sa.String(length=1000), nullable=False),
        sa.Column("source_size", sa.BigInteger(), nullable=False),
        sa.Column("source_modified_at", sa.BigInteger(), nullable=False),
        sa.Column("source_hash", sa.String(length=128), nullable=True),
        sa.Column("target_size", sa.BigInteger(), nullable=False),
        sa.Column("target_modified_at", sa.BigInteger(), nullable=False),
        sa.Column("target_hash", sa.String(length=128), nullable=True),
        sa.Column("snapshot_at", sa.BigInteger(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("scope_id", "relative_path", name="uq_sync_state_path"),
    )
    op.create_index("idx_sync_state_scope", "sync_state", ["scope_id"])

    op.create_table(
        "device_file_cache",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("device_id", sa.String(length=36), nullable=False),
        sa.Column("relative_path", sa.String(length=1000), nullable=False),
        sa.Column("file_size", sa.BigInteger(), nullable=False),
        sa.Column("modified_at", sa.BigInteger(), nullable=False),
        sa.Column("hash", sa.String(length=128), nullable=False),
        sa.ForeignKeyConstraint(["device_id"], ["devices.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint(
            "device_id", "relative_path", name="uq_device_file_cache"
        ),
    )
    op.create_index(
        "idx_device_file_cache_device", "device_file_cache", ["device_id"]
    )

    op.create_table(
        "sync_operations",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("scope_id", sa.String(length=36), nullable=False),
        sa.Column("scope_type", sa.String(length=20), nullable=False),
        sa.Column("status", sa.String(length=20), nullable=False),
        sa.Column("files_synced", sa.Integer(), nullable=False),
        sa.Column("files_failed", sa.Integer(), nullable=False),
        sa.Column("bytes_synced", sa.BigInteger(), nullable=False),
        sa.Column("details", sa.Text(), nullable=True),
        sa.Column("error_message", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("completed_at", sa.DateTime(), nullable=True),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(
        "ix_sync_operations_scope_id", "sync_operations", ["scope_id"]
    )
    op.create_index("ix_sync_operations_status", "sync_operations", ["status"])
    op.create_index(
        "ix_sync_operations_created_at", "sync_operations", ["created_at"]
    )


def downgrade() -> None:
    op.drop_table("sync_operations")
    op.drop_index("idx_device_file_cache_device", table_name="device_file_cache")
    op.drop_table("device_file_cache")
    op.drop_index("idx_sync_state_scope", table_name="sync_state")
    op.drop_table("sync_state")
    op.drop_table("devices")
    op.drop_table("sync_profiles")
