"""initial raffle cache schema

Revision ID: 0001_initial
Revises:
Create Date: 2026-10-18 00:00:00

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = "0001_initial"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        "raffle_activities",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True, nullable=False),
        sa.Column("transaction_version", sa.String(length=32), nullable=False),
        sa.Column("activity_type", sa.String(length=32), nullable=False),
        sa.Column("raffle_id", sa.Integer(), nullable=False),
        sa.Column("user_address", sa.String(length=80), nullable=False),
        sa.Column("ticket_count", sa.Integer(), nullable=True),
        sa.Column("total_paid", sa.Float(), nullable=True),
        sa.Column("prize_amount", sa.Float(), nullable=True),
        sa.Column("block_height", sa.BigInteger(), nullable=False, server_default="0"),
        sa.Column("timestamp", sa.DateTime(timezone=True), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index("ix_raffle_activities_transaction_version", "raffle_activities", ["transaction_version"], unique=True)
    op.create_index("ix_raffle_activities_activity_type", "raffle_activities", ["activity_type"], unique=False)
    op.create_index("ix_raffle_activities_raffle_id", "raffle_activities", ["raffle_id"], unique=False)
    op.create_index("ix_raffle_activities_user_address", "raffle_activities", ["user_address"], unique=False)
    op.create_index("ix_raffle_activities_timestamp", "raffle_activities", ["timestamp"], unique=False)

    op.create_table(
        "slow_cache_entries",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True, nullable=False),
        sa.Column("cache_key", sa.String(length=255), nullable=False),
        sa.Column("resource", sa.String(length=32), nullable=False),
        sa.Column("raffle_id", sa.Integer(), nullable=True),
        sa.Column("payload", postgresql.JSONB(astext_type=sa.Text()), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index("ix_slow_cache_entries_cache_key", "slow_cache_entries", ["cache_key"], unique=True)
    op.create_index("ix_slow_cache_entries_resource", "slow_cache_entries", ["resource"], unique=False)
    op.create_index("ix_slow_cache_entries_raffle_id", "slow_cache_entries", ["raffle_id"], unique=False)
    op.create_index("ix_slow_cache_entries_expires_at", "slow_cache_entries", ["expires_at"], unique=False)

    op.create_table(
        "notifications",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True, nullable=False),
        sa.Column("user_address", sa.String(length=80), nullable=False),
        sa.Column("type", sa.String(length=32), nullable=False),
        sa.Column("title", sa.String(length=200), nullable=False),
        sa.Column("message", sa.String(length=1000), nullable=False),
        sa.Column("raffle_id", sa.Integer(), nullable=True),
        sa.Column("related_address", sa.String(length=80), nullable=True),
        sa.Column("amount", sa.Float(), nullable=True),
        sa.Column("transaction_hash", sa.String(length=80), nullable=True),
        sa.Column("is_read", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index("ix_notifications_user_address", "notifications", ["user_address"], unique=False)
    op.create_index("ix_notifications_raffle_id", "notifications", ["raffle_id"], unique=False)
    op.create_index("ix_notifications_transaction_hash", "notifications", ["transaction_hash"], unique=False)
    op.create_index("ix_notifications_created_at", "notifications", ["created_at"], unique=False)
    op.create_unique_constraint(
        "uq_notifications_idempotency",
        "notifications",
        ["transaction_hash", "user_address", "type"],
    )

    op.create_table(
        "polling_state",
        sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
        sa.Column("last_synced_version", sa.BigInteger(), nullable=False, server_default="0"),
        sa.Column("last_synced_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("is_syncing", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("error_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("last_error", sa.String(length=1000), nullable=True),
        sa.Column("last_error_at", sa.DateTime(timezone=True), nullable=True),
    )


def downgrade() -> None:
    op.drop_table("polling_state")

    op.drop_constraint("uq_notifications_idempotency", "notifications", type_="unique")
    op.drop_index("ix_notifications_created_at", table_name="notifications")
    op.drop_index("ix_notifications_transaction_hash", table_name="notifications")
    op.drop_index("ix_notifications_raffle_id", table_name="notifications")
    op.drop_index("ix_notifications_user_address", table_name="notifications")
    op.drop_table("notifications")

    op.drop_index("ix_slow_cache_entries_expires_at", table_name="slow_cache_entries")
    op.drop_index("ix_slow_cache_entries_raffle_id", table_name="slow_cache_entries")
    op.drop_index("ix_slow_cache_entries_resource", table_name="slow_cache_entries")
    op.drop_index("ix_slow_cache_entries_cache_key", table_name="slow_cache_entries")
    op.drop_table("slow_cache_entries")

    op.drop_index("ix_raffle_activities_timestamp", table_name="raffle_activities")
    op.drop_index("ix_raffle_activities_user_address", table_name="raffle_activities")
    op.drop_index("ix_raffle_activities_raffle_id", table_name="raffle_activities")
    op.drop_index("ix_raffle_activities_activity_type", table_name="raffle_activities")
    op.drop_index("ix_raffle_activities_transaction_version", table_name="raffle_activities")
    op.drop_table("raffle_activities")
