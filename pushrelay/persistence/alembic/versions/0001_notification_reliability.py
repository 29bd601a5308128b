"""notification retries and metrics

Revision ID: 0001_notification_reliability
Revises: 
Create Date: 2026-10-19 09:00:00.000000
"""
from __future__ import annotations

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision = "0001_notification_reliability"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "notification_retries",
        sa.Column("id", sa.String(), primary_key=True),
        # Avoid index=True here because we create explicit indexes below.
        sa.Column("user_id", sa.String(), nullable=False),
        sa.Column("notification_id", sa.String(), nullable=False),
        sa.Column("type", sa.String(), nullable=False),
        sa.Column("payload_json", postgresql.JSONB(), nullable=False),
        sa.Column("destination_token", sa.Text(), nullable=False),
        sa.Column("attempts", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("max_attempts", sa.Integer(), nullable=False),
        sa.Column("status", sa.String(), nullable=False),
        sa.Column("next_retry_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("last_error_code", sa.String(), nullable=True),
        sa.Column("last_error_message", sa.Text(), nullable=True),
        sa.Column("last_error_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index("ix_notification_retries_user_id", "notification_retries", ["user_id"])
    # Sweep lookups filter by status and due time together.
    op.create_index(
        "ix_notification_retries_status_next_retry_at",
        "notification_retries",
        ["status", "next_retry_at"],
    )
    op.create_index("ix_notification_retries_created_at", "notification_retries", ["created_at"])

    op.create_table(
        "notification_metrics",
        sa.Column("id", sa.String(), primary_key=True),
        sa.Column("user_id", sa.String(), nullable=False),
        sa.Column("notification_id", sa.String(), nullable=False),
        sa.Column("type", sa.String(), nullable=False),
        sa.Column("status", sa.String(), nullable=False),
        sa.Column("timestamp", sa.DateTime(timezone=True), nullable=False),
        sa.Column("response_time_ms", sa.Integer(), nullable=True),
        sa.Column("error_code", sa.String(), nullable=True),
        sa.Column("error_message", sa.Text(), nullable=True),
        sa.Column("destination_token", sa.Text(), nullable=True),
        sa.Column("device_info_json", postgresql.JSONB(), nullable=True),
    )
    op.create_index(
        "ix_notification_metrics_user_id_timestamp",
        "notification_metrics",
        ["user_id", "timestamp"],
    )
    op.create_index("ix_notification_metrics_timestamp", "notification_metrics", ["timestamp"])


def downgrade() -> None:
    op.drop_index("ix_notification_metrics_timestamp", table_name="notification_metrics")
    op.drop_index("ix_notification_metrics_user_id_timestamp", table_name="notification_metrics")
    op.drop_table("notification_metrics")
    op.drop_index("ix_notification_retries_created_at", table_name="notification_retries")
    op.drop_index("ix_notification_retries_status_next_retry_at", table_name="notification_retries")
    op.drop_index("ix_notification_retries_user_id", table_name="notification_retries")
    op.drop_table("notification_retries")
