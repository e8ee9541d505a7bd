"""Add calendar integrations table.

The users, tasks and task_assignments tables belong to the task service and
are expected to exist already.

Revision ID: 001
Revises:
Create Date: 2026-10-19
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql


# revision identifiers, used by Alembic.
revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Create the calendar_integrations table."""
    op.create_table(
        "calendar_integrations",
        sa.Column(
            "id",
            postgresql.UUID(as_uuid=True),
            primary_key=True,
            server_default=sa.text("gen_random_uuid()"),
        ),
        sa.Column(
            "user_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("users.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("organization_id", postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column(
            "provider",
            sa.String(50),
            nullable=False,
            server_default="google",
            comment="Calendar provider",
        ),
        sa.Column(
            "email",
            sa.String(255),
            nullable=True,
            comment="Google account the calendar belongs to",
        ),
        sa.Column("access_token", sa.Text(), nullable=False),
        sa.Column("refresh_token", sa.Text(), nullable=True),
        sa.Column(
            "token_expiry",
            sa.TIMESTAMP(timezone=True),
            nullable=True,
            comment="When the access token expires",
        ),
        sa.Column("sync_enabled", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        sa.Column(
            "sync_tasks_to_calendar",
            sa.Boolean(),
            nullable=False,
            server_default=sa.text("true"),
        ),
        sa.Column(
            "sync_calendar_to_tasks",
            sa.Boolean(),
            nullable=False,
            server_default=sa.text("false"),
        ),
        sa.Column(
            "calendar_name",
            sa.String(255),
            nullable=False,
            server_default="ChorePulse Tasks",
        ),
        sa.Column("calendar_id", sa.String(255), nullable=True),
        sa.Column("last_sync_at", sa.TIMESTAMP(timezone=True), nullable=True),
        sa.Column(
            "last_sync_status",
            sa.String(20),
            nullable=False,
            server_default="pending",
            comment="pending, success or error",
        ),
        sa.Column("last_sync_error", sa.Text(), nullable=True),
        sa.Column(
            "created_at",
            sa.TIMESTAMP(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        ),
        sa.Column(
            "updated_at",
            sa.TIMESTAMP(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        ),
        sa.UniqueConstraint("user_id", "provider", name="uq_calendar_integration_user_provider"),
    )
    op.create_index(
        "ix_calendar_integrations_user_id",
        "calendar_integrations",
        ["user_id"],
    )
    op.create_index(
        "ix_calendar_integrations_active",
        "calendar_integrations",
        ["provider"],
        postgresql_where=sa.text("sync_enabled AND sync_tasks_to_calendar"),
    )


def downgrade() -> None:
    """Drop the calendar_integrations table."""
    op.drop_index("ix_calendar_integrations_active", table_name="calendar_integrations")
    op.drop_index("ix_calendar_integrations_user_id", table_name="calendar_integrations")
    op.drop_table("calendar_integrations")
