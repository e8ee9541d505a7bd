"""
ChoreCal Database Models
SQLAlchemy ORM models for calendar integrations and the task tables the sync
engine reads.
"""
import enum
import uuid
from datetime import datetime
from typing import List, Optional

from sqlalchemy import (
    TIMESTAMP,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    func,
)
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship


class SyncStatus(str, enum.Enum):
    """Outcome of the most recent sync attempt."""

    PENDING = "pending"
    SUCCESS = "success"
    ERROR = "error"


class Base(DeclarativeBase):
    """Base class for all database models."""

    pass


# =============================================================================
# Task tables (owned by the task service, read-only here)
# =============================================================================


class User(Base):
    """Household member."""

    __tablename__ = "users"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
    )
    organization_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUID(as_uuid=True),
        nullable=True,
        index=True,
        doc="Household the user belongs to",
    )
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    email: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)


class Task(Base):
    """Household chore or task."""

    __tablename__ = "tasks"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
    )
    organization_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        nullable=False,
        index=True,
    )
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    category: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    points: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    due_time: Mapped[Optional[str]] = mapped_column(
        String(20),
        nullable=True,
        doc="Time of day, 'HH:MM' or 'h:MM AM/PM'",
    )
    frequency: Mapped[Optional[str]] = mapped_column(
        String(20),
        nullable=True,
        doc="one-time, daily, weekly or monthly",
    )
    recurrence_interval: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    status: Mapped[str] = mapped_column(String(20), default="active", nullable=False)

    assignments: Mapped[List["TaskAssignment"]] = relationship(
        "TaskAssignment",
        back_populates="task",
        order_by="TaskAssignment.created_at",
    )


class TaskAssignment(Base):
    """Links a task to an assigned household member."""

    __tablename__ = "task_assignments"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
    )
    task_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("tasks.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    user_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    created_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True),
        server_default=func.now(),
        nullable=False,
    )

    task: Mapped["Task"] = relationship("Task", back_populates="assignments")
    user: Mapped["User"] = relationship("User")


# =============================================================================
# Calendar Integration
# =============================================================================


class CalendarIntegration(Base):
    """
    OAuth credential and sync settings for a user's Google Calendar.

    One row per (user_id, provider). The refresh token is written only by the
    OAuth callback; refreshes replace the access token and expiry together.
    """

    __tablename__ = "calendar_integrations"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
        doc="Unique identifier for the calendar integration",
    )
    user_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        doc="Reference to the owning user",
    )
    organization_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUID(as_uuid=True),
        nullable=True,
        doc="Household of the owning user",
    )
    provider: Mapped[str] = mapped_column(
        String(50),
        nullable=False,
        default="google",
        doc="Calendar provider",
    )
    email: Mapped[Optional[str]] = mapped_column(
        String(255),
        nullable=True,
        doc="Google account the calendar belongs to",
    )
    access_token: Mapped[str] = mapped_column(
        Text,
        nullable=False,
        doc="OAuth access token",
    )
    refresh_token: Mapped[Optional[str]] = mapped_column(
        Text,
        nullable=True,
        doc="OAuth refresh token",
    )
    token_expiry: Mapped[Optional[datetime]] = mapped_column(
        TIMESTAMP(timezone=True),
        nullable=True,
        doc="When the access token expires",
    )
    sync_enabled: Mapped[bool] = mapped_column(
        default=True,
        doc="Master switch for calendar sync",
    )
    sync_tasks_to_calendar: Mapped[bool] = mapped_column(
        default=True,
        doc="Push tasks to the calendar",
    )
    sync_calendar_to_tasks: Mapped[bool] = mapped_column(
        default=False,
        doc="Surface calendar events in the app",
    )
    calendar_name: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
        default="ChorePulse Tasks",
        doc="Name of the dedicated calendar",
    )
    calendar_id: Mapped[Optional[str]] = mapped_column(
        String(255),
        nullable=True,
        doc="Provider id of the resolved calendar",
    )
    last_sync_at: Mapped[Optional[datetime]] = mapped_column(
        TIMESTAMP(timezone=True),
        nullable=True,
        doc="When the last sync attempt finished",
    )
    last_sync_status: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default=SyncStatus.PENDING.value,
        doc="pending, success or error",
    )
    last_sync_error: Mapped[Optional[str]] = mapped_column(
        Text,
        nullable=True,
        doc="Error message from the last failed sync",
    )
    created_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True),
        server_default=func.now(),
        nullable=False,
        doc="Record creation timestamp",
    )
    updated_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
        doc="Last update timestamp",
    )

    __table_args__ = (
        UniqueConstraint("user_id", "provider", name="uq_calendar_integration_user_provider"),
        Index("ix_calendar_integrations_user_id", "user_id"),
    )

    def __repr__(self) -> str:
        return f"<CalendarIntegration(user_id={self.user_id}, provider={self.provider})>"
