"""
Task Source
Loads the active tasks assigned to a user from the shared task tables.
"""
import uuid
from typing import Union

import structlog
from pydantic import ValidationError as PydanticValidationError
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from chorecal.core.exceptions import CalendarSyncError
from chorecal.models import Task, TaskAssignment, User
from chorecal.schemas.sync import TaskProjection

logger = structlog.get_logger(__name__)

ACTIVE_STATUS = "active"


class TaskSource:
    """Read-only projection of household tasks for the sync engine."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def load_tasks_for_user(self, user_id: Union[str, uuid.UUID]) -> list[TaskProjection]:
        """
        Active tasks in the user's household that the user is assigned to.

        Each projection lists the names of every assignee, not just the
        syncing user. Rows that fail validation are skipped with a warning.

        Raises:
            CalendarSyncError: The user does not exist.
        """
        user_uuid = user_id if isinstance(user_id, uuid.UUID) else uuid.UUID(str(user_id))
        user = await self.session.get(User, user_uuid)
        if user is None:
            raise CalendarSyncError("User not found")

        assigned = select(TaskAssignment.task_id).where(TaskAssignment.user_id == user_uuid)
        result = await self.session.execute(
            select(Task)
            .where(
                Task.organization_id == user.organization_id,
                Task.status == ACTIVE_STATUS,
                Task.id.in_(assigned),
            )
            .options(selectinload(Task.assignments).selectinload(TaskAssignment.user))
            .order_by(Task.name)
        )

        projections: list[TaskProjection] = []
        for task in result.scalars().all():
            try:
                projections.append(
                    TaskProjection(
                        id=str(task.id),
                        name=task.name,
                        description=task.description,
                        category=task.category,
                        points=task.points,
                        due_time=task.due_time,
                        frequency=task.frequency,
                        recurrence_interval=task.recurrence_interval,
                        assigned_to_names=[
                            a.user.name for a in task.assignments if a.user and a.user.name
                        ],
                    )
                )
            except PydanticValidationError as e:
                logger.warning("calendar_task_invalid", task_id=str(task.id), error=str(e))

        return projections
