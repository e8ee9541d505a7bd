"""
Tests for loading a user's assigned tasks.
"""
import uuid

import pytest

from chorecal.core.exceptions import CalendarSyncError
from chorecal.schemas.sync import TaskFrequency
from chorecal.services.task_source import TaskSource


class TestLoadTasksForUser:
    """Tests for TaskSource.load_tasks_for_user."""

    @pytest.mark.asyncio
    async def test_only_active_assigned_tasks_in_household(
        self, async_session, household, make_task
    ):
        """Unassigned, inactive and other-household tasks are excluded."""
        mine = await make_task(household.org_id, [household.parent], name="Dishes")
        await make_task(household.org_id, [household.child], name="Homework")
        await make_task(household.org_id, [household.parent], name="Old chore", status="archived")
        await make_task(uuid.uuid4(), [household.parent], name="Elsewhere")

        tasks = await TaskSource(async_session).load_tasks_for_user(household.parent.id)

        assert [t.id for t in tasks] == [str(mine.id)]

    @pytest.mark.asyncio
    async def test_lists_every_assignee_in_assignment_order(
        self, async_session, household, make_task
    ):
        """Co-assignees appear in the order they were assigned."""
        await make_task(household.org_id, [household.child, household.parent], name="Yard work")

        tasks = await TaskSource(async_session).load_tasks_for_user(str(household.parent.id))

        assert tasks[0].assigned_to_names == ["Sam", "Alex"]

    @pytest.mark.asyncio
    async def test_projection_fields(self, async_session, household, make_task):
        """Task columns are carried into the projection."""
        await make_task(
            household.org_id,
            [household.parent],
            name="Water plants",
            description="Balcony only",
            category="Garden",
            points=3,
            due_time="7:30 AM",
            frequency="weekly",
            recurrence_interval=None,
        )

        (task,) = await TaskSource(async_session).load_tasks_for_user(household.parent.id)

        assert task.name == "Water plants"
        assert task.description == "Balcony only"
        assert task.category == "Garden"
        assert task.points == 3
        assert task.due_time == "7:30 AM"
        assert task.frequency is TaskFrequency.WEEKLY
        assert task.recurrence_interval == 1

    @pytest.mark.asyncio
    async def test_ordered_by_name(self, async_session, household, make_task):
        """Tasks are returned sorted by name."""
        for name in ("Vacuum", "Dishes", "Laundry"):
            await make_task(household.org_id, [household.parent], name=name)

        tasks = await TaskSource(async_session).load_tasks_for_user(household.parent.id)

        assert [t.name for t in tasks] == ["Dishes", "Laundry", "Vacuum"]

    @pytest.mark.asyncio
    async def test_unknown_user_raises(self, async_session):
        """A user id with no row is an error."""
        with pytest.raises(CalendarSyncError):
            await TaskSource(async_session).load_tasks_for_user(uuid.uuid4())
