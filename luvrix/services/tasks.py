from __future__ import annotations
from uuid import UUID
from sqlalchemy import select, exists
from sqlalchemy.ext.asyncio import AsyncSession
import structlog

from luvrix.errors import NotFoundError, InvalidStateError
from luvrix.models.giveaway import Giveaway, Task
from luvrix.models.participant import TaskCompletion
from luvrix.schemas.task import TaskCreate
from luvrix.services.clock import utcnow
from luvrix.services.eligibility import promote_qualified
from luvrix.services.persistence import unit_of_work

log = structlog.get_logger()

EDITABLE_STATUSES = ("draft", "active")

# Fields that never leave the server (quiz answers)
PRIVATE_META_KEYS = frozenset({"correct_option"})


def public_metadata(task: Task) -> dict:
    return {k: v for k, v in (task.meta_json or {}).items() if k not in PRIVATE_META_KEYS}


async def list_tasks(session: AsyncSession, giveaway_id: UUID) -> list[Task]:
    return list((await session.execute(
        select(Task).where(Task.giveaway_id == giveaway_id).order_by(Task.created_at.asc(), Task.id.asc())
    )).scalars().all())


async def get_task(session: AsyncSession, giveaway_id: UUID, task_id: UUID) -> Task | None:
    return await session.scalar(select(Task).where(Task.id == task_id, Task.giveaway_id == giveaway_id))


async def add_task(session: AsyncSession, g: Giveaway, data: TaskCreate, *, timeout: float | None = None) -> Task:
    if g.status not in EDITABLE_STATUSES:
        raise InvalidStateError(f"Cannot add tasks to a giveaway in status {g.status}")
    async with unit_of_work(session, timeout=timeout):
        task = Task(
            giveaway_id=g.id,
            type=data.metadata.type,
            title=data.title,
            description=data.description,
            points=data.points,
            required=data.required,
            meta_json=data.metadata.model_dump(mode="json"),
        )
        session.add(task)
        await session.flush()
        log.info("task_added", giveaway_id=str(g.id), task_id=str(task.id), type=task.type, points=task.points, required=task.required)
    return task


async def remove_task(session: AsyncSession, g: Giveaway, task_id: UUID, *, timeout: float | None = None) -> None:
    """
    Remove a task nobody has completed yet. Completed tasks stay, otherwise participants'
    points would no longer add up to their completions.
    """
    if g.status not in EDITABLE_STATUSES:
        raise InvalidStateError(f"Cannot remove tasks from a giveaway in status {g.status}")
    async with unit_of_work(session, timeout=timeout):
        task = await get_task(session, g.id, task_id)
        if not task:
            raise NotFoundError("Task not found")
        used = await session.scalar(select(exists().where(TaskCompletion.task_id == task.id)))
        if used:
            raise InvalidStateError("Task already has completions and cannot be removed")
        await session.delete(task)
        if g.status == "active" and task.required:
            await promote_qualified(session, g, utcnow())
        log.info("task_removed", giveaway_id=str(g.id), task_id=str(task_id))
