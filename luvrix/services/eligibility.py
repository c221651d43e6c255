"""
Single source of truth for giveaway eligibility.

A participant is eligible when every required task of the giveaway is among their
completed tasks and their points reach the giveaway's required_points. evaluate() is
pure: it never touches the session, and callers persist whatever status follows from it.
promote_qualified() is the bulk write run after an admin relaxes the requirements.
"""
from __future__ import annotations
from dataclasses import dataclass, field
from datetime import datetime
from typing import Iterable
from uuid import UUID
from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession
import structlog

from luvrix.models.giveaway import Giveaway, Task
from luvrix.models.participant import Participant, TaskCompletion

log = structlog.get_logger()

# Forward-only ordering of participant statuses
_RANK = {"participant": 0, "eligible": 1, "winner": 2}


@dataclass(frozen=True)
class EligibilitySnapshot:
    eligible: bool
    required_tasks_done: bool
    points_met: bool
    points_needed: int
    missing_required_task_ids: list[UUID] = field(default_factory=list)


def evaluate(participant: Participant, giveaway: Giveaway, tasks: Iterable[Task], completed_task_ids: Iterable[UUID]) -> EligibilitySnapshot:
    completed = set(completed_task_ids)
    missing = [t.id for t in tasks if t.required and t.id not in completed]
    required_points = int(giveaway.required_points or 0)
    points = int(participant.points or 0)
    points_met = points >= required_points
    return EligibilitySnapshot(
        eligible=not missing and points_met,
        required_tasks_done=not missing,
        points_met=points_met,
        points_needed=max(0, required_points - points),
        missing_required_task_ids=missing,
    )


def next_status(current: str, snapshot: EligibilitySnapshot) -> str:
    """Status after an evaluation. Never moves backwards (eligible stays eligible)."""
    target = "eligible" if snapshot.eligible else "participant"
    return current if _RANK.get(current, 0) >= _RANK[target] else target


async def promote_qualified(session: AsyncSession, giveaway: Giveaway, now: datetime) -> list[UUID]:
    """
    Re-run the evaluator for every plain participant of the giveaway and promote those who
    now qualify. Runs inside the caller's unit of work; returns the promoted participant ids.
    """
    tasks = list((await session.execute(select(Task).where(Task.giveaway_id == giveaway.id))).scalars().all())
    waiting = (await session.execute(
        select(Participant).where(Participant.giveaway_id == giveaway.id, Participant.status == "participant")
    )).scalars().all()
    if not waiting:
        return []

    done: dict[UUID, list[UUID]] = {}
    rows = await session.execute(
        select(TaskCompletion.participant_id, TaskCompletion.task_id)
        .join(Participant, Participant.id == TaskCompletion.participant_id)
        .where(Participant.giveaway_id == giveaway.id)
    )
    for participant_id, task_id in rows.all():
        done.setdefault(participant_id, []).append(task_id)

    promoted = [
        p.id for p in waiting
        if next_status(p.status, evaluate(p, giveaway, tasks, done.get(p.id, []))) == "eligible"
    ]
    if promoted:
        await session.execute(
            update(Participant)
            .where(Participant.id.in_(promoted), Participant.status == "participant")
            .values(status="eligible", eligible_at=now)
            .execution_options(synchronize_session="fetch")
        )
        log.info("participants_promoted", giveaway_id=str(giveaway.id), count=len(promoted))
    return promoted
