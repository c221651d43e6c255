from __future__ import annotations
import uuid
from dataclasses import dataclass
from datetime import datetime
from uuid import UUID
from sqlalchemy import select, update, func
from sqlalchemy.ext.asyncio import AsyncSession
import structlog

from luvrix.config import settings
from luvrix.errors import NotFoundError, InvalidStateError, ValidationError, PersistenceError
from luvrix.models.giveaway import Giveaway, Task
from luvrix.models.participant import Participant, TaskCompletion, TaskStart, Referral
from luvrix.models.user import User
from luvrix.services.clock import utcnow, as_utc
from luvrix.services.eligibility import EligibilitySnapshot, evaluate, next_status
from luvrix.services.giveaways import extend_schedule, is_open_for_entries
from luvrix.services.invite_code import generate_code
from luvrix.services.persistence import unit_of_work, insert_ignore
from luvrix.services.tasks import list_tasks, get_task

log = structlog.get_logger()


@dataclass
class ParticipantState:
    participant: Participant
    completed_task_ids: list[UUID]
    joined: bool = False           # this call created the record
    became_eligible: bool = False  # this call promoted participant -> eligible


@dataclass
class InviteOutcome:
    credited: bool
    inviter: ParticipantState

# ---------- reads ----------

async def find_participant(session: AsyncSession, giveaway_id: UUID, user_id: UUID) -> Participant | None:
    return await session.scalar(
        select(Participant).where(Participant.giveaway_id == giveaway_id, Participant.user_id == user_id)
    )

async def find_by_invite_code(session: AsyncSession, giveaway_id: UUID, code: str) -> Participant:
    p = await session.scalar(
        select(Participant).where(Participant.giveaway_id == giveaway_id, Participant.invite_code == code)
    )
    if not p:
        raise NotFoundError("Invalid invite code")
    return p

async def completed_task_ids(session: AsyncSession, participant_id: UUID) -> list[UUID]:
    return list((await session.execute(
        select(TaskCompletion.task_id)
        .where(TaskCompletion.participant_id == participant_id)
        .order_by(TaskCompletion.completed_at.asc())
    )).scalars().all())

async def load_state(session: AsyncSession, p: Participant) -> ParticipantState:
    return ParticipantState(participant=p, completed_task_ids=await completed_task_ids(session, p.id))

async def count_participants(session: AsyncSession, giveaway_id: UUID) -> int:
    n = await session.scalar(
        select(func.count()).select_from(Participant).where(Participant.giveaway_id == giveaway_id)
    )
    return int(n or 0)

async def list_participants(session: AsyncSession, giveaway_id: UUID, status: str | None = None) -> list[tuple[Participant, User]]:
    q = (
        select(Participant, User)
        .join(User, User.id == Participant.user_id)
        .where(Participant.giveaway_id == giveaway_id)
        .order_by(Participant.joined_at.asc(), Participant.user_id.asc())
    )
    if status:
        q = q.where(Participant.status == status)
    return [(p, u) for (p, u) in (await session.execute(q)).all()]

async def user_history(session: AsyncSession, user_id: UUID) -> list[tuple[Participant, Giveaway, str | None]]:
    """Every participation of a user, newest first, with the winner's username where drawn."""
    rows = (await session.execute(
        select(Participant, Giveaway)
        .join(Giveaway, Giveaway.id == Participant.giveaway_id)
        .where(Participant.user_id == user_id)
        .order_by(Participant.joined_at.desc())
    )).all()
    winner_ids = {g.winner_user_id for (_p, g) in rows if g.winner_user_id}
    names: dict[UUID, str] = {}
    if winner_ids:
        names = dict((await session.execute(
            select(User.id, User.username).where(User.id.in_(winner_ids))
        )).all())
    return [(p, g, names.get(g.winner_user_id)) for (p, g) in rows]

# ---------- eligibility bookkeeping ----------

async def _promote_if_eligible(session: AsyncSession, g: Giveaway, p: Participant, tasks: list[Task], completed: list[UUID], now: datetime) -> tuple[EligibilitySnapshot, bool]:
    snap = evaluate(p, g, tasks, completed)
    if next_status(p.status, snap) == p.status:
        return snap, False
    # Guarded: only a plain participant can be promoted, never a winner or an already-eligible row
    res = await session.execute(
        update(Participant)
        .where(Participant.id == p.id, Participant.status == "participant")
        .values(status="eligible", eligible_at=now)
        .execution_options(synchronize_session=False)
    )
    await session.refresh(p)
    if res.rowcount == 1:
        log.info("participant_eligible", giveaway_id=str(g.id), user_id=str(p.user_id), points=p.points)
        return snap, True
    return snap, False

def _check_task_variant(task: Task, p: Participant, answer: int | None, started_at: datetime | None, now: datetime) -> None:
    meta = task.meta_json or {}
    if task.type == "quiz":
        if answer is None or answer != meta.get("correct_option"):
            raise ValidationError("Incorrect answer")
    elif task.type == "invite":
        required = int(meta.get("required_invites") or 1)
        if p.invite_count < required:
            raise ValidationError(f"Invite {required} participant(s) first ({p.invite_count} so far)")
    elif task.type == "visit_website":
        min_seconds = int(meta.get("min_seconds") or 0)
        if not min_seconds:
            return
        if started_at is None:
            raise ValidationError("Start the task before completing it")
        if (now - as_utc(started_at)).total_seconds() < min_seconds:
            raise ValidationError(f"Stay on the website for at least {min_seconds} seconds")

async def _get_giveaway(session: AsyncSession, giveaway_id: UUID) -> Giveaway:
    g = await session.get(Giveaway, giveaway_id)
    if not g:
        raise NotFoundError("Giveaway not found")
    return g

# ---------- operations ----------

async def join(session: AsyncSession, giveaway_id: UUID, user_id: UUID, *, now: datetime | None = None, timeout: float | None = None) -> ParticipantState:
    """
    Idempotent join. An existing record comes back untouched (no point reset).
    New records are created with a conditional insert so concurrent joins converge on one row.
    """
    now = now or utcnow()
    async with unit_of_work(session, timeout=timeout):
        g = await _get_giveaway(session, giveaway_id)
        existing = await find_participant(session, g.id, user_id)
        if existing:
            return await load_state(session, existing)

        extend_schedule(g, now)
        if g.status != "active":
            raise InvalidStateError("Giveaway is not active")
        if not is_open_for_entries(g, now):
            raise InvalidStateError("Giveaway has ended; joining is closed")

        tasks = await list_tasks(session, g.id)
        for _ in range(5):
            code = generate_code(settings.invite_code_length)
            if await session.scalar(select(Participant.id).where(Participant.invite_code == code)):
                continue
            fresh = Participant(giveaway_id=g.id, user_id=user_id, points=0, invite_count=0, status="participant")
            snap = evaluate(fresh, g, tasks, [])
            status = next_status("participant", snap)
            pid = await insert_ignore(session, Participant, {
                "id": uuid.uuid4(),
                "giveaway_id": g.id,
                "user_id": user_id,
                "points": 0,
                "invite_code": code,
                "invite_count": 0,
                "status": status,
                "joined_at": now,
                "eligible_at": now if status == "eligible" else None,
            }, ["giveaway_id", "user_id"])
            if pid is None:
                # Lost a race against a concurrent join of the same user
                existing = await find_participant(session, g.id, user_id)
                return await load_state(session, existing)
            p = await session.get(Participant, pid)
            log.info("participant_joined", giveaway_id=str(g.id), user_id=str(user_id), status=status)
            return ParticipantState(participant=p, completed_task_ids=[], joined=True, became_eligible=status == "eligible")
        raise PersistenceError("Failed to generate unique invite code")

async def complete_task(
    session: AsyncSession,
    giveaway_id: UUID,
    user_id: UUID,
    task_id: UUID,
    *,
    answer: int | None = None,
    now: datetime | None = None,
    timeout: float | None = None,
) -> ParticipantState:
    """
    Credit a task once. The completion row is inserted conditionally on
    (participant_id, task_id); points move only when that insert lands.
    """
    now = now or utcnow()
    async with unit_of_work(session, timeout=timeout):
        g = await _get_giveaway(session, giveaway_id)
        p = await find_participant(session, g.id, user_id)
        if not p:
            raise NotFoundError("You have not joined this giveaway")
        task = await get_task(session, g.id, task_id)
        if not task:
            raise ValidationError("Task not found for this giveaway")
        if g.status != "active":
            raise InvalidStateError("Giveaway is not active")

        completed = await completed_task_ids(session, p.id)
        if task.id in completed:
            return ParticipantState(participant=p, completed_task_ids=completed)

        started_at = await session.scalar(
            select(TaskStart.started_at).where(TaskStart.participant_id == p.id, TaskStart.task_id == task.id)
        )
        _check_task_variant(task, p, answer, started_at, now)

        cid = await insert_ignore(session, TaskCompletion, {
            "id": uuid.uuid4(),
            "participant_id": p.id,
            "task_id": task.id,
            "points_awarded": task.points,
            "completed_at": now,
        }, ["participant_id", "task_id"])
        if cid is None:
            # A concurrent request credited it first
            await session.refresh(p)
            return await load_state(session, p)

        await session.execute(
            update(Participant)
            .where(Participant.id == p.id)
            .values(points=Participant.points + task.points)
            .execution_options(synchronize_session=False)
        )
        await session.refresh(p)
        completed.append(task.id)
        log.info("task_completed", giveaway_id=str(g.id), user_id=str(user_id), task_id=str(task.id), points=p.points)

        tasks = await list_tasks(session, g.id)
        _snap, promoted = await _promote_if_eligible(session, g, p, tasks, completed, now)
        return ParticipantState(participant=p, completed_task_ids=completed, became_eligible=promoted)

async def start_task(
    session: AsyncSession,
    giveaway_id: UUID,
    user_id: UUID,
    task_id: UUID,
    *,
    now: datetime | None = None,
    timeout: float | None = None,
) -> datetime:
    """Record when the participant opened a task. Calling it again restarts the clock."""
    now = now or utcnow()
    async with unit_of_work(session, timeout=timeout):
        g = await _get_giveaway(session, giveaway_id)
        p = await find_participant(session, g.id, user_id)
        if not p:
            raise NotFoundError("You have not joined this giveaway")
        task = await get_task(session, g.id, task_id)
        if not task:
            raise ValidationError("Task not found for this giveaway")
        if g.status != "active":
            raise InvalidStateError("Giveaway is not active")

        sid = await insert_ignore(session, TaskStart, {
            "id": uuid.uuid4(),
            "participant_id": p.id,
            "task_id": task.id,
            "started_at": now,
        }, ["participant_id", "task_id"])
        if sid is None:
            await session.execute(
                update(TaskStart)
                .where(TaskStart.participant_id == p.id, TaskStart.task_id == task.id)
                .values(started_at=now)
                .execution_options(synchronize_session=False)
            )
        log.info("task_started", giveaway_id=str(g.id), user_id=str(user_id), task_id=str(task.id))
    return now

async def redeem_invite(
    session: AsyncSession,
    giveaway_id: UUID,
    inviter_user_id: UUID,
    referred_user_id: UUID,
    *,
    now: datetime | None = None,
    timeout: float | None = None,
) -> InviteOutcome:
    """
    Credit the inviter for one referred participant. A referred user credits at most one
    inviter per giveaway; repeats are a no-op (credited=False).
    """
    now = now or utcnow()
    async with unit_of_work(session, timeout=timeout):
        g = await _get_giveaway(session, giveaway_id)
        if g.status != "active":
            raise InvalidStateError("Giveaway is not active")
        if not g.invite_points_enabled:
            raise InvalidStateError("Invite points are not enabled for this giveaway")
        inviter = await find_participant(session, g.id, inviter_user_id)
        if not inviter:
            raise NotFoundError("Inviter has not joined this giveaway")
        if referred_user_id == inviter_user_id:
            raise ValidationError("Cannot invite yourself")
        if not await find_participant(session, g.id, referred_user_id):
            raise ValidationError("Invited user must join the giveaway first")

        already = await session.scalar(
            select(Referral.id).where(Referral.giveaway_id == g.id, Referral.referred_user_id == referred_user_id)
        )
        if already:
            return InviteOutcome(credited=False, inviter=await load_state(session, inviter))

        per = int(g.invite_points_per_referral or 1)
        if g.invite_points_cap is not None and inviter.invite_count * per >= g.invite_points_cap:
            raise InvalidStateError("Invite points cap reached")

        rid = await insert_ignore(session, Referral, {
            "id": uuid.uuid4(),
            "giveaway_id": g.id,
            "inviter_participant_id": inviter.id,
            "referred_user_id": referred_user_id,
            "points_awarded": per,
            "created_at": now,
        }, ["giveaway_id", "referred_user_id"])
        if rid is None:
            await session.refresh(inviter)
            return InviteOutcome(credited=False, inviter=await load_state(session, inviter))

        await session.execute(
            update(Participant)
            .where(Participant.id == inviter.id)
            .values(points=Participant.points + per, invite_count=Participant.invite_count + 1)
            .execution_options(synchronize_session=False)
        )
        await session.refresh(inviter)
        log.info("invite_redeemed", giveaway_id=str(g.id), inviter_id=str(inviter_user_id), referred_id=str(referred_user_id), points=inviter.points)

        tasks = await list_tasks(session, g.id)
        completed = await completed_task_ids(session, inviter.id)
        _snap, promoted = await _promote_if_eligible(session, g, inviter, tasks, completed, now)
        return InviteOutcome(
            credited=True,
            inviter=ParticipantState(participant=inviter, completed_task_ids=completed, became_eligible=promoted),
        )

async def get_status(
    session: AsyncSession,
    giveaway_id: UUID,
    user_id: UUID,
    *,
    now: datetime | None = None,
    timeout: float | None = None,
) -> tuple[ParticipantState, EligibilitySnapshot, int]:
    """Participant state plus a fresh eligibility snapshot. Repairs a participant stuck below eligible."""
    now = now or utcnow()
    async with unit_of_work(session, timeout=timeout):
        g = await _get_giveaway(session, giveaway_id)
        p = await find_participant(session, g.id, user_id)
        if not p:
            raise NotFoundError("You have not joined this giveaway")
        tasks = await list_tasks(session, g.id)
        completed = await completed_task_ids(session, p.id)
        snap, promoted = await _promote_if_eligible(session, g, p, tasks, completed, now)
        state = ParticipantState(participant=p, completed_task_ids=completed, became_eligible=promoted)
        return state, snap, len(tasks)
