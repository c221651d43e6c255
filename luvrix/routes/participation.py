from __future__ import annotations
from fastapi import APIRouter, Depends, HTTPException, Query, Response, Body
from sqlalchemy.ext.asyncio import AsyncSession
from uuid import UUID
from luvrix.db import get_session
from luvrix.auth_deps import get_current_user, get_optional_user
from luvrix.config import settings
from luvrix.models.user import User
from luvrix.schemas.participant import (
    ParticipantPublic, EligibilityPublic, MyStatus, InviteRedeemRequest, InviteOutcomePublic,
    ParticipantWithUser, ParticipantList, ParticipantCount, ParticipantStatus,
)
from luvrix.schemas.task import TaskCompleteRequest, TaskStartPublic
from luvrix.services import participation
from luvrix.services.events import EventPublisher, get_event_publisher, PARTICIPANT_JOINED, PARTICIPANT_ELIGIBLE
from luvrix.services.giveaways import resolve_giveaway
from luvrix.services.participation import ParticipantState

router = APIRouter(prefix="/giveaways", tags=["participation"])

def to_participant_public(state: ParticipantState) -> ParticipantPublic:
    p = state.participant
    return ParticipantPublic(
        id=p.id, giveaway_id=p.giveaway_id, user_id=p.user_id, joined_at=p.joined_at,
        points=p.points, invite_code=p.invite_code, invite_count=p.invite_count,
        status=p.status, eligible_at=p.eligible_at,
        completed_task_ids=state.completed_task_ids,
    )

def _announce(events: EventPublisher, state: ParticipantState) -> None:
    p = state.participant
    payload = {"giveaway_id": str(p.giveaway_id), "user_id": str(p.user_id)}
    if state.joined:
        events.publish(PARTICIPANT_JOINED, payload)
    if state.became_eligible:
        events.publish(PARTICIPANT_ELIGIBLE, {**payload, "points": p.points})

@router.post("/{ref}/join", response_model=ParticipantPublic, status_code=201)
async def join_giveaway(
    ref: str,
    response: Response,
    session: AsyncSession = Depends(get_session),
    user: User = Depends(get_current_user),
    events: EventPublisher = Depends(get_event_publisher),
):
    g = await resolve_giveaway(session, ref)
    state = await participation.join(session, g.id, user.id, timeout=settings.persistence_timeout_seconds)
    _announce(events, state)
    if not state.joined:
        # Re-join hands back the existing record
        response.status_code = 200
    return to_participant_public(state)

@router.post("/{ref}/tasks/{task_id}/start", response_model=TaskStartPublic)
async def start_task(ref: str, task_id: UUID, session: AsyncSession = Depends(get_session), user: User = Depends(get_current_user)):
    g = await resolve_giveaway(session, ref)
    started_at = await participation.start_task(session, g.id, user.id, task_id, timeout=settings.persistence_timeout_seconds)
    return TaskStartPublic(task_id=task_id, started_at=started_at)

@router.post("/{ref}/tasks/{task_id}/complete", response_model=ParticipantPublic)
async def complete_task(
    ref: str,
    task_id: UUID,
    payload: TaskCompleteRequest | None = Body(default=None),
    session: AsyncSession = Depends(get_session),
    user: User = Depends(get_current_user),
    events: EventPublisher = Depends(get_event_publisher),
):
    g = await resolve_giveaway(session, ref)
    state = await participation.complete_task(
        session, g.id, user.id, task_id,
        answer=payload.answer if payload else None,
        timeout=settings.persistence_timeout_seconds,
    )
    _announce(events, state)
    return to_participant_public(state)

@router.post("/{ref}/invite", response_model=InviteOutcomePublic)
async def redeem_invite(
    ref: str,
    payload: InviteRedeemRequest,
    session: AsyncSession = Depends(get_session),
    user: User = Depends(get_current_user),
    events: EventPublisher = Depends(get_event_publisher),
):
    """Called by the invited user once they have joined; credits whoever owns the code."""
    g = await resolve_giveaway(session, ref)
    inviter = await participation.find_by_invite_code(session, g.id, payload.invite_code.strip())
    outcome = await participation.redeem_invite(
        session, g.id, inviter.user_id, user.id, timeout=settings.persistence_timeout_seconds,
    )
    _announce(events, outcome.inviter)
    p = outcome.inviter.participant
    return InviteOutcomePublic(credited=outcome.credited, inviter_points=p.points, invite_count=p.invite_count)

@router.get("/{ref}/me", response_model=MyStatus)
async def my_status(ref: str, session: AsyncSession = Depends(get_session), user: User = Depends(get_current_user)):
    g = await resolve_giveaway(session, ref)
    state, snap, total_tasks = await participation.get_status(session, g.id, user.id, timeout=settings.persistence_timeout_seconds)
    return MyStatus(
        participant=to_participant_public(state),
        eligibility=EligibilityPublic(
            eligible=snap.eligible,
            required_tasks_done=snap.required_tasks_done,
            points_met=snap.points_met,
            points_needed=snap.points_needed,
            missing_required_task_ids=snap.missing_required_task_ids,
        ),
        total_tasks=total_tasks,
    )

@router.get("/{ref}/participants", response_model=ParticipantList | ParticipantCount)
async def list_participants(
    ref: str,
    status: ParticipantStatus | None = Query(default=None),
    count_only: bool = Query(default=False),
    session: AsyncSession = Depends(get_session),
    viewer: User | None = Depends(get_optional_user),
):
    g = await resolve_giveaway(session, ref)
    if count_only:
        return ParticipantCount(count=await participation.count_participants(session, g.id))
    if not (viewer and viewer.is_admin):
        raise HTTPException(status_code=403, detail="Admin access required")
    rows = await participation.list_participants(session, g.id, status)
    return ParticipantList(
        total=len(rows),
        participants=[
            ParticipantWithUser(
                participant_id=p.id, user_id=u.id, username=u.username, email=u.email,
                points=p.points, invite_count=p.invite_count, status=p.status, joined_at=p.joined_at,
            )
            for p, u in rows
        ],
    )
