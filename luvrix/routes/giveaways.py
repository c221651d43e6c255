from __future__ import annotations
from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.ext.asyncio import AsyncSession
from uuid import UUID
from luvrix.db import get_session
from luvrix.auth_deps import get_current_user, get_optional_user, require_admin
from luvrix.config import settings
from luvrix.models.giveaway import Giveaway, Task
from luvrix.models.user import User
from luvrix.schemas.giveaway import GiveawayCreate, GiveawayUpdate, GiveawayPublic, GiveawaySummary, InterestPublic
from luvrix.schemas.participant import MyGiveaway
from luvrix.schemas.task import TaskCreate, TaskPublic
from luvrix.services import giveaways as giveaway_service
from luvrix.services import interest as interest_service
from luvrix.services import tasks as task_service
from luvrix.services.events import EventPublisher, get_event_publisher, GIVEAWAY_PUBLISHED, GIVEAWAY_ENDED
from luvrix.services.participation import count_participants, user_history

router = APIRouter(prefix="/giveaways", tags=["giveaways"])

PUBLIC_STATUSES = ["active", "winner_selected", "ended"]

async def hydrate_public(session: AsyncSession, g: Giveaway) -> GiveawayPublic:
    return GiveawayPublic(
        id=g.id, slug=g.slug, title=g.title, description=g.description,
        prize_details=g.prize_details, image_url=g.image_url,
        start_date=g.start_date, end_date=g.end_date, status=g.status,
        target_participants=g.target_participants, required_points=g.required_points,
        invite_points_enabled=g.invite_points_enabled,
        invite_points_per_referral=g.invite_points_per_referral,
        invite_points_cap=g.invite_points_cap,
        max_extensions=g.max_extensions, extensions_used=g.extensions_used,
        winner_user_id=g.winner_user_id,
        participant_count=await count_participants(session, g.id),
        created_at=g.created_at,
    )

def to_task_public(t: Task) -> TaskPublic:
    return TaskPublic(
        id=t.id, giveaway_id=t.giveaway_id, type=t.type, title=t.title,
        description=t.description, points=t.points, required=t.required,
        metadata=task_service.public_metadata(t), created_at=t.created_at,
    )

async def visible_giveaway(session: AsyncSession, ref: str, viewer: User | None) -> Giveaway:
    """Resolve id-or-slug; drafts only exist for admins."""
    g = await giveaway_service.resolve_giveaway(session, ref)
    if g.status == "draft" and not (viewer and viewer.is_admin):
        raise HTTPException(status_code=404, detail="Giveaway not found")
    return g

@router.get("", response_model=list[GiveawayPublic])
async def list_giveaways(
    status: list[str] | None = Query(default=None),
    session: AsyncSession = Depends(get_session),
    viewer: User | None = Depends(get_optional_user),
):
    allowed = None if viewer and viewer.is_admin else PUBLIC_STATUSES
    wanted = status or allowed
    if allowed is not None and wanted:
        wanted = [s for s in wanted if s in allowed] or allowed
    items = await giveaway_service.list_giveaways(session, wanted)
    out = []
    for g in items:
        await giveaway_service.refresh_schedule(session, g, timeout=settings.persistence_timeout_seconds)
        out.append(await hydrate_public(session, g))
    return out

@router.post("", response_model=GiveawayPublic, status_code=201)
async def create_giveaway(payload: GiveawayCreate, session: AsyncSession = Depends(get_session), admin: User = Depends(require_admin)):
    g = await giveaway_service.create_giveaway(session, payload, created_by=admin.id, timeout=settings.persistence_timeout_seconds)
    return await hydrate_public(session, g)

# Declared before /{ref} so "mine" is never taken for a slug
@router.get("/mine", response_model=list[MyGiveaway])
async def my_giveaways(session: AsyncSession = Depends(get_session), user: User = Depends(get_current_user)):
    rows = await user_history(session, user.id)
    return [
        MyGiveaway(
            participant_id=p.id, status=p.status, points=p.points, joined_at=p.joined_at,
            giveaway=GiveawaySummary(
                id=g.id, slug=g.slug, title=g.title, image_url=g.image_url,
                prize_details=g.prize_details, status=g.status, end_date=g.end_date,
                winner_user_id=g.winner_user_id, winner_username=winner_name,
            ),
        )
        for p, g, winner_name in rows
    ]

@router.get("/{ref}", response_model=GiveawayPublic)
async def get_giveaway(ref: str, session: AsyncSession = Depends(get_session), viewer: User | None = Depends(get_optional_user)):
    g = await visible_giveaway(session, ref, viewer)
    await giveaway_service.refresh_schedule(session, g, timeout=settings.persistence_timeout_seconds)
    return await hydrate_public(session, g)

@router.patch("/{ref}", response_model=GiveawayPublic)
async def update_giveaway(ref: str, payload: GiveawayUpdate, session: AsyncSession = Depends(get_session), admin: User = Depends(require_admin)):
    g = await giveaway_service.resolve_giveaway(session, ref)
    g = await giveaway_service.update_giveaway(session, g, payload, timeout=settings.persistence_timeout_seconds)
    return await hydrate_public(session, g)

@router.delete("/{ref}")
async def delete_giveaway(ref: str, session: AsyncSession = Depends(get_session), admin: User = Depends(require_admin)):
    g = await giveaway_service.resolve_giveaway(session, ref)
    await giveaway_service.delete_giveaway(session, g, timeout=settings.persistence_timeout_seconds)
    return {"ok": True}

@router.post("/{ref}/publish", response_model=GiveawayPublic)
async def publish_giveaway(
    ref: str,
    session: AsyncSession = Depends(get_session),
    admin: User = Depends(require_admin),
    events: EventPublisher = Depends(get_event_publisher),
):
    g = await giveaway_service.resolve_giveaway(session, ref)
    g = await giveaway_service.set_status(session, g, "active", timeout=settings.persistence_timeout_seconds)
    events.publish(GIVEAWAY_PUBLISHED, {"giveaway_id": str(g.id), "slug": g.slug})
    return await hydrate_public(session, g)

@router.post("/{ref}/end", response_model=GiveawayPublic)
async def end_giveaway(
    ref: str,
    session: AsyncSession = Depends(get_session),
    admin: User = Depends(require_admin),
    events: EventPublisher = Depends(get_event_publisher),
):
    g = await giveaway_service.resolve_giveaway(session, ref)
    g = await giveaway_service.set_status(session, g, "ended", timeout=settings.persistence_timeout_seconds)
    events.publish(GIVEAWAY_ENDED, {"giveaway_id": str(g.id), "slug": g.slug})
    return await hydrate_public(session, g)

# ---------- interest ----------

# Drafts answer here by slug or id; only the count and the caller's own flag leave the server
@router.get("/{ref}/interest", response_model=InterestPublic)
async def get_interest(ref: str, session: AsyncSession = Depends(get_session), viewer: User | None = Depends(get_optional_user)):
    g = await giveaway_service.resolve_giveaway(session, ref)
    count, interested = await interest_service.interest_status(session, g.id, viewer.id if viewer else None)
    return InterestPublic(count=count, interested=interested)

@router.post("/{ref}/interest", response_model=InterestPublic)
async def toggle_interest(ref: str, session: AsyncSession = Depends(get_session), user: User = Depends(get_current_user)):
    g = await giveaway_service.resolve_giveaway(session, ref)
    count, interested = await interest_service.toggle_interest(session, g.id, user.id, timeout=settings.persistence_timeout_seconds)
    return InterestPublic(count=count, interested=interested)

# ---------- tasks ----------

@router.get("/{ref}/tasks", response_model=list[TaskPublic])
async def list_tasks(ref: str, session: AsyncSession = Depends(get_session), viewer: User | None = Depends(get_optional_user)):
    g = await visible_giveaway(session, ref, viewer)
    return [to_task_public(t) for t in await task_service.list_tasks(session, g.id)]

@router.post("/{ref}/tasks", response_model=TaskPublic, status_code=201)
async def add_task(ref: str, payload: TaskCreate, session: AsyncSession = Depends(get_session), admin: User = Depends(require_admin)):
    g = await giveaway_service.resolve_giveaway(session, ref)
    t = await task_service.add_task(session, g, payload, timeout=settings.persistence_timeout_seconds)
    return to_task_public(t)

@router.delete("/{ref}/tasks/{task_id}")
async def remove_task(ref: str, task_id: UUID, session: AsyncSession = Depends(get_session), admin: User = Depends(require_admin)):
    g = await giveaway_service.resolve_giveaway(session, ref)
    await task_service.remove_task(session, g, task_id, timeout=settings.persistence_timeout_seconds)
    return {"ok": True}
