from __future__ import annotations
import re
from datetime import datetime
from uuid import UUID
from sqlalchemy import select, update, delete
from sqlalchemy.ext.asyncio import AsyncSession
import structlog

from luvrix.errors import NotFoundError, InvalidStateError, ValidationError
from luvrix.models.giveaway import Giveaway, Task
from luvrix.models.interest import GiveawayInterest
from luvrix.models.participant import Participant
from luvrix.schemas.giveaway import GiveawayCreate, GiveawayUpdate
from luvrix.services.clock import utcnow, as_utc
from luvrix.services.eligibility import promote_qualified
from luvrix.services.invite_code import generate_code
from luvrix.services.persistence import unit_of_work

log = structlog.get_logger()

# draft -> active -> winner_selected, or active -> ended. Nothing else, never backwards.
ALLOWED_TRANSITIONS: dict[str, set[str]] = {
    "draft": {"active"},
    "active": {"winner_selected", "ended"},
}

# ---------- helpers ----------

def generate_slug(title: str) -> str:
    slug = re.sub(r"[^a-z0-9\s-]", "", title.lower())
    slug = re.sub(r"\s+", "-", slug.strip())
    slug = re.sub(r"-+", "-", slug).strip("-")
    return slug[:80] or "giveaway"

def check_transition(current: str, target: str) -> None:
    if target not in ALLOWED_TRANSITIONS.get(current, set()):
        raise InvalidStateError(f"Cannot move giveaway from {current} to {target}")

async def compare_and_set_status(session: AsyncSession, giveaway_id: UUID, expected: str, target: str, **values) -> bool:
    """Atomic status move guarded by the expected current status. False if someone else moved it first."""
    check_transition(expected, target)
    res = await session.execute(
        update(Giveaway)
        .where(Giveaway.id == giveaway_id, Giveaway.status == expected)
        .values(status=target, updated_at=utcnow(), **values)
        .execution_options(synchronize_session=False)
    )
    return res.rowcount == 1

def extend_schedule(g: Giveaway, now: datetime) -> bool:
    """
    Push an expired active giveaway's end_date forward by its original duration while
    extensions remain (max_extensions == -1 means unlimited). Mutates g; True if it changed.
    """
    if g.status != "active":
        return False
    start, end = as_utc(g.start_date), as_utc(g.end_date)
    if end is None or start is None or now < end or end <= start:
        return False
    duration = end - start
    needed = int((now - end) / duration) + 1
    if g.max_extensions != -1:
        needed = min(needed, max(0, g.max_extensions - g.extensions_used))
    if needed <= 0:
        return False
    g.end_date = end + duration * needed
    g.extensions_used = g.extensions_used + needed
    return True

def is_open_for_entries(g: Giveaway, now: datetime) -> bool:
    if g.status != "active":
        return False
    end = as_utc(g.end_date)
    return end is None or now < end

def _check_schedule(start: datetime | None, end: datetime | None, max_extensions: int) -> None:
    if end is None and max_extensions != -1:
        raise ValidationError("end_date is required unless max_extensions is -1 (open-ended)")
    if start and end and as_utc(end) <= as_utc(start):
        raise ValidationError("end_date must be after start_date")

# ---------- reads ----------

async def resolve_giveaway(session: AsyncSession, ref: str | UUID) -> Giveaway:
    """Find a giveaway by id or slug."""
    g = None
    try:
        gid = ref if isinstance(ref, UUID) else UUID(str(ref))
    except ValueError:
        gid = None
    if gid is not None:
        g = await session.get(Giveaway, gid)
    if g is None:
        g = await session.scalar(select(Giveaway).where(Giveaway.slug == str(ref)))
    if g is None:
        raise NotFoundError("Giveaway not found")
    return g

async def list_giveaways(session: AsyncSession, statuses: list[str] | None = None) -> list[Giveaway]:
    q = select(Giveaway).order_by(Giveaway.created_at.desc())
    if statuses:
        q = q.where(Giveaway.status.in_(statuses))
    return list((await session.execute(q)).scalars().all())

async def refresh_schedule(session: AsyncSession, g: Giveaway, *, now: datetime | None = None, timeout: float | None = None) -> Giveaway:
    """Apply pending auto-extensions and persist them."""
    if extend_schedule(g, now or utcnow()):
        async with unit_of_work(session, timeout=timeout):
            log.info("giveaway_extended", giveaway_id=str(g.id), end_date=g.end_date.isoformat(), extensions_used=g.extensions_used)
    return g

# ---------- writes ----------

async def create_giveaway(session: AsyncSession, data: GiveawayCreate, *, created_by: UUID | None, timeout: float | None = None) -> Giveaway:
    async with unit_of_work(session, timeout=timeout):
        slug = generate_slug(data.title)
        # Retry on slug collision with a short random suffix
        for _ in range(5):
            taken = await session.scalar(select(Giveaway.id).where(Giveaway.slug == slug))
            if not taken:
                break
            slug = f"{generate_slug(data.title)[:70]}-{generate_code(6).lower()}"
        else:
            raise InvalidStateError("Failed to generate a unique slug")

        g = Giveaway(
            slug=slug,
            status="draft",
            created_by=created_by,
            **data.model_dump(),
        )
        session.add(g)
        await session.flush()
        log.info("giveaway_created", giveaway_id=str(g.id), slug=slug)
    return g

async def update_giveaway(session: AsyncSession, g: Giveaway, data: GiveawayUpdate, *, timeout: float | None = None) -> Giveaway:
    if g.status == "winner_selected":
        raise InvalidStateError("Cannot edit a giveaway after winner has been selected")
    changes = data.model_dump(exclude_unset=True)
    _check_schedule(
        changes.get("start_date", g.start_date),
        changes.get("end_date", g.end_date),
        changes.get("max_extensions", g.max_extensions),
    )
    async with unit_of_work(session, timeout=timeout):
        for key, value in changes.items():
            setattr(g, key, value)
        g.updated_at = utcnow()
        if g.status == "active" and "required_points" in changes:
            await promote_qualified(session, g, g.updated_at)
        log.info("giveaway_updated", giveaway_id=str(g.id), fields=sorted(changes))
    return g

async def delete_giveaway(session: AsyncSession, g: Giveaway, *, timeout: float | None = None) -> None:
    if g.status != "draft":
        raise InvalidStateError("Can only delete draft giveaways")
    async with unit_of_work(session, timeout=timeout):
        await session.execute(delete(Participant).where(Participant.giveaway_id == g.id))
        await session.execute(delete(GiveawayInterest).where(GiveawayInterest.giveaway_id == g.id))
        await session.execute(delete(Task).where(Task.giveaway_id == g.id))
        await session.delete(g)
        log.info("giveaway_deleted", giveaway_id=str(g.id))

async def set_status(session: AsyncSession, g: Giveaway, target: str, *, timeout: float | None = None) -> Giveaway:
    """Admin status moves (publish, end). Winner selection has its own path."""
    if target == "winner_selected":
        raise InvalidStateError("Use winner selection to move a giveaway to winner_selected")
    check_transition(g.status, target)
    async with unit_of_work(session, timeout=timeout):
        if not await compare_and_set_status(session, g.id, g.status, target):
            raise InvalidStateError("Giveaway status changed concurrently; reload and retry")
    await session.refresh(g)
    log.info("giveaway_status_changed", giveaway_id=str(g.id), status=target)
    return g
