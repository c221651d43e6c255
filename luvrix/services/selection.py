"""
Winner selection.

The draw itself uses ``secrets.SystemRandom`` (the operating system CSPRNG) unless a caller
injects another ``random.Random``; only tests do that. The eligible pool is read in
(joined_at, user_id) order so the audit snapshot is reproducible, and the pick is a uniform
draw over that list.

Selection is single-shot: the giveaway row is locked, moved from active to winner_selected
with a guarded update, the winner row is flipped to ``winner`` and the audit record is
inserted, all in one transaction.
"""
from __future__ import annotations
import random
import secrets
import uuid
from datetime import datetime
from typing import Callable
from uuid import UUID
from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession
import structlog

from luvrix.errors import (
    NotFoundError, InvalidStateError, NotEligibleError, AlreadySelectedError,
    NoEligibleParticipantsError, PermissionDeniedError,
)
from luvrix.models.giveaway import Giveaway
from luvrix.models.participant import Participant
from luvrix.models.selection import WinnerSelection, WinnerShipping
from luvrix.models.user import User
from luvrix.schemas.selection import ShippingDetails
from luvrix.services.clock import utcnow
from luvrix.services.giveaways import compare_and_set_status
from luvrix.services.persistence import unit_of_work

log = structlog.get_logger()


def system_rng() -> random.Random:
    return secrets.SystemRandom()


async def eligible_pool(session: AsyncSession, giveaway_id: UUID) -> list[Participant]:
    return list((await session.execute(
        select(Participant)
        .where(Participant.giveaway_id == giveaway_id, Participant.status == "eligible")
        .order_by(Participant.joined_at.asc(), Participant.user_id.asc())
    )).scalars().all())


async def get_selection(session: AsyncSession, giveaway_id: UUID) -> WinnerSelection | None:
    return await session.scalar(select(WinnerSelection).where(WinnerSelection.giveaway_id == giveaway_id))


async def _select(
    session: AsyncSession,
    giveaway_id: UUID,
    *,
    method: str,
    pick: Callable[[list[Participant]], Participant],
    selected_by: UUID | None,
    reason: str,
    require_pool: bool,
    now: datetime | None,
    timeout: float | None,
) -> WinnerSelection:
    now = now or utcnow()
    async with unit_of_work(session, timeout=timeout):
        g = await session.get(Giveaway, giveaway_id, with_for_update=True, populate_existing=True)
        if not g:
            raise NotFoundError("Giveaway not found")
        if g.status == "winner_selected":
            raise AlreadySelectedError("Winner already selected")
        if g.status != "active":
            raise InvalidStateError(f"Cannot select a winner while giveaway is {g.status}")

        pool = await eligible_pool(session, g.id)
        if require_pool and not pool:
            raise NoEligibleParticipantsError("No eligible participants")
        winner = pick(pool)

        # Compare-and-swap on the giveaway status: exactly one selection can win this
        if not await compare_and_set_status(session, g.id, "active", "winner_selected", winner_user_id=winner.user_id):
            raise AlreadySelectedError("Winner already selected")

        res = await session.execute(
            update(Participant)
            .where(Participant.id == winner.id, Participant.status == "eligible")
            .values(status="winner")
            .execution_options(synchronize_session=False)
        )
        if res.rowcount != 1:
            raise InvalidStateError("Winner's participation changed during selection")

        sel = WinnerSelection(
            id=uuid.uuid4(),
            giveaway_id=g.id,
            winner_user_id=winner.user_id,
            method=method,
            selected_by=selected_by,
            eligible_pool_snapshot=[str(p.user_id) for p in pool],
            reason=reason,
            selected_at=now,
        )
        session.add(sel)
        await session.flush()
        log.info(
            "winner_selected",
            giveaway_id=str(g.id),
            winner_user_id=str(winner.user_id),
            method=method,
            selected_by=str(selected_by) if selected_by else None,
            pool_size=len(pool),
        )
    await session.refresh(g)
    await session.refresh(winner)
    return sel


async def select_random_winner(
    session: AsyncSession,
    giveaway_id: UUID,
    *,
    rng: random.Random | None = None,
    now: datetime | None = None,
    timeout: float | None = None,
) -> WinnerSelection:
    draw = rng or system_rng()
    return await _select(
        session,
        giveaway_id,
        method="random",
        pick=lambda pool: draw.choice(pool),
        selected_by=None,
        reason="Automated random selection from eligible participants",
        require_pool=True,
        now=now,
        timeout=timeout,
    )


async def select_manual_winner(
    session: AsyncSession,
    giveaway_id: UUID,
    winner_user_id: UUID,
    admin_id: UUID,
    *,
    now: datetime | None = None,
    timeout: float | None = None,
) -> WinnerSelection:
    """Admin pick. Still restricted to the eligible pool; admin rights do not widen it."""
    def pick(pool: list[Participant]) -> Participant:
        for p in pool:
            if p.user_id == winner_user_id:
                return p
        raise NotEligibleError("Cannot select a non-eligible participant as winner")

    return await _select(
        session,
        giveaway_id,
        method="manual",
        pick=pick,
        selected_by=admin_id,
        reason="Admin manual selection from eligible participants",
        require_pool=False,
        now=now,
        timeout=timeout,
    )


async def winner_info(session: AsyncSession, giveaway_id: UUID) -> tuple[WinnerSelection, str | None]:
    sel = await get_selection(session, giveaway_id)
    if not sel:
        raise NotFoundError("No winner selected yet")
    username = await session.scalar(select(User.username).where(User.id == sel.winner_user_id))
    return sel, username

# ---------- winner shipping ----------

async def store_shipping(session: AsyncSession, g: Giveaway, user_id: UUID, details: ShippingDetails, *, timeout: float | None = None) -> WinnerShipping:
    async with unit_of_work(session, timeout=timeout):
        p = await session.scalar(
            select(Participant).where(Participant.giveaway_id == g.id, Participant.user_id == user_id)
        )
        if not p or p.status != "winner":
            raise PermissionDeniedError("Only the winner can submit shipping details")
        row = await session.scalar(
            select(WinnerShipping).where(WinnerShipping.giveaway_id == g.id, WinnerShipping.user_id == user_id)
        )
        if row is None:
            row = WinnerShipping(giveaway_id=g.id, user_id=user_id, **details.model_dump())
            session.add(row)
        else:
            for key, value in details.model_dump().items():
                setattr(row, key, value)
            row.updated_at = utcnow()
        await session.flush()
        log.info("winner_shipping_stored", giveaway_id=str(g.id), user_id=str(user_id))
    return row


async def get_shipping(session: AsyncSession, g: Giveaway, viewer: User) -> WinnerShipping | None:
    if not viewer.is_admin and g.winner_user_id != viewer.id:
        raise PermissionDeniedError("Only the winner can access shipping details")
    return await session.scalar(select(WinnerShipping).where(WinnerShipping.giveaway_id == g.id))
