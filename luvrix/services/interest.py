"""
Interest in giveaways that have not gone live yet.

Interest is a toggle held while the giveaway is a draft. It never creates a participant
and carries no points; publishing the giveaway notifies whoever is still interested.
"""
from __future__ import annotations
import uuid
from uuid import UUID
from sqlalchemy import select, delete, func
from sqlalchemy.ext.asyncio import AsyncSession
import structlog

from luvrix.errors import NotFoundError, InvalidStateError
from luvrix.models.giveaway import Giveaway
from luvrix.models.interest import GiveawayInterest
from luvrix.models.user import User
from luvrix.services.persistence import unit_of_work, insert_ignore

log = structlog.get_logger()


async def count_interest(session: AsyncSession, giveaway_id: UUID) -> int:
    n = await session.scalar(
        select(func.count()).select_from(GiveawayInterest).where(GiveawayInterest.giveaway_id == giveaway_id)
    )
    return int(n or 0)


async def interest_status(session: AsyncSession, giveaway_id: UUID, user_id: UUID | None = None) -> tuple[int, bool]:
    """(count, whether user_id is interested). Anonymous viewers are never interested."""
    interested = False
    if user_id is not None:
        interested = bool(await session.scalar(
            select(GiveawayInterest.id).where(GiveawayInterest.giveaway_id == giveaway_id, GiveawayInterest.user_id == user_id)
        ))
    return await count_interest(session, giveaway_id), interested


async def toggle_interest(session: AsyncSession, giveaway_id: UUID, user_id: UUID, *, timeout: float | None = None) -> tuple[int, bool]:
    """Flip the user's interest on a draft giveaway. Returns (count, interested) after the flip."""
    async with unit_of_work(session, timeout=timeout):
        g = await session.get(Giveaway, giveaway_id)
        if not g:
            raise NotFoundError("Giveaway not found")
        if g.status != "draft":
            raise InvalidStateError("Interest is only taken before a giveaway goes live")

        added = await insert_ignore(session, GiveawayInterest, {
            "id": uuid.uuid4(),
            "giveaway_id": g.id,
            "user_id": user_id,
        }, ["giveaway_id", "user_id"])
        if added is None:
            await session.execute(
                delete(GiveawayInterest).where(GiveawayInterest.giveaway_id == g.id, GiveawayInterest.user_id == user_id)
            )
        count = await count_interest(session, g.id)
        log.info("interest_toggled", giveaway_id=str(g.id), user_id=str(user_id), interested=added is not None, count=count)
    return count, added is not None


async def interested_emails(session: AsyncSession, giveaway_id: UUID) -> list[str]:
    return list((await session.execute(
        select(User.email)
        .join(GiveawayInterest, GiveawayInterest.user_id == User.id)
        .where(GiveawayInterest.giveaway_id == giveaway_id)
        .order_by(GiveawayInterest.created_at.asc())
    )).scalars().all())
