"""
Support (tip) ledger.

Nothing here reads or writes participants, points or selections, and nothing in those
modules reads this table. A tip never changes anyone's chances.
"""
from __future__ import annotations
from decimal import Decimal, ROUND_HALF_UP, InvalidOperation
from uuid import UUID
from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession
import structlog

from luvrix.config import settings
from luvrix.errors import NotFoundError, ValidationError
from luvrix.models.giveaway import Giveaway
from luvrix.models.support import Support
from luvrix.models.user import User
from luvrix.schemas.support import SupportAggregates, SupporterRow, DonationStats, GiveawayDonationTotal
from luvrix.services.persistence import unit_of_work

log = structlog.get_logger()

MIN_AMOUNT = Decimal("1")
# Numeric(12, 2) holds at most ten integer digits
MAX_AMOUNT = Decimal("1e10")
_CENTS = Decimal("0.01")


def _to_decimal(value) -> Decimal:
    return Decimal(str(value or 0)).quantize(_CENTS, rounding=ROUND_HALF_UP)


async def record_support(
    session: AsyncSession,
    giveaway_id: UUID,
    *,
    amount: Decimal,
    user_id: UUID | None = None,
    donor_name: str = "",
    donor_email: str = "",
    is_anonymous: bool = False,
    timeout: float | None = None,
) -> Support:
    """Append a tip. Any giveaway status accepts support, including ended and winner_selected."""
    try:
        value = Decimal(str(amount))
        if value.is_finite():
            value = _to_decimal(value)
    except (InvalidOperation, TypeError, ValueError):
        raise ValidationError("Invalid support amount")
    if not value.is_finite() or value < MIN_AMOUNT:
        raise ValidationError(f"Minimum support amount is {MIN_AMOUNT}")
    if value >= MAX_AMOUNT:
        raise ValidationError(f"Support amount must be below {MAX_AMOUNT:,.0f}")

    async with unit_of_work(session, timeout=timeout):
        exists = await session.scalar(select(Giveaway.id).where(Giveaway.id == giveaway_id))
        if not exists:
            raise NotFoundError("Giveaway not found")
        row = Support(
            giveaway_id=giveaway_id,
            user_id=user_id,
            amount=value,
            currency=settings.support_currency,
            donor_name=(donor_name or "").strip(),
            donor_email=(donor_email or "").strip(),
            is_anonymous=is_anonymous,
        )
        session.add(row)
        await session.flush()
        log.info("support_recorded", giveaway_id=str(giveaway_id), support_id=str(row.id), amount=str(row.amount), anonymous=is_anonymous)
    return row


async def get_aggregates(session: AsyncSession, giveaway_id: UUID, *, include_private: bool = False) -> SupportAggregates:
    """Total, count and supporters newest first. Anonymous tips never expose a name publicly."""
    total, count = (await session.execute(
        select(func.coalesce(func.sum(Support.amount), 0), func.count(Support.id))
        .where(Support.giveaway_id == giveaway_id)
    )).one()

    rows = (await session.execute(
        select(Support, User.username)
        .outerjoin(User, User.id == Support.user_id)
        .where(Support.giveaway_id == giveaway_id)
        .order_by(Support.created_at.desc(), Support.id.asc())
    )).all()

    supporters = []
    for s, username in rows:
        if s.is_anonymous:
            name = "Anonymous"
        else:
            name = s.donor_name or username or "Anonymous"
        row = SupporterRow(user_name=name, amount=_to_decimal(s.amount), is_anonymous=s.is_anonymous, created_at=s.created_at)
        if include_private:
            row.donor_name = s.donor_name or username
            row.donor_email = s.donor_email or None
        supporters.append(row)

    return SupportAggregates(giveaway_id=giveaway_id, total=_to_decimal(total), count=int(count), supporters=supporters)


async def donation_stats(session: AsyncSession) -> DonationStats:
    """Admin rollup across every giveaway that received support."""
    rows = (await session.execute(
        select(Giveaway.id, Giveaway.title, Giveaway.slug, func.sum(Support.amount), func.count(Support.id))
        .join(Support, Support.giveaway_id == Giveaway.id)
        .group_by(Giveaway.id, Giveaway.title, Giveaway.slug)
        .order_by(func.sum(Support.amount).desc())
    )).all()
    per = [
        GiveawayDonationTotal(giveaway_id=gid, title=title, slug=slug, total=_to_decimal(total), count=int(count))
        for gid, title, slug, total, count in rows
    ]
    return DonationStats(
        grand_total=_to_decimal(sum((p.total for p in per), Decimal("0"))),
        grand_count=sum(p.count for p in per),
        per_giveaway=per,
    )
