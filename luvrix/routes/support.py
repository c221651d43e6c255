from __future__ import annotations
from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession
from luvrix.db import get_session
from luvrix.auth_deps import get_optional_user, require_admin
from luvrix.config import settings
from luvrix.models.user import User
from luvrix.schemas.support import SupportCreate, SupportPublic, SupportAggregates, DonationStats
from luvrix.services import support as support_service
from luvrix.services.events import EventPublisher, get_event_publisher, SUPPORT_RECORDED
from luvrix.services.giveaways import resolve_giveaway

router = APIRouter(tags=["support"])

@router.post("/giveaways/{ref}/support", response_model=SupportPublic, status_code=201)
async def record_support(
    ref: str,
    payload: SupportCreate,
    session: AsyncSession = Depends(get_session),
    user: User | None = Depends(get_optional_user),
    events: EventPublisher = Depends(get_event_publisher),
):
    g = await resolve_giveaway(session, ref)
    row = await support_service.record_support(
        session, g.id,
        amount=payload.amount,
        user_id=user.id if user else None,
        donor_name=payload.donor_name,
        donor_email=payload.donor_email,
        is_anonymous=payload.is_anonymous,
        timeout=settings.persistence_timeout_seconds,
    )
    events.publish(SUPPORT_RECORDED, {"giveaway_id": str(g.id), "support_id": str(row.id), "amount": str(row.amount)})
    return SupportPublic(
        id=row.id, giveaway_id=row.giveaway_id, amount=row.amount, currency=row.currency,
        is_anonymous=row.is_anonymous, created_at=row.created_at,
    )

@router.get("/giveaways/{ref}/support", response_model=SupportAggregates)
async def support_aggregates(ref: str, session: AsyncSession = Depends(get_session), viewer: User | None = Depends(get_optional_user)):
    g = await resolve_giveaway(session, ref)
    return await support_service.get_aggregates(session, g.id, include_private=bool(viewer and viewer.is_admin))

@router.get("/support/stats", response_model=DonationStats)
async def donation_stats(session: AsyncSession = Depends(get_session), admin: User = Depends(require_admin)):
    return await support_service.donation_stats(session)
