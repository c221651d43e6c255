from __future__ import annotations
import random
from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession
from luvrix.db import get_session
from luvrix.auth_deps import get_current_user, require_admin
from luvrix.config import settings
from luvrix.models.selection import WinnerSelection, WinnerShipping
from luvrix.models.user import User
from luvrix.schemas.selection import ManualWinnerRequest, WinnerSelectionPublic, WinnerInfo, ShippingDetails, ShippingPublic
from luvrix.services import selection
from luvrix.services.events import EventPublisher, get_event_publisher, WINNER_SELECTED
from luvrix.services.giveaways import resolve_giveaway

router = APIRouter(prefix="/giveaways", tags=["winners"])

def get_rng() -> random.Random:
    # Overridden in tests with a seeded random.Random
    return selection.system_rng()

def to_selection_public(sel: WinnerSelection) -> WinnerSelectionPublic:
    return WinnerSelectionPublic(
        id=sel.id, giveaway_id=sel.giveaway_id, winner_user_id=sel.winner_user_id,
        method=sel.method, selected_by=sel.selected_by, selected_at=sel.selected_at,
        eligible_pool_snapshot=sel.eligible_pool_snapshot, reason=sel.reason,
    )

def to_shipping_public(row: WinnerShipping) -> ShippingPublic:
    return ShippingPublic(
        giveaway_id=row.giveaway_id, user_id=row.user_id, updated_at=row.updated_at,
        full_name=row.full_name, address=row.address, city=row.city, state=row.state,
        pincode=row.pincode, country=row.country, phone=row.phone,
    )

def _announce(events: EventPublisher, sel: WinnerSelection) -> None:
    events.publish(WINNER_SELECTED, {
        "giveaway_id": str(sel.giveaway_id),
        "winner_user_id": str(sel.winner_user_id),
        "method": sel.method,
    })

@router.post("/{ref}/winner/random", response_model=WinnerSelectionPublic)
async def select_random(
    ref: str,
    session: AsyncSession = Depends(get_session),
    admin: User = Depends(require_admin),
    rng: random.Random = Depends(get_rng),
    events: EventPublisher = Depends(get_event_publisher),
):
    g = await resolve_giveaway(session, ref)
    sel = await selection.select_random_winner(session, g.id, rng=rng, timeout=settings.persistence_timeout_seconds)
    _announce(events, sel)
    return to_selection_public(sel)

@router.post("/{ref}/winner/manual", response_model=WinnerSelectionPublic)
async def select_manual(
    ref: str,
    payload: ManualWinnerRequest,
    session: AsyncSession = Depends(get_session),
    admin: User = Depends(require_admin),
    events: EventPublisher = Depends(get_event_publisher),
):
    g = await resolve_giveaway(session, ref)
    sel = await selection.select_manual_winner(
        session, g.id, payload.winner_user_id, admin.id, timeout=settings.persistence_timeout_seconds,
    )
    _announce(events, sel)
    return to_selection_public(sel)

@router.get("/{ref}/winner", response_model=WinnerInfo)
async def get_winner(ref: str, session: AsyncSession = Depends(get_session)):
    g = await resolve_giveaway(session, ref)
    sel, username = await selection.winner_info(session, g.id)
    return WinnerInfo(
        giveaway_id=g.id, winner_user_id=sel.winner_user_id, username=username,
        selection=to_selection_public(sel),
    )

@router.post("/{ref}/shipping", response_model=ShippingPublic)
async def submit_shipping(ref: str, payload: ShippingDetails, session: AsyncSession = Depends(get_session), user: User = Depends(get_current_user)):
    g = await resolve_giveaway(session, ref)
    row = await selection.store_shipping(session, g, user.id, payload, timeout=settings.persistence_timeout_seconds)
    return to_shipping_public(row)

@router.get("/{ref}/shipping", response_model=ShippingPublic)
async def read_shipping(ref: str, session: AsyncSession = Depends(get_session), user: User = Depends(get_current_user)):
    g = await resolve_giveaway(session, ref)
    row = await selection.get_shipping(session, g, user)
    if not row:
        raise HTTPException(status_code=404, detail="No shipping details yet")
    return to_shipping_public(row)
