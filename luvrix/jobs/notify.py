from __future__ import annotations
import asyncio
import uuid
from typing import Any
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
import structlog
from luvrix.db import SessionLocal
from luvrix.models.giveaway import Giveaway
from luvrix.models.user import User
from luvrix.services.events import WINNER_SELECTED, GIVEAWAY_PUBLISHED
from luvrix.services.interest import interested_emails

log = structlog.get_logger()

# Mail transport lives outside this service; both handlers hand off the rendered envelope

async def _notify_winner(session: AsyncSession, payload: dict[str, Any]):
    g = await session.get(Giveaway, uuid.UUID(payload["giveaway_id"]))
    email = await session.scalar(select(User.email).where(User.id == uuid.UUID(payload["winner_user_id"])))
    if not g or not email:
        log.warning("winner_notification_skipped", **payload)
        return
    log.info(
        "winner_notification",
        to=email,
        subject=f"You won {g.title}!",
        giveaway_id=str(g.id),
        slug=g.slug,
    )

async def _notify_interested(session: AsyncSession, payload: dict[str, Any]):
    g = await session.get(Giveaway, uuid.UUID(payload["giveaway_id"]))
    if not g:
        log.warning("launch_notification_skipped", **payload)
        return
    emails = await interested_emails(session, g.id)
    for email in emails:
        log.info("launch_notification", to=email, subject=f"{g.title} is live", giveaway_id=str(g.id), slug=g.slug)
    return emails

async def _run(name: str, payload: dict[str, Any]):
    handler = {WINNER_SELECTED: _notify_winner, GIVEAWAY_PUBLISHED: _notify_interested}.get(name)
    if handler is None:
        log.info("event_delivered", event_name=name, **payload)
        return
    async with SessionLocal() as session:
        return await handler(session, payload)

def deliver_event(name: str, payload: dict[str, Any]):
    # RQ entry point (sync); run the async coroutine
    asyncio.run(_run(name, payload))
