import uuid
import pytest
from sqlalchemy import select, func
from conftest import register_login, make_giveaway, make_user
from luvrix.errors import InvalidStateError, NotFoundError
from luvrix.jobs import notify
from luvrix.models.interest import GiveawayInterest
from luvrix.models.participant import Participant
from luvrix.services.events import GIVEAWAY_PUBLISHED
from luvrix.services.interest import toggle_interest, interest_status, interested_emails


@pytest.mark.asyncio
async def test_toggle_on_and_off(session):
    g = await make_giveaway(session, status="draft")
    a, b = await make_user(session, "ana"), await make_user(session, "ben")

    assert await toggle_interest(session, g.id, a.id) == (1, True)
    assert await toggle_interest(session, g.id, b.id) == (2, True)
    assert await interest_status(session, g.id, a.id) == (2, True)
    assert await interest_status(session, g.id) == (2, False)

    assert await toggle_interest(session, g.id, a.id) == (1, False)
    assert await interest_status(session, g.id, a.id) == (1, False)
    assert await interested_emails(session, g.id) == ["ben@luvrix.io"]


@pytest.mark.asyncio
async def test_interest_is_not_participation(session):
    g = await make_giveaway(session, status="draft")
    u = await make_user(session)
    await toggle_interest(session, g.id, u.id)
    assert await session.scalar(select(func.count()).select_from(Participant)) == 0


@pytest.mark.asyncio
@pytest.mark.parametrize("status_", ["active", "ended", "winner_selected"])
async def test_interest_closed_once_live(session, status_):
    g = await make_giveaway(session, status=status_)
    u = await make_user(session)
    with pytest.raises(InvalidStateError):
        await toggle_interest(session, g.id, u.id)


@pytest.mark.asyncio
async def test_interest_unknown_giveaway(session):
    u = await make_user(session)
    with pytest.raises(NotFoundError):
        await toggle_interest(session, uuid.uuid4(), u.id)


@pytest.mark.asyncio
async def test_publish_notifies_interested(session, session_factory, monkeypatch):
    g = await make_giveaway(session, status="draft")
    for name in ("kai", "lea"):
        await toggle_interest(session, g.id, (await make_user(session, name)).id)
    monkeypatch.setattr(notify, "SessionLocal", session_factory)
    sent = await notify._run(GIVEAWAY_PUBLISHED, {"giveaway_id": str(g.id), "slug": g.slug})
    assert sorted(sent) == ["kai@luvrix.io", "lea@luvrix.io"]


@pytest.mark.asyncio
async def test_http_interest_flow(client, admin, events):
    g = (await client.post("/giveaways", headers=admin["headers"], json={
        "title": "Coming soon", "max_extensions": -1,
    })).json()
    user = await register_login(client)

    r = await client.get(f"/giveaways/{g['slug']}/interest")
    assert r.json() == {"count": 0, "interested": False}
    assert (await client.post(f"/giveaways/{g['slug']}/interest")).status_code in (401, 403)

    r = await client.post(f"/giveaways/{g['slug']}/interest", headers=user["headers"])
    assert r.status_code == 200
    assert r.json() == {"count": 1, "interested": True}
    r = await client.get(f"/giveaways/{g['slug']}/interest", headers=user["headers"])
    assert r.json() == {"count": 1, "interested": True}
    # The draft itself stays hidden
    assert (await client.get(f"/giveaways/{g['slug']}", headers=user["headers"])).status_code == 404

    await client.post(f"/giveaways/{g['id']}/publish", headers=admin["headers"])
    r = await client.post(f"/giveaways/{g['slug']}/interest", headers=user["headers"])
    assert r.status_code == 400
    assert (await client.get(f"/giveaways/{g['slug']}/interest")).json()["count"] == 1


@pytest.mark.asyncio
async def test_deleting_draft_drops_interest(client, admin, session_factory):
    g = (await client.post("/giveaways", headers=admin["headers"], json={
        "title": "Never launched", "max_extensions": -1,
    })).json()
    user = await register_login(client)
    await client.post(f"/giveaways/{g['id']}/interest", headers=user["headers"])
    assert (await client.delete(f"/giveaways/{g['id']}", headers=admin["headers"])).status_code == 200
    async with session_factory() as s:
        assert await s.scalar(select(func.count()).select_from(GiveawayInterest)) == 0
