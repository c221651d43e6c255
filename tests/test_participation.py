import uuid
import pytest
from datetime import timedelta
from sqlalchemy import select, func, update
from conftest import register_login, make_giveaway, make_task, make_user, now
from luvrix.errors import NotFoundError, InvalidStateError, ValidationError
from luvrix.models.giveaway import Giveaway
from luvrix.models.participant import Participant, TaskCompletion, TaskStart, Referral
from luvrix.services.participation import join, complete_task, start_task, redeem_invite, get_status, find_by_invite_code


async def _ledger_points(session, p: Participant) -> int:
    done = await session.scalar(select(func.coalesce(func.sum(TaskCompletion.points_awarded), 0)).where(TaskCompletion.participant_id == p.id))
    invites = await session.scalar(select(func.coalesce(func.sum(Referral.points_awarded), 0)).where(Referral.inviter_participant_id == p.id))
    return int(done) + int(invites)

# ---------- join ----------

@pytest.mark.asyncio
async def test_join_is_idempotent(session):
    g = await make_giveaway(session, required_points=10)
    t = await make_task(session, g, points=4)
    u = await make_user(session)

    first = await join(session, g.id, u.id)
    assert first.joined
    assert first.participant.points == 0
    assert first.participant.status == "participant"
    assert len(first.participant.invite_code) == 8

    await complete_task(session, g.id, u.id, t.id)
    again = await join(session, g.id, u.id)
    assert not again.joined
    assert again.participant.id == first.participant.id
    assert again.participant.points == 4
    assert again.completed_task_ids == [t.id]
    assert await session.scalar(select(func.count()).select_from(Participant)) == 1


@pytest.mark.asyncio
async def test_free_giveaway_makes_joiner_eligible(session):
    g = await make_giveaway(session, required_points=0)
    u = await make_user(session)
    state = await join(session, g.id, u.id)
    assert state.participant.status == "eligible"
    assert state.participant.eligible_at is not None
    assert state.became_eligible


@pytest.mark.asyncio
@pytest.mark.parametrize("status_", ["draft", "ended", "winner_selected"])
async def test_join_requires_active(session, status_):
    g = await make_giveaway(session, status=status_)
    u = await make_user(session)
    with pytest.raises(InvalidStateError):
        await join(session, g.id, u.id)


@pytest.mark.asyncio
async def test_join_unknown_giveaway(session):
    import uuid
    u = await make_user(session)
    with pytest.raises(NotFoundError):
        await join(session, uuid.uuid4(), u.id)


@pytest.mark.asyncio
async def test_rejoin_after_end_returns_existing(session):
    g = await make_giveaway(session)
    u = await make_user(session)
    first = await join(session, g.id, u.id)
    g.status = "ended"
    await session.commit()
    again = await join(session, g.id, u.id)
    assert again.participant.id == first.participant.id


@pytest.mark.asyncio
async def test_join_after_deadline_without_extensions(session):
    g = await make_giveaway(session, start_date=now() - timedelta(days=3), end_date=now() - timedelta(days=1))
    u = await make_user(session)
    with pytest.raises(InvalidStateError):
        await join(session, g.id, u.id)


@pytest.mark.asyncio
async def test_join_after_deadline_extends_schedule(session):
    start = now() - timedelta(days=3)
    g = await make_giveaway(session, start_date=start, end_date=start + timedelta(days=2), max_extensions=1)
    u = await make_user(session)
    state = await join(session, g.id, u.id)
    assert state.joined
    await session.refresh(g)
    assert g.extensions_used == 1

# ---------- tasks ----------

@pytest.mark.asyncio
async def test_complete_task_credits_once(session):
    g = await make_giveaway(session, required_points=100)
    t = await make_task(session, g, points=7)
    u = await make_user(session)
    await join(session, g.id, u.id)

    s1 = await complete_task(session, g.id, u.id, t.id)
    s2 = await complete_task(session, g.id, u.id, t.id)
    assert s1.participant.points == 7
    assert s2.participant.points == 7
    assert s2.completed_task_ids == [t.id]
    assert await _ledger_points(session, s2.participant) == 7


@pytest.mark.asyncio
async def test_complete_task_from_separate_sessions(session_factory):
    async with session_factory() as s:
        g = await make_giveaway(s, required_points=100)
        t = await make_task(s, g, points=3)
        u = await make_user(s)
        await join(s, g.id, u.id)
    for _ in range(3):
        async with session_factory() as s:
            await complete_task(s, g.id, u.id, t.id)
    async with session_factory() as s:
        p = await s.scalar(select(Participant).where(Participant.user_id == u.id))
        assert p.points == 3
        assert await s.scalar(select(func.count()).select_from(TaskCompletion)) == 1


@pytest.mark.asyncio
async def test_complete_task_errors(session):
    import uuid
    g = await make_giveaway(session)
    t = await make_task(session, g)
    joined, outsider = await make_user(session), await make_user(session)
    # A failed call rolls back and expires loaded objects; keep plain ids
    gid, tid, jid, oid = g.id, t.id, joined.id, outsider.id
    await join(session, gid, jid)

    with pytest.raises(NotFoundError):
        await complete_task(session, gid, oid, tid)
    with pytest.raises(ValidationError):
        await complete_task(session, gid, jid, uuid.uuid4())

    await session.execute(update(Giveaway).where(Giveaway.id == gid).values(status="ended"))
    await session.commit()
    with pytest.raises(InvalidStateError):
        await complete_task(session, gid, jid, tid)


@pytest.mark.asyncio
async def test_points_threshold_promotes(session):
    g = await make_giveaway(session, required_points=10)
    a, b = await make_task(session, g, points=6), await make_task(session, g, points=4)
    u = await make_user(session)
    await join(session, g.id, u.id)

    s = await complete_task(session, g.id, u.id, a.id)
    assert s.participant.status == "participant"
    s = await complete_task(session, g.id, u.id, b.id)
    assert s.participant.points == 10
    assert s.participant.status == "eligible"
    assert s.became_eligible


@pytest.mark.asyncio
async def test_required_task_gates_promotion(session):
    g = await make_giveaway(session, required_points=10)
    required = await make_task(session, g, points=5, required=True)
    optional = await make_task(session, g, points=10)
    u = await make_user(session)
    await join(session, g.id, u.id)

    s = await complete_task(session, g.id, u.id, optional.id)
    assert s.participant.points == 10
    assert s.participant.status == "participant"
    s = await complete_task(session, g.id, u.id, required.id)
    assert s.participant.status == "eligible"


@pytest.mark.asyncio
async def test_quiz_answer_checked(session):
    g = await make_giveaway(session, required_points=100)
    quiz = await make_task(session, g, points=5, type="quiz", meta={
        "type": "quiz", "question": "Capital of France?", "options": ["Lyon", "Paris"], "correct_option": 1,
    })
    u = await make_user(session)
    gid, uid, qid = g.id, u.id, quiz.id
    await join(session, gid, uid)

    with pytest.raises(ValidationError):
        await complete_task(session, gid, uid, qid, answer=0)
    with pytest.raises(ValidationError):
        await complete_task(session, gid, uid, qid)
    s = await complete_task(session, gid, uid, qid, answer=1)
    assert s.participant.points == 5


@pytest.mark.asyncio
async def test_timed_visit_needs_start_and_dwell(session):
    g = await make_giveaway(session)
    t = await make_task(session, g, points=3, type="visit_website", meta={"type": "visit_website", "url": "https://luvrix.io", "min_seconds": 30})
    u = await make_user(session)
    gid, tid, uid = g.id, t.id, u.id
    await join(session, gid, uid)
    t0 = now()

    with pytest.raises(ValidationError, match="Start the task"):
        await complete_task(session, gid, uid, tid, now=t0)
    await start_task(session, gid, uid, tid, now=t0)
    with pytest.raises(ValidationError, match="at least 30 seconds"):
        await complete_task(session, gid, uid, tid, now=t0 + timedelta(seconds=10))

    # Restarting moves the clock forward
    await start_task(session, gid, uid, tid, now=t0 + timedelta(seconds=20))
    with pytest.raises(ValidationError):
        await complete_task(session, gid, uid, tid, now=t0 + timedelta(seconds=35))
    state = await complete_task(session, gid, uid, tid, now=t0 + timedelta(seconds=50))
    assert state.participant.points == 3
    assert await session.scalar(select(func.count()).select_from(TaskStart)) == 1


@pytest.mark.asyncio
async def test_untimed_visit_completes_directly(session):
    g = await make_giveaway(session)
    t = await make_task(session, g, points=2, type="visit_website", meta={"type": "visit_website", "url": "https://luvrix.io", "min_seconds": 0})
    u = await make_user(session)
    await join(session, g.id, u.id)
    state = await complete_task(session, g.id, u.id, t.id)
    assert state.participant.points == 2


@pytest.mark.asyncio
async def test_start_task_errors(session):
    g = await make_giveaway(session)
    t = await make_task(session, g)
    u = await make_user(session)
    gid, tid, uid = g.id, t.id, u.id
    with pytest.raises(NotFoundError):
        await start_task(session, gid, uid, tid)
    await join(session, gid, uid)
    with pytest.raises(ValidationError):
        await start_task(session, gid, uid, uuid.uuid4())
    await session.execute(update(Giveaway).where(Giveaway.id == gid).values(status="ended"))
    await session.commit()
    with pytest.raises(InvalidStateError):
        await start_task(session, gid, uid, tid)


@pytest.mark.asyncio
async def test_invite_task_needs_invites(session):
    g = await make_giveaway(session, required_points=100, invite_points_enabled=True, invite_points_per_referral=1)
    task = await make_task(session, g, points=5, type="invite", meta={"type": "invite", "required_invites": 1})
    inviter, friend = await make_user(session), await make_user(session)
    gid, tid, iid, fid = g.id, task.id, inviter.id, friend.id
    await join(session, gid, iid)

    with pytest.raises(ValidationError):
        await complete_task(session, gid, iid, tid)

    await join(session, gid, fid)
    await redeem_invite(session, gid, iid, fid)
    s = await complete_task(session, gid, iid, tid)
    assert s.participant.points == 6
    assert await _ledger_points(session, s.participant) == 6

# ---------- invites ----------

@pytest.mark.asyncio
async def test_invite_credit_and_dedupe(session):
    g = await make_giveaway(session, required_points=100, invite_points_enabled=True, invite_points_per_referral=2, invite_points_cap=None)
    inviter, friend = await make_user(session), await make_user(session)
    p = (await join(session, g.id, inviter.id)).participant
    await join(session, g.id, friend.id)

    assert (await find_by_invite_code(session, g.id, p.invite_code)).id == p.id

    out = await redeem_invite(session, g.id, inviter.id, friend.id)
    assert out.credited
    assert out.inviter.participant.points == 2
    assert out.inviter.participant.invite_count == 1

    again = await redeem_invite(session, g.id, inviter.id, friend.id)
    assert not again.credited
    assert again.inviter.participant.points == 2
    assert again.inviter.participant.invite_count == 1


@pytest.mark.asyncio
async def test_referred_user_credits_one_inviter(session):
    g = await make_giveaway(session, required_points=100, invite_points_enabled=True)
    a, b, friend = await make_user(session), await make_user(session), await make_user(session)
    for u in (a, b, friend):
        await join(session, g.id, u.id)
    assert (await redeem_invite(session, g.id, a.id, friend.id)).credited
    out = await redeem_invite(session, g.id, b.id, friend.id)
    assert not out.credited
    assert out.inviter.participant.points == 0


@pytest.mark.asyncio
async def test_invite_rules(session):
    g = await make_giveaway(session, required_points=100, invite_points_enabled=True)
    inviter, stranger = await make_user(session), await make_user(session)
    gid, iid, sid = g.id, inviter.id, stranger.id
    await join(session, gid, iid)

    with pytest.raises(ValidationError):
        await redeem_invite(session, gid, iid, iid)
    with pytest.raises(ValidationError):
        await redeem_invite(session, gid, iid, sid)
    with pytest.raises(NotFoundError):
        await redeem_invite(session, gid, sid, iid)
    with pytest.raises(NotFoundError):
        await find_by_invite_code(session, gid, "NOPE2345")


@pytest.mark.asyncio
async def test_invites_disabled(session):
    g = await make_giveaway(session, invite_points_enabled=False)
    a, b = await make_user(session), await make_user(session)
    await join(session, g.id, a.id)
    await join(session, g.id, b.id)
    with pytest.raises(InvalidStateError):
        await redeem_invite(session, g.id, a.id, b.id)


@pytest.mark.asyncio
async def test_invite_cap(session):
    g = await make_giveaway(session, required_points=100, invite_points_enabled=True, invite_points_per_referral=1, invite_points_cap=2)
    gid, inviter = g.id, (await make_user(session)).id
    await join(session, gid, inviter)
    friends = [(await make_user(session)).id for _ in range(3)]
    for f in friends:
        await join(session, gid, f)
    await redeem_invite(session, gid, inviter, friends[0])
    await redeem_invite(session, gid, inviter, friends[1])
    with pytest.raises(InvalidStateError):
        await redeem_invite(session, gid, inviter, friends[2])

    # A repeat of an already-credited referral stays a no-op at the cap
    again = await redeem_invite(session, gid, inviter, friends[1])
    assert not again.credited
    assert again.inviter.participant.points == 2
    p = await session.scalar(select(Participant).where(Participant.user_id == inviter))
    assert p.points == 2 and p.invite_count == 2


@pytest.mark.asyncio
async def test_invites_reach_threshold(session):
    g = await make_giveaway(session, required_points=3, invite_points_enabled=True, invite_points_per_referral=1, invite_points_cap=None)
    inviter = await make_user(session)
    await join(session, g.id, inviter.id)
    out = None
    for _ in range(3):
        f = await make_user(session)
        await join(session, g.id, f.id)
        out = await redeem_invite(session, g.id, inviter.id, f.id)
    assert out.inviter.participant.status == "eligible"
    assert out.inviter.became_eligible

# ---------- status ----------

@pytest.mark.asyncio
async def test_eligible_status_survives_new_requirements(session):
    g = await make_giveaway(session, required_points=5)
    t = await make_task(session, g, points=5)
    u = await make_user(session)
    await join(session, g.id, u.id)
    await complete_task(session, g.id, u.id, t.id)

    # A required task added later does not demote anyone
    new_required = await make_task(session, g, points=1, required=True)
    state, snap, total = await get_status(session, g.id, u.id)
    assert state.participant.status == "eligible"
    assert not snap.eligible
    assert snap.missing_required_task_ids == [new_required.id]
    assert total == 2


@pytest.mark.asyncio
async def test_get_status_repairs_stuck_participant(session):
    g = await make_giveaway(session, required_points=5)
    u = await make_user(session)
    p = (await join(session, g.id, u.id)).participant
    # Threshold lowered after the fact
    g.required_points = 0
    await session.commit()
    state, snap, _ = await get_status(session, g.id, u.id)
    assert snap.eligible
    assert state.participant.id == p.id
    assert state.participant.status == "eligible"
    assert state.became_eligible


@pytest.mark.asyncio
async def test_get_status_not_joined(session):
    g = await make_giveaway(session)
    u = await make_user(session)
    with pytest.raises(NotFoundError):
        await get_status(session, g.id, u.id)

# ---------- HTTP ----------

async def _live_giveaway(client, admin, **kw):
    body = {"title": "Keyboard giveaway", "end_date": (now() + timedelta(days=3)).isoformat(), "required_points": 5}
    body.update(kw)
    g = (await client.post("/giveaways", headers=admin["headers"], json=body)).json()
    t = (await client.post(f"/giveaways/{g['id']}/tasks", headers=admin["headers"], json={
        "title": "Follow us", "points": 5, "required": True,
        "metadata": {"type": "social_follow", "platform": "instagram", "url": "https://instagram.com/luvrix"},
    })).json()
    await client.post(f"/giveaways/{g['id']}/publish", headers=admin["headers"])
    return g, t


@pytest.mark.asyncio
async def test_http_join_complete_me(client, admin, events):
    g, t = await _live_giveaway(client, admin)
    user = await register_login(client)

    r = await client.post(f"/giveaways/{g['slug']}/join", headers=user["headers"])
    assert r.status_code == 201, r.text
    assert r.json()["status"] == "participant"
    r = await client.post(f"/giveaways/{g['slug']}/join", headers=user["headers"])
    assert r.status_code == 200

    me = (await client.get(f"/giveaways/{g['id']}/me", headers=user["headers"])).json()
    assert me["eligibility"]["eligible"] is False
    assert me["eligibility"]["missing_required_task_ids"] == [t["id"]]
    assert me["total_tasks"] == 1

    r = await client.post(f"/giveaways/{g['id']}/tasks/{t['id']}/complete", headers=user["headers"])
    assert r.status_code == 200, r.text
    body = r.json()
    assert body["points"] == 5
    assert body["status"] == "eligible"
    assert body["completed_task_ids"] == [t["id"]]
    assert [name for name, _ in events.events if name.startswith("participant_")] == ["participant_joined", "participant_eligible"]

    mine = (await client.get("/giveaways/mine", headers=user["headers"])).json()
    assert len(mine) == 1
    assert mine[0]["giveaway"]["id"] == g["id"]
    assert mine[0]["status"] == "eligible"


@pytest.mark.asyncio
async def test_http_join_requires_auth(client, admin):
    g, _ = await _live_giveaway(client, admin)
    r = await client.post(f"/giveaways/{g['id']}/join")
    assert r.status_code in (401, 403)


@pytest.mark.asyncio
async def test_http_join_draft_rejected(client, admin):
    g = (await client.post("/giveaways", headers=admin["headers"], json={
        "title": "Not yet", "end_date": (now() + timedelta(days=3)).isoformat(),
    })).json()
    user = await register_login(client)
    r = await client.post(f"/giveaways/{g['id']}/join", headers=user["headers"])
    assert r.status_code == 400


@pytest.mark.asyncio
async def test_http_invite_flow(client, admin):
    g, _ = await _live_giveaway(client, admin, invite_points_enabled=True, invite_points_per_referral=1)
    inviter, friend = await register_login(client), await register_login(client)
    code = (await client.post(f"/giveaways/{g['id']}/join", headers=inviter["headers"])).json()["invite_code"]
    await client.post(f"/giveaways/{g['id']}/join", headers=friend["headers"])

    r = await client.post(f"/giveaways/{g['id']}/invite", headers=friend["headers"], json={"invite_code": code})
    assert r.status_code == 200, r.text
    assert r.json() == {"credited": True, "inviter_points": 1, "invite_count": 1}
    r = await client.post(f"/giveaways/{g['id']}/invite", headers=friend["headers"], json={"invite_code": code})
    assert r.json()["credited"] is False

    r = await client.post(f"/giveaways/{g['id']}/invite", headers=inviter["headers"], json={"invite_code": code})
    assert r.status_code == 400


@pytest.mark.asyncio
async def test_http_participants_admin_only(client, admin):
    g, _ = await _live_giveaway(client, admin)
    user = await register_login(client)
    await client.post(f"/giveaways/{g['id']}/join", headers=user["headers"])

    r = await client.get(f"/giveaways/{g['id']}/participants?count_only=true")
    assert r.json() == {"count": 1}
    assert (await client.get(f"/giveaways/{g['id']}/participants", headers=user["headers"])).status_code == 403

    r = await client.get(f"/giveaways/{g['id']}/participants", headers=admin["headers"])
    assert r.status_code == 200
    body = r.json()
    assert body["total"] == 1
    assert body["participants"][0]["username"] == user["username"]


@pytest.mark.asyncio
async def test_http_start_then_complete_timed_task(client, admin):
    g, _ = await _live_giveaway(client, admin, required_points=0)
    t = (await client.post(f"/giveaways/{g['id']}/tasks", headers=admin["headers"], json={
        "title": "Read the launch post", "points": 2,
        "metadata": {"type": "visit_website", "url": "https://luvrix.io/launch", "min_seconds": 60},
    })).json()
    user = await register_login(client)
    await client.post(f"/giveaways/{g['id']}/join", headers=user["headers"])

    r = await client.post(f"/giveaways/{g['id']}/tasks/{t['id']}/start", headers=user["headers"])
    assert r.status_code == 200, r.text
    assert r.json()["task_id"] == t["id"]

    r = await client.post(f"/giveaways/{g['id']}/tasks/{t['id']}/complete", headers=user["headers"])
    assert r.status_code == 400
    assert "60 seconds" in r.json()["detail"]
