import uuid
import pytest
from redis.exceptions import ConnectionError as RedisConnectionError
from conftest import make_giveaway, make_user
from luvrix.jobs import notify
from luvrix.services.events import RQEventPublisher, WINNER_SELECTED


class FakeJob:
    def __init__(self):
        self.id = str(uuid.uuid4())


class FakeQueue:
    def __init__(self, fail=False):
        self.fail = fail
        self.calls = []

    def enqueue(self, func, *args, **kwargs):
        if self.fail:
            raise RedisConnectionError("redis down")
        self.calls.append((func, args, kwargs))
        return FakeJob()


def test_rq_publisher_enqueues_delivery_job():
    q = FakeQueue()
    RQEventPublisher(q).publish(WINNER_SELECTED, {"giveaway_id": "g1", "winner_user_id": "u1"})
    func, args, kwargs = q.calls[0]
    assert func == "luvrix.jobs.notify.deliver_event"
    assert args == (WINNER_SELECTED, {"giveaway_id": "g1", "winner_user_id": "u1"})
    assert kwargs["job_timeout"] == 60


def test_rq_publisher_survives_redis_outage():
    # Must not raise: the change that produced the event is already committed
    RQEventPublisher(FakeQueue(fail=True)).publish(WINNER_SELECTED, {"giveaway_id": "g1"})


@pytest.mark.asyncio
async def test_winner_notification_job_reads_winner(session, session_factory, monkeypatch):
    g = await make_giveaway(session, status="winner_selected")
    u = await make_user(session)
    monkeypatch.setattr(notify, "SessionLocal", session_factory)
    await notify._run(WINNER_SELECTED, {"giveaway_id": str(g.id), "winner_user_id": str(u.id)})
    # Unknown ids are skipped, not raised
    await notify._run(WINNER_SELECTED, {"giveaway_id": str(uuid.uuid4()), "winner_user_id": str(uuid.uuid4())})
