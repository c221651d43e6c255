"""
Domain events published after a successful commit.

Delivery is fire-and-forget: a failed enqueue is logged and never undoes the committed
change that produced the event.
"""
from __future__ import annotations
from typing import Any
from fastapi import Request
from redis.exceptions import RedisError
from rq import Queue
import structlog

log = structlog.get_logger()

WINNER_SELECTED = "winner_selected"
GIVEAWAY_PUBLISHED = "giveaway_published"
GIVEAWAY_ENDED = "giveaway_ended"
SUPPORT_RECORDED = "support_recorded"
PARTICIPANT_JOINED = "participant_joined"
PARTICIPANT_ELIGIBLE = "participant_eligible"


class EventPublisher:
    """Logs events without delivering them. Used when no queue is configured."""

    def publish(self, name: str, payload: dict[str, Any]) -> None:
        log.info("event_dropped", event_name=name, **payload)

    def close(self) -> None:
        pass


class RQEventPublisher(EventPublisher):
    def __init__(self, queue: Queue):
        self.queue = queue

    def publish(self, name: str, payload: dict[str, Any]) -> None:
        try:
            job = self.queue.enqueue("luvrix.jobs.notify.deliver_event", name, payload, job_timeout=60)
        except RedisError as e:
            log.warning("event_enqueue_failed", event_name=name, error=str(e), **payload)
            return
        log.info("event_enqueued", event_name=name, job_id=job.id, **payload)

    def close(self) -> None:
        self.queue.connection.close()


def get_event_publisher(request: Request) -> EventPublisher:
    publisher = getattr(request.app.state, "event_publisher", None)
    return publisher or EventPublisher()
