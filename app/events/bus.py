from __future__ import annotations

from datetime import datetime

from sqlalchemy.orm import Session

from app.core.clock import utcnow
from app.events.outbox import OutboxEvent


def publish(db: Session, topic: str, payload: dict, *, available_at: datetime | None = None) -> OutboxEvent:
    """Publish an event by writing to the transactional outbox.

    Only flushes: the row commits or rolls back together with the caller's unit of work.
    """
    evt = OutboxEvent(
        topic=topic,
        payload=payload or {},
        available_at=available_at or utcnow(),
        delivered=False,
        attempt_count=0,
    )
    db.add(evt)
    db.flush()
    return evt
