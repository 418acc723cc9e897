from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timedelta
from typing import Callable

from sqlalchemy.orm import Session

from app.core.clock import utcnow
from app.db.session import SessionLocal
from app.events.outbox import OutboxEvent
from services._crud import atomic

log = logging.getLogger("hotel.events")

Handler = Callable[[Session, dict], None]

_handlers: dict[str, Handler] = {}


def register_handler(topic: str, handler: Handler) -> None:
    _handlers[topic] = handler


def _schedule_next(attempt_count: int) -> datetime:
    # Simple exponential backoff capped at 10 minutes
    seconds = min(600, 2 ** min(attempt_count, 9))
    return utcnow() + timedelta(seconds=seconds)


def dispatch_pending(db: Session, *, limit: int = 50) -> int:
    """Apply due outbox events; return how many were delivered.

    Each event runs in its own SAVEPOINT so one failing handler never undoes
    another event's work. Failures stay undelivered and are rescheduled.
    """
    delivered = 0
    with atomic(db):
        events = (
            db.query(OutboxEvent)
            .filter(OutboxEvent.delivered == False)  # noqa: E712
            .filter(OutboxEvent.available_at <= utcnow())
            .order_by(OutboxEvent.created_at.asc())
            .limit(limit)
            .all()
        )
        for evt in events:
            handler = _handlers.get(evt.topic)
            if handler is None:
                # Nobody handles this topic; mark delivered to avoid infinite growth
                evt.delivered = True
                evt.delivered_at = utcnow()
                continue
            try:
                with db.begin_nested():
                    handler(db, dict(evt.payload or {}))
            except Exception as e:
                evt.attempt_count = (evt.attempt_count or 0) + 1
                evt.last_error = f"{type(e).__name__}: {e}"[:2000]
                evt.available_at = _schedule_next(evt.attempt_count)
                log.warning(
                    "outbox event %s (%s) failed attempt %s: %s",
                    evt.id, evt.topic, evt.attempt_count, evt.last_error,
                )
                continue
            evt.delivered = True
            evt.delivered_at = utcnow()
            evt.last_error = None
            delivered += 1
    return delivered


def _dispatch_batch() -> int:
    db = SessionLocal()
    try:
        return dispatch_pending(db)
    finally:
        db.close()


async def run_dispatcher_forever(*, poll_interval_seconds: float = 1.0) -> None:
    """Background worker that applies outbox events to their handlers."""
    while True:
        try:
            await asyncio.to_thread(_dispatch_batch)
        except Exception:
            # Keep polling; the failed batch stays in the outbox.
            log.exception("outbox dispatch batch failed")
        await asyncio.sleep(poll_interval_seconds)
