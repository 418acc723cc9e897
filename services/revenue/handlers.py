"""Outbox handlers keeping period reports in step with payments."""
from __future__ import annotations

from datetime import date, datetime

from sqlalchemy.orm import Session

from app.db.models.enums import PeriodType
from app.events.dispatcher import register_handler
from app.events.outbox import OutboxEvent
from services.revenue.aggregator import refresh_reports_for, reverse_revenue_report

REFRESH_TOPIC = "revenue.report.refresh"
REVERSE_TOPIC = "revenue.report.reverse"
REVENUE_TOPICS = (REFRESH_TOPIC, REVERSE_TOPIC)


def _on_refresh(db: Session, payload: dict) -> None:
    refresh_reports_for(db, date.fromisoformat(payload["anchor_date"]))


def _on_reverse(db: Session, payload: dict) -> None:
    anchor = date.fromisoformat(payload["anchor_date"])
    as_of = datetime.fromisoformat(payload["reversed_at"]) if payload.get("reversed_at") else None
    for period in PeriodType:
        reverse_revenue_report(
            db,
            anchor,
            period,
            payload.get("categories") or {},
            source=payload.get("source"),
            as_of=as_of,
        )


register_handler(REFRESH_TOPIC, _on_refresh)
register_handler(REVERSE_TOPIC, _on_reverse)


def revenue_outbox_status(db: Session, limit: int = 50) -> dict:
    """Undelivered revenue jobs, for reconciliation."""
    pending = (
        db.query(OutboxEvent)
        .filter(OutboxEvent.topic.in_(REVENUE_TOPICS))
        .filter(OutboxEvent.delivered == False)  # noqa: E712
        .order_by(OutboxEvent.created_at.asc())
        .all()
    )
    failing = [e for e in pending if (e.attempt_count or 0) > 0]
    return {
        "pending": len(pending),
        "failing": len(failing),
        "events": [
            {
                "id": e.id,
                "topic": e.topic,
                "payload": e.payload,
                "attempt_count": e.attempt_count,
                "last_error": e.last_error,
                "available_at": e.available_at.isoformat() if e.available_at else None,
            }
            for e in pending[:limit]
        ],
    }
