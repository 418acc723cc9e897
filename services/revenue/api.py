from __future__ import annotations

from datetime import date
from decimal import Decimal

from fastapi import APIRouter, Depends, HTTPException, Response
from pydantic import BaseModel
from sqlalchemy.orm import Session

from app.core.clock import today
from app.core.security import Principal, require_roles
from app.db.session import get_db
from app.events.dispatcher import dispatch_pending
from services.revenue import aggregator
from services.revenue.export import export_revenue_data, to_csv
from services.revenue.handlers import revenue_outbox_status

router = APIRouter(prefix="/revenue", tags=["revenue"])


class ReportKeyIn(BaseModel):
    date: date
    period_type: str = "daily"


class ReverseIn(ReportKeyIn):
    categories: dict[str, Decimal]
    source: str | None = None


require_admin = require_roles(["ADMIN"])


@router.get("/report")
def revenue_report(start: date, end: date, period_type: str = "daily", db: Session = Depends(get_db)):
    return aggregator.generate_revenue_report(db, start, end, period_type)


@router.get("/daily")
def daily(on: date | None = None, db: Session = Depends(get_db)):
    return aggregator.get_daily_revenue(db, on or today())


@router.get("/monthly")
def monthly(on: date | None = None, db: Session = Depends(get_db)):
    return aggregator.get_monthly_revenue(db, on or today())


@router.get("/yearly")
def yearly(on: date | None = None, db: Session = Depends(get_db)):
    return aggregator.get_yearly_revenue(db, on or today())


@router.get("/trends")
def trends(start: date, end: date, period_type: str = "daily", db: Session = Depends(get_db)):
    return aggregator.calculate_trends(db, start, end, period_type)


# ---- Stored period reports ----
@router.get("/reports")
def list_reports(
    period_type: str = "daily",
    start: date | None = None,
    end: date | None = None,
    limit: int = 100,
    db: Session = Depends(get_db),
):
    return [aggregator.report_out(r) for r in aggregator.list_reports(db, period_type, start, end, limit)]


@router.post("/reports/update")
def update_report(payload: ReportKeyIn, db: Session = Depends(get_db)):
    report = aggregator.update_revenue_report(db, payload.date, payload.period_type)
    return aggregator.report_out(report)


@router.post("/reports/reverse")
def reverse_report(payload: ReverseIn, db: Session = Depends(get_db), principal: Principal = Depends(require_admin)):
    report = aggregator.reverse_revenue_report(
        db, payload.date, payload.period_type, payload.categories, source=payload.source
    )
    return aggregator.report_out(report) if report else None


@router.post("/daily-update")
def run_daily_update(on: date | None = None, db: Session = Depends(get_db)):
    reports = aggregator.daily_revenue_update(db, on or today())
    return [aggregator.report_out(r) for r in reports]


@router.get("/export")
def export(start: date, end: date, format: str = "csv", db: Session = Depends(get_db)):
    rows = export_revenue_data(db, start, end)
    if format == "json":
        return rows
    if format != "csv":
        raise HTTPException(422, "format must be csv or json")
    filename = f"revenue_{start.isoformat()}_{end.isoformat()}.csv"
    return Response(
        content=to_csv(rows),
        media_type="text/csv",
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


# ---- Outbox reconciliation ----
@router.get("/status")
def outbox_status(limit: int = 50, db: Session = Depends(get_db)):
    return revenue_outbox_status(db, limit)


@router.post("/dispatch")
def dispatch(limit: int = 50, db: Session = Depends(get_db), principal: Principal = Depends(require_admin)):
    return {"ok": True, "delivered": dispatch_pending(db, limit=limit)}
