"""Period revenue reports.

A report is keyed by ``(date, period_type)`` where ``date`` is the period
start. ``update_revenue_report`` always recomputes from source bookings and
upserts; only ``reverse_revenue_report`` adjusts a stored row in place, under
a row lock, clamping at zero.
"""
from __future__ import annotations

import calendar
import logging
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from decimal import Decimal
from typing import Any, Mapping

from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.orm import Session, selectinload

from app.core.clock import as_utc, utcnow
from app.core.errors import ValidationError
from app.core.money import ZERO, dec, q
from app.db.models.billing import BillItem, Booking
from app.db.models.common import uuid4_str
from app.db.models.enums import (
    BookingSource,
    PaymentMethod,
    PaymentStatus,
    PeriodType,
    RevenueCategory,
    exhaustive,
    parse_enum,
)
from app.db.models.hotel import Room
from app.db.models.revenue import RevenueReport
from services._crud import atomic
from services.billing.calculator import category_breakdown

log = logging.getLogger("hotel.revenue")

CATEGORY_FIELD = exhaustive(
    RevenueCategory,
    {
        RevenueCategory.ACCOMMODATION: "accommodation_revenue",
        RevenueCategory.FOOD_BEVERAGE: "food_beverage_revenue",
        RevenueCategory.SPA: "spa_revenue",
        RevenueCategory.TRANSPORT: "transport_revenue",
        RevenueCategory.LAUNDRY: "laundry_revenue",
        RevenueCategory.MINIBAR: "minibar_revenue",
        RevenueCategory.CONFERENCE: "conference_revenue",
        RevenueCategory.OTHER: "other_revenue",
    },
)

PAYMENT_METHOD_FIELD = exhaustive(
    PaymentMethod,
    {
        PaymentMethod.CASH: "cash_payments",
        PaymentMethod.CARD: "card_payments",
        PaymentMethod.UPI: "upi_payments",
        PaymentMethod.BANK_TRANSFER: "bank_transfer_payments",
        PaymentMethod.ONLINE_GATEWAY: "online_gateway_payments",
        PaymentMethod.CHEQUE: "cheque_payments",
        PaymentMethod.WALLET: "wallet_payments",
    },
)

BOOKING_SOURCE_FIELD = exhaustive(
    BookingSource,
    {
        BookingSource.WEBSITE: "website_bookings",
        BookingSource.PHONE: "phone_bookings",
        BookingSource.WALK_IN: "walk_in_bookings",
        BookingSource.OTA: "ota_bookings",
        BookingSource.CORPORATE: "corporate_bookings",
        BookingSource.AGENT: "agent_bookings",
        BookingSource.REFERRAL: "referral_bookings",
    },
)

OUTSTANDING_STATUSES = (PaymentStatus.PENDING, PaymentStatus.PARTIALLY_PAID, PaymentStatus.OVERDUE)


# ---------- periods ----------

def normalize_date(d: date | datetime, period_type: PeriodType) -> date:
    if isinstance(d, datetime):
        d = d.date()
    if period_type == PeriodType.DAILY:
        return d
    if period_type == PeriodType.MONTHLY:
        return d.replace(day=1)
    return d.replace(month=1, day=1)


def period_bounds(d: date | datetime, period_type: PeriodType) -> tuple[date, date]:
    """Inclusive first and last day of the period covering ``d``."""
    start = normalize_date(d, period_type)
    if period_type == PeriodType.DAILY:
        return start, start
    if period_type == PeriodType.MONTHLY:
        return start, start.replace(day=calendar.monthrange(start.year, start.month)[1])
    return start, start.replace(month=12, day=31)


def _shift_months(d: date, months: int) -> date:
    total = d.year * 12 + (d.month - 1) + months
    year, month = divmod(total, 12)
    month += 1
    return date(year, month, min(d.day, calendar.monthrange(year, month)[1]))


def shift_back(d: date, period_type: PeriodType) -> date:
    if period_type == PeriodType.DAILY:
        return d - timedelta(days=1)
    if period_type == PeriodType.MONTHLY:
        return _shift_months(d, -1)
    return _shift_months(d, -12)


# ---------- source aggregation ----------

@dataclass
class PeriodFigures:
    categories: dict[RevenueCategory, Decimal] = field(default_factory=lambda: {c: ZERO for c in RevenueCategory})
    payment_methods: dict[PaymentMethod, Decimal] = field(default_factory=lambda: {m: ZERO for m in PaymentMethod})
    sources: dict[BookingSource, int] = field(default_factory=lambda: {s: 0 for s in BookingSource})
    paid_bookings: int = 0
    gst: Decimal = ZERO
    service_tax: Decimal = ZERO
    other_tax: Decimal = ZERO
    outstanding: dict[PaymentStatus, Decimal] = field(default_factory=lambda: {s: ZERO for s in OUTSTANDING_STATUSES})

    @property
    def total_revenue(self) -> Decimal:
        return sum(self.categories.values(), ZERO)

    @property
    def tax_collected(self) -> Decimal:
        return self.gst + self.service_tax + self.other_tax

    @property
    def total_outstanding(self) -> Decimal:
        return sum(self.outstanding.values(), ZERO)


def bookings_in(db: Session, start: date, end: date, statuses: list[str] | None = None) -> list[Booking]:
    qy = (
        db.query(Booking)
        .options(
            selectinload(Booking.bill_items).selectinload(BillItem.service),
            selectinload(Booking.payments),
        )
        .filter(Booking.check_in >= start, Booking.check_in <= end)
    )
    if statuses:
        qy = qy.filter(Booking.payment_status.in_(statuses))
    return qy.order_by(Booking.check_in.asc()).all()


def collect_period(db: Session, start: date, end: date) -> PeriodFigures:
    figures = PeriodFigures()
    for b in bookings_in(db, start, end):
        status = PaymentStatus(b.payment_status)
        paid = sum((q(p.amount) for p in b.payments), ZERO)
        if status in OUTSTANDING_STATUSES:
            figures.outstanding[status] += max(q(b.total_amount) - paid, ZERO)
            continue
        if status != PaymentStatus.PAID:
            continue
        figures.paid_bookings += 1
        for category, amount in category_breakdown(b).items():
            figures.categories[category] += amount
        for p in b.payments:
            figures.payment_methods[PaymentMethod(p.payment_method)] += q(p.amount)
        figures.sources[parse_enum(BookingSource, b.source, "source")] += 1
        figures.gst += q(b.gst_amount)
        figures.service_tax += q(b.service_tax_amount)
        figures.other_tax += q(b.other_tax_amount)
    return figures


def _report_values(figures: PeriodFigures) -> dict[str, Any]:
    values: dict[str, Any] = {}
    for category, column in CATEGORY_FIELD.items():
        values[column] = figures.categories[category]
    for method, column in PAYMENT_METHOD_FIELD.items():
        values[column] = figures.payment_methods[method]
    for source, column in BOOKING_SOURCE_FIELD.items():
        values[column] = figures.sources[source]
    values["total_revenue"] = figures.total_revenue
    values["total_bookings"] = figures.paid_bookings
    values["tax_collected"] = figures.tax_collected
    values["outstanding_amount"] = figures.total_outstanding
    return values


# ---------- stored reports ----------

def _upsert(db: Session, day: date, period: PeriodType, values: dict[str, Any]) -> None:
    now = utcnow()
    row = {"date": day, "period_type": period.value, **values, "recomputed_at": now, "updated_at": now}
    dialect = db.get_bind().dialect.name
    if dialect in ("postgresql", "sqlite"):
        insert = pg_insert if dialect == "postgresql" else sqlite_insert
        stmt = insert(RevenueReport).values(id=uuid4_str(), created_at=now, **row)
        stmt = stmt.on_conflict_do_update(index_elements=["date", "period_type"], set_=row)
        db.execute(stmt)
        return
    existing = (
        db.query(RevenueReport)
        .filter(RevenueReport.date == day, RevenueReport.period_type == period.value)
        .with_for_update()
        .first()
    )
    if existing is None:
        existing = RevenueReport(date=day, period_type=period.value)
        db.add(existing)
    for k, v in row.items():
        setattr(existing, k, v)
    db.flush()


def get_report(db: Session, d: date, period_type: str | PeriodType, *, for_update: bool = False) -> RevenueReport | None:
    period = parse_enum(PeriodType, period_type, "period_type")
    qy = db.query(RevenueReport).filter(
        RevenueReport.date == normalize_date(d, period),
        RevenueReport.period_type == period.value,
    )
    if for_update:
        qy = qy.with_for_update()
    return qy.populate_existing().first()


def update_revenue_report(db: Session, d: date, period_type: str | PeriodType) -> RevenueReport:
    """Recompute the report covering ``d`` from source bookings and upsert it."""
    period = parse_enum(PeriodType, period_type, "period_type")
    start, end = period_bounds(d, period)
    with atomic(db):
        figures = collect_period(db, start, end)
        _upsert(db, start, period, _report_values(figures))
        report = get_report(db, start, period)
    log.info("%s revenue report %s recomputed: total=%s bookings=%s", period.value, start, report.total_revenue, report.total_bookings)
    return report


def refresh_reports_for(db: Session, d: date) -> list[RevenueReport]:
    with atomic(db):
        return [update_revenue_report(db, d, p) for p in PeriodType]


def reverse_revenue_report(
    db: Session,
    d: date,
    period_type: str | PeriodType,
    category_amounts: Mapping[Any, Any],
    *,
    source: str | None = None,
    as_of: datetime | None = None,
) -> RevenueReport | None:
    """Subtract one booking's category amounts from a stored report, flooring each field at zero.

    A report recomputed at or after ``as_of`` already excludes the booking and
    is left alone.
    """
    period = parse_enum(PeriodType, period_type, "period_type")
    amounts = {parse_enum(RevenueCategory, k, "category"): q(v) for k, v in (category_amounts or {}).items()}
    if any(v < 0 for v in amounts.values()):
        raise ValidationError("reversal amounts must not be negative", field="category_amounts")
    booking_source = parse_enum(BookingSource, source, "source") if source else None

    with atomic(db):
        report = get_report(db, d, period, for_update=True)
        if report is None:
            log.info("no %s revenue report for %s; nothing to reverse", period.value, normalize_date(d, period))
            return None
        if as_of is not None and report.recomputed_at is not None and as_utc(report.recomputed_at) >= as_utc(as_of):
            log.info("%s revenue report %s recomputed after reversal; skipping", period.value, report.date)
            return report

        clamped: list[str] = []
        for category, amount in amounts.items():
            column = CATEGORY_FIELD[category]
            current = dec(getattr(report, column))
            remaining = current - amount
            if remaining < 0:
                clamped.append(column)
                remaining = ZERO
            setattr(report, column, remaining)
        report.total_revenue = sum((dec(getattr(report, c)) for c in CATEGORY_FIELD.values()), ZERO)
        if report.total_bookings > 0:
            report.total_bookings -= 1
        else:
            clamped.append("total_bookings")
        if booking_source is not None:
            column = BOOKING_SOURCE_FIELD[booking_source]
            setattr(report, column, max(getattr(report, column) - 1, 0))
        db.flush()

    if clamped:
        log.warning(
            "%s revenue report %s reversal clamped at zero for %s (amounts=%s)",
            period.value, report.date, ", ".join(clamped), {k.value: str(v) for k, v in amounts.items()},
        )
    return report


def list_reports(
    db: Session,
    period_type: str | PeriodType,
    start: date | None = None,
    end: date | None = None,
    limit: int = 100,
) -> list[RevenueReport]:
    period = parse_enum(PeriodType, period_type, "period_type")
    qy = db.query(RevenueReport).filter(RevenueReport.period_type == period.value)
    if start:
        qy = qy.filter(RevenueReport.date >= normalize_date(start, period))
    if end:
        qy = qy.filter(RevenueReport.date <= end)
    return qy.order_by(RevenueReport.date.desc()).limit(limit).all()


def report_out(r: RevenueReport) -> dict:
    out: dict[str, Any] = {"id": r.id, "date": r.date.isoformat(), "period_type": r.period_type}
    for column in (*CATEGORY_FIELD.values(), "total_revenue", *PAYMENT_METHOD_FIELD.values(), "tax_collected", "outstanding_amount"):
        out[column] = float(getattr(r, column))
    for column in (*BOOKING_SOURCE_FIELD.values(), "total_bookings"):
        out[column] = getattr(r, column)
    return out


# ---------- analysis ----------

def _growth(current: Decimal, previous: Decimal) -> float:
    if previous == 0:
        return 0.0
    return float(q((current - previous) / previous * 100))


def _headline(db: Session, start: date, end: date) -> tuple[Decimal, int]:
    paid = bookings_in(db, start, end, [PaymentStatus.PAID.value])
    return sum((q(b.total_amount) for b in paid), ZERO), len(paid)


def calculate_trends(db: Session, start: date, end: date, period_type: str | PeriodType) -> dict:
    period = parse_enum(PeriodType, period_type, "period_type")
    revenue, bookings = _headline(db, start, end)
    prev_revenue, prev_bookings = _headline(db, shift_back(start, period), shift_back(end, period))
    average = q(revenue / bookings) if bookings else ZERO
    prev_average = q(prev_revenue / prev_bookings) if prev_bookings else ZERO
    return {
        "current": {"revenue": float(revenue), "bookings": bookings, "average_revenue": float(average)},
        "previous": {"revenue": float(prev_revenue), "bookings": prev_bookings, "average_revenue": float(prev_average)},
        "revenue_growth": _growth(revenue, prev_revenue),
        "booking_growth": _growth(Decimal(bookings), Decimal(prev_bookings)),
        "average_revenue_growth": _growth(average, prev_average),
    }


def generate_revenue_report(db: Session, start: date, end: date, period_type: str | PeriodType) -> dict:
    """Full RevenueReportData for the inclusive check-in window ``[start, end]``."""
    period = parse_enum(PeriodType, period_type, "period_type")
    if end < start:
        raise ValidationError("end must not be before start", field="end")
    figures = collect_period(db, start, end)

    active = [
        b for b in bookings_in(db, start, end)
        if b.payment_status not in (PaymentStatus.CANCELLED.value, PaymentStatus.REFUNDED.value)
    ]
    bookable_rooms = db.query(Room).filter(Room.available_for_booking == True).count()  # noqa: E712
    occupied_rooms = len({b.room_id for b in active})
    total_revenue = figures.total_revenue

    return {
        "period": {"start": start.isoformat(), "end": end.isoformat(), "period_type": period.value},
        "total_revenue": float(total_revenue),
        "revenue_by_category": {c.value: float(a) for c, a in figures.categories.items()},
        "payment_methods": {m.value: float(a) for m, a in figures.payment_methods.items()},
        "booking_sources": {s.value: n for s, n in figures.sources.items()},
        "booking_stats": {
            "total_bookings": len(active),
            "paid_bookings": figures.paid_bookings,
            "occupied_rooms": occupied_rooms,
            "occupancy_rate": float(q(Decimal(occupied_rooms) / bookable_rooms * 100)) if bookable_rooms else 0.0,
            "average_stay": float(q(Decimal(sum(b.nights for b in active)) / len(active))) if active else 0.0,
            "average_revenue_per_booking": float(q(total_revenue / figures.paid_bookings)) if figures.paid_bookings else 0.0,
        },
        "outstanding": {
            "pending": float(figures.outstanding[PaymentStatus.PENDING]),
            "partially_paid": float(figures.outstanding[PaymentStatus.PARTIALLY_PAID]),
            "overdue": float(figures.outstanding[PaymentStatus.OVERDUE]),
            "total": float(figures.total_outstanding),
        },
        "tax_collected": {
            "gst": float(figures.gst),
            "service_tax": float(figures.service_tax),
            "other_taxes": float(figures.other_tax),
            "total": float(figures.tax_collected),
        },
        "trends": calculate_trends(db, start, end, period),
    }


def get_daily_revenue(db: Session, d: date) -> dict:
    start, end = period_bounds(d, PeriodType.DAILY)
    return generate_revenue_report(db, start, end, PeriodType.DAILY)


def get_monthly_revenue(db: Session, d: date) -> dict:
    start, end = period_bounds(d, PeriodType.MONTHLY)
    return generate_revenue_report(db, start, end, PeriodType.MONTHLY)


def get_yearly_revenue(db: Session, d: date) -> dict:
    start, end = period_bounds(d, PeriodType.YEARLY)
    return generate_revenue_report(db, start, end, PeriodType.YEARLY)


def daily_revenue_update(db: Session, today: date) -> list[RevenueReport]:
    """Recompute yesterday's daily report and the month/year reports covering it."""
    return refresh_reports_for(db, today - timedelta(days=1))
