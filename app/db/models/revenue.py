from __future__ import annotations

import datetime as dt
from decimal import Decimal
from sqlalchemy import String, Date, DateTime, Integer, Numeric, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from app.db.base import Base
from app.db.models.common import HasId, HasCreatedAt, HasUpdatedAt


def _money():
    return mapped_column(Numeric(18, 2), nullable=False, default=Decimal("0"))


def _count():
    return mapped_column(Integer, nullable=False, default=0)


class RevenueReport(Base, HasId, HasCreatedAt, HasUpdatedAt):
    __tablename__ = "revenue_report"
    __table_args__ = (UniqueConstraint("date", "period_type", name="uq_revenue_report_period"),)

    date: Mapped[dt.date] = mapped_column(Date, nullable=False, index=True)  # normalized period start
    period_type: Mapped[str] = mapped_column(String(16), nullable=False)  # daily|monthly|yearly

    accommodation_revenue: Mapped[Decimal] = _money()
    food_beverage_revenue: Mapped[Decimal] = _money()
    spa_revenue: Mapped[Decimal] = _money()
    transport_revenue: Mapped[Decimal] = _money()
    laundry_revenue: Mapped[Decimal] = _money()
    minibar_revenue: Mapped[Decimal] = _money()
    conference_revenue: Mapped[Decimal] = _money()
    other_revenue: Mapped[Decimal] = _money()
    total_revenue: Mapped[Decimal] = _money()

    cash_payments: Mapped[Decimal] = _money()
    card_payments: Mapped[Decimal] = _money()
    upi_payments: Mapped[Decimal] = _money()
    bank_transfer_payments: Mapped[Decimal] = _money()
    online_gateway_payments: Mapped[Decimal] = _money()
    cheque_payments: Mapped[Decimal] = _money()
    wallet_payments: Mapped[Decimal] = _money()

    website_bookings: Mapped[int] = _count()
    phone_bookings: Mapped[int] = _count()
    walk_in_bookings: Mapped[int] = _count()
    ota_bookings: Mapped[int] = _count()
    corporate_bookings: Mapped[int] = _count()
    agent_bookings: Mapped[int] = _count()
    referral_bookings: Mapped[int] = _count()
    total_bookings: Mapped[int] = _count()

    tax_collected: Mapped[Decimal] = _money()
    outstanding_amount: Mapped[Decimal] = _money()

    # Last full recompute from source; reversals issued before it are already reflected.
    recomputed_at: Mapped[dt.datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
