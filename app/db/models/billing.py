from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from sqlalchemy import String, DateTime, Date, Integer, Numeric, ForeignKey, Boolean, Text, Index, JSON
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.db.base import Base
from app.db.models.common import HasId, HasCreatedAt, HasUpdatedAt


class Booking(Base, HasId, HasCreatedAt, HasUpdatedAt):
    __tablename__ = "booking"

    guest_name: Mapped[str] = mapped_column(String(256), nullable=False)
    guest_email: Mapped[str | None] = mapped_column(String(256), nullable=True, index=True)
    guest_phone: Mapped[str | None] = mapped_column(String(32), nullable=True)
    room_id: Mapped[str] = mapped_column(ForeignKey("room.id"), nullable=False, index=True)
    check_in: Mapped[date] = mapped_column(Date, nullable=False, index=True)
    check_out: Mapped[date] = mapped_column(Date, nullable=False, index=True)
    nights: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    adults: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    children: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    source: Mapped[str] = mapped_column(String(24), nullable=False, default="website")  # BookingSource
    status: Mapped[str] = mapped_column(String(24), nullable=False, default="confirmed")
    payment_status: Mapped[str] = mapped_column(String(24), nullable=False, default="pending", index=True)
    paid_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    # Inputs owned by the reservation flow. room_base_amount wins over price * nights.
    room_base_amount: Mapped[Decimal | None] = mapped_column(Numeric(18, 2), nullable=True)
    room_discount_amount: Mapped[Decimal] = mapped_column(Numeric(18, 2), nullable=False, default=Decimal("0"))

    # Written only by services.billing.calculator.recalculate_booking_total
    base_amount: Mapped[Decimal] = mapped_column(Numeric(18, 2), nullable=False, default=Decimal("0"))
    discount_amount: Mapped[Decimal] = mapped_column(Numeric(18, 2), nullable=False, default=Decimal("0"))
    gst_amount: Mapped[Decimal] = mapped_column(Numeric(18, 2), nullable=False, default=Decimal("0"))
    service_tax_amount: Mapped[Decimal] = mapped_column(Numeric(18, 2), nullable=False, default=Decimal("0"))
    other_tax_amount: Mapped[Decimal] = mapped_column(Numeric(18, 2), nullable=False, default=Decimal("0"))
    total_tax_amount: Mapped[Decimal] = mapped_column(Numeric(18, 2), nullable=False, default=Decimal("0"))
    total_amount: Mapped[Decimal] = mapped_column(Numeric(18, 2), nullable=False, default=Decimal("0"))

    # Revenue recognized on entering paid; reversal mirrors exactly these amounts.
    # recognized_revenue is what the ledger holds for the booking, i.e. the
    # split total in recognized_breakdown plus recognized_adjustment.
    recognized_revenue: Mapped[Decimal | None] = mapped_column(Numeric(18, 2), nullable=True)
    recognized_breakdown: Mapped[dict | None] = mapped_column(JSON, nullable=True)
    recognized_adjustment: Mapped[Decimal | None] = mapped_column(Numeric(18, 2), nullable=True)
    recognized_guest_user_id: Mapped[str | None] = mapped_column(String(36), nullable=True)

    room = relationship("Room")
    bill_items = relationship("BillItem", back_populates="booking", order_by="BillItem.created_at", cascade="all, delete-orphan")
    payments = relationship("Payment", back_populates="booking", order_by="Payment.payment_date", cascade="all, delete-orphan")
    split_payments = relationship("SplitPayment", back_populates="booking", cascade="all, delete-orphan")


class BillItem(Base, HasId, HasCreatedAt, HasUpdatedAt):
    __tablename__ = "bill_item"

    booking_id: Mapped[str] = mapped_column(ForeignKey("booking.id"), nullable=False, index=True)
    service_id: Mapped[str | None] = mapped_column(ForeignKey("hotel_service.id"), nullable=True, index=True)
    item_name: Mapped[str] = mapped_column(String(256), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    quantity: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    unit_price: Mapped[Decimal] = mapped_column(Numeric(18, 2), nullable=False)
    discount: Mapped[Decimal] = mapped_column(Numeric(18, 2), nullable=False, default=Decimal("0"))
    # Tagged items (gst_percentage set) keep their own rate; untagged ones follow the hotel config.
    gst_applicable: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    gst_percentage: Mapped[Decimal | None] = mapped_column(Numeric(5, 2), nullable=True)
    total_price: Mapped[Decimal] = mapped_column(Numeric(18, 2), nullable=False, default=Decimal("0"))
    tax_rate: Mapped[Decimal] = mapped_column(Numeric(6, 2), nullable=False, default=Decimal("0"))
    tax_amount: Mapped[Decimal] = mapped_column(Numeric(18, 2), nullable=False, default=Decimal("0"))
    final_amount: Mapped[Decimal] = mapped_column(Numeric(18, 2), nullable=False, default=Decimal("0"))
    added_by: Mapped[str | None] = mapped_column(String(128), nullable=True)

    booking = relationship("Booking", back_populates="bill_items")
    service = relationship("HotelService")


class Payment(Base, HasId, HasCreatedAt):
    __tablename__ = "payment"

    booking_id: Mapped[str] = mapped_column(ForeignKey("booking.id"), nullable=False, index=True)
    amount: Mapped[Decimal] = mapped_column(Numeric(18, 2), nullable=False)
    payment_method: Mapped[str] = mapped_column(String(24), nullable=False)  # PaymentMethod
    payment_reference: Mapped[str | None] = mapped_column(String(128), nullable=True)
    transaction_id: Mapped[str | None] = mapped_column(String(128), nullable=True)
    received_by: Mapped[str | None] = mapped_column(String(128), nullable=True)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    payment_date: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, index=True)

    booking = relationship("Booking", back_populates="payments")


class SplitPayment(Base, HasId, HasCreatedAt):
    __tablename__ = "split_payment"

    booking_id: Mapped[str] = mapped_column(ForeignKey("booking.id"), nullable=False, index=True)
    amount: Mapped[Decimal] = mapped_column(Numeric(18, 2), nullable=False)
    payment_method: Mapped[str] = mapped_column(String(24), nullable=False)
    description: Mapped[str | None] = mapped_column(String(256), nullable=True)
    status: Mapped[str] = mapped_column(String(24), nullable=False, default="pending")

    booking = relationship("Booking", back_populates="split_payments")


Index("ix_booking_status_checkin", Booking.payment_status, Booking.check_in)
