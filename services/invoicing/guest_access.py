"""Token-gated, read-only billing view for guests.

Tokens are 32 random bytes rendered as 64 hex characters. Reads fail closed:
an unknown, revoked or expired token raises ``Unauthorized``.
"""
from __future__ import annotations

import logging
import os
import secrets
from datetime import timedelta

from sqlalchemy.orm import Session

from app.core.clock import as_utc, utcnow
from app.core.errors import NotFound, Unauthorized
from app.core.money import ZERO, q
from app.db.models.invoicing import GuestBillingView
from services._crud import atomic
from services.billing.calculator import calculate_bill, get_booking
from services.billing.payments import payment_out, total_paid
from services.tax.config import get_hotel_info

log = logging.getLogger("hotel.invoicing")

GUEST_BILLING_TTL_DAYS = int(os.getenv("GUEST_BILLING_TTL_DAYS", "30"))


def create_guest_billing_access(db: Session, booking_id: str) -> GuestBillingView:
    with atomic(db):
        get_booking(db, booking_id)
        view = GuestBillingView(
            booking_id=booking_id,
            access_token=secrets.token_hex(32),
            expires_at=utcnow() + timedelta(days=GUEST_BILLING_TTL_DAYS),
            is_active=True,
            view_count=0,
        )
        db.add(view)
        db.flush()
    log.info("guest billing access created for booking %s (expires %s)", booking_id, view.expires_at)
    return view


def _valid_view(db: Session, token: str) -> GuestBillingView:
    view = (
        db.query(GuestBillingView)
        .filter(GuestBillingView.access_token == token)
        .with_for_update()
        .first()
    )
    if view is None or not view.is_active:
        raise Unauthorized("invalid or revoked billing link")
    if as_utc(view.expires_at) <= utcnow():
        raise Unauthorized("billing link has expired")
    return view


def get_guest_billing_info(db: Session, token: str) -> dict:
    with atomic(db):
        view = _valid_view(db, token or "")
        view.view_count = (view.view_count or 0) + 1
        view.last_viewed = utcnow()
        db.flush()

        booking = get_booking(db, view.booking_id)
        bill = calculate_bill(db, booking.id)
        paid = total_paid(db, booking.id)
        hotel = get_hotel_info(db)
        snapshot = {
            "hotel": {
                "name": hotel.name if hotel else None,
                "phone": hotel.primary_phone if hotel else None,
                "email": hotel.primary_email if hotel else None,
            },
            "booking": {
                "id": booking.id,
                "guest_name": booking.guest_name,
                "check_in": booking.check_in.isoformat(),
                "check_out": booking.check_out.isoformat(),
                "nights": booking.nights,
                "room_number": booking.room.room_number if booking.room else None,
                "payment_status": booking.payment_status,
            },
            "bill": bill.to_dict(),
            "payments": [payment_out(p) for p in booking.payments],
            "paid_amount": float(paid),
            "balance_due": float(max(q(bill.total_amount) - paid, ZERO)),
            "view_count": view.view_count,
            "expires_at": as_utc(view.expires_at).isoformat(),
        }
    return snapshot


def revoke_guest_billing_access(db: Session, token: str) -> None:
    with atomic(db):
        view = db.query(GuestBillingView).filter(GuestBillingView.access_token == token).first()
        if view is None:
            raise NotFound("billing link not found")
        view.is_active = False
        db.flush()
