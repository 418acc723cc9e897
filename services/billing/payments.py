"""Guest payments and the booking payment-status machine.

Revenue is recognized in the ledger when a booking enters ``paid`` and
reversed with the same amounts when it leaves ``paid``. Both directions
enqueue a revenue-report outbox event in the same unit of work.
"""
from __future__ import annotations

import logging
from decimal import Decimal
from typing import Any

from sqlalchemy import func
from sqlalchemy.orm import Session

from app.core.audit import audit
from app.core.clock import as_utc, today, utcnow
from app.core.errors import NotFound, ValidationError
from app.core.money import ZERO, dec, positive, q
from app.db.models.auth import User
from app.db.models.billing import Booking, Payment, SplitPayment
from app.db.models.enums import PaymentMethod, PaymentStatus, RevenueCategory, parse_enum
from app.events.bus import publish
from services._crud import atomic
from services.billing.calculator import category_breakdown, get_booking
from services.invoicing.service import sync_invoice_with_booking
from services.ledger import service as ledger
from services.revenue.handlers import REFRESH_TOPIC, REVERSE_TOPIC

log = logging.getLogger("hotel.billing")

# Statuses set outside this module; payment activity never moves a booking out of them.
TERMINAL_STATUSES = frozenset({PaymentStatus.CANCELLED, PaymentStatus.REFUNDED})
UNSETTLED_STATUSES = frozenset({PaymentStatus.PENDING, PaymentStatus.PARTIALLY_PAID})


def total_paid(db: Session, booking_id: str) -> Decimal:
    value = db.query(func.coalesce(func.sum(Payment.amount), 0)).filter(Payment.booking_id == booking_id).scalar()
    return q(value)


def derive_status(total: Decimal, paid: Decimal) -> PaymentStatus:
    if total > 0 and paid >= total:
        return PaymentStatus.PAID
    if paid > 0:
        return PaymentStatus.PARTIALLY_PAID
    return PaymentStatus.PENDING


def _guest_user_id(db: Session, booking: Booking) -> str | None:
    if not booking.guest_email:
        return None
    user = db.query(User).filter(func.lower(User.email) == booking.guest_email.strip().lower()).first()
    return user.id if user else None


def _latest_method(booking: Booking) -> PaymentMethod:
    if booking.payments:
        return PaymentMethod(booking.payments[-1].payment_method)
    return PaymentMethod.CASH


def fold_adjustment(breakdown: dict[RevenueCategory, Decimal], delta: Decimal) -> dict[RevenueCategory, Decimal]:
    """Apply a modification delta to a category split.

    Accommodation absorbs the delta; a reduction larger than accommodation
    is taken from the largest remaining categories. The result sums to
    ``sum(breakdown) + delta`` as long as that is not negative.
    """
    folded = dict(breakdown)
    accommodation = folded.get(RevenueCategory.ACCOMMODATION, ZERO) + delta
    shortfall = -accommodation if accommodation < 0 else ZERO
    folded[RevenueCategory.ACCOMMODATION] = max(accommodation, ZERO)
    for category in sorted(folded, key=lambda c: folded[c], reverse=True):
        if shortfall <= 0:
            break
        taken = min(shortfall, folded[category])
        folded[category] -= taken
        shortfall -= taken
    return folded


def _recognized_split(booking: Booking) -> dict[RevenueCategory, Decimal]:
    return {RevenueCategory(c): Decimal(a) for c, a in (booking.recognized_breakdown or {}).items()}


def _recognized_total(booking: Booking) -> Decimal:
    return q(booking.recognized_revenue) - q(booking.recognized_adjustment or ZERO)


def _recognize(
    db: Session,
    booking: Booking,
    processed_by: str,
    method: PaymentMethod | None,
    adjustment: Decimal = ZERO,
) -> None:
    total = q(booking.total_amount)
    booking.paid_at = utcnow()
    if total <= 0:
        return
    if total + adjustment < 0:
        log.warning("booking %s drops adjustment %s larger than its total %s", booking.id, adjustment, total)
        adjustment = -total
    breakdown = category_breakdown(booking)
    guest_user_id = _guest_user_id(db, booking)
    amount = total + adjustment
    if amount > 0:
        ledger.process_payment_revenue(
            db,
            booking.id,
            amount,
            fold_adjustment(breakdown, adjustment),
            method or _latest_method(booking),
            processed_by,
            guest_user_id=guest_user_id,
        )
    booking.recognized_revenue = amount
    booking.recognized_breakdown = {c.value: str(a) for c, a in breakdown.items()}
    booking.recognized_adjustment = adjustment
    booking.recognized_guest_user_id = guest_user_id
    publish(db, REFRESH_TOPIC, {"booking_id": booking.id, "anchor_date": booking.check_in.isoformat()})


def _reverse(db: Session, booking: Booking, processed_by: str) -> Decimal:
    """Undo the recognized amounts; returns the adjustment that was carried."""
    booking.paid_at = None
    if booking.recognized_revenue is None:
        return ZERO
    amount = q(booking.recognized_revenue)
    adjustment = q(booking.recognized_adjustment or ZERO)
    breakdown = _recognized_split(booking)
    if amount > 0:
        ledger.reverse_payment_revenue(
            db,
            booking.id,
            amount,
            fold_adjustment(breakdown, adjustment),
            processed_by,
            guest_user_id=booking.recognized_guest_user_id,
        )
    # Reports are built from booking totals, so they get the unadjusted split.
    publish(
        db,
        REVERSE_TOPIC,
        {
            "booking_id": booking.id,
            "anchor_date": booking.check_in.isoformat(),
            "source": booking.source,
            "reversed_at": utcnow().isoformat(),
            "categories": {c.value: str(a) for c, a in breakdown.items()},
        },
    )
    booking.recognized_revenue = None
    booking.recognized_breakdown = None
    booking.recognized_adjustment = None
    booking.recognized_guest_user_id = None
    return adjustment


def _apply_status(
    db: Session,
    booking: Booking,
    new_status: PaymentStatus,
    *,
    processed_by: str,
    reason: str,
    payment_method: PaymentMethod | None = None,
) -> None:
    old_status = PaymentStatus(booking.payment_status)
    was_paid = old_status == PaymentStatus.PAID
    now_paid = new_status == PaymentStatus.PAID

    if was_paid and not now_paid:
        _reverse(db, booking, processed_by)
    elif now_paid and not was_paid:
        _recognize(db, booking, processed_by, payment_method)
    elif now_paid and booking.recognized_revenue is not None and _recognized_total(booking) != q(booking.total_amount):
        # Bill changed while fully paid: swap the recognized amounts for the new ones.
        adjustment = _reverse(db, booking, processed_by)
        _recognize(db, booking, processed_by, payment_method, adjustment)

    if old_status != new_status:
        booking.payment_status = new_status.value
        log.info("booking %s payment status %s -> %s (%s)", booking.id, old_status.value, new_status.value, reason)
    db.flush()
    sync_invoice_with_booking(db, booking, actor=processed_by)


def sync_payment_status(
    db: Session,
    booking_id: str,
    *,
    processed_by: str = "system",
    reason: str = "",
    payment_method: PaymentMethod | None = None,
) -> Booking:
    """Re-derive the payment status from payments on file and react to the transition."""
    with atomic(db):
        booking = get_booking(db, booking_id, for_update=True)
        current = PaymentStatus(booking.payment_status)
        if current in TERMINAL_STATUSES:
            return booking
        db.refresh(booking, attribute_names=["payments", "bill_items"])
        new_status = derive_status(q(booking.total_amount), total_paid(db, booking_id))
        if current == PaymentStatus.OVERDUE and new_status in UNSETTLED_STATUSES:
            new_status = PaymentStatus.OVERDUE
        _apply_status(db, booking, new_status, processed_by=processed_by, reason=reason, payment_method=payment_method)
    return booking


def set_payment_status(db: Session, booking_id: str, status: str, *, processed_by: str, reason: str) -> Booking:
    """Externally driven status change (cancellation, refund, manual correction)."""
    new_status = parse_enum(PaymentStatus, status, "payment_status")
    with atomic(db):
        booking = get_booking(db, booking_id, for_update=True)
        old = booking.payment_status
        _apply_status(db, booking, new_status, processed_by=processed_by, reason=reason)
        audit(
            db,
            actor=processed_by,
            action="booking.payment_status",
            entity_type="booking",
            entity_id=booking_id,
            payload={"from": old, "to": new_status.value, "reason": reason},
        )
    return booking


def process_payment(
    db: Session,
    booking_id: str,
    amount: Any,
    payment_method: str,
    *,
    reference: str | None = None,
    received_by: str | None = None,
    notes: str | None = None,
    transaction_id: str | None = None,
) -> Payment:
    value = positive(amount)
    method = parse_enum(PaymentMethod, payment_method, "payment_method")
    with atomic(db):
        booking = get_booking(db, booking_id, for_update=True)
        if PaymentStatus(booking.payment_status) in TERMINAL_STATUSES:
            raise ValidationError(f"booking {booking_id} is {booking.payment_status}", booking_id=booking_id)
        payment = Payment(
            amount=value,
            payment_method=method.value,
            payment_reference=reference,
            transaction_id=transaction_id,
            received_by=received_by,
            notes=notes,
            payment_date=utcnow(),
        )
        booking.payments.append(payment)
        db.flush()
        sync_payment_status(
            db,
            booking_id,
            processed_by=received_by or "system",
            reason="payment received",
            payment_method=method,
        )
    log.info("payment %s of %s via %s for booking %s", payment.id, value, method.value, booking_id)
    return payment


def delete_payment(db: Session, payment_id: str, *, reason: str, processed_by: str) -> str:
    with atomic(db):
        payment = db.get(Payment, payment_id)
        if not payment:
            raise NotFound(f"payment {payment_id} not found", payment_id=payment_id)
        booking_id = payment.booking_id
        audit(
            db,
            actor=processed_by,
            action="payment.deleted",
            entity_type="payment",
            entity_id=payment_id,
            payload={"booking_id": booking_id, "amount": payment.amount, "reason": reason},
        )
        db.delete(payment)
        db.flush()
        sync_payment_status(db, booking_id, processed_by=processed_by, reason=reason or "payment deleted")
    return booking_id


def modify_payment(
    db: Session,
    *,
    new_amount: Any,
    reason: str,
    processed_by: str,
    payment_id: str | None = None,
    booking_id: str | None = None,
    original_amount: Any = None,
) -> dict:
    """Change a collected amount.

    Addressed by ``payment_id`` the payment row is updated; addressed by
    ``booking_id`` only the ledger adjustment is recorded. The signed delta
    is posted while the booking stays paid; when the change moves the
    booking in or out of ``paid``, the recognition or reversal posting
    covers it instead.
    """
    new = positive(new_amount, "new_amount")
    with atomic(db):
        if payment_id:
            payment = db.get(Payment, payment_id)
            if not payment:
                raise NotFound(f"payment {payment_id} not found", payment_id=payment_id)
            booking_id = payment.booking_id
            original = q(payment.amount)
            payment.amount = new
            db.flush()
        elif booking_id:
            if original_amount is None:
                raise ValidationError("original_amount is required when modifying by booking", field="original_amount")
            original = q(original_amount)
        else:
            raise ValidationError("payment_id or booking_id is required", field="payment_id")

        booking = get_booking(db, booking_id, for_update=True)
        was_paid = booking.payment_status == PaymentStatus.PAID.value
        stays_paid = derive_status(q(booking.total_amount), total_paid(db, booking_id)) == PaymentStatus.PAID
        postings = []
        if was_paid and stays_paid and booking.recognized_revenue is not None:
            delta = new - original
            recognized = q(booking.recognized_revenue) + delta
            if recognized < 0:
                raise ValidationError(
                    f"modification would take recognized revenue for booking {booking_id} below zero",
                    field="new_amount",
                )
            postings = ledger.process_payment_modification(
                db,
                booking_id,
                original,
                new,
                reason,
                processed_by,
                guest_user_id=booking.recognized_guest_user_id,
            )
            booking.recognized_revenue = recognized
            booking.recognized_adjustment = q(booking.recognized_adjustment or ZERO) + delta
            db.flush()
        else:
            audit(
                db,
                actor=processed_by,
                action="payment.modified",
                entity_type="booking",
                entity_id=booking_id,
                payload={"payment_id": payment_id, "original_amount": original, "new_amount": new, "reason": reason},
            )
        sync_payment_status(db, booking_id, processed_by=processed_by, reason=reason or "payment modified")
    return {
        "booking_id": booking_id,
        "payment_id": payment_id,
        "original_amount": float(original),
        "new_amount": float(new),
        "difference": float(new - original),
        "transaction_ids": [t.id for t in postings],
        "payment_status": booking.payment_status,
    }


def update_overdue_payments(db: Session, *, as_of=None) -> int:
    """Mark unsettled bookings whose check-out has passed as overdue."""
    cutoff = as_of or today()
    with atomic(db):
        rows = (
            db.query(Booking)
            .filter(Booking.payment_status.in_([s.value for s in UNSETTLED_STATUSES]))
            .filter(Booking.check_out < cutoff)
            .with_for_update()
            .all()
        )
        for booking in rows:
            _apply_status(db, booking, PaymentStatus.OVERDUE, processed_by="system", reason="check-out passed")
    if rows:
        log.info("marked %d bookings overdue", len(rows))
    return len(rows)


def setup_split_payments(db: Session, booking_id: str, splits: list[dict]) -> list[SplitPayment]:
    if not splits:
        raise ValidationError("at least one split is required", field="splits")
    parsed = []
    for i, s in enumerate(splits):
        parsed.append(
            (
                positive(s.get("amount"), f"splits[{i}].amount"),
                parse_enum(PaymentMethod, s.get("payment_method"), f"splits[{i}].payment_method"),
                s.get("description"),
            )
        )
    with atomic(db):
        booking = get_booking(db, booking_id, for_update=True)
        total = q(booking.total_amount)
        planned = sum((amount for amount, _, _ in parsed), ZERO)
        if abs(planned - total) > Decimal("0.01"):
            raise ValidationError(f"split amounts sum to {planned}, booking total is {total}", field="splits")
        booking.split_payments.clear()
        db.flush()
        for amount, method, description in parsed:
            booking.split_payments.append(
                SplitPayment(amount=amount, payment_method=method.value, description=description, status="pending")
            )
        db.flush()
    return list(booking.split_payments)


def get_split_payments(db: Session, booking_id: str) -> list[SplitPayment]:
    booking = get_booking(db, booking_id)
    return list(booking.split_payments)


def payment_out(p: Payment) -> dict:
    return {
        "id": p.id,
        "booking_id": p.booking_id,
        "amount": float(p.amount),
        "payment_method": p.payment_method,
        "payment_reference": p.payment_reference,
        "transaction_id": p.transaction_id,
        "received_by": p.received_by,
        "notes": p.notes,
        "payment_date": as_utc(p.payment_date).isoformat(),
    }


def get_payment_summary(db: Session, booking_id: str) -> dict:
    booking = get_booking(db, booking_id)
    total = q(booking.total_amount)
    paid = total_paid(db, booking_id)
    payments = sorted(booking.payments, key=lambda p: as_utc(p.payment_date), reverse=True)
    return {
        "booking_id": booking_id,
        "total_amount": float(total),
        "paid_amount": float(paid),
        "remaining_amount": float(max(total - paid, ZERO)),
        "payment_status": booking.payment_status,
        "payments": [payment_out(p) for p in payments],
    }


def booking_out(b: Booking) -> dict:
    return {
        "id": b.id,
        "guest_name": b.guest_name,
        "guest_email": b.guest_email,
        "check_in": b.check_in.isoformat(),
        "check_out": b.check_out.isoformat(),
        "nights": b.nights,
        "source": b.source,
        "payment_status": b.payment_status,
        "base_amount": float(dec(b.base_amount)),
        "discount_amount": float(dec(b.discount_amount)),
        "total_tax_amount": float(dec(b.total_tax_amount)),
        "total_amount": float(dec(b.total_amount)),
        "paid_at": as_utc(b.paid_at).isoformat() if b.paid_at else None,
    }
