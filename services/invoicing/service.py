from __future__ import annotations

import logging
import os
from datetime import date, datetime, time, timezone
from decimal import Decimal

from sqlalchemy import func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.core.audit import audit
from app.core.clock import as_utc, utcnow
from app.core.errors import Conflict, NotFound, ValidationError
from app.core.money import ZERO, dec, percent_of, q
from app.db.models.billing import BillItem, Booking
from app.db.models.enums import InvoiceStatus, PaymentStatus, ServiceCategory, exhaustive, parse_enum
from app.db.models.invoicing import Invoice, InvoiceItem
from services._crud import atomic
from services.billing.calculator import compute_bill, get_booking
from services.invoicing.numbering import DEFAULT_INVOICE_PREFIX, next_invoice_number
from services.tax.calculator import TaxConfig
from services.tax.config import get_hotel_info

log = logging.getLogger("hotel.invoicing")

INVOICE_NUMBER_MAX_RETRIES = int(os.getenv("INVOICE_NUMBER_MAX_RETRIES", "5"))
DEFAULT_TERMS = "Payment due upon receipt"

DEFAULT_HSN = "9963"

HSN_FOR_SERVICE = exhaustive(
    ServiceCategory,
    {
        ServiceCategory.ACCOMMODATION: "9963",
        ServiceCategory.FOOD_BEVERAGE: "9963",
        ServiceCategory.SPA: "9504",
        ServiceCategory.TRANSPORT: "9964",
        ServiceCategory.LAUNDRY: "9601",
        ServiceCategory.MINIBAR: "9963",
        ServiceCategory.CONFERENCE: "9992",
        ServiceCategory.OTHER: DEFAULT_HSN,
    },
)

# Free-text items without a catalog service are classified by keyword.
HSN_KEYWORDS = (
    ("accommodation", "9963"),
    ("room", "9963"),
    ("food", "9963"),
    ("beverage", "9963"),
    ("minibar", "9963"),
    ("spa", "9504"),
    ("laundry", "9601"),
    ("transport", "9964"),
    ("taxi", "9964"),
    ("conference", "9992"),
)

ALLOWED_TRANSITIONS: dict[InvoiceStatus, frozenset[InvoiceStatus]] = exhaustive(
    InvoiceStatus,
    {
        InvoiceStatus.PENDING: frozenset(
            {InvoiceStatus.SENT, InvoiceStatus.PARTIALLY_PAID, InvoiceStatus.PAID, InvoiceStatus.OVERDUE, InvoiceStatus.CANCELLED}
        ),
        InvoiceStatus.SENT: frozenset(
            {InvoiceStatus.PARTIALLY_PAID, InvoiceStatus.PAID, InvoiceStatus.OVERDUE, InvoiceStatus.CANCELLED}
        ),
        InvoiceStatus.PARTIALLY_PAID: frozenset({InvoiceStatus.PAID, InvoiceStatus.OVERDUE, InvoiceStatus.CANCELLED}),
        InvoiceStatus.OVERDUE: frozenset({InvoiceStatus.PARTIALLY_PAID, InvoiceStatus.PAID, InvoiceStatus.CANCELLED}),
        InvoiceStatus.PAID: frozenset({InvoiceStatus.REFUNDED}),
        InvoiceStatus.CANCELLED: frozenset(),
        InvoiceStatus.REFUNDED: frozenset(),
    },
)

# Only an administrator moves an invoice out of these.
CLOSED_INVOICE_STATUSES = frozenset({InvoiceStatus.CANCELLED, InvoiceStatus.REFUNDED})

INVOICE_STATUS_FOR_PAYMENT = exhaustive(
    PaymentStatus,
    {
        PaymentStatus.PENDING: InvoiceStatus.PENDING,
        PaymentStatus.PARTIALLY_PAID: InvoiceStatus.PARTIALLY_PAID,
        PaymentStatus.PAID: InvoiceStatus.PAID,
        PaymentStatus.OVERDUE: InvoiceStatus.OVERDUE,
        PaymentStatus.CANCELLED: InvoiceStatus.CANCELLED,
        PaymentStatus.REFUNDED: InvoiceStatus.REFUNDED,
    },
)


def hsn_code_for(item_name: str, category: ServiceCategory | None = None) -> str:
    if category is not None:
        return HSN_FOR_SERVICE[category]
    lowered = (item_name or "").lower()
    for keyword, code in HSN_KEYWORDS:
        if keyword in lowered:
            return code
    return DEFAULT_HSN


def _state_code(gstin: str | None) -> str | None:
    if not gstin:
        return None
    head = gstin.strip()[:2]
    return head if head.isdigit() else None


def is_inter_state(hotel_gstin: str | None, guest_gstin: str | None) -> bool:
    hotel_state = _state_code(hotel_gstin)
    guest_state = _state_code(guest_gstin)
    return bool(hotel_state and guest_state and hotel_state != guest_state)


def split_gst(gst: Decimal, inter_state: bool) -> tuple[Decimal, Decimal, Decimal]:
    """(cgst, sgst, igst); CGST takes the rounded half and SGST the rest."""
    gst = q(gst)
    if inter_state:
        return ZERO, ZERO, gst
    cgst = q(gst / 2)
    return cgst, gst - cgst, ZERO


def _line_gst_rate(item: BillItem, config: TaxConfig) -> Decimal:
    if item.gst_percentage is not None:
        return dec(item.gst_percentage) if item.gst_applicable else Decimal("0")
    if not item.gst_applicable or not config.enabled:
        return Decimal("0")
    return config.gst_percentage


def _line(
    *,
    line_number: int,
    item_name: str,
    hsn: str,
    quantity: int,
    unit_price: Decimal,
    total_price: Decimal,
    discount: Decimal,
    rate: Decimal,
    inter_state: bool,
    service_id: str | None = None,
    description: str | None = None,
) -> InvoiceItem:
    taxable = total_price - discount
    gst = percent_of(taxable, rate)
    cgst, sgst, igst = split_gst(gst, inter_state)
    return InvoiceItem(
        line_number=line_number,
        service_id=service_id,
        item_name=item_name,
        description=description,
        hsn_code=hsn,
        quantity=quantity,
        unit_price=unit_price,
        total_price=total_price,
        discount=discount,
        taxable_amount=taxable,
        tax_rate=rate,
        cgst_amount=cgst,
        sgst_amount=sgst,
        igst_amount=igst,
        tax_amount=gst,
        final_amount=taxable + gst,
    )


def _build_lines(booking: Booking, bill, config: TaxConfig, inter_state: bool) -> list[InvoiceItem]:
    room_type = booking.room.room_type.name if booking.room and booking.room.room_type else "Room"
    room_number = booking.room.room_number if booking.room else ""
    nights = max(booking.nights, 1)
    lines = [
        _line(
            line_number=1,
            item_name=f"{room_type} - Room {room_number}".strip(),
            description=f"Accommodation for {booking.nights} night(s)",
            hsn=HSN_FOR_SERVICE[ServiceCategory.ACCOMMODATION],
            quantity=nights,
            unit_price=q(bill.room_base_amount / nights),
            total_price=bill.room_base_amount,
            discount=bill.room_discount_amount,
            rate=config.gst_percentage if config.enabled else Decimal("0"),
            inter_state=inter_state,
        )
    ]
    for n, item in enumerate(booking.bill_items, start=2):
        category = ServiceCategory(item.service.category) if item.service else None
        lines.append(
            _line(
                line_number=n,
                item_name=item.item_name,
                description=item.description,
                hsn=hsn_code_for(item.item_name, category),
                quantity=item.quantity,
                unit_price=q(item.unit_price),
                total_price=q(item.total_price),
                discount=q(item.discount),
                rate=_line_gst_rate(item, config),
                inter_state=inter_state,
                service_id=item.service_id,
            )
        )
    return lines


def _invoice_for_booking(db: Session, booking_id: str) -> Invoice | None:
    return db.query(Invoice).filter(Invoice.booking_id == booking_id).first()


def generate_gst_invoice(
    db: Session,
    booking_id: str,
    *,
    due_date: date | None = None,
    notes: str | None = None,
    terms: str | None = None,
    guest_gst_number: str | None = None,
    actor: str = "system",
) -> Invoice:
    """Create the booking's invoice, or return the one it already has."""
    with atomic(db):
        existing = _invoice_for_booking(db, booking_id)
        if existing:
            return existing

        booking = get_booking(db, booking_id)
        hotel = get_hotel_info(db)
        config = TaxConfig.from_hotel(hotel)
        bill = compute_bill(booking, config)
        inter_state = is_inter_state(hotel.gst_number if hotel else None, guest_gst_number)
        cgst, sgst, igst = split_gst(bill.gst_amount, inter_state)
        prefix = (hotel.invoice_prefix if hotel and hotel.invoice_prefix else DEFAULT_INVOICE_PREFIX)
        issued = utcnow()

        for attempt in range(1, INVOICE_NUMBER_MAX_RETRIES + 1):
            number = next_invoice_number(db, prefix, issued.date())
            invoice = Invoice(
                invoice_number=number,
                booking_id=booking.id,
                guest_name=booking.guest_name,
                guest_email=booking.guest_email,
                guest_phone=booking.guest_phone,
                guest_gst_number=guest_gst_number,
                check_in=booking.check_in,
                check_out=booking.check_out,
                nights=booking.nights,
                adults=booking.adults,
                children=booking.children,
                room_type_name=booking.room.room_type.name if booking.room and booking.room.room_type else None,
                room_number=booking.room.room_number if booking.room else None,
                base_amount=bill.base_amount,
                discount_amount=bill.discount_amount,
                gst_amount=bill.gst_amount,
                service_tax_amount=bill.service_tax_amount,
                other_tax_amount=bill.other_tax_amount,
                total_tax_amount=bill.total_tax_amount,
                total_amount=bill.total_amount,
                cgst_amount=cgst,
                sgst_amount=sgst,
                igst_amount=igst,
                is_inter_state=inter_state,
                status=INVOICE_STATUS_FOR_PAYMENT[PaymentStatus(booking.payment_status)].value,
                issued_date=issued,
                due_date=due_date or booking.check_in,
                paid_date=issued if booking.payment_status == PaymentStatus.PAID.value else None,
                notes=notes,
                terms=terms or DEFAULT_TERMS,
                items=_build_lines(booking, bill, config, inter_state),
            )
            try:
                with db.begin_nested():
                    db.add(invoice)
                    db.flush()
            except IntegrityError:
                # Lost a race: either another invoice took this number or this booking got its invoice.
                existing = _invoice_for_booking(db, booking_id)
                if existing:
                    return existing
                log.warning("invoice number %s taken (attempt %d/%d)", number, attempt, INVOICE_NUMBER_MAX_RETRIES)
                continue
            audit(
                db,
                actor=actor,
                action="invoice.created",
                entity_type="invoice",
                entity_id=invoice.id,
                payload={"invoice_number": number, "booking_id": booking_id, "total_amount": bill.total_amount},
            )
            log.info("issued invoice %s for booking %s total=%s", number, booking_id, bill.total_amount)
            return invoice

    raise Conflict(f"could not allocate an invoice number after {INVOICE_NUMBER_MAX_RETRIES} attempts", booking_id=booking_id)


def get_invoice(db: Session, invoice_id: str) -> Invoice:
    invoice = db.get(Invoice, invoice_id)
    if not invoice:
        raise NotFound(f"invoice {invoice_id} not found", invoice_id=invoice_id)
    return invoice


def _apply_invoice_status(db: Session, invoice: Invoice, new_status: InvoiceStatus, *, actor: str, override: bool) -> None:
    old = InvoiceStatus(invoice.status)
    invoice.status = new_status.value
    if new_status == InvoiceStatus.PAID:
        invoice.paid_date = utcnow()
    elif old == InvoiceStatus.PAID:
        invoice.paid_date = None
    db.flush()
    audit(
        db,
        actor=actor,
        action="invoice.status",
        entity_type="invoice",
        entity_id=invoice.id,
        payload={"from": old.value, "to": new_status.value, "override": override},
    )


def update_invoice_status(
    db: Session,
    invoice_id: str,
    status: str,
    *,
    actor: str,
    override: bool = False,
) -> Invoice:
    new_status = parse_enum(InvoiceStatus, status, "status")
    with atomic(db):
        invoice = get_invoice(db, invoice_id)
        old = InvoiceStatus(invoice.status)
        if old == new_status:
            return invoice
        if new_status not in ALLOWED_TRANSITIONS[old] and not override:
            raise ValidationError(
                f"invoice status cannot move from {old.value} to {new_status.value} without override",
                field="status",
            )
        _apply_invoice_status(db, invoice, new_status, actor=actor, override=override)
    return invoice


def sync_invoice_with_booking(db: Session, booking: Booking, *, actor: str = "system") -> Invoice | None:
    """Carry a booking payment-status change onto its invoice, if it has one."""
    invoice = _invoice_for_booking(db, booking.id)
    if invoice is None:
        return None
    current = InvoiceStatus(invoice.status)
    target = INVOICE_STATUS_FOR_PAYMENT[PaymentStatus(booking.payment_status)]
    if current == target:
        return invoice
    if current == InvoiceStatus.SENT and target == InvoiceStatus.PENDING:
        # Sent and still unpaid
        return invoice
    if target in ALLOWED_TRANSITIONS[current]:
        _apply_invoice_status(db, invoice, target, actor=actor, override=False)
    elif current in CLOSED_INVOICE_STATUSES:
        log.warning(
            "invoice %s stays %s although booking %s is now %s",
            invoice.invoice_number, current.value, booking.id, booking.payment_status,
        )
    else:
        # The booking moved back (payment removed or reduced); the invoice follows as a system correction.
        _apply_invoice_status(db, invoice, target, actor=actor, override=True)
    return invoice


def get_invoices(
    db: Session,
    *,
    status: str | None = None,
    date_from: date | None = None,
    date_to: date | None = None,
    guest_name: str | None = None,
    limit: int = 50,
    offset: int = 0,
) -> tuple[list[Invoice], int]:
    qy = db.query(Invoice)
    if status:
        qy = qy.filter(Invoice.status == parse_enum(InvoiceStatus, status, "status").value)
    if date_from:
        qy = qy.filter(Invoice.issued_date >= datetime.combine(date_from, time.min, tzinfo=timezone.utc))
    if date_to:
        qy = qy.filter(Invoice.issued_date <= datetime.combine(date_to, time.max, tzinfo=timezone.utc))
    if guest_name:
        qy = qy.filter(func.lower(Invoice.guest_name).like(f"%{guest_name.lower()}%"))
    total = qy.count()
    rows = qy.order_by(Invoice.issued_date.desc()).offset(offset).limit(limit).all()
    return rows, total


def invoice_summary(inv: Invoice) -> dict:
    return {
        "id": inv.id,
        "invoice_number": inv.invoice_number,
        "booking_id": inv.booking_id,
        "guest_name": inv.guest_name,
        "status": inv.status,
        "total_amount": float(inv.total_amount),
        "issued_date": as_utc(inv.issued_date).isoformat(),
        "due_date": inv.due_date.isoformat(),
        "paid_date": as_utc(inv.paid_date).isoformat() if inv.paid_date else None,
    }


def _item_out(it: InvoiceItem) -> dict:
    return {
        "line_number": it.line_number,
        "item_name": it.item_name,
        "description": it.description,
        "hsn_code": it.hsn_code,
        "quantity": it.quantity,
        "unit_price": float(it.unit_price),
        "total_price": float(it.total_price),
        "discount": float(it.discount),
        "taxable_amount": float(it.taxable_amount),
        "tax_rate": float(it.tax_rate),
        "cgst_amount": float(it.cgst_amount),
        "sgst_amount": float(it.sgst_amount),
        "igst_amount": float(it.igst_amount),
        "tax_amount": float(it.tax_amount),
        "final_amount": float(it.final_amount),
    }


def get_gst_invoice(db: Session, invoice_id: str) -> dict:
    """Everything a renderer needs to stamp the invoice."""
    invoice = get_invoice(db, invoice_id)
    hotel = get_hotel_info(db)
    booking = invoice.booking
    paid = sum((q(p.amount) for p in booking.payments), ZERO) if booking else ZERO
    return {
        **invoice_summary(invoice),
        "hotel": {
            "name": hotel.name if hotel else None,
            "gst_number": hotel.gst_number if hotel else None,
            "address": hotel.address if hotel else None,
            "logo_url": hotel.logo_url if hotel else None,
            "phone": hotel.primary_phone if hotel else None,
            "email": hotel.primary_email if hotel else None,
        },
        "guest": {
            "name": invoice.guest_name,
            "email": invoice.guest_email,
            "phone": invoice.guest_phone,
            "gst_number": invoice.guest_gst_number,
        },
        "booking": {
            "check_in": invoice.check_in.isoformat(),
            "check_out": invoice.check_out.isoformat(),
            "nights": invoice.nights,
            "adults": invoice.adults,
            "children": invoice.children,
            "room_type": invoice.room_type_name,
            "room_number": invoice.room_number,
        },
        "items": [_item_out(it) for it in invoice.items],
        "totals": {
            "base_amount": float(invoice.base_amount),
            "discount_amount": float(invoice.discount_amount),
            "gst_amount": float(invoice.gst_amount),
            "cgst_amount": float(invoice.cgst_amount),
            "sgst_amount": float(invoice.sgst_amount),
            "igst_amount": float(invoice.igst_amount),
            "service_tax_amount": float(invoice.service_tax_amount),
            "other_tax_amount": float(invoice.other_tax_amount),
            "total_tax_amount": float(invoice.total_tax_amount),
            "total_amount": float(invoice.total_amount),
            "is_inter_state": invoice.is_inter_state,
        },
        "payment": {
            "paid_amount": float(paid),
            "balance_due": float(max(q(invoice.total_amount) - paid, ZERO)),
            "payments": [
                {"amount": float(p.amount), "payment_method": p.payment_method, "payment_date": as_utc(p.payment_date).isoformat()}
                for p in (booking.payments if booking else [])
            ],
        },
        "notes": invoice.notes,
        "terms": invoice.terms,
    }
