"""Booking bill calculation.

Room charge plus live bill items, net of discounts, taxed on the subtotal
with the hotel configuration. ``recalculate_booking_total`` is the only
writer of the booking's amount fields.
"""
from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from typing import Any

from sqlalchemy.orm import Session

from app.core.errors import NotFound
from app.core.money import ZERO, dec, percent_of, q
from app.db.models.billing import BillItem, Booking
from app.db.models.enums import REVENUE_CATEGORY_FOR_SERVICE, RevenueCategory, ServiceCategory
from services._crud import atomic
from services.tax.calculator import TaxConfig, TaxLine, calculate_item_taxes, calculate_taxes
from services.tax.config import load_tax_config


@dataclass(frozen=True)
class ItemPricing:
    total_price: Decimal
    tax_rate: Decimal
    tax_amount: Decimal
    final_amount: Decimal


@dataclass(frozen=True)
class BillLine:
    item_id: str
    item_name: str
    quantity: int
    unit_price: Decimal
    total_price: Decimal
    discount: Decimal
    tax_rate: Decimal
    tax_amount: Decimal
    final_amount: Decimal
    revenue_category: RevenueCategory


@dataclass(frozen=True)
class BillCalculation:
    booking_id: str
    room_base_amount: Decimal
    room_discount_amount: Decimal
    items_amount: Decimal
    items_discount: Decimal
    base_amount: Decimal
    discount_amount: Decimal
    subtotal: Decimal
    gst_amount: Decimal
    service_tax_amount: Decimal
    other_tax_amount: Decimal
    total_tax_amount: Decimal
    total_amount: Decimal
    taxes: tuple[TaxLine, ...]
    items: tuple[BillLine, ...]

    def to_dict(self) -> dict:
        return {
            "booking_id": self.booking_id,
            "room_base_amount": float(self.room_base_amount),
            "room_discount_amount": float(self.room_discount_amount),
            "items_amount": float(self.items_amount),
            "items_discount": float(self.items_discount),
            "base_amount": float(self.base_amount),
            "discount_amount": float(self.discount_amount),
            "subtotal": float(self.subtotal),
            "gst_amount": float(self.gst_amount),
            "service_tax_amount": float(self.service_tax_amount),
            "other_tax_amount": float(self.other_tax_amount),
            "total_tax_amount": float(self.total_tax_amount),
            "total_amount": float(self.total_amount),
            "taxes": [{"name": t.name, "percentage": float(t.percentage), "amount": float(t.amount)} for t in self.taxes],
            "items": [bill_line_out(line) for line in self.items],
        }


def bill_line_out(line: BillLine) -> dict:
    return {
        "id": line.item_id,
        "item_name": line.item_name,
        "quantity": line.quantity,
        "unit_price": float(line.unit_price),
        "total_price": float(line.total_price),
        "discount": float(line.discount),
        "tax_rate": float(line.tax_rate),
        "tax_amount": float(line.tax_amount),
        "final_amount": float(line.final_amount),
        "revenue_category": line.revenue_category.value,
    }


def price_item(
    *,
    quantity: Any,
    unit_price: Any,
    discount: Any,
    gst_applicable: bool,
    gst_percentage: Any,
    config: TaxConfig,
) -> ItemPricing:
    """Price one bill item.

    An item carrying its own ``gst_percentage`` keeps that rate forever;
    otherwise the hotel configuration applies.
    """
    total = q(dec(quantity, "quantity") * dec(unit_price, "unit_price"))
    net = total - q(discount)
    if gst_percentage is not None:
        rate = dec(gst_percentage, "gst_percentage") if gst_applicable else Decimal("0")
        tax = percent_of(net, rate)
    else:
        breakdown = calculate_item_taxes(net, config, taxable=gst_applicable)
        rate = sum((t.percentage for t in breakdown.taxes), Decimal("0"))
        tax = breakdown.total_tax_amount
    return ItemPricing(total_price=total, tax_rate=rate, tax_amount=tax, final_amount=net + tax)


def revenue_category_for_item(item: BillItem) -> RevenueCategory:
    if item.service is None:
        return RevenueCategory.OTHER
    return REVENUE_CATEGORY_FOR_SERVICE[ServiceCategory(item.service.category)]


def get_booking(db: Session, booking_id: str, *, for_update: bool = False) -> Booking:
    qy = db.query(Booking).filter(Booking.id == booking_id)
    if for_update:
        qy = qy.with_for_update().populate_existing()
    booking = qy.first()
    if not booking:
        raise NotFound(f"booking {booking_id} not found", booking_id=booking_id)
    return booking


def room_base_amount(booking: Booking) -> Decimal:
    # Persisted room charge wins; price * nights only when none was stored.
    if booking.room_base_amount is not None:
        return q(booking.room_base_amount)
    price = booking.room.room_type.price if booking.room and booking.room.room_type else ZERO
    return q(dec(price) * booking.nights)


def compute_bill(booking: Booking, config: TaxConfig) -> BillCalculation:
    lines = tuple(
        BillLine(
            item_id=item.id,
            item_name=item.item_name,
            quantity=item.quantity,
            unit_price=q(item.unit_price),
            total_price=q(item.total_price),
            discount=q(item.discount),
            tax_rate=dec(item.tax_rate),
            tax_amount=q(item.tax_amount),
            final_amount=q(item.final_amount),
            revenue_category=revenue_category_for_item(item),
        )
        for item in booking.bill_items
    )
    room = room_base_amount(booking)
    room_discount = q(booking.room_discount_amount)
    items_amount = sum((line.total_price for line in lines), ZERO)
    items_discount = sum((line.discount for line in lines), ZERO)
    base = room + items_amount
    discount = room_discount + items_discount
    subtotal = base - discount
    tax = calculate_taxes(subtotal, config)
    return BillCalculation(
        booking_id=booking.id,
        room_base_amount=room,
        room_discount_amount=room_discount,
        items_amount=items_amount,
        items_discount=items_discount,
        base_amount=base,
        discount_amount=discount,
        subtotal=subtotal,
        gst_amount=tax.gst_amount,
        service_tax_amount=tax.service_tax_amount,
        other_tax_amount=tax.other_tax_amount,
        total_tax_amount=tax.total_tax_amount,
        total_amount=subtotal + tax.total_tax_amount,
        taxes=tax.taxes,
        items=lines,
    )


def calculate_bill(db: Session, booking_id: str) -> BillCalculation:
    booking = get_booking(db, booking_id)
    return compute_bill(booking, load_tax_config(db))


def recalculate_booking_total(db: Session, booking_id: str) -> BillCalculation:
    with atomic(db):
        booking = get_booking(db, booking_id, for_update=True)
        db.refresh(booking, attribute_names=["bill_items"])
        bill = compute_bill(booking, load_tax_config(db))
        booking.base_amount = bill.base_amount
        booking.discount_amount = bill.discount_amount
        booking.gst_amount = bill.gst_amount
        booking.service_tax_amount = bill.service_tax_amount
        booking.other_tax_amount = bill.other_tax_amount
        booking.total_tax_amount = bill.total_tax_amount
        booking.total_amount = bill.total_amount
        db.flush()
    return bill


def category_breakdown(booking: Booking) -> dict[RevenueCategory, Decimal]:
    """Split the booking total across revenue categories, summing exactly to the total.

    Items contribute their final amount (net amount when item-level tax would
    overrun the total, capped in order as a last resort); accommodation takes
    the remainder.
    """
    total = q(booking.total_amount)
    items = [(revenue_category_for_item(i), q(i.final_amount), q(i.total_price) - q(i.discount)) for i in booking.bill_items]

    amounts = [final for _, final, _ in items]
    if sum(amounts, ZERO) > total:
        amounts = [max(net, ZERO) for _, _, net in items]

    out: dict[RevenueCategory, Decimal] = {}
    remaining = total
    for (category, _, _), amount in zip(items, amounts):
        take = min(amount, remaining)
        if take <= 0:
            continue
        out[category] = out.get(category, ZERO) + take
        remaining -= take
    if remaining > 0:
        out[RevenueCategory.ACCOMMODATION] = out.get(RevenueCategory.ACCOMMODATION, ZERO) + remaining
    return out
