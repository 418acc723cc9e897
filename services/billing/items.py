from __future__ import annotations

import logging
from typing import Any

from sqlalchemy.orm import Session

from app.core.errors import NotFound
from app.core.money import q
from app.db.models.billing import BillItem
from app.db.models.hotel import HotelService
from services._crud import atomic
from services.billing.calculator import BillLine, get_booking, price_item, recalculate_booking_total, revenue_category_for_item
from services.billing.payments import sync_payment_status
from services.tax.config import load_tax_config

log = logging.getLogger("hotel.billing")

_UNSET: Any = object()


def _get_item(db: Session, item_id: str) -> BillItem:
    item = db.get(BillItem, item_id)
    if not item:
        raise NotFound(f"bill item {item_id} not found", item_id=item_id)
    return item


def _reprice(db: Session, item: BillItem) -> None:
    pricing = price_item(
        quantity=item.quantity,
        unit_price=item.unit_price,
        discount=item.discount,
        gst_applicable=item.gst_applicable,
        gst_percentage=item.gst_percentage,
        config=load_tax_config(db),
    )
    item.total_price = pricing.total_price
    item.tax_rate = pricing.tax_rate
    item.tax_amount = pricing.tax_amount
    item.final_amount = pricing.final_amount


def _after_mutation(db: Session, booking_id: str, actor: str | None) -> None:
    recalculate_booking_total(db, booking_id)
    sync_payment_status(db, booking_id, processed_by=actor or "system", reason="bill changed")


def add_bill_item(
    db: Session,
    booking_id: str,
    *,
    item_name: str,
    quantity: int = 1,
    unit_price: Any,
    discount: Any = 0,
    gst_applicable: bool = True,
    gst_percentage: Any = None,
    service_id: str | None = None,
    description: str | None = None,
    added_by: str | None = None,
) -> BillItem:
    with atomic(db):
        booking = get_booking(db, booking_id)
        if service_id and not db.get(HotelService, service_id):
            raise NotFound(f"service {service_id} not found", service_id=service_id)
        item = BillItem(
            service_id=service_id,
            item_name=item_name,
            description=description,
            quantity=quantity,
            unit_price=q(unit_price),
            discount=q(discount),
            gst_applicable=gst_applicable,
            gst_percentage=q(gst_percentage) if gst_percentage is not None else None,
            added_by=added_by,
        )
        booking.bill_items.append(item)
        db.flush()
        db.refresh(item, attribute_names=["service"])
        _reprice(db, item)
        db.flush()
        _after_mutation(db, booking_id, added_by)
    log.info("added bill item %s (%s) to booking %s", item.id, item.item_name, booking_id)
    return item


def update_bill_item(
    db: Session,
    item_id: str,
    *,
    item_name: str | None = None,
    quantity: int | None = None,
    unit_price: Any = None,
    discount: Any = None,
    gst_applicable: bool | None = None,
    gst_percentage: Any = _UNSET,
    description: str | None = None,
    updated_by: str | None = None,
) -> BillItem:
    """Patch an item and re-price it. Omitted fields keep their value, including the GST tag."""
    with atomic(db):
        item = _get_item(db, item_id)
        if item_name is not None:
            item.item_name = item_name
        if description is not None:
            item.description = description
        if quantity is not None:
            item.quantity = quantity
        if unit_price is not None:
            item.unit_price = q(unit_price)
        if discount is not None:
            item.discount = q(discount)
        if gst_applicable is not None:
            item.gst_applicable = gst_applicable
        if gst_percentage is not _UNSET:
            item.gst_percentage = q(gst_percentage) if gst_percentage is not None else None
        _reprice(db, item)
        db.flush()
        _after_mutation(db, item.booking_id, updated_by)
    return item


def remove_bill_item(db: Session, item_id: str, *, removed_by: str | None = None) -> str:
    with atomic(db):
        item = _get_item(db, item_id)
        booking_id = item.booking_id
        db.delete(item)
        db.flush()
        _after_mutation(db, booking_id, removed_by)
    log.info("removed bill item %s from booking %s", item_id, booking_id)
    return booking_id


def get_bill_items(db: Session, booking_id: str) -> list[BillLine]:
    booking = get_booking(db, booking_id)
    return [
        BillLine(
            item_id=i.id,
            item_name=i.item_name,
            quantity=i.quantity,
            unit_price=q(i.unit_price),
            total_price=q(i.total_price),
            discount=q(i.discount),
            tax_rate=i.tax_rate,
            tax_amount=q(i.tax_amount),
            final_amount=q(i.final_amount),
            revenue_category=revenue_category_for_item(i),
        )
        for i in booking.bill_items
    ]
