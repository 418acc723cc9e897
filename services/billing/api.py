from __future__ import annotations

from decimal import Decimal

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from app.core.security import Principal, get_principal
from app.db.session import get_db
from services.billing import catalog, items, payments
from services.billing.calculator import bill_line_out, calculate_bill

router = APIRouter(prefix="/billing", tags=["billing"])


# ---- Schemas ----
class BillItemIn(BaseModel):
    item_name: str = Field(..., max_length=256)
    quantity: int = Field(1, ge=1)
    unit_price: Decimal = Field(..., ge=0)
    discount: Decimal = Field(Decimal("0"), ge=0)
    gst_applicable: bool = True
    gst_percentage: Decimal | None = Field(default=None, ge=0, le=100)
    service_id: str | None = None
    description: str | None = None


class BillItemPatch(BaseModel):
    item_name: str | None = Field(default=None, max_length=256)
    quantity: int | None = Field(default=None, ge=1)
    unit_price: Decimal | None = Field(default=None, ge=0)
    discount: Decimal | None = Field(default=None, ge=0)
    gst_applicable: bool | None = None
    gst_percentage: Decimal | None = Field(default=None, ge=0, le=100)
    description: str | None = None


class PaymentIn(BaseModel):
    amount: Decimal = Field(..., gt=0)
    payment_method: str
    payment_reference: str | None = None
    transaction_id: str | None = None
    notes: str | None = None
    received_by: str | None = None


class PaymentModifyIn(BaseModel):
    new_amount: Decimal = Field(..., gt=0)
    reason: str = Field(..., min_length=1)


class BookingPaymentModifyIn(PaymentModifyIn):
    original_amount: Decimal = Field(..., ge=0)


class StatusIn(BaseModel):
    payment_status: str
    reason: str = ""


class SplitIn(BaseModel):
    amount: Decimal = Field(..., gt=0)
    payment_method: str
    description: str | None = None


class SplitsIn(BaseModel):
    splits: list[SplitIn]


class ServiceIn(BaseModel):
    name: str = Field(..., max_length=128)
    category: str
    price: Decimal = Field(..., ge=0)
    description: str | None = None
    taxable: bool = True


# ---- Services catalog ----
@router.get("/services")
def list_services(category: str | None = None, db: Session = Depends(get_db)):
    return [catalog.service_out(s) for s in catalog.get_services(db, category)]


@router.post("/services")
def create_service(payload: ServiceIn, db: Session = Depends(get_db), principal: Principal = Depends(get_principal)):
    svc = catalog.create_service(db, **payload.model_dump())
    return catalog.service_out(svc)


# ---- Bill items ----
@router.get("/{booking_id}/calculation")
def get_calculation(booking_id: str, db: Session = Depends(get_db)):
    return calculate_bill(db, booking_id).to_dict()


@router.get("/{booking_id}/items")
def list_items(booking_id: str, db: Session = Depends(get_db)):
    return [bill_line_out(line) for line in items.get_bill_items(db, booking_id)]


@router.post("/{booking_id}/items")
def add_item(booking_id: str, payload: BillItemIn, db: Session = Depends(get_db), principal: Principal = Depends(get_principal)):
    item = items.add_bill_item(db, booking_id, added_by=principal.username, **payload.model_dump())
    return {"ok": True, "item_id": item.id, "bill": calculate_bill(db, booking_id).to_dict()}


@router.patch("/items/{item_id}")
def update_item(item_id: str, payload: BillItemPatch, db: Session = Depends(get_db), principal: Principal = Depends(get_principal)):
    item = items.update_bill_item(db, item_id, updated_by=principal.username, **payload.model_dump(exclude_unset=True))
    return {"ok": True, "item_id": item.id, "bill": calculate_bill(db, item.booking_id).to_dict()}


@router.delete("/items/{item_id}")
def delete_item(item_id: str, db: Session = Depends(get_db), principal: Principal = Depends(get_principal)):
    booking_id = items.remove_bill_item(db, item_id, removed_by=principal.username)
    return {"ok": True, "bill": calculate_bill(db, booking_id).to_dict()}


# ---- Payments ----
@router.post("/{booking_id}/payments")
def add_payment(booking_id: str, payload: PaymentIn, db: Session = Depends(get_db), principal: Principal = Depends(get_principal)):
    payment = payments.process_payment(
        db,
        booking_id,
        payload.amount,
        payload.payment_method,
        reference=payload.payment_reference,
        received_by=payload.received_by or principal.username,
        notes=payload.notes,
        transaction_id=payload.transaction_id,
    )
    return {"ok": True, "payment": payments.payment_out(payment), "summary": payments.get_payment_summary(db, booking_id)}


@router.get("/{booking_id}/payment-summary")
def payment_summary(booking_id: str, db: Session = Depends(get_db)):
    return payments.get_payment_summary(db, booking_id)


@router.put("/payments/{payment_id}")
def modify_payment(payment_id: str, payload: PaymentModifyIn, db: Session = Depends(get_db), principal: Principal = Depends(get_principal)):
    return payments.modify_payment(
        db,
        payment_id=payment_id,
        new_amount=payload.new_amount,
        reason=payload.reason,
        processed_by=principal.username,
    )


@router.post("/{booking_id}/payment-modification")
def modify_booking_payment(booking_id: str, payload: BookingPaymentModifyIn, db: Session = Depends(get_db), principal: Principal = Depends(get_principal)):
    return payments.modify_payment(
        db,
        booking_id=booking_id,
        original_amount=payload.original_amount,
        new_amount=payload.new_amount,
        reason=payload.reason,
        processed_by=principal.username,
    )


@router.delete("/payments/{payment_id}")
def delete_payment(payment_id: str, reason: str = "", db: Session = Depends(get_db), principal: Principal = Depends(get_principal)):
    booking_id = payments.delete_payment(db, payment_id, reason=reason, processed_by=principal.username)
    return {"ok": True, "summary": payments.get_payment_summary(db, booking_id)}


@router.post("/{booking_id}/status")
def set_status(booking_id: str, payload: StatusIn, db: Session = Depends(get_db), principal: Principal = Depends(get_principal)):
    booking = payments.set_payment_status(
        db, booking_id, payload.payment_status, processed_by=principal.username, reason=payload.reason
    )
    return payments.booking_out(booking)


@router.post("/overdue/refresh")
def refresh_overdue(db: Session = Depends(get_db)):
    return {"ok": True, "updated": payments.update_overdue_payments(db)}


# ---- Split payments ----
@router.put("/{booking_id}/split-payments")
def setup_splits(booking_id: str, payload: SplitsIn, db: Session = Depends(get_db)):
    rows = payments.setup_split_payments(db, booking_id, [s.model_dump() for s in payload.splits])
    return [_split_out(s) for s in rows]


@router.get("/{booking_id}/split-payments")
def list_splits(booking_id: str, db: Session = Depends(get_db)):
    return [_split_out(s) for s in payments.get_split_payments(db, booking_id)]


def _split_out(s) -> dict:
    return {
        "id": s.id,
        "amount": float(s.amount),
        "payment_method": s.payment_method,
        "description": s.description,
        "status": s.status,
    }
