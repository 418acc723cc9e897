from __future__ import annotations

from datetime import date

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from app.core.clock import as_utc
from app.core.security import Principal, get_principal
from app.db.session import get_db
from services.invoicing import guest_access
from services.invoicing import service as invoicing

router = APIRouter(prefix="/invoices", tags=["invoices"])
guest_router = APIRouter(prefix="/guest-billing", tags=["guest_billing"])


class InvoiceIn(BaseModel):
    booking_id: str
    due_date: date | None = None
    notes: str | None = None
    terms: str | None = None
    guest_gst_number: str | None = Field(default=None, max_length=15)


class InvoiceStatusIn(BaseModel):
    status: str
    override: bool = False


class GuestAccessIn(BaseModel):
    booking_id: str


@router.post("")
def generate_invoice(payload: InvoiceIn, db: Session = Depends(get_db), principal: Principal = Depends(get_principal)):
    invoice = invoicing.generate_gst_invoice(
        db,
        payload.booking_id,
        due_date=payload.due_date,
        notes=payload.notes,
        terms=payload.terms,
        guest_gst_number=payload.guest_gst_number,
        actor=principal.username,
    )
    return invoicing.get_gst_invoice(db, invoice.id)


@router.get("")
def list_invoices(
    status: str | None = None,
    date_from: date | None = None,
    date_to: date | None = None,
    guest_name: str | None = None,
    limit: int = 50,
    offset: int = 0,
    db: Session = Depends(get_db),
):
    rows, total = invoicing.get_invoices(
        db,
        status=status,
        date_from=date_from,
        date_to=date_to,
        guest_name=guest_name,
        limit=limit,
        offset=offset,
    )
    return {"total": total, "items": [invoicing.invoice_summary(i) for i in rows]}


@router.get("/{invoice_id}")
def get_invoice(invoice_id: str, db: Session = Depends(get_db)):
    return invoicing.get_gst_invoice(db, invoice_id)


@router.patch("/{invoice_id}/status")
def update_status(invoice_id: str, payload: InvoiceStatusIn, db: Session = Depends(get_db), principal: Principal = Depends(get_principal)):
    if payload.override:
        if not principal.user_id:
            raise HTTPException(401, "Not authenticated")
        if not principal.has_role("ADMIN"):
            raise HTTPException(403, "ADMIN role required")
    invoice = invoicing.update_invoice_status(
        db, invoice_id, payload.status, actor=principal.username, override=payload.override
    )
    return invoicing.invoice_summary(invoice)


# ---- Guest billing links ----
@guest_router.post("")
def create_access(payload: GuestAccessIn, db: Session = Depends(get_db)):
    view = guest_access.create_guest_billing_access(db, payload.booking_id)
    return {
        "booking_id": view.booking_id,
        "access_token": view.access_token,
        "expires_at": as_utc(view.expires_at).isoformat(),
    }


@guest_router.get("/{token}")
def guest_view(token: str, db: Session = Depends(get_db)):
    return guest_access.get_guest_billing_info(db, token)


@guest_router.delete("/{token}")
def revoke_access(token: str, db: Session = Depends(get_db)):
    guest_access.revoke_guest_billing_access(db, token)
    return {"ok": True}
