from __future__ import annotations

import csv
import io
from datetime import date

from sqlalchemy.orm import Session

from app.core.errors import ValidationError
from app.core.money import ZERO, q
from services.revenue.aggregator import bookings_in

EXPORT_COLUMNS = (
    "booking_id",
    "guest_name",
    "guest_email",
    "check_in",
    "check_out",
    "nights",
    "source",
    "payment_status",
    "base_amount",
    "discount_amount",
    "total_tax_amount",
    "total_amount",
    "paid_amount",
    "payment_methods",
)


def export_revenue_data(db: Session, start: date, end: date) -> list[dict]:
    """One row per booking checking in within ``[start, end]``, whatever its status."""
    if end < start:
        raise ValidationError("end must not be before start", field="end")
    rows = []
    for b in bookings_in(db, start, end):
        paid = sum((q(p.amount) for p in b.payments), ZERO)
        rows.append(
            {
                "booking_id": b.id,
                "guest_name": b.guest_name,
                "guest_email": b.guest_email or "",
                "check_in": b.check_in.isoformat(),
                "check_out": b.check_out.isoformat(),
                "nights": b.nights,
                "source": b.source,
                "payment_status": b.payment_status,
                "base_amount": f"{q(b.base_amount):.2f}",
                "discount_amount": f"{q(b.discount_amount):.2f}",
                "total_tax_amount": f"{q(b.total_tax_amount):.2f}",
                "total_amount": f"{q(b.total_amount):.2f}",
                "paid_amount": f"{paid:.2f}",
                "payment_methods": ";".join(sorted({p.payment_method for p in b.payments})),
            }
        )
    return rows


def to_csv(rows: list[dict]) -> str:
    buf = io.StringIO()
    writer = csv.DictWriter(buf, fieldnames=EXPORT_COLUMNS, lineterminator="\n")
    writer.writeheader()
    writer.writerows(rows)
    return buf.getvalue()
