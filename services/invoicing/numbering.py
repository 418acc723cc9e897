"""Sequential invoice numbers of the form ``PREFIX-YYYYMM-NNNN``.

The sequence restarts every month. The number is only a proposal: the
unique index on ``invoice.invoice_number`` is what prevents duplicates, and
callers retry with a fresh proposal when the insert loses a race.
"""
from __future__ import annotations

import os
import re
from datetime import date

from sqlalchemy.orm import Session

from app.core.errors import ValidationError
from app.db.models.invoicing import Invoice

DEFAULT_INVOICE_PREFIX = os.getenv("DEFAULT_INVOICE_PREFIX", "HTL")

_PREFIX_RE = re.compile(r"^[A-Z0-9]{1,8}$")


def month_stem(prefix: str, on: date) -> str:
    prefix = (prefix or DEFAULT_INVOICE_PREFIX).strip().upper()
    if not _PREFIX_RE.match(prefix):
        raise ValidationError("invoice prefix must be 1-8 letters or digits", field="prefix")
    return f"{prefix}-{on.year:04d}{on.month:02d}-"


def highest_sequence(db: Session, stem: str) -> int:
    numbers = db.query(Invoice.invoice_number).filter(Invoice.invoice_number.like(f"{stem}%")).all()
    best = 0
    for (number,) in numbers:
        tail = number[len(stem):]
        if tail.isdigit():
            best = max(best, int(tail))
    return best


def next_invoice_number(db: Session, prefix: str, on: date) -> str:
    stem = month_stem(prefix, on)
    return f"{stem}{highest_sequence(db, stem) + 1:04d}"
