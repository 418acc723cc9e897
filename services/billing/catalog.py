from __future__ import annotations

from typing import Any

from sqlalchemy.orm import Session

from app.core.errors import ValidationError
from app.core.money import non_negative
from app.db.models.enums import ServiceCategory, parse_enum
from app.db.models.hotel import HotelService
from services._crud import commit_refresh


def get_services(db: Session, category: str | None = None, *, include_inactive: bool = False) -> list[HotelService]:
    qy = db.query(HotelService)
    if category:
        qy = qy.filter(HotelService.category == parse_enum(ServiceCategory, category, "category").value)
    if not include_inactive:
        qy = qy.filter(HotelService.is_active == True)  # noqa: E712
    return qy.order_by(HotelService.category.asc(), HotelService.name.asc()).all()


def create_service(
    db: Session,
    *,
    name: str,
    category: str,
    price: Any,
    description: str | None = None,
    taxable: bool = True,
) -> HotelService:
    if not (name or "").strip():
        raise ValidationError("name is required", field="name")
    svc = HotelService(
        name=name.strip(),
        category=parse_enum(ServiceCategory, category, "category").value,
        price=non_negative(price, "price"),
        description=description,
        taxable=taxable,
        is_active=True,
    )
    return commit_refresh(db, svc)


def service_out(s: HotelService) -> dict:
    return {
        "id": s.id,
        "name": s.name,
        "description": s.description,
        "category": s.category,
        "price": float(s.price),
        "taxable": s.taxable,
        "is_active": s.is_active,
    }
