from __future__ import annotations

from sqlalchemy.orm import Session

from app.db.models.hotel import HotelInfo
from services.tax.calculator import TaxConfig


def get_hotel_info(db: Session) -> HotelInfo | None:
    return db.query(HotelInfo).order_by(HotelInfo.created_at.asc()).first()


def load_tax_config(db: Session) -> TaxConfig:
    return TaxConfig.from_hotel(get_hotel_info(db))
