"""Hotel profile, rooms and the service catalog.

These tables are owned by the surrounding application; billing reads them
(tax configuration, room rates, service categories) and only the catalog
endpoints write to ``hotel_service``.
"""
from __future__ import annotations

from decimal import Decimal
from sqlalchemy import String, Integer, Numeric, ForeignKey, JSON, Boolean, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.db.base import Base
from app.db.models.common import HasId, HasCreatedAt, HasUpdatedAt


class HotelInfo(Base, HasId, HasCreatedAt, HasUpdatedAt):
    __tablename__ = "hotel_info"

    name: Mapped[str] = mapped_column(String(256), nullable=False)
    gst_number: Mapped[str | None] = mapped_column(String(32), nullable=True)
    address: Mapped[str | None] = mapped_column(Text, nullable=True)
    logo_url: Mapped[str | None] = mapped_column(String(512), nullable=True)
    primary_phone: Mapped[str | None] = mapped_column(String(32), nullable=True)
    primary_email: Mapped[str | None] = mapped_column(String(256), nullable=True)
    invoice_prefix: Mapped[str | None] = mapped_column(String(8), nullable=True)

    # Tax configuration snapshot source
    gst_percentage: Mapped[Decimal] = mapped_column(Numeric(5, 2), default=Decimal("18"), nullable=False)
    service_tax_percentage: Mapped[Decimal] = mapped_column(Numeric(5, 2), default=Decimal("0"), nullable=False)
    other_taxes: Mapped[list] = mapped_column(JSON, default=list, nullable=False)  # [{name, percentage, description}]
    tax_enabled: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)


class RoomType(Base, HasId, HasCreatedAt):
    __tablename__ = "room_type"

    name: Mapped[str] = mapped_column(String(128), nullable=False, unique=True)
    price: Mapped[Decimal] = mapped_column(Numeric(18, 2), nullable=False)
    max_occupancy: Mapped[int] = mapped_column(Integer, default=2, nullable=False)

    rooms = relationship("Room", back_populates="room_type")


class Room(Base, HasId, HasCreatedAt):
    __tablename__ = "room"

    room_number: Mapped[str] = mapped_column(String(16), nullable=False, unique=True)
    room_type_id: Mapped[str] = mapped_column(ForeignKey("room_type.id"), nullable=False, index=True)
    available_for_booking: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    room_type = relationship("RoomType", back_populates="rooms")


class HotelService(Base, HasId, HasCreatedAt):
    __tablename__ = "hotel_service"

    name: Mapped[str] = mapped_column(String(128), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    category: Mapped[str] = mapped_column(String(32), nullable=False, index=True)  # ServiceCategory
    price: Mapped[Decimal] = mapped_column(Numeric(18, 2), nullable=False, default=Decimal("0"))
    taxable: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
