from __future__ import annotations

from app.db.base import Base
from app.db.models.common import HasId, HasCreatedAt
from sqlalchemy import String, Boolean, JSON
from sqlalchemy.orm import Mapped, mapped_column


class User(Base, HasId, HasCreatedAt):
    __tablename__ = "auth_user"

    email: Mapped[str] = mapped_column(String(256), unique=True, index=True, nullable=False)
    full_name: Mapped[str] = mapped_column(String(256), nullable=False, default="", index=True)
    phone: Mapped[str | None] = mapped_column(String(32), nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    is_staff: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    staff_role: Mapped[str | None] = mapped_column(String(64), nullable=True)  # FRONT_DESK|MANAGER|ADMIN
    roles: Mapped[list] = mapped_column(JSON, default=list, nullable=False)
