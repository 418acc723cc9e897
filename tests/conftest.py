import os

os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("OUTBOX_DISPATCHER_ENABLED", "0")

from datetime import date, timedelta  # noqa: E402
from decimal import Decimal  # noqa: E402

import pytest  # noqa: E402
from sqlalchemy.orm import sessionmaker  # noqa: E402

from app.db import models  # noqa: E402,F401
from app.db.base import Base  # noqa: E402
from app.db.models.auth import User  # noqa: E402
from app.db.models.billing import Booking  # noqa: E402
from app.db.models.hotel import HotelInfo, HotelService, Room, RoomType  # noqa: E402
from app.db.session import make_engine  # noqa: E402
import services.revenue.handlers  # noqa: E402,F401
from services.billing.calculator import recalculate_booking_total  # noqa: E402

HOTEL_GSTIN = "27AABCH1234F1Z5"
CHECK_IN = date(2024, 6, 10)


@pytest.fixture()
def engine(tmp_path):
    eng = make_engine(f"sqlite:///{tmp_path / 'billing.db'}")
    Base.metadata.create_all(bind=eng)
    yield eng
    eng.dispose()


@pytest.fixture()
def session_factory(engine):
    return sessionmaker(bind=engine, autoflush=False, autocommit=False, future=True)


@pytest.fixture()
def db(session_factory):
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture()
def hotel(db):
    h = HotelInfo(
        name="Seaside Residency",
        gst_number=HOTEL_GSTIN,
        address="12 Beach Road, Mumbai",
        primary_phone="+91-22-5550100",
        primary_email="frontdesk@seaside.example",
        gst_percentage=Decimal("18"),
        service_tax_percentage=Decimal("0"),
        other_taxes=[],
        tax_enabled=True,
    )
    db.add(h)
    db.commit()
    return h


@pytest.fixture()
def room(db):
    rt = RoomType(name="Deluxe", price=Decimal("2000"), max_occupancy=2)
    db.add(rt)
    db.flush()
    r = Room(room_number="101", room_type_id=rt.id, available_for_booking=True)
    db.add(r)
    db.commit()
    return r


@pytest.fixture()
def guest_user(db):
    u = User(email="guest@example.com", full_name="Ravi Kumar", is_active=True, roles=[])
    db.add(u)
    db.commit()
    return u


@pytest.fixture()
def staff_user(db):
    u = User(email="asha@seaside.example", full_name="Asha Rao", is_active=True, is_staff=True,
             staff_role="FRONT_DESK", roles=[])
    db.add(u)
    db.commit()
    return u


@pytest.fixture()
def admin_user(db):
    u = User(email="admin@seaside.example", full_name="Meera Admin", is_active=True, is_staff=True,
             staff_role="ADMIN", roles=["ADMIN"])
    db.add(u)
    db.commit()
    return u


@pytest.fixture()
def make_service(db):
    def _make(name="Swedish Massage", category="spa", price="1500"):
        svc = HotelService(name=name, category=category, price=Decimal(price), taxable=True, is_active=True)
        db.add(svc)
        db.commit()
        return svc

    return _make


@pytest.fixture()
def make_booking(db, hotel, room):
    def _make(
        *,
        nights=1,
        check_in=CHECK_IN,
        guest_name="Ravi Kumar",
        guest_email=None,
        source="website",
        room_base_amount=None,
        room_discount_amount="0",
    ):
        b = Booking(
            guest_name=guest_name,
            guest_email=guest_email,
            guest_phone="+91-9800000000",
            room_id=room.id,
            check_in=check_in,
            check_out=check_in + timedelta(days=nights),
            nights=nights,
            source=source,
            room_base_amount=Decimal(room_base_amount) if room_base_amount is not None else None,
            room_discount_amount=Decimal(room_discount_amount),
        )
        db.add(b)
        db.commit()
        recalculate_booking_total(db, b.id)
        return b

    return _make


@pytest.fixture()
def client(session_factory):
    from fastapi.testclient import TestClient

    from app.db.session import get_db
    from main import app

    def _get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = _get_db
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()
