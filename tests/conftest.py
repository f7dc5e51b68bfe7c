import os

os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("RUN_SWEEPER", "false")
os.environ.setdefault("SECRET_KEY", "test-secret")

from datetime import date, timedelta

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.orm import sessionmaker

from app.core.security import create_access_token
from app.db.base import Base
from app.db.session import build_engine, get_db
from app.models.combo import Combo
from app.models.room import Room, RoomSeat, SeatType
from app.models.showtime import Showtime
from app.models.user import User
from app.schemas.booking import BookingCreate, PurchaserSnapshot
from app.services import reservation
from app.utils.clock import utcnow

ROOM = "R1"
MOVIE = "MOV-1"
SEAT_PRICE = 100000
VIP_PRICE = 150000
COMBO_CODE = "COMBO-000001"
COMBO_PRICE = 50000


@pytest.fixture()
def engine(tmp_path):
    # A file database so worker threads see the same data
    engine = build_engine(
        f"sqlite:///{tmp_path / 'booking.db'}",
        connect_args={"check_same_thread": False, "timeout": 30},
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture()
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture()
def db(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture()
def showtime_at():
    return (utcnow() + timedelta(days=2)).replace(hour=19, minute=30, second=0, microsecond=0)


@pytest.fixture()
def catalog(db, showtime_at):
    """Room R1: rows A-B normal, row C VIP, five seats each; one showtime; one combo."""
    room = Room(room_code=ROOM, name="Room 1")
    db.add(room)
    for row_no, row in enumerate("ABC", start=1):
        for col in range(1, 6):
            vip = row == "C"
            db.add(RoomSeat(
                room_code=ROOM,
                label=f"{row}{col}",
                row_no=row_no,
                col_no=col,
                seat_type=SeatType.VIP if vip else SeatType.NORMAL,
                price=VIP_PRICE if vip else SEAT_PRICE,
            ))
    db.add(Showtime(room_code=ROOM, starts_at=showtime_at, movie_ref=MOVIE, movie_title="Dune: Part Two"))
    today = date.today()
    db.add(Combo(
        combo_code=COMBO_CODE,
        name="Popcorn + Coke",
        price=COMBO_PRICE,
        start_date=today - timedelta(days=30),
        end_date=today + timedelta(days=30),
    ))
    db.commit()
    return room


@pytest.fixture()
def user(db):
    u = User(email="an@example.com", full_name="Nguyen Van An", phone="0901234567")
    db.add(u)
    db.commit()
    db.refresh(u)
    return u


@pytest.fixture()
def other_user(db):
    u = User(email="binh@example.com", full_name="Tran Thi Binh")
    db.add(u)
    db.commit()
    db.refresh(u)
    return u


@pytest.fixture()
def staff_user(db):
    u = User(email="desk@example.com", full_name="Box Office", role="employee")
    db.add(u)
    db.commit()
    db.refresh(u)
    return u


@pytest.fixture()
def make_request(showtime_at):
    def _make(seats, combos=None, **overrides):
        data = {
            "room": ROOM,
            "showtime": showtime_at,
            "movie_ref": MOVIE,
            "seat_labels": list(seats),
            "combos": combos or [],
        }
        data.update(overrides)
        return BookingCreate(**data)
    return _make


@pytest.fixture()
def reserve(db, catalog, user, make_request):
    """Create a pending booking for ``user``."""
    def _reserve(seats, combos=None, session=None, owner=None, **kwargs):
        owner = owner or user
        request = make_request(seats, combos)
        purchaser = PurchaserSnapshot(name=owner.full_name, email=owner.email, phone=owner.phone)
        return reservation.create_booking(session or db, request, owner.id, purchaser, **kwargs)
    return _reserve


@pytest.fixture()
def client(session_factory, catalog):
    from app.main import app

    def override_get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = override_get_db
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture()
def auth_headers():
    def _headers(u: User) -> dict:
        return {"Authorization": f"Bearer {create_access_token(subject=str(u.id))}"}
    return _headers
