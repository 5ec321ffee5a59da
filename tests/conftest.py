"""
Pytest configuration and shared fixtures.
"""

import os
from datetime import date, datetime, timedelta

os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ["SCHEDULER_ENABLED"] = "false"
os.environ["SECRET_KEY"] = "test-secret"

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.pool import StaticPool
from sqlmodel import Session, SQLModel, create_engine

from barbershop.auth import create_access_token
from barbershop.db import get_session, init_db
from barbershop.main import app
from barbershop.models import Barber, Package, User, UserRole
from barbershop.services.scheduling import generate_slots
from barbershop.stores import next_code

# 2024-01-01 is a Monday
MONDAY = date(2024, 1, 1)
BEFORE_MONDAY = datetime(2023, 12, 31, 9, 0)


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    init_db(engine)
    yield engine
    SQLModel.metadata.drop_all(engine)


@pytest.fixture
def session(engine):
    with Session(engine) as session:
        yield session


@pytest.fixture
def client(session):
    def override_get_session():
        return session

    app.dependency_overrides[get_session] = override_get_session
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def make_user(session):
    counter = {"n": 0}

    def factory(role=UserRole.customer, name="Andi Pratama", email=None, phone=None, is_active=True):
        counter["n"] += 1
        n = counter["n"]
        user = User(
            name=name,
            email=email or f"user{n}@example.com",
            phone=phone or f"08123456{n:04d}",
            password_hash="not-a-real-hash",
            role=role.value,
            is_active=is_active,
        )
        session.add(user)
        session.commit()
        session.refresh(user)
        return user

    return factory


@pytest.fixture
def make_barber(session):
    def factory(name="Budi Santoso", is_active=True):
        barber = Barber(code=next_code(session, "barber"), name=name, is_active=is_active)
        session.add(barber)
        session.commit()
        session.refresh(barber)
        return barber

    return factory


@pytest.fixture
def make_package(session):
    def factory(name="Classic Cut", price=50000, is_active=True):
        package = Package(code=next_code(session, "package"), name=name, price=price, is_active=is_active)
        session.add(package)
        session.commit()
        session.refresh(package)
        return package

    return factory


@pytest.fixture
def barber(make_barber):
    return make_barber()


@pytest.fixture
def package(make_package):
    return make_package()


@pytest.fixture
def monday_slots(session, barber):
    """Slots for barber on Monday 2024-01-01 (and Tuesday), generated the day before."""
    generate_slots(session, MONDAY, MONDAY + timedelta(days=1), now=BEFORE_MONDAY)
    return barber


@pytest.fixture
def auth_headers():
    def headers(user: User) -> dict:
        token = create_access_token({"sub": user.email, "role": user.role})
        return {"Authorization": f"Bearer {token}"}

    return headers


@pytest.fixture
def customer(make_user):
    return make_user(UserRole.customer, name="Citra Lestari", email="citra@example.com", phone="081234567890")


@pytest.fixture
def cashier(make_user):
    return make_user(UserRole.cashier, name="Dewi Kasir", email="dewi@example.com", phone="081298765432")


@pytest.fixture
def admin(make_user):
    return make_user(UserRole.admin, name="Admin", email="admin@example.com", phone="081211112222")
