"""
Fixtures compartidas: base SQLite aislada por test, reloj controlable,
usuarios y menú de ejemplo.
"""
import os

os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("EXPIRY_SWEEPER_ENABLED", "false")
os.environ.setdefault("STORE_RETRY_BACKOFF_SECONDS", "0")

from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from app.core.database import Base
from app.core.security import hash_password
from app.models import MenuItem, User
from app.services.order_service import ActorContext, CustomerIdentity, OrderService

PASSWORD = "rahasia123"
PASSWORD_HASH = hash_password(PASSWORD)


class FakeClock:
    def __init__(self, start: datetime):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(bind=engine, autocommit=False, autoflush=False)


@pytest.fixture
def file_session_factory(tmp_path):
    """Base en archivo: cada sesión usa su propia conexión (para carreras)."""
    engine = create_engine(
        f"sqlite:///{tmp_path / 'orders.db'}",
        connect_args={"check_same_thread": False},
    )
    Base.metadata.create_all(engine)
    yield sessionmaker(bind=engine, autocommit=False, autoflush=False)
    engine.dispose()


@pytest.fixture
def db(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def clock():
    return FakeClock(datetime(2025, 1, 10, 3, 0, tzinfo=timezone.utc))


@pytest.fixture
def service(db, clock):
    return OrderService(db, clock=clock)


def add_user(db, email, name, role="user"):
    user = User(email=email, name=name, password_hash=PASSWORD_HASH, role=role)
    db.add(user)
    db.commit()
    return user


def add_menu_item(db, name, price, stock, category="drink"):
    item = MenuItem(name=name, price=price, stock=stock, category=category)
    db.add(item)
    db.commit()
    return item


@pytest.fixture
def staff_user(db):
    return add_user(db, "admin@needtea.id", "Admin NeedTea", role="admin")


@pytest.fixture
def customer_user(db):
    return add_user(db, "sari@example.com", "Sari")


@pytest.fixture
def staff(staff_user):
    return ActorContext.from_user(staff_user)


@pytest.fixture
def customer(customer_user):
    return ActorContext.from_user(customer_user)


@pytest.fixture
def customer_identity(customer):
    return CustomerIdentity(email=customer.email, name=customer.name)


@pytest.fixture
def matcha(db):
    return add_menu_item(db, "Matcha", 18000, 5)


@pytest.fixture
def croissant(db):
    return add_menu_item(db, "Croissant", 15000, 2, category="food")
