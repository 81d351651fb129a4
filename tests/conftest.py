import os

os.environ["DATABASE_URL"] = "sqlite://"

from decimal import Decimal
from datetime import datetime, timedelta, timezone
import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine, event
from sqlalchemy.pool import StaticPool

from app.main import app
from app.src import argon2, db, openobserve, redis as lockStore
from app.src.enums import CompanyStatus, DriverStatus, VehicleStatus, BookingStatus
from app.src.db import (
    ORMbase,
    Executive,
    ExecutiveToken,
    Company,
    Operator,
    OperatorToken,
    Driver,
    Vehicle,
    Booking,
)


testEngine = create_engine(
    "sqlite://",
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)


@event.listens_for(testEngine, "connect")
def enableForeignKeys(connection, record):
    cursor = connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


db.sessionMaker.configure(bind=testEngine)


## Redis double
class FakeLock:
    def __init__(self, held: set, name: str):
        self.held = held
        self.name = name
        self.owner = False

    def acquire(self, blocking=True, blocking_timeout=None):
        if self.name in self.held:
            return False
        self.held.add(self.name)
        self.owner = True
        return True

    def locked(self):
        return self.name in self.held

    def owned(self):
        return self.owner

    def release(self):
        self.held.discard(self.name)
        self.owner = False


class FakeRedis:
    def __init__(self):
        self.held = set()

    def lock(self, name, timeout=None):
        return FakeLock(self.held, name)


@pytest.fixture(autouse=True)
def database():
    ORMbase.metadata.create_all(testEngine)
    yield
    ORMbase.metadata.drop_all(testEngine)


@pytest.fixture(autouse=True)
def fakeRedis(monkeypatch):
    fake = FakeRedis()
    monkeypatch.setattr(lockStore, "redisClient", fake)
    return fake


@pytest.fixture(autouse=True)
def events(monkeypatch):
    captured = []
    monkeypatch.setattr(openobserve, "logEvent", captured.append)
    return captured


@pytest.fixture
def session():
    session = db.sessionMaker()
    yield session
    session.close()


@pytest.fixture
def client():
    return TestClient(app)


## Seed data
class Seeder:
    """Creates rows directly through the ORM for test arrangements."""

    def __init__(self, session):
        self.session = session
        self.counter = 0

    def _next(self) -> int:
        self.counter += 1
        return self.counter

    def company(self, name=None, status=CompanyStatus.VERIFIED) -> Company:
        company = Company(name=name or f"Company {self._next()}", status=status)
        self.session.add(company)
        self.session.commit()
        return company

    def driver(self, company, first_name="Driver", last_name=None, **kwargs) -> Driver:
        number = self._next()
        kwargs.setdefault("status", DriverStatus.ACTIVE.value)
        driver = Driver(
            company_id=company.id,
            first_name=first_name,
            last_name=last_name or f"No{number}",
            license_number=kwargs.pop("license_number", f"LIC{number:05d}"),
            **kwargs,
        )
        self.session.add(driver)
        self.session.commit()
        return driver

    def vehicle(self, company, plate_number=None, **kwargs) -> Vehicle:
        number = self._next()
        kwargs.setdefault("status", VehicleStatus.ACTIVE.value)
        vehicle = Vehicle(
            company_id=company.id,
            plate_number=plate_number or f"PLT {number:04d}",
            **kwargs,
        )
        self.session.add(vehicle)
        self.session.commit()
        return vehicle

    def booking(self, company, status=BookingStatus.REQUEST.value, **kwargs) -> Booking:
        kwargs.setdefault("pickup_datetime", datetime.now(timezone.utc))
        kwargs.setdefault("pickup_address", "Central Station")
        kwargs.setdefault("destination_address", "Airport Terminal 1")
        kwargs.setdefault("total_amount", Decimal("100.00"))
        booking = Booking(
            company_id=company.id,
            booking_reference=kwargs.pop("booking_reference", f"BK{self._next():08d}"),
            booking_status=status,
            **kwargs,
        )
        self.session.add(booking)
        self.session.commit()
        return booking

    def executiveToken(self) -> ExecutiveToken:
        executive = Executive(
            username=f"admin{self._next()}",
            password=argon2.makePassword("password"),
        )
        self.session.add(executive)
        self.session.flush()
        token = ExecutiveToken(
            executive_id=executive.id,
            expires_in=3600,
            expires_at=datetime.now(timezone.utc) + timedelta(hours=1),
        )
        self.session.add(token)
        self.session.commit()
        return token

    def operatorToken(self, company) -> OperatorToken:
        operator = Operator(
            company_id=company.id,
            username=f"operator{self._next()}",
            password=argon2.makePassword("password"),
        )
        self.session.add(operator)
        self.session.flush()
        token = OperatorToken(
            operator_id=operator.id,
            company_id=company.id,
            expires_in=3600,
            expires_at=datetime.now(timezone.utc) + timedelta(hours=1),
        )
        self.session.add(token)
        self.session.commit()
        return token


@pytest.fixture
def seed(session):
    return Seeder(session)


@pytest.fixture
def auth():
    def headers(token) -> dict:
        return {"Authorization": f"Bearer {token.access_token}"}

    return headers
