import os

os.environ.setdefault("JWT_SECRET", "test-secret-for-the-fee-ledger-suite-0123456789")
os.environ["ENV"] = "test"
os.environ["DATABASE_CREATE_TABLES"] = "false"
os.environ.setdefault("DATABASE_URL", "sqlite://")

from datetime import date, datetime, timedelta
from decimal import Decimal

import pytest
from fastapi.testclient import TestClient

from app.core.clock import Clock
from app.core.db import db_manager
from app.models import Base
from app.services.catalog_service import CatalogService
from app.services.notification_channels import NotificationChannel
from app.services.payment_gateway import SandboxGateway
from app.services.student_fee_service import StudentFeeService

from factories import auth, student


class FixedClock(Clock):
    def __init__(self, current: datetime):
        self.current = current

    def now(self) -> datetime:
        return self.current

    def advance(self, days: int = 0, **kwargs) -> None:
        self.current = self.current + timedelta(days=days, **kwargs)


class FakeChannel(NotificationChannel):
    def __init__(self, name: str, ok: bool = True):
        self.name = name
        self.ok = ok
        self.sent = []

    def send(self, recipient: str, subject: str, body: str) -> bool:
        self.sent.append((recipient, subject, body))
        return self.ok


@pytest.fixture
def database(tmp_path):
    db_manager.close()
    db_manager.initialize(f"sqlite:///{tmp_path / 'ledger.db'}")
    Base.metadata.create_all(bind=db_manager.engine)
    yield db_manager
    db_manager.close()


@pytest.fixture
def db(database):
    session = database.SessionLocal()
    yield session
    session.close()


@pytest.fixture
def clock():
    # Tuition below is due on the 10th; the 15th makes it 5 days overdue
    return FixedClock(datetime(2025, 6, 15, 9, 30))


@pytest.fixture
def channels():
    return {
        "sms": FakeChannel("sms"),
        "email": FakeChannel("email"),
        "whatsapp": FakeChannel("whatsapp"),
    }


@pytest.fixture
def gateway():
    return SandboxGateway()


@pytest.fixture
def tuition(db):
    catalog = CatalogService(db)
    fee_type = catalog.create_fee_type("Tuition Fee", "tuition")
    return catalog.create_structure(
        fee_type_id=fee_type.id,
        academic_year="2025-26",
        applicable_classes=["5", "6"],
        amount=Decimal("5000.00"),
        frequency="monthly",
        due_day=10,
    )


@pytest.fixture
def transport(db):
    catalog = CatalogService(db)
    fee_type = catalog.create_fee_type("Transport Fee", "transport")
    return catalog.create_structure(
        fee_type_id=fee_type.id,
        academic_year="2025-26",
        applicable_classes=["5", "6"],
        amount=Decimal("1500.00"),
        frequency="monthly",
        due_day=20,
    )


@pytest.fixture
def make_fee(db, clock):
    def _make(structure, ref=None, period_start=date(2025, 6, 1)):
        return StudentFeeService(db, clock).instantiate(
            structure.id, ref or student(), period_start, created_by="office"
        )
    return _make


@pytest.fixture
def accountant():
    return auth(["ACCOUNTANT"], name="Meera Accountant")


@pytest.fixture
def principal():
    return auth(["PRINCIPAL"], name="Principal Iyer")


@pytest.fixture
def client(database, clock, channels, gateway):
    from app.main import app
    from app.api.deps.tenancy import get_clock, get_channels, get_payment_gateway

    app.dependency_overrides[get_clock] = lambda: clock
    app.dependency_overrides[get_channels] = lambda: channels
    app.dependency_overrides[get_payment_gateway] = lambda: gateway
    yield TestClient(app)
    app.dependency_overrides.clear()
