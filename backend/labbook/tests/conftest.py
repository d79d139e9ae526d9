import os
os.environ["TESTING"] = "1"
import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

import sys
from pathlib import Path

import uuid
from datetime import datetime, timedelta, timezone
from decimal import Decimal

sys.path.append(str(Path(__file__).resolve().parents[2]))

from labbook.main import app
from labbook.database import Base, get_db
from labbook import models, notify

SQLALCHEMY_DATABASE_URL = "sqlite:///./test.db"
engine = create_engine(
    SQLALCHEMY_DATABASE_URL,
    connect_args={"check_same_thread": False, "timeout": 30},
)
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

Base.metadata.drop_all(bind=engine)
Base.metadata.create_all(bind=engine)

USER_TYPES = ("mjiit_member", "utm_member", "external_member")


def override_get_db():
    db = TestingSessionLocal()
    try:
        yield db
    finally:
        db.close()

app.dependency_overrides[get_db] = override_get_db


@pytest.fixture
def client():
    with TestClient(app) as c:
        yield c


@pytest.fixture
def db():
    session = TestingSessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture(autouse=True)
def clear_outbox():
    notify.EMAIL_OUTBOX.clear()
    yield


def auth_headers(user) -> dict[str, str]:
    return {"X-User-Id": str(user.id)}


def make_user(
    db,
    *,
    user_type: str = "external_member",
    status: str = "active",
    academic_type: str | None = None,
):
    user = models.User(
        email=f"user-{uuid.uuid4().hex[:10]}@example.com",
        first_name="Test",
        last_name="User",
        user_type=user_type,
        academic_type=academic_type,
        status=status,
    )
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


def make_service(
    db,
    *,
    prices: dict[str, str] | None = None,
    category: str = "ftir_atr",
    requires_sample: bool = True,
    effective_from: datetime | None = None,
):
    service = models.Service(
        code=f"SVC-{uuid.uuid4().hex[:8]}",
        name=f"Analysis {uuid.uuid4().hex[:4]}",
        category=category,
        requires_sample=requires_sample,
    )
    db.add(service)
    db.flush()
    start = effective_from or datetime.now(timezone.utc) - timedelta(days=1)
    for user_type, price in (prices or {}).items():
        db.add(
            models.ServicePricing(
                service_id=service.id,
                user_type=user_type,
                price=Decimal(price),
                effective_from=start,
            )
        )
    db.commit()
    db.refresh(service)
    return service


def make_add_on(db, amount: str, *, applicable_to: str = "sample", is_active: bool = True):
    add_on = models.GlobalAddOnCatalog(
        name=f"Add-on {uuid.uuid4().hex[:4]}",
        default_amount=Decimal(amount),
        applicable_to=applicable_to,
        is_active=is_active,
    )
    db.add(add_on)
    db.commit()
    db.refresh(add_on)
    return add_on


@pytest.fixture(scope="session")
def workspace_service():
    """The single working-space service every workspace booking is priced against."""
    session = TestingSessionLocal()
    try:
        service = make_service(
            session,
            prices={user_type: "200.00" for user_type in USER_TYPES},
            category="working_space",
            requires_sample=False,
            effective_from=datetime(2020, 1, 1, tzinfo=timezone.utc),
        )
        return service.id
    finally:
        session.close()


@pytest.fixture
def admin(db):
    return make_user(db, user_type="lab_administrator")


@pytest.fixture
def customer(db):
    return make_user(db)
