import os

# Settings are read at import time; keep tests off real infrastructure
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("REDIS_URL", "redis://localhost:6379/15")
os.environ.setdefault("CELERY_BROKER_URL", "memory://")
os.environ.setdefault("CELERY_RESULT_BACKEND", "cache+memory://")
os.environ.setdefault("SESSION_SECRET", "test-session-secret-0123456789")
os.environ.setdefault("CIRCUIT_BREAKER_BACKEND", "memory")
os.environ.setdefault("APP_ENV", "test")

from decimal import Decimal  # noqa: E402
from unittest.mock import MagicMock  # noqa: E402

import pytest  # noqa: E402
from sqlalchemy import create_engine  # noqa: E402
from sqlalchemy.orm import sessionmaker  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402

from app.db.base import Base  # noqa: E402
import app.models  # noqa: E402,F401
from app.models.device import Device  # noqa: E402
from app.models.payment import Payment, PaymentStatus  # noqa: E402
from app.models.user import User  # noqa: E402
from app.models.work_order import WorkOrder  # noqa: E402
from app.services.circuit_breaker import reset_circuit_breakers  # noqa: E402
from app.services.payment_gateways import GATEWAY_SUCCESS, GatewayVerifyResult  # noqa: E402


@pytest.fixture(autouse=True)
def _fresh_breakers():
    reset_circuit_breakers()
    yield
    reset_circuit_breakers()


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def db(engine):
    Session = sessionmaker(bind=engine, autocommit=False, autoflush=False)
    session = Session()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def make_order(db):
    """User + optional device + work order + PENDING payment, committed."""
    def _make(
        metadata=None,
        brand="APPLE",
        serial_number="C02ABC",
        imei=None,
        with_device=True,
        with_work_order=True,
        amount="500.00",
        reference="ref_123",
        provider="paystack",
        email="ada@example.com",
    ):
        user = db.query(User).filter(User.email == email).one_or_none()
        if user is None:
            user = User(email=email, name="Ada")
            db.add(user)
            db.flush()

        work_order = None
        if with_work_order:
            device = None
            if with_device:
                device = Device(user_id=user.id, brand=brand, serial_number=serial_number, imei=imei)
                db.add(device)
                db.flush()
            work_order = WorkOrder(
                user_id=user.id,
                device_id=device.id if device else None,
                total_amount=Decimal(amount),
                meta=metadata or {},
            )
            db.add(work_order)
            db.flush()

        payment = Payment(
            work_order_id=work_order.id if work_order else None,
            user_id=user.id,
            amount=Decimal(amount),
            currency="NGN",
            provider=provider,
            provider_reference=reference,
            status=PaymentStatus.PENDING.value,
            meta=metadata or {},
        )
        db.add(payment)
        db.commit()
        return payment

    return _make


@pytest.fixture
def gateway():
    gw = MagicMock()
    gw.verify.return_value = GatewayVerifyResult(
        status=GATEWAY_SUCCESS,
        amount=Decimal("500"),
        reference="ref_123",
        currency="NGN",
        authorization_code="AUTH_1",
        raw={"status": True},
    )
    return gw
