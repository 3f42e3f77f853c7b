import os

# Must be set before any application module is imported
os.environ["JWT_SECRET_KEY"] = "test-jwt-secret"
os.environ["INTERNAL_API_KEY"] = "test-internal-key"
os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///:memory:"
os.environ["OTLP_ENDPOINT"] = ""
os.environ["RATE_LIMIT_ENABLED"] = "false"
os.environ["RAZORPAY_KEY_ID"] = "rzp_test_key"
os.environ["RAZORPAY_KEY_SECRET"] = "test_secret"
os.environ["BREVO_API_KEY"] = ""

import dataclasses
from uuid import uuid4

import httpx
import pytest
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from services.notification_service.dispatcher import DispatchResult
from services.order_service.models import ORDER_SCHEMA
from services.order_service.schemas import OrderIntake
from services.order_service.service import OrderService
from services.payment_service.gateway import GatewayOrder, PaymentGateway
from shared.config.database import create_tables, get_db
from shared.config.settings import settings
from shared.dependencies import get_notifier, get_payment_gateway, get_settings, get_task_runner
from shared.errors import GatewayError
from shared.tasks import BackgroundTaskRunner

GATEWAY_SECRET = "test_secret"


class FakeGateway(PaymentGateway):
    """Records calls; succeeds unless configured with an error."""

    def __init__(self):
        self.calls = []
        self.error = None

    def fail_with(self, error: GatewayError):
        self.error = error

    async def open_transaction(self, amount_minor_units, currency, receipt_id, metadata):
        self.calls.append(
            {"amount": amount_minor_units, "currency": currency, "receipt": receipt_id, "notes": metadata}
        )
        if self.error is not None:
            raise self.error
        return GatewayOrder(
            id=f"order_{uuid4().hex[:14]}",
            amount=amount_minor_units,
            currency=currency,
            receipt=receipt_id,
            status="created",
        )


class FakeNotifier:
    """Stands in for NotificationDispatcher; keeps every payload it was asked to send."""

    def __init__(self):
        self.sent = []
        self.welcomed = []
        self.result = DispatchResult(success=True, attempts=1)
        self.raise_error = None

    async def send_order_confirmation(self, payload):
        self.sent.append(payload)
        if self.raise_error is not None:
            raise self.raise_error
        return self.result

    async def send_welcome_email(self, customer_name, customer_email):
        self.welcomed.append((customer_name, customer_email))
        return self.result


@pytest.fixture()
async def engine():
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
        execution_options={"schema_translate_map": {ORDER_SCHEMA: None}},
    )
    await create_tables(engine, schemas=[ORDER_SCHEMA])
    yield engine
    await engine.dispose()


@pytest.fixture()
def session_factory(engine):
    return async_sessionmaker(engine, expire_on_commit=False)


@pytest.fixture()
async def db(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture()
def test_settings():
    return dataclasses.replace(settings, razorpay_key_secret=GATEWAY_SECRET, default_country="India")


@pytest.fixture()
def gateway():
    return FakeGateway()


@pytest.fixture()
def notifier():
    return FakeNotifier()


@pytest.fixture()
def task_runner():
    return BackgroundTaskRunner()


@pytest.fixture()
def service(db, gateway, notifier, task_runner, test_settings):
    return OrderService(db, gateway=gateway, notifier=notifier, task_runner=task_runner, settings=test_settings)


@pytest.fixture()
async def client(session_factory, gateway, notifier, task_runner, test_settings):
    from main import app

    async def _get_db():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_db] = _get_db
    app.dependency_overrides[get_payment_gateway] = lambda: gateway
    app.dependency_overrides[get_notifier] = lambda: notifier
    app.dependency_overrides[get_task_runner] = lambda: task_runner
    app.dependency_overrides[get_settings] = lambda: test_settings

    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()


def intake_payload(**overrides) -> dict:
    payload = {
        "customerName": "Asha Rao",
        "customerEmail": "asha@example.com",
        "customerPhone": "+919800000000",
        "shippingAddress": "12 MG Road",
        "shippingCity": "Bengaluru",
        "shippingState": "Karnataka",
        "shippingPincode": "560001",
        "paymentMethod": "cash_on_delivery",
        "items": [
            {
                "productId": "clock-ocean",
                "name": "Ocean Wall Clock",
                "image": "/images/ocean.jpeg",
                "size": "Medium",
                "quantity": 2,
                "price": 100,
            }
        ],
        "subtotal": 200,
        "totalAmount": 200,
    }
    payload.update(overrides)
    return payload


def make_intake(**overrides) -> OrderIntake:
    return OrderIntake.model_validate(intake_payload(**overrides))
