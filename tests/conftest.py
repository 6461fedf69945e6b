"""Pytest bootstrap configuration.

Ensure mandatory environment variables are set before test collection
and module imports that depend on application settings.
"""
import os
import tempfile

# Mandatory secret key for settings validation
os.environ.setdefault("SECRET_KEY", "test-secret-key")
os.environ.setdefault("ENVIRONMENT", "test")
os.environ.setdefault(
    "DATABASE__URL",
    f"sqlite+aiosqlite:///{os.path.join(tempfile.gettempdir(), 'payments-test-app.db')}",
)

import pytest
import pytest_asyncio

from application.services.payment_service import PaymentLifecycleService
from core.settings import PaymentSettings
from domain.booking.entity import Booking, BookingStatus
from infrastructure.database import build_engine, build_session_factory, create_tables
from infrastructure.external.payments import build_provider_registry, build_provider_selector
from infrastructure.unit_of_work import uow_factory_for
from tests.fakes import CLIENT, PROFESSIONAL, RecordingNotifier, StubGateway, make_settings


@pytest.fixture
def payment_settings() -> PaymentSettings:
    return make_settings()


@pytest.fixture
def gateways() -> dict[str, StubGateway]:
    return {key: StubGateway(key) for key in ("wompi", "mercadopago", "stripe", "paypal")}


@pytest.fixture
def notifier() -> RecordingNotifier:
    return RecordingNotifier()


@pytest_asyncio.fixture
async def engine(tmp_path):
    engine = build_engine(f"sqlite+aiosqlite:///{tmp_path / 'payments.db'}")
    await create_tables(bind=engine)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return build_session_factory(engine)


@pytest.fixture
def uow_factory(session_factory):
    return uow_factory_for(session_factory)


@pytest.fixture
def lifecycle(uow_factory, payment_settings, gateways, notifier) -> PaymentLifecycleService:
    registry = build_provider_registry(payment_settings)
    selector = build_provider_selector(registry, payment_settings)
    return PaymentLifecycleService(uow_factory, selector, gateways, payment_settings, notifier=notifier)


@pytest.fixture
def seed_booking(uow_factory):
    counter = {"n": 0}

    async def _seed(**overrides) -> Booking:
        counter["n"] += 1
        values = dict(
            id=f"booking-{counter['n']}",
            client_id=CLIENT.user_id,
            professional_id=PROFESSIONAL.user_id,
            title="Plumbing repair",
            category="home",
            status=BookingStatus.ACCEPTED,
            final_price=100_000,
        )
        values.update(overrides)
        booking = Booking(**values)
        async with uow_factory() as uow:
            await uow.booking_repository.create(booking)
            await uow.commit()
        return booking

    return _seed
