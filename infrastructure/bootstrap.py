"""
Composition root for the payment services.

Registry, selector and gateway clients are built once per process and
shared by reference; the API lifespan and the Celery sweep task both go
through `build_payment_services`.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Callable, Mapping, Optional

from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession

from application.ports.documents import InvoiceRenderer
from application.ports.notifications import NotificationSink
from application.ports.payment_gateway import PaymentGateway
from application.services.invoice_service import InvoiceService
from application.services.payment_service import PaymentLifecycleService
from application.services.webhook_service import WebhookService
from core.config import settings as app_settings
from core.logging_config import get_logger
from core.settings import PaymentSettings, payment_settings
from domain.billing.providers import ProviderRegistry
from domain.billing.selector import ProviderSelector
from infrastructure.adapters.notification_sink import CeleryNotificationSink
from infrastructure.database import build_engine, build_session_factory
from infrastructure.documents.invoice_pdf import ReportLabInvoiceRenderer
from infrastructure.external.payments import (
    build_gateways,
    build_provider_registry,
    build_provider_selector,
    close_gateways,
)
from infrastructure.unit_of_work import uow_factory_for


logger = get_logger(__name__)


@dataclass
class PaymentServices:
    registry: ProviderRegistry
    selector: ProviderSelector
    gateways: Mapping[str, PaymentGateway]
    lifecycle: PaymentLifecycleService
    webhooks: WebhookService
    invoices: InvoiceService
    settings: PaymentSettings
    _owned_engine: Optional[AsyncEngine] = field(default=None, repr=False)
    _owns_gateways: bool = field(default=True, repr=False)

    async def aclose(self) -> None:
        if self._owns_gateways:
            await close_gateways(dict(self.gateways))
        if self._owned_engine is not None:
            await self._owned_engine.dispose()


def build_payment_services(
    *,
    session_factory: Optional[Callable[[], AsyncSession]] = None,
    settings: PaymentSettings = payment_settings,
    gateways: Optional[Mapping[str, PaymentGateway]] = None,
    notifier: Optional[NotificationSink] = None,
    renderer: Optional[InvoiceRenderer] = None,
) -> PaymentServices:
    """
    Wire the payment services.

    Raises NoProviderAvailableError when the configured default provider is
    unknown or not configured; callers treat that as a startup failure.
    Without a session factory a dedicated engine is created and disposed by
    `aclose`, which suits short-lived event loops such as Celery tasks.
    """
    owned_engine = None
    if session_factory is None:
        owned_engine = build_engine(app_settings.database.url, echo=app_settings.database.echo)
        session_factory = build_session_factory(owned_engine)

    registry = build_provider_registry(settings)
    selector = build_provider_selector(registry, settings)
    owns_gateways = gateways is None
    if gateways is None:
        gateways = build_gateways(registry, settings)

    uow_factory = uow_factory_for(session_factory)
    lifecycle = PaymentLifecycleService(
        uow_factory,
        selector,
        gateways,
        settings,
        notifier=notifier if notifier is not None else CeleryNotificationSink(),
    )
    logger.info(
        "payment_services_ready",
        providers=[key for key in registry.keys() if registry.get(key).configured],
        default_provider=settings.default_provider,
    )
    return PaymentServices(
        registry=registry,
        selector=selector,
        gateways=gateways,
        lifecycle=lifecycle,
        webhooks=WebhookService(uow_factory, lifecycle, gateways),
        invoices=InvoiceService(uow_factory, renderer or ReportLabInvoiceRenderer(app_settings.PROJECT_NAME)),
        settings=settings,
        _owned_engine=owned_engine,
        _owns_gateways=owns_gateways,
    )
