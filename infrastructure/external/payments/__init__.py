"""
Factories for the provider registry and gateway clients.

Both are built once at process start from PaymentSettings and shared by
reference afterwards.
"""
from __future__ import annotations

from typing import Optional

from application.ports.payment_gateway import PaymentGateway
from core.settings import PaymentSettings
from domain.billing.providers import DEFAULT_PRIORITY, DEFAULT_PROVIDERS, ProviderRegistry, build_descriptor
from domain.billing.selector import ProviderSelector

from .mercadopago_client import MercadoPagoClient
from .paypal_client import PayPalClient
from .stripe_client import StripeClient
from .wompi_client import WompiClient


_CLIENTS = {
    "wompi": WompiClient,
    "mercadopago": MercadoPagoClient,
    "stripe": StripeClient,
    "paypal": PayPalClient,
}


def build_provider_registry(settings: PaymentSettings) -> ProviderRegistry:
    descriptors = []
    secrets: dict[str, Optional[str]] = {}
    for key in DEFAULT_PROVIDERS:
        creds = settings.provider(key)
        descriptors.append(
            build_descriptor(
                key,
                configured=creds.configured,
                overrides={"min_amount": creds.min_amount, "max_amount": creds.max_amount},
            )
        )
        secrets[key] = creds.webhook_secret
    return ProviderRegistry.from_descriptors(descriptors, secrets)


def build_provider_selector(registry: ProviderRegistry, settings: PaymentSettings) -> ProviderSelector:
    """Raises NoProviderAvailableError when the default provider is unusable."""
    return ProviderSelector(registry, DEFAULT_PRIORITY, settings.default_provider)


def build_gateways(registry: ProviderRegistry, settings: PaymentSettings) -> dict[str, PaymentGateway]:
    """One client per registered provider; unconfigured providers still verify webhooks."""
    return {key: _CLIENTS[key](settings) for key in registry.keys() if key in _CLIENTS}


async def close_gateways(gateways: dict[str, PaymentGateway]) -> None:
    for gateway in gateways.values():
        await gateway.aclose()


__all__ = [
    "build_provider_registry",
    "build_provider_selector",
    "build_gateways",
    "close_gateways",
]
