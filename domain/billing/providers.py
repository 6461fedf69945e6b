"""
Provider registry - static table of gateway capabilities.

Descriptors are immutable and the registry is built once at process start,
then handed by reference to the selector, calculator and gateways.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal
from types import MappingProxyType
from typing import Iterable, Mapping, Optional

from domain.common.exceptions import NotFoundException


GENERIC_CARD_METHOD = "credit_card"

SUPPORTED_METHODS = (
    "credit_card",
    "debit_card",
    "pse",
    "nequi",
    "daviplata",
    "efecty",
    "paypal",
)


@dataclass(frozen=True)
class ProviderDescriptor:
    """Capabilities of one payment gateway. Amounts are COP minor units."""

    key: str
    display_name: str
    country: str
    currency: str
    fee_rates: Mapping[str, Decimal]
    fixed_fee: int
    min_amount: int
    max_amount: int
    supported_methods: tuple[str, ...]
    webhook_secret_ref: str
    webhook_events: tuple[str, ...] = ()
    configured: bool = False

    def __post_init__(self) -> None:
        object.__setattr__(self, "fee_rates", MappingProxyType(dict(self.fee_rates)))
        object.__setattr__(self, "supported_methods", tuple(self.supported_methods))
        object.__setattr__(self, "webhook_events", tuple(self.webhook_events))

    def accepts_amount(self, amount: int) -> bool:
        return self.min_amount <= amount <= self.max_amount

    def supports(self, method: str) -> bool:
        return method in self.supported_methods


# Baseline table for the Colombian market. Credentials decide `configured`.
DEFAULT_PROVIDERS: dict[str, dict] = {
    "wompi": {
        "display_name": "Wompi",
        "country": "CO",
        "currency": "COP",
        "fee_rates": {
            "credit_card": Decimal("0.029"),
            "debit_card": Decimal("0.019"),
            "pse": Decimal("0.015"),
            "nequi": Decimal("0.015"),
            "daviplata": Decimal("0.015"),
        },
        "fixed_fee": 900,
        "min_amount": 1_000,
        "max_amount": 50_000_000,
        "supported_methods": ("credit_card", "debit_card", "pse", "nequi", "daviplata"),
        "webhook_events": ("transaction.updated", "transaction.created"),
    },
    "mercadopago": {
        "display_name": "MercadoPago",
        "country": "CO",
        "currency": "COP",
        "fee_rates": {
            "credit_card": Decimal("0.0349"),
            "debit_card": Decimal("0.0249"),
            "pse": Decimal("0.0199"),
            "efecty": Decimal("0.0299"),
        },
        "fixed_fee": 300,
        "min_amount": 1_000,
        "max_amount": 30_000_000,
        "supported_methods": ("credit_card", "debit_card", "pse", "efecty"),
        "webhook_events": ("payment", "merchant_order"),
    },
    "stripe": {
        "display_name": "Stripe",
        "country": "GLOBAL",
        "currency": "COP",
        "fee_rates": {
            "credit_card": Decimal("0.0349"),
            "debit_card": Decimal("0.0349"),
        },
        "fixed_fee": 900,
        "min_amount": 1_000,
        "max_amount": 99_999_999,
        "supported_methods": ("credit_card", "debit_card"),
        "webhook_events": (
            "payment_intent.succeeded",
            "payment_intent.payment_failed",
            "charge.dispute.created",
        ),
    },
    "paypal": {
        "display_name": "PayPal",
        "country": "GLOBAL",
        "currency": "COP",
        "fee_rates": {"paypal": Decimal("0.0449")},
        "fixed_fee": 900,
        "min_amount": 1_000,
        "max_amount": 60_000_000,
        "supported_methods": ("paypal",),
        "webhook_events": ("PAYMENT.CAPTURE.COMPLETED", "PAYMENT.CAPTURE.DENIED"),
    },
}

DEFAULT_PRIORITY: dict[str, tuple[str, ...]] = {
    "credit_card": ("wompi", "mercadopago", "stripe"),
    "debit_card": ("wompi", "mercadopago", "stripe"),
    "pse": ("wompi", "mercadopago"),
    "nequi": ("wompi",),
    "daviplata": ("wompi",),
    "efecty": ("mercadopago",),
    "paypal": ("paypal",),
}


@dataclass(frozen=True)
class ProviderRegistry:
    """Read-only lookup over provider descriptors."""

    descriptors: Mapping[str, ProviderDescriptor]
    webhook_secrets: Mapping[str, Optional[str]] = field(default_factory=dict)

    def __post_init__(self) -> None:
        object.__setattr__(self, "descriptors", MappingProxyType(dict(self.descriptors)))
        object.__setattr__(self, "webhook_secrets", MappingProxyType(dict(self.webhook_secrets)))

    @classmethod
    def from_descriptors(
        cls,
        descriptors: Iterable[ProviderDescriptor],
        webhook_secrets: Optional[Mapping[str, Optional[str]]] = None,
    ) -> "ProviderRegistry":
        return cls({d.key: d for d in descriptors}, webhook_secrets or {})

    def get(self, key: str) -> ProviderDescriptor:
        try:
            return self.descriptors[key]
        except KeyError:
            raise NotFoundException("Payment provider", key) from None

    def find(self, key: str) -> Optional[ProviderDescriptor]:
        return self.descriptors.get(key)

    def keys(self) -> list[str]:
        return list(self.descriptors.keys())

    def candidates_for(self, method: str) -> list[ProviderDescriptor]:
        """Configured providers that support `method`, in registration order."""
        return [d for d in self.descriptors.values() if d.configured and d.supports(method)]

    def webhook_secret(self, key: str) -> Optional[str]:
        return self.webhook_secrets.get(key)


def build_descriptor(
    key: str,
    *,
    configured: bool,
    overrides: Optional[Mapping] = None,
) -> ProviderDescriptor:
    """Build a descriptor from the default table, applying optional overrides."""
    base = dict(DEFAULT_PROVIDERS[key])
    if overrides:
        base.update({k: v for k, v in overrides.items() if v is not None})
    return ProviderDescriptor(
        key=key,
        webhook_secret_ref=f"{key.upper()}__WEBHOOK_SECRET",
        configured=configured,
        **base,
    )
