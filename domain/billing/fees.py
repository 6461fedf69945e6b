"""
Fee & tax calculator.

Pure functions over integer minor units. Rates are Decimal fractions
(0.19 == 19%) and every product is rounded half-up to a whole minor unit,
so results never depend on binary floating point.
"""
from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal, ROUND_HALF_UP
from typing import Union

from domain.billing.providers import GENERIC_CARD_METHOD, ProviderDescriptor
from domain.common.exceptions import DomainValidationException, UnsupportedMethodError


Rate = Union[Decimal, str, int]


@dataclass(frozen=True)
class FeeBreakdown:
    amount: int
    fee_rate: Decimal
    variable_fee: int
    fixed_fee: int
    total_fee: int
    net_amount: int
    provider: str


@dataclass(frozen=True)
class TaxBreakdown:
    iva: int
    retention: int


@dataclass(frozen=True)
class PaymentAmounts:
    service_amount: int
    platform_fee: int
    tax: int
    total: int

    @property
    def professional_payout(self) -> int:
        return self.service_amount - self.platform_fee


def round_minor(value: Decimal) -> int:
    """Round to the nearest minor unit, halves away from zero."""
    return int(value.quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def _as_rate(rate: Rate, field: str) -> Decimal:
    value = rate if isinstance(rate, Decimal) else Decimal(str(rate))
    if value < 0 or value > 1:
        raise DomainValidationException(f"Rate out of range: {rate}", field=field)
    return value


def _check_amount(amount: int, field: str = "amount") -> None:
    if isinstance(amount, bool) or not isinstance(amount, int):
        raise DomainValidationException(f"Amount must be integer minor units: {amount!r}", field=field)
    if amount < 0:
        raise DomainValidationException(f"Amount must not be negative: {amount}", field=field)


def apply_rate(amount: int, rate: Rate) -> int:
    return round_minor(Decimal(amount) * _as_rate(rate, "rate"))


def select_fee_rate(provider: ProviderDescriptor, method: str) -> Decimal:
    """Method-specific rate, falling back to the provider's generic card rate."""
    rate = provider.fee_rates.get(method)
    if rate is None:
        rate = provider.fee_rates.get(GENERIC_CARD_METHOD)
    if rate is None:
        raise UnsupportedMethodError(provider.key, method)
    return rate


def compute_fees(provider: ProviderDescriptor, method: str, amount: int) -> FeeBreakdown:
    _check_amount(amount)
    rate = select_fee_rate(provider, method)
    variable_fee = apply_rate(amount, rate)
    fixed_fee = provider.fixed_fee
    total_fee = variable_fee + fixed_fee
    return FeeBreakdown(
        amount=amount,
        fee_rate=rate,
        variable_fee=variable_fee,
        fixed_fee=fixed_fee,
        total_fee=total_fee,
        net_amount=amount - total_fee,
        provider=provider.display_name,
    )


def compute_taxes(amount: int, iva_rate: Rate, retention_rate: Rate) -> TaxBreakdown:
    _check_amount(amount)
    return TaxBreakdown(
        iva=round_minor(Decimal(amount) * _as_rate(iva_rate, "iva_rate")),
        retention=round_minor(Decimal(amount) * _as_rate(retention_rate, "retention_rate")),
    )


def compute_payment_amounts(service_amount: int, platform_fee_rate: Rate, iva_rate: Rate) -> PaymentAmounts:
    """Charge breakdown for a booking: total = service + tax."""
    _check_amount(service_amount, "service_amount")
    platform_fee = round_minor(Decimal(service_amount) * _as_rate(platform_fee_rate, "platform_fee_rate"))
    tax = compute_taxes(service_amount, iva_rate, 0).iva
    return PaymentAmounts(
        service_amount=service_amount,
        platform_fee=platform_fee,
        tax=tax,
        total=service_amount + tax,
    )
