from decimal import Decimal

import pytest

from domain.billing.fees import apply_rate, compute_fees, compute_payment_amounts, compute_taxes
from domain.billing.providers import build_descriptor
from domain.common.exceptions import DomainValidationException, UnsupportedMethodError


WOMPI = build_descriptor("wompi", configured=True)
STRIPE = build_descriptor("stripe", configured=True)
PAYPAL = build_descriptor("paypal", configured=True)


@pytest.mark.parametrize(
    "provider, method, amount, variable, total, net",
    [
        (WOMPI, "pse", 50_000, 750, 1_650, 48_350),
        (WOMPI, "credit_card", 100_000, 2_900, 3_800, 96_200),
        (WOMPI, "debit_card", 1_000, 19, 919, 81),
        # no method-specific rate: falls back to the generic card rate
        (STRIPE, "nequi", 100_000, 3_490, 4_390, 95_610),
        (PAYPAL, "paypal", 200_000, 8_980, 9_880, 190_120),
    ],
)
def test_compute_fees(provider, method, amount, variable, total, net):
    fees = compute_fees(provider, method, amount)
    assert fees.variable_fee == variable
    assert fees.fixed_fee == provider.fixed_fee
    assert fees.total_fee == total
    assert fees.net_amount == net
    assert fees.net_amount + fees.total_fee == amount


def test_compute_fees_without_rate_or_card_fallback():
    with pytest.raises(UnsupportedMethodError):
        compute_fees(PAYPAL, "pse", 50_000)


@pytest.mark.parametrize(
    "amount, rate, expected",
    [
        (50, Decimal("0.01"), 1),  # 0.5 rounds up
        (149, Decimal("0.01"), 1),
        (150, Decimal("0.01"), 2),
        (0, Decimal("0.19"), 0),
        (100_001, "0.19", 19_000),
    ],
)
def test_apply_rate_rounds_half_up(amount, rate, expected):
    assert apply_rate(amount, rate) == expected


def test_compute_taxes():
    taxes = compute_taxes(100_000, "0.19", "0.025")
    assert taxes.iva == 19_000
    assert taxes.retention == 2_500


def test_compute_payment_amounts():
    amounts = compute_payment_amounts(100_000, Decimal("0.05"), Decimal("0.19"))
    assert amounts.platform_fee == 5_000
    assert amounts.tax == 19_000
    assert amounts.total == 119_000
    assert amounts.professional_payout == 95_000


@pytest.mark.parametrize("amount", [-1, 1.5, True, "100"])
def test_rejects_bad_amounts(amount):
    with pytest.raises(DomainValidationException):
        compute_fees(WOMPI, "pse", amount)


def test_rejects_rate_out_of_range():
    with pytest.raises(DomainValidationException):
        compute_taxes(100, "1.5", "0")
    with pytest.raises(DomainValidationException):
        compute_payment_amounts(100, "-0.01", "0.19")
