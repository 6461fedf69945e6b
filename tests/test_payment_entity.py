import re

import pytest

from domain.common.exceptions import ConflictException, DomainValidationException
from domain.payment.entity import Payment, PaymentStatus, RefundStatus, generate_payment_id


def _payment(**overrides) -> Payment:
    values = dict(
        booking_id="b1",
        client_id="c1",
        professional_id="p1",
        service_amount=100_000,
        platform_fee=5_000,
        tax_amount=19_000,
        currency="cop",
        method="pse",
        provider="wompi",
    )
    values.update(overrides)
    return Payment.create(**values)


def test_create_derives_total_and_normalizes_currency():
    payment = _payment()
    assert payment.total_amount == 119_000
    assert payment.currency == "COP"
    assert payment.status == PaymentStatus.PENDING
    assert payment.professional_payout == 95_000
    assert payment.refund_status == RefundStatus.NONE


def test_payment_id_format():
    assert re.fullmatch(r"PAY_[0-9A-Z]+_[0-9A-Z]{5}", generate_payment_id())


@pytest.mark.parametrize(
    "overrides",
    [
        {"service_amount": 0},
        {"tax_amount": -1},
        {"platform_fee": 200_000},
        {"currency": "BRL"},
    ],
)
def test_invalid_payments_rejected(overrides):
    with pytest.raises(DomainValidationException):
        _payment(**overrides)


def test_total_must_match_components():
    payment = _payment()
    with pytest.raises(DomainValidationException):
        Payment(**{**payment.__dict__, "total_amount": 1})


def test_terminal_states_are_sticky():
    payment = _payment()
    payment.mark_processing()
    payment.mark_completed("txn_1", {"status": "APPROVED"})
    assert payment.is_terminal() and payment.is_settled()
    assert payment.provider_transaction_id == "txn_1"
    with pytest.raises(DomainValidationException):
        payment.mark_failed("late decline")

    failed = _payment()
    failed.mark_failed("declined")
    with pytest.raises(DomainValidationException):
        failed.mark_completed()


def test_processing_only_from_pending():
    payment = _payment()
    payment.mark_processing()
    with pytest.raises(DomainValidationException):
        payment.mark_processing()


def _completed() -> Payment:
    payment = _payment()
    payment.mark_processing()
    payment.mark_completed("txn_1")
    return payment


def test_refund_defaults_to_refundable_amount():
    payment = _completed()
    assert payment.begin_refund(None, "cancelled") == 119_000
    assert payment.refund_status == RefundStatus.PENDING
    payment.complete_refund("rf_1")
    assert payment.refunded_amount == 119_000
    assert payment.is_fully_refunded()
    # status stays completed; the refund lives in its own sub-record
    assert payment.status == PaymentStatus.COMPLETED


def test_refund_requires_completed_payment():
    with pytest.raises(ConflictException):
        _payment().begin_refund(1_000, None)


@pytest.mark.parametrize("amount", [0, -5, 119_001])
def test_refund_amount_bounds(amount):
    with pytest.raises(DomainValidationException):
        _completed().begin_refund(amount, None)


def test_only_one_refund_at_a_time():
    payment = _completed()
    payment.begin_refund(10_000, None)
    with pytest.raises(ConflictException):
        payment.begin_refund(10_000, None)
    payment.complete_refund()
    with pytest.raises(ConflictException):
        payment.begin_refund(10_000, None)


def test_failed_refund_can_be_retried():
    payment = _completed()
    payment.begin_refund(10_000, None)
    payment.fail_refund("http_500")
    assert payment.refund_status == RefundStatus.FAILED
    assert payment.begin_refund(10_000, None) == 10_000
