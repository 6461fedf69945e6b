import asyncio
import json

import pytest

from application.dtos.payments import ChargeResult, CreatePaymentRequest
from application.services.webhook_service import WebhookService
from domain.booking.entity import BookingPaymentStatus
from domain.common.exceptions import NotFoundException, PaymentSignatureError
from domain.payment.entity import PaymentStatus
from infrastructure.external.payments.base import sign_payload
from tests.fakes import CLIENT, WEBHOOK_SECRET


PSE = CreatePaymentRequest(payment_method="pse")


@pytest.fixture
def webhooks(uow_factory, lifecycle, gateways):
    return WebhookService(uow_factory, lifecycle, gateways)


@pytest.fixture
def pending_charge(gateways):
    gateways["wompi"].charge_result = ChargeResult(outcome="pending", transaction_id="txn_w", provider_status="PENDING")


def _event(status: str, reference: str, transaction_id: str = "txn_w") -> bytes:
    return json.dumps(
        {
            "event": "transaction.updated",
            "transaction_id": transaction_id,
            "status": status,
            "metadata": {"payment_id": reference},
        }
    ).encode()


def _signed(body: bytes) -> str:
    return sign_payload(WEBHOOK_SECRET, body)


@pytest.mark.asyncio
async def test_approved_webhook_completes_payment(webhooks, lifecycle, seed_booking, pending_charge, uow_factory, notifier):
    booking = await seed_booking()
    created = await lifecycle.create_payment(CLIENT, booking.id, PSE)
    body = _event("APPROVED", created.payment.id)

    ack = await webhooks.handle("wompi", body, _signed(body))

    assert ack.received and ack.applied
    assert ack.payment_id == created.payment.id
    async with uow_factory(readonly=True) as uow:
        payment = await uow.payment_repository.get_by_id(created.payment.id)
        invoice = await uow.invoice_repository.get_by_payment_id(created.payment.id)
        stored_booking = await uow.booking_repository.get_by_id(booking.id)
    assert payment.status == PaymentStatus.COMPLETED
    assert invoice is not None
    assert stored_booking.payment_status == BookingPaymentStatus.PAID
    assert notifier.names == ["payment_completed"]


@pytest.mark.asyncio
async def test_duplicate_webhook_is_idempotent(webhooks, lifecycle, seed_booking, pending_charge, notifier):
    booking = await seed_booking()
    created = await lifecycle.create_payment(CLIENT, booking.id, PSE)
    body = _event("APPROVED", created.payment.id)

    first = await webhooks.handle("wompi", body, _signed(body))
    second = await webhooks.handle("wompi", body, _signed(body))

    assert first.applied is True
    assert second.applied is False
    assert notifier.names == ["payment_completed"]


@pytest.mark.asyncio
async def test_failed_webhook_after_completion_is_ignored(webhooks, lifecycle, seed_booking, notifier):
    booking = await seed_booking()
    created = await lifecycle.create_payment(CLIENT, booking.id, PSE)
    assert created.payment.status == PaymentStatus.COMPLETED
    body = _event("DECLINED", created.payment.id, transaction_id="txn_1")

    ack = await webhooks.handle("wompi", body, _signed(body))

    assert ack.applied is False
    payment = await lifecycle.get_payment(CLIENT, created.payment.id)
    assert payment.status == PaymentStatus.COMPLETED
    assert notifier.names == ["payment_completed"]


@pytest.mark.asyncio
async def test_concurrent_completion_signals_issue_one_invoice(webhooks, lifecycle, seed_booking, pending_charge, uow_factory, notifier):
    booking = await seed_booking()
    created = await lifecycle.create_payment(CLIENT, booking.id, PSE)
    body = _event("APPROVED", created.payment.id)

    acks = await asyncio.gather(*(webhooks.handle("wompi", body, _signed(body)) for _ in range(4)))

    assert sum(1 for ack in acks if ack.applied) == 1
    assert notifier.names == ["payment_completed"]
    async with uow_factory(readonly=True) as uow:
        payment = await uow.payment_repository.get_by_id(created.payment.id)
        invoice = await uow.invoice_repository.get_by_payment_id(created.payment.id)
    assert invoice.id == payment.invoice_id


@pytest.mark.asyncio
async def test_webhook_resolves_payment_by_provider_reference(webhooks, lifecycle, seed_booking, pending_charge):
    booking = await seed_booking()
    created = await lifecycle.create_payment(CLIENT, booking.id, PSE)
    body = _event("DECLINED", reference="unknown-ref", transaction_id="txn_w")

    ack = await webhooks.handle("wompi", body, _signed(body))

    assert ack.applied is True
    payment = await lifecycle.get_payment(CLIENT, created.payment.id)
    assert payment.status == PaymentStatus.FAILED
    assert payment.failure_reason == "declined: DECLINED"


@pytest.mark.asyncio
async def test_non_terminal_webhook_is_acknowledged_without_change(webhooks, lifecycle, seed_booking, pending_charge):
    booking = await seed_booking()
    created = await lifecycle.create_payment(CLIENT, booking.id, PSE)
    body = _event("PENDING", created.payment.id)

    ack = await webhooks.handle("wompi", body, _signed(body))

    assert ack.received and not ack.applied
    payment = await lifecycle.get_payment(CLIENT, created.payment.id)
    assert payment.status == PaymentStatus.PROCESSING


@pytest.mark.asyncio
async def test_unknown_payment_is_acknowledged(webhooks):
    body = _event("APPROVED", "PAY_nope", transaction_id="txn_nope")
    ack = await webhooks.handle("wompi", body, _signed(body))
    assert ack.received is True
    assert ack.payment_id is None


@pytest.mark.asyncio
@pytest.mark.parametrize("signature", [None, "", "deadbeef", "sha256=deadbeef"])
async def test_bad_signature_rejected_before_any_change(webhooks, lifecycle, seed_booking, pending_charge, signature):
    booking = await seed_booking()
    created = await lifecycle.create_payment(CLIENT, booking.id, PSE)
    body = _event("APPROVED", created.payment.id)

    with pytest.raises(PaymentSignatureError):
        await webhooks.handle("wompi", body, signature)

    payment = await lifecycle.get_payment(CLIENT, created.payment.id)
    assert payment.status == PaymentStatus.PROCESSING


@pytest.mark.asyncio
async def test_unknown_provider(webhooks):
    with pytest.raises(NotFoundException):
        await webhooks.handle("bitpay", b"{}", "sig")
