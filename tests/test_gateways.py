import hashlib
import hmac
import json
import time
from decimal import Decimal

import httpx
import pytest

from application.dtos.payments import ChargeRequest, RefundCommand
from core.settings import PaymentRetry
from domain.payment.entity import GATEWAY_TIMEOUT
from infrastructure.external.payments import build_gateways, build_provider_registry
from infrastructure.external.payments.base import sign_payload, to_cents, to_major
from infrastructure.external.payments.mercadopago_client import MercadoPagoClient
from infrastructure.external.payments.paypal_client import PayPalClient
from infrastructure.external.payments.stripe_client import StripeClient
from infrastructure.external.payments.wompi_client import WompiClient
from tests.fakes import WEBHOOK_SECRET, make_settings


BODY = b'{"event":"transaction.updated"}'


def _mock(client, handler):
    client._client = httpx.AsyncClient(base_url=client._base_url, transport=httpx.MockTransport(handler))
    return client


def _charge(**overrides) -> ChargeRequest:
    values = dict(payment_id="PAY_1", amount=119_000, currency="COP", method="pse", payment_data={"financial_institution_code": "1007"})
    values.update(overrides)
    return ChargeRequest(**values)


def test_amount_conversion():
    assert to_cents(119_000, "COP") == 11_900_000
    assert to_cents(1_050, "usd") == 1_050
    assert to_major(119_000, "COP") == Decimal("119000.00")
    assert to_major(1_050, "USD") == Decimal("10.50")


@pytest.mark.parametrize(
    "signature, expected",
    [
        (sign_payload(WEBHOOK_SECRET, BODY), True),
        ("sha256=" + sign_payload(WEBHOOK_SECRET, BODY), True),
        (sign_payload(WEBHOOK_SECRET, BODY).upper(), True),
        (sign_payload("other", BODY), False),
        ("", False),
        (None, False),
    ],
)
def test_hmac_signature(signature, expected):
    client = WompiClient(make_settings())
    assert client.verify_webhook_signature(BODY, signature) is expected


def test_signature_fails_without_secret():
    client = WompiClient(make_settings(wompi={"public_key": "pub", "private_key": "prv"}))
    assert client.verify_webhook_signature(BODY, sign_payload(WEBHOOK_SECRET, BODY)) is False


def test_stripe_native_signature_header():
    client = StripeClient(make_settings())
    ts = int(time.time())
    digest = hmac.new(WEBHOOK_SECRET.encode(), f"{ts}.".encode() + BODY, hashlib.sha256).hexdigest()
    assert client.verify_webhook_signature(BODY, f"t={ts},v1={digest}") is True
    assert client.verify_webhook_signature(BODY, f"t={ts},v1={'0' * 64}") is False


def test_stripe_signature_rejects_non_utf8_body():
    client = StripeClient(make_settings())
    assert client.verify_webhook_signature(b"\xff\xfe", "t=1,v1=abc") is False


def test_wompi_webhook_parsing():
    body = json.dumps(
        {"event": "transaction.updated", "data": {"transaction": {"id": "w-1", "status": "APPROVED", "reference": "PAY_1"}}}
    ).encode()
    note = WompiClient(make_settings()).parse_webhook(body)
    assert (note.transaction_id, note.provider_status, note.status, note.payment_id) == ("w-1", "APPROVED", "completed", "PAY_1")


def test_mercadopago_webhook_parsing():
    body = json.dumps({"type": "payment", "data": {"id": 987, "status": "rejected", "external_reference": "PAY_2"}}).encode()
    note = MercadoPagoClient(make_settings()).parse_webhook(body)
    assert note.transaction_id == "987"
    assert note.status == "failed"
    assert note.payment_id == "PAY_2"


def test_paypal_webhook_parsing():
    body = json.dumps(
        {"event_type": "PAYMENT.CAPTURE.COMPLETED", "resource": {"id": "CAP-1", "status": "COMPLETED", "custom_id": "PAY_3"}}
    ).encode()
    note = PayPalClient(make_settings()).parse_webhook(body)
    assert note.event_type == "PAYMENT.CAPTURE.COMPLETED"
    assert note.status == "completed"
    assert note.payment_id == "PAY_3"


def test_refund_notifications_carry_refund_status():
    voided = json.dumps(
        {"event": "transaction.updated", "data": {"transaction": {"id": "w-1", "status": "VOIDED", "reference": "PAY_1"}}}
    ).encode()
    note = WompiClient(make_settings()).parse_webhook(voided)
    assert (note.status, note.refund_status) == ("failed", "completed")

    refunded = json.dumps(
        {"type": "charge.refunded", "data": {"object": {"id": "ch_1", "payment_intent": "pi_1", "status": "succeeded"}}}
    ).encode()
    note = StripeClient(make_settings()).parse_webhook(refunded)
    assert note.transaction_id == "pi_1"
    assert note.refund_status == "completed"

    mp = json.dumps({"type": "payment", "data": {"id": 987, "status": "refunded", "external_reference": "PAY_2"}}).encode()
    assert MercadoPagoClient(make_settings()).parse_webhook(mp).refund_status == "completed"

    approved = json.dumps({"event": "transaction.updated", "data": {"transaction": {"id": "w-1", "status": "APPROVED"}}})
    assert WompiClient(make_settings()).parse_webhook(approved.encode()).refund_status is None


@pytest.mark.parametrize(
    "provider_status, expected",
    [
        ("VOIDED", "completed"),
        ("REFUNDED", "completed"),
        ("succeeded", "completed"),
        ("refunded", "completed"),
        ("in_process", "pending"),
        ("requires_action", "pending"),
        ("DECLINED", "failed"),
        ("MYSTERY", "failed"),
    ],
)
def test_refund_status_mapping(provider_status, expected):
    assert WompiClient._map_refund_status(provider_status) == expected


def test_unknown_status_and_garbage_body():
    client = WompiClient(make_settings())
    assert client.parse_webhook(b'{"id": "x", "status": "MYSTERY"}').status is None
    empty = client.parse_webhook(b"not json")
    assert empty.transaction_id is None and empty.status is None


@pytest.mark.parametrize(
    "provider_status, outcome",
    [("APPROVED", "succeeded"), ("PENDING", "pending"), ("DECLINED", "declined"), ("WHATEVER", "error")],
)
def test_charge_result_mapping(provider_status, outcome):
    result = WompiClient(make_settings())._charge_result(provider_status, "w-1", {})
    assert result.outcome == outcome
    if outcome == "declined":
        assert result.failure_reason == f"declined: {provider_status}"


@pytest.mark.asyncio
async def test_wompi_charge_posts_transaction():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["path"] = request.url.path
        seen["auth"] = request.headers["Authorization"]
        seen["body"] = json.loads(request.content)
        return httpx.Response(201, json={"data": {"id": "w-1", "status": "APPROVED"}})

    client = _mock(WompiClient(make_settings()), handler)
    result = await client.charge(_charge())
    await client.aclose()

    assert result.outcome == "succeeded"
    assert result.transaction_id == "w-1"
    assert seen["path"].endswith("/transactions")
    assert seen["auth"] == "Bearer prv_test"
    assert seen["body"]["amount_in_cents"] == 11_900_000
    assert seen["body"]["reference"] == "PAY_1"
    assert seen["body"]["payment_method"]["type"] == "PSE"


@pytest.mark.asyncio
async def test_wompi_decline_keeps_gateway_text_out_of_failure_reason():
    payload = {"data": {"id": "w-2", "status": "DECLINED", "status_message": "Fondos insuficientes en la cuenta 1234"}}
    client = _mock(WompiClient(make_settings()), lambda request: httpx.Response(201, json=payload))
    result = await client.charge(_charge())

    assert result.outcome == "declined"
    assert result.failure_reason == "declined: DECLINED"
    assert result.raw["data"]["status_message"] == payload["data"]["status_message"]


@pytest.mark.asyncio
@pytest.mark.parametrize("status_code, outcome", [(422, "declined"), (503, "error")])
async def test_wompi_http_errors(status_code, outcome):
    client = _mock(WompiClient(make_settings()), lambda request: httpx.Response(status_code, json={}))
    result = await client.charge(_charge())
    assert result.outcome == outcome
    assert result.failure_reason == f"http_{status_code}"


@pytest.mark.asyncio
async def test_transport_timeout_is_retried_then_reported():
    calls = []

    def handler(request):
        calls.append(request)
        raise httpx.ReadTimeout("slow", request=request)

    client = _mock(WompiClient(make_settings(retry=PaymentRetry(max=1, base_backoff=0.01))), handler)
    result = await client.charge(_charge())

    assert result.outcome == "timeout"
    assert result.failure_reason == GATEWAY_TIMEOUT
    assert len(calls) == 2


@pytest.mark.asyncio
async def test_wompi_refund_voids_transaction():
    def handler(request):
        assert request.url.path.endswith("/transactions/w-1/void")
        return httpx.Response(200, json={"data": {"transaction": {"id": "w-1", "status": "VOIDED"}}})

    client = _mock(WompiClient(make_settings()), handler)
    result = await client.refund(RefundCommand(payment_id="PAY_1", transaction_id="w-1", amount=1_000, currency="COP"))
    assert result.status == "completed"

    odd = _mock(
        WompiClient(make_settings()),
        lambda request: httpx.Response(200, json={"data": {"transaction": {"id": "w-1", "status": "MYSTERY"}}}),
    )
    unknown = await odd.refund(RefundCommand(payment_id="PAY_1", transaction_id="w-1", amount=1_000, currency="COP"))
    assert unknown.status == "failed"

    failing = _mock(WompiClient(make_settings()), lambda request: httpx.Response(500))
    failed = await failing.refund(RefundCommand(payment_id="PAY_1", transaction_id="w-1", amount=1_000, currency="COP"))
    assert failed.status == "failed"
    assert failed.failure_reason == "http_500"


def test_build_gateways_covers_every_provider():
    settings = make_settings()
    gateways = build_gateways(build_provider_registry(settings), settings)
    assert set(gateways) == {"wompi", "mercadopago", "stripe", "paypal"}
    assert isinstance(gateways["stripe"], StripeClient)
