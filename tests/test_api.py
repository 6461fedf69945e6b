import json
from datetime import datetime, timedelta, timezone

import httpx
import jwt
import pytest
import pytest_asyncio

from core.config import settings
from infrastructure import database
from infrastructure.bootstrap import build_payment_services
from infrastructure.external.payments.base import sign_payload
from main import create_app
from tests.fakes import ADMIN, CLIENT, STRANGER, WEBHOOK_SECRET


def _token(actor, **claims) -> str:
    payload = {"sub": actor.user_id, "role": actor.role.value, "type": "access"}
    payload.update(claims)
    return jwt.encode(payload, settings.SECRET_KEY, algorithm=settings.ALGORITHM)


def _auth(actor) -> dict[str, str]:
    return {"Authorization": f"Bearer {_token(actor)}"}


@pytest_asyncio.fixture
async def api(session_factory, payment_settings, gateways, notifier):
    services = build_payment_services(
        session_factory=session_factory,
        settings=payment_settings,
        gateways=gateways,
        notifier=notifier,
    )
    app = create_app(payment_services=services)
    async with app.router.lifespan_context(app):
        transport = httpx.ASGITransport(app=app)
        async with httpx.AsyncClient(transport=transport, base_url="http://test") as client:
            yield client
    # lifespan creates tables through the module engine; drop its pooled connections
    await database.engine.dispose()


@pytest.mark.asyncio
async def test_health(api):
    resp = await api.get("/health")
    assert resp.status_code == 200
    assert resp.json()["data"] == {"status": "healthy"}
    assert resp.headers["X-Request-ID"]


@pytest.mark.asyncio
async def test_pay_then_fetch_payment_and_invoice(api, seed_booking):
    booking = await seed_booking()

    resp = await api.post(
        f"/api/v1/payments/service-requests/{booking.id}/pay",
        json={"payment_method": "pse", "payment_data": {"financial_institution_code": "1007"}},
        headers=_auth(CLIENT),
    )

    assert resp.status_code == 201
    body = resp.json()
    assert body["code"] == 0
    payment = body["data"]["payment"]
    assert payment["status"] == "completed"
    assert payment["total_amount"] == 119_000
    assert body["data"]["booking_payment_status"] == "paid"

    fetched = await api.get(f"/api/v1/payments/{payment['id']}", headers=_auth(CLIENT))
    assert fetched.json()["data"]["id"] == payment["id"]

    invoice = await api.get(f"/api/v1/invoices/{payment['invoice_id']}", headers=_auth(CLIENT))
    assert invoice.status_code == 200
    assert invoice.json()["data"]["status"] == "paid"
    assert invoice.json()["data"]["amounts"]["total"] == 119_000

    pdf = await api.get(f"/api/v1/invoices/{payment['invoice_id']}/download", headers=_auth(CLIENT))
    assert pdf.status_code == 200
    assert pdf.headers["content-type"] == "application/pdf"
    assert "attachment" in pdf.headers["content-disposition"]
    assert pdf.content.startswith(b"%PDF")


@pytest.mark.asyncio
async def test_authentication_errors(api):
    missing = await api.get("/api/v1/payments/PAY_x")
    assert missing.status_code == 401
    assert missing.headers["WWW-Authenticate"] == "Bearer"

    garbage = await api.get("/api/v1/payments/PAY_x", headers={"Authorization": "Bearer nope"})
    assert garbage.status_code == 401

    expired = _token(CLIENT, exp=datetime.now(timezone.utc) - timedelta(minutes=1))
    resp = await api.get("/api/v1/payments/PAY_x", headers={"Authorization": f"Bearer {expired}"})
    assert resp.status_code == 401
    assert resp.json()["message"] == "Token expired"

    refresh = _token(CLIENT, type="refresh")
    resp = await api.get("/api/v1/payments/PAY_x", headers={"Authorization": f"Bearer {refresh}"})
    assert resp.status_code == 401


@pytest.mark.asyncio
async def test_error_envelopes(api, seed_booking):
    booking = await seed_booking()
    url = f"/api/v1/payments/service-requests/{booking.id}/pay"

    unsupported = await api.post(url, json={"payment_method": "bitcoin"}, headers=_auth(CLIENT))
    assert unsupported.status_code == 422

    forbidden = await api.post(url, json={"payment_method": "pse"}, headers=_auth(STRANGER))
    assert forbidden.status_code == 403

    missing = await api.get("/api/v1/payments/PAY_missing", headers=_auth(CLIENT))
    assert missing.status_code == 404
    assert missing.json()["error"]["request_id"]

    await api.post(url, json={"payment_method": "pse"}, headers=_auth(CLIENT))
    again = await api.post(url, json={"payment_method": "pse"}, headers=_auth(CLIENT))
    assert again.status_code == 409


@pytest.mark.asyncio
async def test_refund_and_cancel_routes(api, seed_booking):
    booking = await seed_booking()
    paid = await api.post(
        f"/api/v1/payments/service-requests/{booking.id}/pay", json={"payment_method": "pse"}, headers=_auth(CLIENT)
    )
    payment = paid.json()["data"]["payment"]

    refund = await api.post(
        f"/api/v1/payments/{payment['id']}/refund", json={"amount": 10_000, "reason": "late"}, headers=_auth(ADMIN)
    )
    assert refund.status_code == 200
    assert refund.json()["data"]["refunded_amount"] == 10_000

    cancel = await api.post(f"/api/v1/invoices/{payment['invoice_id']}/cancel", headers=_auth(ADMIN))
    assert cancel.status_code == 409


@pytest.mark.asyncio
async def test_webhook_route(api, seed_booking, gateways):
    body = json.dumps({"transaction_id": "txn_z", "status": "APPROVED", "metadata": {"payment_id": "PAY_z"}}).encode()

    rejected = await api.post("/api/v1/payments/webhooks/wompi", content=body, headers={"X-Webhook-Signature": "bad"})
    assert rejected.status_code == 401
    assert "WWW-Authenticate" not in rejected.headers

    accepted = await api.post(
        "/api/v1/payments/webhooks/wompi",
        content=body,
        headers={"X-Webhook-Signature": sign_payload(WEBHOOK_SECRET, body)},
    )
    assert accepted.status_code == 200
    assert accepted.json()["data"]["received"] is True

    unknown = await api.post("/api/v1/payments/webhooks/bitpay", content=body, headers={"X-Webhook-Signature": "x"})
    assert unknown.status_code == 404
