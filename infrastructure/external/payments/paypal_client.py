"""
PayPal adapter (Orders v2 with immediate capture).
"""
from __future__ import annotations

from typing import Any, Optional

import httpx

from application.dtos.payments import ChargeRequest, ChargeResult, RefundCommand, RefundResult
from core.settings import PaymentSettings
from infrastructure.external.payments.base import BasePaymentClient, to_major


class PayPalClient(BasePaymentClient):
    provider = "paypal"

    def __init__(self, settings: PaymentSettings):
        cfg = settings.paypal
        super().__init__(
            webhook_secret=cfg.webhook_secret,
            base_url=cfg.base_url,
            timeouts=settings.timeouts.model_dump(),
            retry={"max": settings.retry.max, "base": settings.retry.base_backoff},
        )
        self._auth = httpx.BasicAuth(cfg.client_id or "", cfg.client_secret or "")

    async def _access_token(self) -> str:
        data = await self._request_json(
            "POST",
            "/v1/oauth2/token",
            data={"grant_type": "client_credentials"},
            auth=self._auth,
        )
        return data["access_token"]

    async def _headers(self, request_id: Optional[str]) -> dict[str, str]:
        headers = {"Authorization": f"Bearer {await self._access_token()}"}
        if request_id:
            headers["PayPal-Request-Id"] = request_id
        return headers

    async def _charge(self, req: ChargeRequest) -> ChargeResult:
        body = {
            "intent": "CAPTURE",
            "purchase_units": [
                {
                    "reference_id": req.payment_id,
                    "custom_id": req.payment_id,
                    "description": req.description,
                    "amount": {"currency_code": req.currency, "value": str(to_major(req.amount, req.currency))},
                }
            ],
            "payment_source": req.payment_data or {},
        }
        data = await self._request_json(
            "POST",
            "/v2/checkout/orders",
            json=body,
            headers=await self._headers(req.idempotency_key or req.payment_id),
        )
        captures = [
            c
            for unit in data.get("purchase_units") or []
            for c in ((unit.get("payments") or {}).get("captures") or [])
        ]
        capture = captures[0] if captures else {}
        status = capture.get("status") or data.get("status", "")
        return self._charge_result(str(status), capture.get("id") or data.get("id"), data)

    async def _refund(self, req: RefundCommand) -> RefundResult:
        data = await self._request_json(
            "POST",
            f"/v2/payments/captures/{req.transaction_id}/refund",
            json={
                "amount": {"currency_code": req.currency, "value": str(to_major(req.amount, req.currency))},
                "note_to_payer": req.reason,
            },
            headers=await self._headers(req.idempotency_key),
        )
        return RefundResult(
            status=self._map_refund_status(str(data.get("status", ""))),
            refund_id=data.get("id"),
            raw=data,
        )

    def _extract_webhook(self, payload: dict) -> tuple[Optional[str], Any, Optional[str], Optional[str]]:
        resource = payload.get("resource")
        if not isinstance(resource, dict):
            return None, None, None, None
        return payload.get("event_type"), resource.get("id"), resource.get("status"), resource.get("custom_id")
