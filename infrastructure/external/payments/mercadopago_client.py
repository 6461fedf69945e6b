"""
MercadoPago adapter (Payments API v1).
"""
from __future__ import annotations

from typing import Any, Optional

from application.dtos.payments import ChargeRequest, ChargeResult, RefundCommand, RefundResult
from core.settings import PaymentSettings
from infrastructure.external.payments.base import BasePaymentClient, to_major


_METHOD_IDS = {
    "pse": "pse",
    "efecty": "efecty",
}


class MercadoPagoClient(BasePaymentClient):
    provider = "mercadopago"
    refund_webhook_statuses = frozenset({"refunded"})

    def __init__(self, settings: PaymentSettings):
        cfg = settings.mercadopago
        super().__init__(
            webhook_secret=cfg.webhook_secret,
            base_url=cfg.base_url,
            timeouts=settings.timeouts.model_dump(),
            retry={"max": settings.retry.max, "base": settings.retry.base_backoff},
        )
        self._access_token = cfg.access_token

    def _headers(self, idempotency_key: Optional[str]) -> dict[str, str]:
        headers = {"Authorization": f"Bearer {self._access_token}"}
        if idempotency_key:
            headers["X-Idempotency-Key"] = idempotency_key
        return headers

    async def _charge(self, req: ChargeRequest) -> ChargeResult:
        body: dict[str, Any] = {
            "transaction_amount": float(to_major(req.amount, req.currency)),
            "description": req.description or req.payment_id,
            "external_reference": req.payment_id,
            "metadata": {"payment_id": req.payment_id},
            **req.payment_data,
        }
        if req.method in _METHOD_IDS:
            body.setdefault("payment_method_id", _METHOD_IDS[req.method])

        data = await self._request_json(
            "POST",
            "/v1/payments",
            json=body,
            headers=self._headers(req.idempotency_key or req.payment_id),
        )
        return self._charge_result(
            str(data.get("status", "")),
            data.get("id"),
            data,
            reason=data.get("status_detail") if data.get("status") in {"rejected", "cancelled"} else None,
        )

    async def _refund(self, req: RefundCommand) -> RefundResult:
        data = await self._request_json(
            "POST",
            f"/v1/payments/{req.transaction_id}/refunds",
            json={"amount": float(to_major(req.amount, req.currency))},
            headers=self._headers(req.idempotency_key),
        )
        return RefundResult(
            status=self._map_refund_status(str(data.get("status", ""))),
            refund_id=str(data["id"]) if data.get("id") is not None else None,
            raw=data,
        )

    def _extract_webhook(self, payload: dict) -> tuple[Optional[str], Any, Optional[str], Optional[str]]:
        data = payload.get("data")
        if not isinstance(data, dict) or "status" not in data:
            return None, None, None, None
        metadata = data.get("metadata") or {}
        return (
            payload.get("type") or payload.get("action"),
            data.get("id"),
            data.get("status"),
            metadata.get("payment_id") or data.get("external_reference"),
        )
