"""
Wompi (Bancolombia) adapter over its REST API.

Transactions are created with the payment id as `reference`, which Wompi
keeps unique, so retried POSTs cannot double charge.
"""
from __future__ import annotations

from typing import Any, Optional

from application.dtos.payments import ChargeRequest, ChargeResult, RefundCommand, RefundResult
from core.settings import PaymentSettings
from infrastructure.external.payments.base import BasePaymentClient, to_cents


_METHOD_TYPES = {
    "credit_card": "CARD",
    "debit_card": "CARD",
    "pse": "PSE",
    "nequi": "NEQUI",
    "daviplata": "DAVIPLATA",
}


class WompiClient(BasePaymentClient):
    provider = "wompi"
    refund_webhook_statuses = frozenset({"VOIDED"})

    def __init__(self, settings: PaymentSettings):
        cfg = settings.wompi
        super().__init__(
            webhook_secret=cfg.webhook_secret,
            base_url=cfg.base_url,
            timeouts=settings.timeouts.model_dump(),
            retry={"max": settings.retry.max, "base": settings.retry.base_backoff},
        )
        self._private_key = cfg.private_key

    @property
    def _headers(self) -> dict[str, str]:
        return {"Authorization": f"Bearer {self._private_key}"}

    async def _charge(self, req: ChargeRequest) -> ChargeResult:
        payment_method = {"type": _METHOD_TYPES.get(req.method, "CARD"), **req.payment_data}
        body = {
            "amount_in_cents": to_cents(req.amount, req.currency),
            "currency": req.currency,
            "reference": req.payment_id,
            "payment_method": payment_method,
        }
        for key in ("customer_email", "acceptance_token"):
            if key in req.payment_data:
                body[key] = req.payment_data[key]
                payment_method.pop(key, None)

        data = await self._request_json("POST", "/transactions", json=body, headers=self._headers)
        txn = data.get("data") or {}
        return self._charge_result(str(txn.get("status", "")), txn.get("id"), data)

    async def _refund(self, req: RefundCommand) -> RefundResult:
        data = await self._request_json(
            "POST",
            f"/transactions/{req.transaction_id}/void",
            json={"amount_in_cents": to_cents(req.amount, req.currency)},
            headers=self._headers,
        )
        txn = (data.get("data") or {}).get("transaction") or data.get("data") or {}
        status = self._map_refund_status(str(txn.get("status", "")))
        return RefundResult(status=status, refund_id=txn.get("id"), raw=data)

    def _extract_webhook(self, payload: dict) -> tuple[Optional[str], Any, Optional[str], Optional[str]]:
        txn = (payload.get("data") or {}).get("transaction")
        if not isinstance(txn, dict):
            return None, None, None, None
        return payload.get("event"), txn.get("id"), txn.get("status"), txn.get("reference")
