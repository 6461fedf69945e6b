"""
Stripe PaymentIntents adapter using the official stripe-python SDK.

The SDK is synchronous, so calls run in a worker thread. Intents are created
with `confirm=True` and the payment id as idempotency key. Webhooks accept
either the platform HMAC header or Stripe's own `t=...,v1=...` signature.
"""
from __future__ import annotations

import asyncio
from typing import Any, Optional

import stripe

from application.dtos.payments import ChargeRequest, ChargeResult, RefundCommand, RefundResult
from core.settings import PaymentSettings
from domain.payment.entity import GATEWAY_TIMEOUT
from infrastructure.external.payments.base import BasePaymentClient, to_cents


STRIPE_SIGNATURE_TOLERANCE = 300


class StripeClient(BasePaymentClient):
    provider = "stripe"

    def __init__(self, settings: PaymentSettings):
        super().__init__(
            webhook_secret=settings.stripe.webhook_secret,
            timeouts=settings.timeouts.model_dump(),
            retry={"max": settings.retry.max, "base": settings.retry.base_backoff},
        )
        self._api_key = settings.stripe.secret_key

    async def _charge(self, req: ChargeRequest) -> ChargeResult:
        params: dict[str, Any] = {
            "amount": to_cents(req.amount, req.currency),
            "currency": req.currency.lower(),
            "confirm": True,
            "description": req.description,
            "metadata": {"payment_id": req.payment_id},
            "automatic_payment_methods": {"enabled": True, "allow_redirects": "never"},
        }
        if req.payment_data.get("payment_method"):
            params["payment_method"] = req.payment_data["payment_method"]
        if req.customer_id:
            params["metadata"]["customer_id"] = req.customer_id

        try:
            intent = await asyncio.to_thread(
                stripe.PaymentIntent.create,
                api_key=self._api_key,
                idempotency_key=req.idempotency_key or req.payment_id,
                **params,
            )
        except stripe.CardError as exc:
            error = exc.error
            intent_obj = getattr(error, "payment_intent", None) or {}
            return ChargeResult(
                outcome="declined",
                transaction_id=intent_obj.get("id") if isinstance(intent_obj, dict) else None,
                provider_status="requires_payment_method",
                failure_reason=f"declined: {exc.code or 'card_error'}",
            )
        except stripe.APIConnectionError:
            return ChargeResult(outcome="timeout", failure_reason=GATEWAY_TIMEOUT)
        except stripe.StripeError as exc:
            return ChargeResult(outcome="error", failure_reason=f"stripe_error: {exc.code or type(exc).__name__}")

        return self._charge_result(str(intent["status"]), intent["id"], dict(intent))

    async def _refund(self, req: RefundCommand) -> RefundResult:
        try:
            refund = await asyncio.to_thread(
                stripe.Refund.create,
                api_key=self._api_key,
                idempotency_key=req.idempotency_key,
                payment_intent=req.transaction_id,
                amount=to_cents(req.amount, req.currency),
                metadata={"payment_id": req.payment_id, "reason": req.reason or ""},
            )
        except stripe.APIConnectionError:
            return RefundResult(status="failed", failure_reason=GATEWAY_TIMEOUT)
        except stripe.StripeError as exc:
            return RefundResult(status="failed", failure_reason=f"stripe_error: {exc.code or type(exc).__name__}")
        return RefundResult(
            status=self._map_refund_status(str(refund.get("status", ""))),
            refund_id=str(refund["id"]),
            raw=dict(refund),
        )

    def verify_webhook_signature(self, body: bytes, signature: str | None) -> bool:  # type: ignore[override]
        if signature and signature.startswith("t=") and self._webhook_secret:
            try:
                stripe.WebhookSignature.verify_header(
                    body.decode("utf-8"), signature, self._webhook_secret, tolerance=STRIPE_SIGNATURE_TOLERANCE
                )
            except (stripe.SignatureVerificationError, UnicodeDecodeError):
                return False
            return True
        return super().verify_webhook_signature(body, signature)

    def _extract_webhook(self, payload: dict) -> tuple[Optional[str], Any, Optional[str], Optional[str]]:
        obj = (payload.get("data") or {}).get("object")
        if not isinstance(obj, dict):
            return None, None, None, None
        metadata = obj.get("metadata") or {}
        # charge and refund objects point back at the intent we store as the transaction id
        transaction_id = obj.get("payment_intent") or obj.get("id")
        return payload.get("type"), transaction_id, obj.get("status"), metadata.get("payment_id")
