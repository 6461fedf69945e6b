"""
Base payment client implementing shared concerns: http, retry, logging,
status mapping and webhook signature verification.

Concrete providers subclass and implement `_charge` / `_refund` plus the
webhook payload extraction. Declines and transport failures are returned
as typed results so callers never see provider exceptions.
"""
from __future__ import annotations

import hashlib
import hmac
import json
from contextlib import asynccontextmanager
from decimal import Decimal
from typing import Any, Callable, Optional

import httpx
from tenacity import AsyncRetrying, stop_after_attempt, wait_exponential, retry_if_exception_type

from core.logging_config import get_logger
from application.dtos.payments import (
    ChargeRequest,
    ChargeResult,
    RefundCommand,
    RefundResult,
    WebhookNotification,
)
from application.ports.payment_gateway import PaymentGateway
from domain.payment.entity import GATEWAY_TIMEOUT
from shared.codes.payment_codes import PROVIDER_REFUND_STATUS_TO_INTERNAL, PROVIDER_STATUS_TO_INTERNAL


logger = get_logger(__name__)

# Amounts are integers in the smallest unit the platform prices in.
# COP is priced in whole pesos.
CURRENCY_EXPONENT = {"COP": 0, "USD": 2, "EUR": 2}

INTERNAL_STATUSES = {"pending", "processing", "completed", "failed"}

_OUTCOME_BY_STATUS = {
    "completed": "succeeded",
    "processing": "pending",
    "pending": "pending",
    "failed": "declined",
}


def to_cents(amount: int, currency: str) -> int:
    """Platform amount -> provider amount with two decimals."""
    return amount * 10 ** (2 - CURRENCY_EXPONENT.get(currency.upper(), 2))


def to_major(amount: int, currency: str) -> Decimal:
    """Platform amount -> decimal major units (e.g. PayPal `value`)."""
    return (Decimal(amount) / (Decimal(10) ** CURRENCY_EXPONENT.get(currency.upper(), 2))).quantize(Decimal("0.01"))


def sign_payload(secret: str, body: bytes) -> str:
    return hmac.new(secret.encode("utf-8"), body, hashlib.sha256).hexdigest()


class BasePaymentClient(PaymentGateway):
    provider: str = "base"
    # provider statuses that only ever show up on refund/void notifications
    refund_webhook_statuses: frozenset[str] = frozenset()

    def __init__(
        self,
        *,
        webhook_secret: Optional[str] = None,
        base_url: Optional[str] = None,
        timeouts: Optional[dict[str, float]] = None,
        retry: Optional[dict[str, Any]] = None,
    ) -> None:
        self._webhook_secret = webhook_secret
        self._base_url = (base_url or "").rstrip("/")
        self._timeouts_cfg = timeouts or {"connect": 1.0, "read": 3.0, "write": 3.0, "total": 5.0}
        self._retry_cfg = retry or {"max": 2, "base": 0.2}
        self._client: Optional[httpx.AsyncClient] = None

    @property
    def timeouts(self) -> httpx.Timeout:
        return httpx.Timeout(
            connect=self._timeouts_cfg["connect"],
            read=self._timeouts_cfg["read"],
            write=self._timeouts_cfg["write"],
            pool=self._timeouts_cfg["total"],
        )

    @asynccontextmanager
    async def client(self):
        if self._client is None:
            self._client = httpx.AsyncClient(base_url=self._base_url, timeout=self.timeouts)
        # Keep open for reuse; explicit aclose() will close.
        yield self._client

    async def aclose(self) -> None:
        """Close underlying HTTP client if created."""
        if self._client is not None:
            try:
                await self._client.aclose()
            finally:
                self._client = None

    async def _retry(self, fn: Callable[[], Any]):
        async for attempt in AsyncRetrying(
            stop=stop_after_attempt(int(self._retry_cfg["max"]) + 1),
            wait=wait_exponential(multiplier=self._retry_cfg["base"], min=0.1, max=2.0),
            retry=retry_if_exception_type((httpx.TimeoutException, httpx.TransportError)),
            reraise=True,
        ):
            with attempt:
                return await fn()

    async def _request_json(self, method: str, path: str, **kwargs) -> dict[str, Any]:
        async def _do():
            async with self.client() as http:
                resp = await http.request(method, path, **kwargs)
                resp.raise_for_status()
                return resp.json()

        return await self._retry(_do)

    # ---- port implementation ----

    async def charge(self, req: ChargeRequest) -> ChargeResult:  # type: ignore[override]
        self._log("gateway_charge_request", payment_id=req.payment_id, method=req.method, amount=req.amount)
        try:
            result = await self._charge(req)
        except httpx.TimeoutException:
            result = ChargeResult(outcome="timeout", failure_reason=GATEWAY_TIMEOUT)
        except httpx.HTTPStatusError as exc:
            result = self._result_from_http_error(exc)
        except httpx.TransportError as exc:
            result = ChargeResult(outcome="error", failure_reason=f"transport_error: {type(exc).__name__}")
        self._log(
            "gateway_charge_result",
            payment_id=req.payment_id,
            outcome=result.outcome,
            provider_status=result.provider_status,
            transaction_id=result.transaction_id,
        )
        return result

    async def refund(self, req: RefundCommand) -> RefundResult:  # type: ignore[override]
        self._log("gateway_refund_request", payment_id=req.payment_id, amount=req.amount)
        try:
            result = await self._refund(req)
        except httpx.TimeoutException:
            result = RefundResult(status="failed", failure_reason=GATEWAY_TIMEOUT)
        except httpx.HTTPStatusError as exc:
            result = RefundResult(status="failed", failure_reason=f"http_{exc.response.status_code}")
        except httpx.TransportError as exc:
            result = RefundResult(status="failed", failure_reason=f"transport_error: {type(exc).__name__}")
        self._log("gateway_refund_result", payment_id=req.payment_id, status=result.status, refund_id=result.refund_id)
        return result

    async def _charge(self, req: ChargeRequest) -> ChargeResult:
        raise NotImplementedError

    async def _refund(self, req: RefundCommand) -> RefundResult:
        raise NotImplementedError

    def verify_webhook_signature(self, body: bytes, signature: str | None) -> bool:  # type: ignore[override]
        """HMAC-SHA256 over the raw body, hex encoded, constant-time compared."""
        if not self._webhook_secret or not signature:
            return False
        candidate = signature.strip()
        if candidate.startswith("sha256="):
            candidate = candidate[len("sha256="):]
        expected = sign_payload(self._webhook_secret, body)
        return hmac.compare_digest(expected, candidate.lower())

    def parse_webhook(self, body: bytes) -> WebhookNotification:  # type: ignore[override]
        try:
            payload = json.loads(body or b"{}")
        except ValueError:
            payload = {}
        if not isinstance(payload, dict):
            payload = {}
        event_type, transaction_id, provider_status, payment_id = self._extract_webhook(payload)
        if transaction_id is None and provider_status is None:
            event_type, transaction_id, provider_status, payment_id = self._extract_generic(payload)
        return WebhookNotification(
            provider=self.provider,
            event_type=event_type,
            transaction_id=str(transaction_id) if transaction_id is not None else None,
            provider_status=provider_status,
            status=self._map_status(provider_status) if provider_status else None,
            refund_status=self._map_refund_status(provider_status)
            if provider_status and self._is_refund_event(event_type, provider_status)
            else None,
            payment_id=payment_id,
            raw=payload,
        )

    def _is_refund_event(self, event_type: Optional[str], provider_status: str) -> bool:
        return "refund" in (event_type or "").lower() or provider_status in self.refund_webhook_statuses

    def _extract_webhook(self, payload: dict) -> tuple[Optional[str], Any, Optional[str], Optional[str]]:
        """Provider-specific shape: (event_type, transaction_id, status, payment_id)."""
        return None, None, None, None

    @staticmethod
    def _extract_generic(payload: dict) -> tuple[Optional[str], Any, Optional[str], Optional[str]]:
        metadata = payload.get("metadata") or {}
        return (
            payload.get("event") or payload.get("type"),
            payload.get("transaction_id") or payload.get("id"),
            payload.get("status"),
            metadata.get("payment_id") or payload.get("payment_id"),
        )

    # Helpers
    def _map_status(self, provider_status: str) -> Optional[str]:
        mapping = PROVIDER_STATUS_TO_INTERNAL.get(self.provider, {})
        status = mapping.get(provider_status, provider_status)
        return status if status in INTERNAL_STATUSES else None

    @staticmethod
    def _map_refund_status(provider_status: str) -> str:
        return PROVIDER_REFUND_STATUS_TO_INTERNAL.get(provider_status, "failed")

    def _charge_result(self, provider_status: str, transaction_id: Any, raw: dict, reason: Optional[str] = None) -> ChargeResult:
        internal = self._map_status(provider_status)
        outcome = _OUTCOME_BY_STATUS.get(internal or "", "error")
        if outcome == "declined" and not reason:
            reason = f"declined: {provider_status}"
        elif outcome == "error" and not reason:
            reason = f"unknown provider status: {provider_status}"
        return ChargeResult(
            outcome=outcome,
            transaction_id=str(transaction_id) if transaction_id is not None else None,
            provider_status=provider_status,
            failure_reason=reason,
            raw=raw,
        )

    def _result_from_http_error(self, exc: httpx.HTTPStatusError) -> ChargeResult:
        code = exc.response.status_code
        # 4xx: request rejected by the provider; 5xx: provider-side failure
        outcome = "declined" if 400 <= code < 500 else "error"
        return ChargeResult(outcome=outcome, failure_reason=f"http_{code}")

    def _log(self, event: str, **kwargs) -> None:
        logger.info(
            event,
            provider=self.provider,
            **kwargs,
        )
