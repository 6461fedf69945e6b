"""
Payment gateway port (application/ports) exposing a replaceable protocol.

Application depends on this Protocol; infrastructure implements adapters.
"""
from __future__ import annotations

from typing import Protocol, runtime_checkable

from application.dtos.payments import (
    ChargeRequest,
    ChargeResult,
    RefundCommand,
    RefundResult,
    WebhookNotification,
)


@runtime_checkable
class PaymentGateway(Protocol):
    """Gateway protocol for third-party payment providers.

    Implementations are async and never raise for declines or transport
    failures; those come back as `ChargeResult.outcome` / `RefundResult.status`.
    """

    provider: str

    async def charge(self, req: ChargeRequest) -> ChargeResult: ...

    async def refund(self, req: RefundCommand) -> RefundResult: ...

    def verify_webhook_signature(self, body: bytes, signature: str | None) -> bool: ...

    def parse_webhook(self, body: bytes) -> WebhookNotification: ...

    async def aclose(self) -> None: ...
