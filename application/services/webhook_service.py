"""
Webhook reconciler: turns verified provider callbacks into lifecycle
transitions.

Signatures are checked before anything is looked up. Unknown payments and
non-terminal statuses are acknowledged without changes so providers stop
retrying; terminal statuses go through the shared lifecycle transition.
Refund and void notifications resolve a pending refund instead.
"""
from __future__ import annotations

from typing import Callable, Mapping, Optional

from application.dtos.payments import RefundResult, WebhookAck, WebhookNotification
from application.ports.payment_gateway import PaymentGateway
from application.services.payment_service import PaymentLifecycleService
from core.logging_config import get_logger
from domain.common.exceptions import NotFoundException, PaymentSignatureError
from domain.common.unit_of_work import AbstractUnitOfWork
from domain.payment.entity import Payment, PaymentStatus, RefundStatus


logger = get_logger(__name__)

TERMINAL_WEBHOOK_STATUSES = {PaymentStatus.COMPLETED.value, PaymentStatus.FAILED.value}


class WebhookService:
    def __init__(
        self,
        uow_factory: Callable[..., AbstractUnitOfWork],
        lifecycle: PaymentLifecycleService,
        gateways: Mapping[str, PaymentGateway],
    ) -> None:
        self._uow_factory = uow_factory
        self.lifecycle = lifecycle
        self.gateways = gateways

    async def handle(self, provider: str, body: bytes, signature: Optional[str]) -> WebhookAck:
        gateway = self.gateways.get(provider)
        if gateway is None:
            raise NotFoundException("Payment provider", provider)

        if not gateway.verify_webhook_signature(body, signature):
            logger.warning(
                "webhook_signature_invalid",
                provider=provider,
                signature_present=bool(signature),
                security_event=True,
            )
            raise PaymentSignatureError("Invalid webhook signature", provider=provider)

        notification = gateway.parse_webhook(body)
        logger.info(
            "webhook_received",
            provider=provider,
            event_type=notification.event_type,
            transaction_id=notification.transaction_id,
            provider_status=notification.provider_status,
        )

        payment = await self._find_payment(notification)
        if payment is None:
            logger.info(
                "webhook_payment_unknown",
                provider=provider,
                payment_id=notification.payment_id,
                transaction_id=notification.transaction_id,
            )
            return WebhookAck(received=True)

        if notification.refund_status is not None and payment.refund_status == RefundStatus.PENDING:
            return await self._apply_refund(provider, payment, notification)

        if notification.status not in TERMINAL_WEBHOOK_STATUSES:
            logger.info(
                "webhook_status_not_terminal",
                payment_id=payment.id,
                provider_status=notification.provider_status,
            )
            return WebhookAck(received=True, payment_id=payment.id, applied=False)

        outcome = await self.lifecycle.apply_provider_outcome(
            payment.id,
            notification.status,
            transaction_id=notification.transaction_id,
            raw=notification.raw,
            failure_reason=f"declined: {notification.provider_status}"
            if notification.status == PaymentStatus.FAILED.value
            else None,
            source=f"webhook:{provider}",
        )
        return WebhookAck(received=True, payment_id=payment.id, applied=outcome.applied)

    async def _apply_refund(self, provider: str, payment: Payment, notification: WebhookNotification) -> WebhookAck:
        if notification.refund_status == RefundStatus.PENDING.value:
            logger.info(
                "webhook_refund_not_terminal",
                payment_id=payment.id,
                provider_status=notification.provider_status,
            )
            return WebhookAck(received=True, payment_id=payment.id, applied=False)
        result = RefundResult(
            status=notification.refund_status,
            failure_reason=f"declined: {notification.provider_status}"
            if notification.refund_status == RefundStatus.FAILED.value
            else None,
            raw=notification.raw,
        )
        _, applied = await self.lifecycle.apply_refund_outcome(payment.id, result, source=f"webhook:{provider}")
        return WebhookAck(received=True, payment_id=payment.id, applied=applied)

    async def _find_payment(self, notification: WebhookNotification) -> Optional[Payment]:
        async with self._uow_factory(readonly=True) as uow:
            repo = uow.payment_repository
            payment = None
            if notification.payment_id:
                payment = await repo.get_by_id(notification.payment_id)
            if payment is None and notification.transaction_id:
                payment = await repo.get_by_provider_ref(notification.provider, notification.transaction_id)
        return payment
