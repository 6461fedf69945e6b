"""
Application service orchestrating the payment lifecycle.

This class depends only on application ports, DTOs and domain types.
Gateway implementations, the notification sink and the unit-of-work factory
are injected from the composition root (API/tasks), keeping dependencies
one-way.

Every state change driven by a provider signal (synchronous charge result,
webhook, stale sweep) goes through `apply_provider_outcome`, so the
sticky-terminal rule and the completion side effects live in one place.
"""
from __future__ import annotations

import asyncio
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Callable, Mapping, Optional

from tenacity import AsyncRetrying, retry_if_exception_type, stop_after_attempt, wait_random

from application.dtos.actor import Actor
from application.dtos.payments import (
    ChargeRequest,
    ChargeResult,
    CreatePaymentRequest,
    RefundCommand,
    RefundPaymentRequest,
    RefundResult,
)
from application.ports.notifications import NotificationSink
from application.ports.payment_gateway import PaymentGateway
from core.logging_config import get_logger
from core.settings import PaymentSettings
from domain.billing.fees import compute_fees, compute_payment_amounts
from domain.billing.providers import SUPPORTED_METHODS
from domain.billing.selector import ProviderSelector
from domain.booking.entity import Booking, BookingPaymentStatus
from domain.common.exceptions import (
    ConflictException,
    DomainValidationException,
    ForbiddenException,
    NoProviderAvailableError,
    NotFoundException,
    PaymentProviderError,
    StalePaymentError,
)
from domain.common.unit_of_work import AbstractUnitOfWork
from domain.invoice.entity import Invoice, InvoiceRates, ServiceDetails, new_invoice_id
from domain.payment.entity import (
    GATEWAY_TIMEOUT,
    SUPPORTED_CURRENCIES,
    Payment,
    PaymentStatus,
    RefundStatus,
)
from domain.payment.events import PaymentCompleted, PaymentEvent, PaymentFailed, PaymentRefunded
from shared.codes.payment_codes import PaymentCode


logger = get_logger(__name__)


@dataclass
class PaymentCreated:
    payment: Payment
    booking_payment_status: BookingPaymentStatus


@dataclass
class OutcomeApplied:
    payment: Payment
    applied: bool
    event: Optional[PaymentEvent] = None


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class PaymentLifecycleService:
    def __init__(
        self,
        uow_factory: Callable[..., AbstractUnitOfWork],
        selector: ProviderSelector,
        gateways: Mapping[str, PaymentGateway],
        settings: PaymentSettings,
        notifier: Optional[NotificationSink] = None,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._uow_factory = uow_factory
        self.selector = selector
        self.gateways = gateways
        self.settings = settings
        self._notifier = notifier
        self._clock = clock

    # ------------------------------------------------------------------
    # create
    # ------------------------------------------------------------------

    async def create_payment(self, actor: Actor, booking_id: str, req: CreatePaymentRequest) -> PaymentCreated:
        method = req.payment_method
        currency = (req.currency or self.settings.default_currency).upper()
        if method not in SUPPORTED_METHODS:
            raise DomainValidationException(f"Unsupported payment method: {method}", field="payment_method")
        if currency not in SUPPORTED_CURRENCIES:
            raise DomainValidationException(f"Unsupported currency: {currency}", field="currency")

        async with self._uow_factory() as uow:
            booking = await uow.booking_repository.get_by_id(booking_id)
            if booking is None:
                raise NotFoundException("Service request", booking_id)
            if booking.client_id != actor.user_id:
                raise ForbiddenException("Only the client of this service request can pay for it")
            if not booking.is_payable():
                raise DomainValidationException(
                    f"Service request in status '{booking.status.value}' cannot be paid",
                    field="status",
                    details={"status": booking.status.value, "final_price": booking.final_price},
                )
            if currency != self.settings.default_currency:
                # final_price is always quoted in the platform currency
                raise DomainValidationException(
                    f"Service request is priced in {self.settings.default_currency}, not {currency}",
                    field="currency",
                    details={"currency": self.settings.default_currency},
                )

            existing = await uow.payment_repository.find_active_for_booking(booking_id)
            if existing is not None:
                if existing.status == PaymentStatus.COMPLETED:
                    raise ConflictException("Service request already paid", details={"payment_id": existing.id})
                raise ConflictException("A payment is already in progress", details={"payment_id": existing.id})

            amounts = compute_payment_amounts(
                booking.final_price, self.settings.platform_fee_rate, self.settings.iva_rate
            )
            selection = self.selector.select(method, amounts.total)
            if selection.fallback:
                logger.warning(
                    "provider_selection_fallback",
                    booking_id=booking_id,
                    method=method,
                    amount=amounts.total,
                    provider=selection.key,
                )
            fees = compute_fees(selection.provider, method, amounts.total)

            payment = Payment.create(
                booking_id=booking.id,
                client_id=booking.client_id,
                professional_id=booking.professional_id,
                service_amount=amounts.service_amount,
                platform_fee=amounts.platform_fee,
                tax_amount=amounts.tax,
                currency=currency,
                method=method,
                provider=selection.key,
                processing_fee=fees.total_fee,
                description=req.description or booking.title,
                metadata={**(req.metadata or {}), "provider_fallback": selection.fallback},
            )
            payment = await uow.payment_repository.create(payment)
            payment.mark_processing()
            payment = await uow.payment_repository.update(payment)
            await uow.commit()

        logger.info(
            "payment_processing",
            payment_id=payment.id,
            booking_id=booking_id,
            provider=payment.provider,
            method=method,
            total=payment.total_amount,
        )

        result = await self._charge(payment, req)
        outcome = await self.apply_provider_outcome(
            payment.id,
            result.internal_status,
            transaction_id=result.transaction_id,
            raw=result.raw,
            failure_reason=result.failure_reason,
            source="charge",
        )
        payment = outcome.payment

        if payment.status == PaymentStatus.FAILED:
            reason = payment.failure_reason or "payment_failed"
            raise PaymentProviderError(
                f"Payment failed: {reason}",
                provider=payment.provider,
                payment_id=payment.id,
                provider_code=result.provider_status,
                code=PaymentCode.TIMEOUT if reason == GATEWAY_TIMEOUT else PaymentCode.PROVIDER_ERROR,
            )

        booking_status = (
            BookingPaymentStatus.PAID if payment.status == PaymentStatus.COMPLETED else booking.payment_status
        )
        return PaymentCreated(payment=payment, booking_payment_status=booking_status)

    def _gateway(self, provider: str) -> PaymentGateway:
        gateway = self.gateways.get(provider)
        if gateway is None:
            raise NoProviderAvailableError(provider, "no gateway client")
        return gateway

    async def _charge(self, payment: Payment, req: CreatePaymentRequest) -> ChargeResult:
        gateway = self._gateway(payment.provider)
        charge = ChargeRequest(
            payment_id=payment.id,
            amount=payment.total_amount,
            currency=payment.currency,
            method=payment.method,
            description=payment.description,
            customer_id=payment.client_id,
            payment_data=req.payment_data,
            idempotency_key=payment.id,
        )
        try:
            return await asyncio.wait_for(gateway.charge(charge), timeout=self.settings.charge_timeout_seconds)
        except asyncio.TimeoutError:
            logger.warning(
                "gateway_charge_timeout",
                payment_id=payment.id,
                provider=payment.provider,
                timeout=self.settings.charge_timeout_seconds,
            )
            return ChargeResult(outcome="timeout", failure_reason=GATEWAY_TIMEOUT)

    # ------------------------------------------------------------------
    # shared transition
    # ------------------------------------------------------------------

    async def apply_provider_outcome(
        self,
        payment_id: str,
        status: str,
        *,
        transaction_id: Optional[str] = None,
        raw: Optional[dict] = None,
        failure_reason: Optional[str] = None,
        source: str = "webhook",
    ) -> OutcomeApplied:
        """
        Apply a provider-reported status to a payment.

        completed/failed payments (and completed refunds) never change again;
        later signals are logged and ignored. Losing an optimistic version
        check reloads the payment and re-evaluates from scratch.
        """
        try:
            target = PaymentStatus(status)
        except ValueError:
            raise DomainValidationException(f"Unknown payment status: {status}", field="status") from None

        async for attempt in AsyncRetrying(
            stop=stop_after_attempt(self.settings.stale_retry_attempts),
            wait=wait_random(min=0.01, max=0.05),
            retry=retry_if_exception_type(StalePaymentError),
            reraise=True,
        ):
            with attempt:
                if attempt.retry_state.attempt_number > 1:
                    logger.info("payment_stale_retry", payment_id=payment_id, attempt=attempt.retry_state.attempt_number)
                result = await self._apply_once(payment_id, target, transaction_id, raw, failure_reason)

        payment = result.payment
        if result.applied:
            logger.info(
                "payment_outcome_applied",
                payment_id=payment_id,
                status=payment.status.value,
                source=source,
                invoice_id=payment.invoice_id,
            )
        else:
            logger.info(
                "payment_outcome_ignored",
                payment_id=payment_id,
                current_status=payment.status.value,
                reported_status=target.value,
                source=source,
            )
        if result.event is not None:
            self._notify(result.event)
        return result

    async def _apply_once(
        self,
        payment_id: str,
        target: PaymentStatus,
        transaction_id: Optional[str],
        raw: Optional[dict],
        failure_reason: Optional[str],
    ) -> OutcomeApplied:
        async with self._uow_factory() as uow:
            payment = await uow.payment_repository.get_by_id(payment_id)
            if payment is None:
                raise NotFoundException("Payment", payment_id)
            if payment.is_settled():
                return OutcomeApplied(payment=payment, applied=False)

            event: Optional[PaymentEvent] = None
            if target == PaymentStatus.COMPLETED:
                payment.mark_completed(transaction_id, raw)
                payment.invoice_id = new_invoice_id()
                # version check first so a concurrent completion loses before touching invoices
                payment = await uow.payment_repository.update(payment)
                invoice = await self._issue_invoice(uow, payment)
                await uow.booking_repository.set_payment_status(payment.booking_id, BookingPaymentStatus.PAID)
                event = PaymentCompleted(
                    payment_id=payment.id,
                    booking_id=payment.booking_id,
                    client_id=payment.client_id,
                    professional_id=payment.professional_id,
                    provider=payment.provider,
                    amount=payment.total_amount,
                    currency=payment.currency,
                    invoice_id=invoice.id,
                )
            elif target == PaymentStatus.FAILED:
                payment.mark_failed(failure_reason or "declined", raw, transaction_id)
                payment = await uow.payment_repository.update(payment)
                event = PaymentFailed(
                    payment_id=payment.id,
                    booking_id=payment.booking_id,
                    client_id=payment.client_id,
                    professional_id=payment.professional_id,
                    provider=payment.provider,
                    reason=payment.failure_reason,
                )
            else:
                # still in flight; remember the provider reference for reconciliation
                if payment.status == PaymentStatus.PENDING:
                    payment.mark_processing()
                payment.record_provider_response(transaction_id, raw)
                payment = await uow.payment_repository.update(payment)
                await uow.commit()
                return OutcomeApplied(payment=payment, applied=False)

            await uow.commit()
        return OutcomeApplied(payment=payment, applied=True, event=event)

    async def _issue_invoice(self, uow: AbstractUnitOfWork, payment: Payment) -> Invoice:
        booking = await uow.booking_repository.get_by_id(payment.booking_id)
        if booking is None:
            raise NotFoundException("Service request", payment.booking_id)
        now = self._clock()
        number = await uow.invoice_repository.next_invoice_number(now)
        invoice = Invoice.for_completed_payment(
            invoice_id=payment.invoice_id,
            invoice_number=number,
            payment_id=payment.id,
            booking_id=payment.booking_id,
            client_id=payment.client_id,
            professional_id=payment.professional_id,
            service=self._service_details(booking, payment),
            rates=InvoiceRates(
                iva_rate=self.settings.iva_rate,
                retention_rate=self.settings.retention_rate,
                platform_fee_rate=self.settings.platform_fee_rate,
            ),
            currency=payment.currency,
            payment_method=payment.method,
            payment_reference=payment.provider_transaction_id or payment.id,
            now=now,
            due_days=self.settings.invoice_due_days,
        )
        return await uow.invoice_repository.create(invoice)

    @staticmethod
    def _service_details(booking: Booking, payment: Payment) -> ServiceDetails:
        return ServiceDetails(
            title=booking.title,
            description=booking.description,
            category=booking.category,
            quantity=1,
            unit_price=payment.service_amount,
        )

    # ------------------------------------------------------------------
    # refunds
    # ------------------------------------------------------------------

    async def refund_payment(self, actor: Actor, payment_id: str, req: RefundPaymentRequest) -> Payment:
        async with self._uow_factory() as uow:
            payment = await uow.payment_repository.get_by_id(payment_id)
            if payment is None:
                raise NotFoundException("Payment", payment_id)
            booking = await uow.booking_repository.get_by_id(payment.booking_id)
            if not actor.is_admin:
                if actor.user_id != payment.client_id:
                    raise ForbiddenException("Not allowed to refund this payment")
                if booking is None or not booking.client_may_refund():
                    raise ForbiddenException("Refunds require a cancelled or disputed service request")

            amount = payment.begin_refund(req.amount, req.reason)
            payment = await uow.payment_repository.update(payment)
            await uow.commit()

        logger.info("refund_requested", payment_id=payment_id, amount=amount, actor=actor.user_id)

        result = await self._request_refund(payment, amount, req.reason)
        payment, event, _ = await self._apply_refund_result(payment_id, result)
        if event is not None:
            self._notify(event)

        if payment.refund_status == RefundStatus.FAILED:
            raise PaymentProviderError(
                f"Refund failed: {payment.refund_failure_reason or 'refund_failed'}",
                provider=payment.provider,
                payment_id=payment.id,
            )
        return payment

    async def apply_refund_outcome(
        self, payment_id: str, result: RefundResult, source: str = "webhook"
    ) -> tuple[Payment, bool]:
        """Resolve a pending refund from an asynchronous provider signal.

        Returns the payment and whether the refund sub-record changed.
        """
        payment, event, applied = await self._apply_refund_result(payment_id, result)
        if event is not None:
            self._notify(event)
        logger.info(
            "refund_outcome_applied" if applied else "refund_outcome_ignored",
            payment_id=payment_id,
            refund_status=payment.refund_status.value,
            requested=result.status,
            source=source,
        )
        return payment, applied

    async def _request_refund(self, payment: Payment, amount: int, reason: Optional[str]) -> RefundResult:
        gateway = self._gateway(payment.provider)
        command = RefundCommand(
            payment_id=payment.id,
            transaction_id=payment.provider_transaction_id,
            amount=amount,
            currency=payment.currency,
            reason=reason,
            idempotency_key=f"{payment.id}:refund:{payment.version}",
        )
        try:
            return await asyncio.wait_for(gateway.refund(command), timeout=self.settings.charge_timeout_seconds)
        except asyncio.TimeoutError:
            logger.warning("gateway_refund_timeout", payment_id=payment.id, provider=payment.provider)
            return RefundResult(status="failed", failure_reason=GATEWAY_TIMEOUT)

    async def _apply_refund_result(
        self, payment_id: str, result: RefundResult
    ) -> tuple[Payment, Optional[PaymentEvent], bool]:
        async for attempt in AsyncRetrying(
            stop=stop_after_attempt(self.settings.stale_retry_attempts),
            wait=wait_random(min=0.01, max=0.05),
            retry=retry_if_exception_type(StalePaymentError),
            reraise=True,
        ):
            with attempt:
                outcome = await self._apply_refund_once(payment_id, result)
        return outcome

    async def _apply_refund_once(
        self, payment_id: str, result: RefundResult
    ) -> tuple[Payment, Optional[PaymentEvent], bool]:
        async with self._uow_factory() as uow:
            payment = await uow.payment_repository.get_by_id(payment_id)
            if payment is None:
                raise NotFoundException("Payment", payment_id)
            if payment.refund_status != RefundStatus.PENDING:
                return payment, None, False

            event: Optional[PaymentEvent] = None
            if result.status == "completed":
                payment.complete_refund(result.refund_id)
                payment = await uow.payment_repository.update(payment)
                if payment.is_fully_refunded():
                    invoice = await uow.invoice_repository.get_by_payment_id(payment.id)
                    if invoice is not None:
                        invoice.mark_refunded(payment.refunded_amount, payment.refund_reason, result.refund_id)
                        await uow.invoice_repository.update(invoice)
                    await uow.booking_repository.set_payment_status(
                        payment.booking_id, BookingPaymentStatus.REFUNDED
                    )
                event = PaymentRefunded(
                    payment_id=payment.id,
                    booking_id=payment.booking_id,
                    client_id=payment.client_id,
                    professional_id=payment.professional_id,
                    provider=payment.provider,
                    amount=payment.refund_amount,
                    refund_id=result.refund_id,
                    reason=payment.refund_reason,
                )
                logger.info("refund_completed", payment_id=payment_id, amount=payment.refund_amount)
            elif result.status == "failed":
                payment.fail_refund(result.failure_reason)
                payment = await uow.payment_repository.update(payment)
                logger.warning("refund_failed", payment_id=payment_id, reason=result.failure_reason)
            else:
                if result.refund_id:
                    payment.provider_refund_id = result.refund_id
                    payment = await uow.payment_repository.update(payment)
                logger.info("refund_pending", payment_id=payment_id, refund_id=result.refund_id)

            await uow.commit()
        return payment, event, result.status in ("completed", "failed")

    # ------------------------------------------------------------------
    # queries & maintenance
    # ------------------------------------------------------------------

    async def get_payment(self, actor: Actor, payment_id: str) -> Payment:
        async with self._uow_factory(readonly=True) as uow:
            payment = await uow.payment_repository.get_by_id(payment_id)
        if payment is None:
            raise NotFoundException("Payment", payment_id)
        if not actor.is_admin and actor.user_id not in (payment.client_id, payment.professional_id):
            raise ForbiddenException("Not allowed to view this payment")
        return payment

    async def sweep_stale_payments(self, now: Optional[datetime] = None, limit: int = 100) -> list[str]:
        """Fail payments stuck in pending/processing past the processing timeout.

        Refunds still pending after the same timeout are failed too, which
        lets the client or an admin request them again. Returns the ids of
        every payment that was changed.
        """
        now = now or self._clock()
        cutoff = now - timedelta(seconds=self.settings.processing_timeout_seconds)
        async with self._uow_factory(readonly=True) as uow:
            stale = await uow.payment_repository.list_stale(
                [PaymentStatus.PENDING, PaymentStatus.PROCESSING], cutoff, limit=limit
            )

        failed: list[str] = []
        for payment in stale:
            outcome = await self.apply_provider_outcome(
                payment.id, PaymentStatus.FAILED.value, failure_reason=GATEWAY_TIMEOUT, source="sweep"
            )
            if outcome.applied:
                failed.append(payment.id)
        logger.info("stale_payments_swept", checked=len(stale), failed=len(failed), cutoff=cutoff.isoformat())
        return failed + await self._sweep_stale_refunds(cutoff, limit)

    async def _sweep_stale_refunds(self, cutoff: datetime, limit: int) -> list[str]:
        async with self._uow_factory(readonly=True) as uow:
            stale = await uow.payment_repository.list_stale_refunds(cutoff, limit=limit)

        failed: list[str] = []
        for payment in stale:
            _, applied = await self.apply_refund_outcome(
                payment.id, RefundResult(status="failed", failure_reason=GATEWAY_TIMEOUT), source="sweep"
            )
            if applied:
                failed.append(payment.id)
        if stale:
            logger.info("stale_refunds_swept", checked=len(stale), failed=len(failed), cutoff=cutoff.isoformat())
        return failed

    def _notify(self, event: PaymentEvent) -> None:
        if self._notifier is None:
            return
        try:
            self._notifier.notify(event)
        except Exception as exc:
            logger.warning(
                "notification_dispatch_failed",
                event_name=event.name,
                payment_id=event.payment_id,
                error=str(exc),
            )
