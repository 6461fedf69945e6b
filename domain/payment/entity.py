"""
支付领域实体 - 支付聚合根
"""
from __future__ import annotations

import secrets
import string
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Optional

from domain.common.exceptions import ConflictException, DomainValidationException
from shared.codes.payment_codes import PaymentCode


SUPPORTED_CURRENCIES = {"COP", "USD", "EUR"}

GATEWAY_TIMEOUT = "gateway_timeout"


class PaymentStatus(str, Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


class RefundStatus(str, Enum):
    NONE = "none"
    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"


TERMINAL_STATUSES = frozenset({PaymentStatus.COMPLETED, PaymentStatus.FAILED})
# Statuses that count against the one-payment-per-booking constraint.
ACTIVE_STATUSES = frozenset({PaymentStatus.PENDING, PaymentStatus.PROCESSING, PaymentStatus.COMPLETED})


def _ensure_utc(dt: Optional[datetime]) -> Optional[datetime]:
    """确保时间为 UTC 时区"""
    if dt is None:
        return None
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _base36(n: int) -> str:
    digits = string.digits + string.ascii_uppercase
    out = ""
    while n:
        n, r = divmod(n, 36)
        out = digits[r] + out
    return out or "0"


def generate_payment_id() -> str:
    """PAY_<base36 millis>_<5 random chars>."""
    suffix = "".join(secrets.choice(string.ascii_uppercase + string.digits) for _ in range(5))
    return f"PAY_{_base36(int(time.time() * 1000))}_{suffix}"


@dataclass
class Payment:
    """
    支付聚合根 - one attempted charge for one booking.

    Rules:
    1. All money fields are integer minor units.
    2. total == service_amount + tax_amount.
    3. completed/failed are terminal; later contradicting signals are ignored.
    4. Refunds only from completed, never above total - refunded_amount.
    """

    id: str
    booking_id: str
    client_id: str
    professional_id: str
    service_amount: int
    platform_fee: int
    tax_amount: int
    total_amount: int
    currency: str
    method: str
    provider: str
    status: PaymentStatus = PaymentStatus.PENDING

    processing_fee: int = 0
    provider_transaction_id: Optional[str] = None
    provider_response: Optional[dict] = None
    failure_reason: Optional[str] = None
    description: Optional[str] = None
    metadata: dict = field(default_factory=dict)
    invoice_id: Optional[str] = None

    # refund sub-record
    refund_status: RefundStatus = RefundStatus.NONE
    refund_amount: int = 0
    refunded_amount: int = 0
    refund_reason: Optional[str] = None
    provider_refund_id: Optional[str] = None
    refund_failure_reason: Optional[str] = None
    refunded_at: Optional[datetime] = None

    version: int = 0
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    processed_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    failed_at: Optional[datetime] = None

    def __post_init__(self):
        self.status = PaymentStatus(self.status)
        self.refund_status = RefundStatus(self.refund_status)
        self._validate_amounts()
        self._validate_currency()
        self.created_at = _ensure_utc(self.created_at)
        self.updated_at = _ensure_utc(self.updated_at)
        self.processed_at = _ensure_utc(self.processed_at)
        self.completed_at = _ensure_utc(self.completed_at)
        self.failed_at = _ensure_utc(self.failed_at)
        self.refunded_at = _ensure_utc(self.refunded_at)
        if self.metadata is None:
            self.metadata = {}

    @classmethod
    def create(
        cls,
        *,
        booking_id: str,
        client_id: str,
        professional_id: str,
        service_amount: int,
        platform_fee: int,
        tax_amount: int,
        currency: str,
        method: str,
        provider: str,
        processing_fee: int = 0,
        description: Optional[str] = None,
        metadata: Optional[dict] = None,
    ) -> "Payment":
        now = _now()
        return cls(
            id=generate_payment_id(),
            booking_id=booking_id,
            client_id=client_id,
            professional_id=professional_id,
            service_amount=service_amount,
            platform_fee=platform_fee,
            tax_amount=tax_amount,
            total_amount=service_amount + tax_amount,
            currency=(currency or "").upper(),
            method=method,
            provider=provider,
            processing_fee=processing_fee,
            description=description,
            metadata=metadata or {},
            created_at=now,
            updated_at=now,
        )

    def _validate_amounts(self) -> None:
        if self.service_amount <= 0:
            raise DomainValidationException(f"Service amount must be positive: {self.service_amount}", field="amount")
        if min(self.platform_fee, self.tax_amount, self.refund_amount, self.refunded_amount) < 0:
            raise DomainValidationException("Money fields must not be negative", field="amount")
        if self.total_amount != self.service_amount + self.tax_amount:
            raise DomainValidationException(
                f"Total {self.total_amount} != service {self.service_amount} + tax {self.tax_amount}",
                field="total_amount",
            )
        if self.platform_fee > self.service_amount:
            raise DomainValidationException("Platform fee exceeds service amount", field="platform_fee")

    def _validate_currency(self) -> None:
        if self.currency not in SUPPORTED_CURRENCIES:
            raise DomainValidationException(f"Unsupported currency: {self.currency}", field="currency")

    @property
    def professional_payout(self) -> int:
        return self.service_amount - self.platform_fee

    @property
    def refundable_amount(self) -> int:
        return self.total_amount - self.refunded_amount

    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    def is_settled(self) -> bool:
        """Sticky-terminal check: no external signal may change this payment."""
        return self.is_terminal() or self.refund_status == RefundStatus.COMPLETED

    def _touch(self) -> datetime:
        self.updated_at = _now()
        return self.updated_at

    def mark_processing(self) -> None:
        if self.status != PaymentStatus.PENDING:
            raise DomainValidationException(
                f"Cannot move payment from {self.status.value} to processing", field="status"
            )
        self.status = PaymentStatus.PROCESSING
        self.processed_at = self._touch()

    def mark_completed(self, transaction_id: Optional[str] = None, response: Optional[dict] = None) -> None:
        if self.is_terminal():
            raise DomainValidationException(
                f"Cannot move payment from {self.status.value} to completed", field="status"
            )
        self.status = PaymentStatus.COMPLETED
        if transaction_id:
            self.provider_transaction_id = transaction_id
        if response is not None:
            self.provider_response = response
        self.failure_reason = None
        self.completed_at = self._touch()

    def mark_failed(
        self,
        reason: Optional[str] = None,
        response: Optional[dict] = None,
        transaction_id: Optional[str] = None,
    ) -> None:
        if self.is_terminal():
            raise DomainValidationException(
                f"Cannot move payment from {self.status.value} to failed", field="status"
            )
        self.status = PaymentStatus.FAILED
        self.failure_reason = reason
        if transaction_id:
            self.provider_transaction_id = transaction_id
        if response is not None:
            self.provider_response = response
        self.failed_at = self._touch()

    def record_provider_response(self, transaction_id: Optional[str], response: Optional[dict]) -> None:
        if transaction_id:
            self.provider_transaction_id = transaction_id
        if response is not None:
            self.provider_response = response
        self._touch()

    def begin_refund(self, amount: Optional[int], reason: Optional[str]) -> int:
        """Open the refund sub-record; amount defaults to what is left."""
        if self.status != PaymentStatus.COMPLETED:
            raise ConflictException(
                "Only completed payments can be refunded",
                code=PaymentCode.REFUND_CONFLICT,
                details={"status": self.status.value},
            )
        if self.refund_status == RefundStatus.COMPLETED:
            raise ConflictException("Payment already refunded", code=PaymentCode.REFUND_CONFLICT)
        if self.refund_status == RefundStatus.PENDING:
            raise ConflictException("A refund is already in progress", code=PaymentCode.REFUND_CONFLICT)

        amount = self.refundable_amount if amount is None else amount
        if amount <= 0:
            raise DomainValidationException(f"Refund amount must be positive: {amount}", field="amount")
        if amount > self.refundable_amount:
            raise DomainValidationException(
                f"Refund amount {amount} exceeds refundable amount {self.refundable_amount}",
                field="amount",
                details={"refundable": self.refundable_amount},
            )

        self.refund_status = RefundStatus.PENDING
        self.refund_amount = amount
        self.refund_reason = reason
        self.refund_failure_reason = None
        self._touch()
        return amount

    def complete_refund(self, provider_refund_id: Optional[str] = None) -> None:
        if self.refund_status != RefundStatus.PENDING:
            raise DomainValidationException(
                f"Cannot complete refund in state {self.refund_status.value}", field="refund_status"
            )
        self.refund_status = RefundStatus.COMPLETED
        self.refunded_amount += self.refund_amount
        if provider_refund_id:
            self.provider_refund_id = provider_refund_id
        self.refunded_at = self._touch()

    def fail_refund(self, reason: Optional[str] = None) -> None:
        if self.refund_status != RefundStatus.PENDING:
            raise DomainValidationException(
                f"Cannot fail refund in state {self.refund_status.value}", field="refund_status"
            )
        self.refund_status = RefundStatus.FAILED
        self.refund_failure_reason = reason
        self._touch()

    def is_fully_refunded(self) -> bool:
        return self.refunded_amount >= self.total_amount
