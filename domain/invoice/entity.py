"""
发票领域实体
"""
from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from enum import Enum
from typing import Optional

from domain.billing.fees import apply_rate
from domain.common.exceptions import DomainValidationException


INVOICE_NUMBER_DISPLAY_PREFIX = "INV-"
SEQUENCE_WIDTH = 4


class InvoiceStatus(str, Enum):
    DRAFT = "draft"
    ISSUED = "issued"
    PAID = "paid"
    CANCELLED = "cancelled"
    REFUNDED = "refunded"


_TRANSITIONS = {
    InvoiceStatus.DRAFT: {InvoiceStatus.ISSUED, InvoiceStatus.PAID, InvoiceStatus.CANCELLED},
    InvoiceStatus.ISSUED: {InvoiceStatus.PAID, InvoiceStatus.CANCELLED},
    InvoiceStatus.PAID: {InvoiceStatus.REFUNDED},
    InvoiceStatus.CANCELLED: set(),
    InvoiceStatus.REFUNDED: set(),
}


@dataclass(frozen=True)
class ServiceDetails:
    title: str
    unit_price: int
    quantity: int = 1
    discount: int = 0
    description: Optional[str] = None
    category: Optional[str] = None


@dataclass(frozen=True)
class InvoiceRates:
    iva_rate: Decimal = Decimal("0.19")
    retention_rate: Decimal = Decimal("0")
    platform_fee_rate: Decimal = Decimal("0.05")


@dataclass(frozen=True)
class InvoiceAmounts:
    subtotal: int
    discount: int
    taxable_amount: int
    iva_amount: int
    retention_amount: int
    platform_fee_amount: int
    total: int


def compute_amounts(details: ServiceDetails, rates: InvoiceRates) -> InvoiceAmounts:
    """
    subtotal = quantity * unit_price
    taxable  = subtotal - discount
    total    = taxable + iva - retention

    Pure: calling it twice on the same input gives identical output.
    """
    if details.quantity <= 0:
        raise DomainValidationException("Quantity must be positive", field="quantity")
    if details.unit_price < 0 or details.discount < 0:
        raise DomainValidationException("Prices must not be negative", field="unit_price")

    subtotal = details.quantity * details.unit_price
    if details.discount > subtotal:
        raise DomainValidationException("Discount exceeds subtotal", field="discount")
    taxable = subtotal - details.discount
    iva = apply_rate(taxable, rates.iva_rate)
    retention = apply_rate(taxable, rates.retention_rate)
    return InvoiceAmounts(
        subtotal=subtotal,
        discount=details.discount,
        taxable_amount=taxable,
        iva_amount=iva,
        retention_amount=retention,
        platform_fee_amount=apply_rate(taxable, rates.platform_fee_rate),
        total=taxable + iva - retention,
    )


def new_invoice_id() -> str:
    return str(uuid.uuid4())


def invoice_prefix(now: datetime) -> str:
    return now.strftime("%Y%m")


def format_invoice_number(prefix: str, sequence: int) -> str:
    if sequence <= 0:
        raise DomainValidationException(f"Invalid invoice sequence: {sequence}", field="invoice_number")
    if sequence >= 10 ** SEQUENCE_WIDTH:
        # 编号按字符串取 max，宽度必须固定
        raise DomainValidationException(
            f"Invoice sequence {sequence} exceeds {SEQUENCE_WIDTH} digits for month {prefix}",
            field="invoice_number",
        )
    return f"{prefix}{sequence:0{SEQUENCE_WIDTH}d}"


def parse_invoice_sequence(prefix: str, invoice_number: str) -> int:
    """Sequence part of an invoice number with the given prefix."""
    if not invoice_number.startswith(prefix):
        raise DomainValidationException(f"Invoice number {invoice_number} lacks prefix {prefix}")
    return int(invoice_number[len(prefix):])


@dataclass
class Invoice:
    """发票实体 - 一笔已完成支付对应一张发票"""

    id: str
    invoice_number: str
    payment_id: str
    booking_id: str
    client_id: str
    professional_id: str
    service: ServiceDetails
    rates: InvoiceRates
    amounts: InvoiceAmounts
    currency: str = "COP"
    status: InvoiceStatus = InvoiceStatus.DRAFT
    issue_date: Optional[datetime] = None
    due_date: Optional[datetime] = None
    paid_date: Optional[datetime] = None
    payment_method: Optional[str] = None
    payment_reference: Optional[str] = None
    cancellation_reason: Optional[str] = None
    cancelled_at: Optional[datetime] = None
    refund_amount: int = 0
    refund_reason: Optional[str] = None
    refund_reference: Optional[str] = None
    refunded_at: Optional[datetime] = None
    notes: Optional[str] = None
    metadata: dict = field(default_factory=dict)
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    def __post_init__(self):
        self.status = InvoiceStatus(self.status)
        if self.metadata is None:
            self.metadata = {}

    @classmethod
    def for_completed_payment(
        cls,
        *,
        invoice_number: str,
        payment_id: str,
        booking_id: str,
        client_id: str,
        professional_id: str,
        service: ServiceDetails,
        rates: InvoiceRates,
        currency: str,
        payment_method: str,
        payment_reference: Optional[str],
        now: Optional[datetime] = None,
        due_days: int = 30,
        invoice_id: Optional[str] = None,
    ) -> "Invoice":
        now = now or datetime.now(timezone.utc)
        return cls(
            id=invoice_id or new_invoice_id(),
            invoice_number=invoice_number,
            payment_id=payment_id,
            booking_id=booking_id,
            client_id=client_id,
            professional_id=professional_id,
            service=service,
            rates=rates,
            amounts=compute_amounts(service, rates),
            currency=currency,
            status=InvoiceStatus.PAID,
            issue_date=now,
            due_date=now + timedelta(days=due_days),
            paid_date=now,
            payment_method=payment_method,
            payment_reference=payment_reference,
            created_at=now,
            updated_at=now,
        )

    @property
    def formatted_number(self) -> str:
        return f"{INVOICE_NUMBER_DISPLAY_PREFIX}{self.invoice_number}"

    @property
    def net_amount(self) -> int:
        return self.amounts.total - self.amounts.platform_fee_amount

    def is_overdue(self, now: Optional[datetime] = None) -> bool:
        now = now or datetime.now(timezone.utc)
        return (
            self.status == InvoiceStatus.ISSUED
            and self.due_date is not None
            and self.due_date < now
        )

    def _transition(self, target: InvoiceStatus) -> datetime:
        if target not in _TRANSITIONS[self.status]:
            raise DomainValidationException(
                f"Invoice cannot move from {self.status.value} to {target.value}", field="status"
            )
        self.status = target
        self.updated_at = datetime.now(timezone.utc)
        return self.updated_at

    def issue(self) -> None:
        self.issue_date = self._transition(InvoiceStatus.ISSUED)

    def mark_paid(self, reference: Optional[str] = None) -> None:
        self.paid_date = self._transition(InvoiceStatus.PAID)
        if reference:
            self.payment_reference = reference

    def cancel(self, reason: Optional[str] = None) -> None:
        self.cancelled_at = self._transition(InvoiceStatus.CANCELLED)
        self.cancellation_reason = reason

    def mark_refunded(self, amount: int, reason: Optional[str] = None, reference: Optional[str] = None) -> None:
        self.refunded_at = self._transition(InvoiceStatus.REFUNDED)
        self.refund_amount = amount
        self.refund_reason = reason
        self.refund_reference = reference

