"""
Invoice DTOs (Pydantic v2).
"""
from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, Field

from domain.invoice.entity import Invoice


class InvoiceAmountsOut(BaseModel):
    subtotal: int
    discount: int
    taxable_amount: int
    iva_rate: Decimal
    iva_amount: int
    retention_rate: Decimal
    retention_amount: int
    platform_fee_rate: Decimal
    platform_fee_amount: int
    total: int
    net_amount: int


class InvoiceOut(BaseModel):
    id: str
    invoice_number: str
    formatted_number: str
    payment_id: str
    booking_id: str
    client_id: str
    professional_id: str
    status: str
    title: str
    description: Optional[str] = None
    category: Optional[str] = None
    quantity: int
    unit_price: int
    amounts: InvoiceAmountsOut
    currency: str
    issue_date: Optional[datetime] = None
    due_date: Optional[datetime] = None
    paid_date: Optional[datetime] = None
    is_overdue: bool = False
    payment_method: Optional[str] = None
    payment_reference: Optional[str] = None
    cancellation_reason: Optional[str] = None
    refund_amount: int = 0
    refunded_at: Optional[datetime] = None

    @classmethod
    def from_entity(cls, invoice: Invoice) -> "InvoiceOut":
        a, r, s = invoice.amounts, invoice.rates, invoice.service
        return cls(
            id=invoice.id,
            invoice_number=invoice.invoice_number,
            formatted_number=invoice.formatted_number,
            payment_id=invoice.payment_id,
            booking_id=invoice.booking_id,
            client_id=invoice.client_id,
            professional_id=invoice.professional_id,
            status=invoice.status.value,
            title=s.title,
            description=s.description,
            category=s.category,
            quantity=s.quantity,
            unit_price=s.unit_price,
            amounts=InvoiceAmountsOut(
                subtotal=a.subtotal,
                discount=a.discount,
                taxable_amount=a.taxable_amount,
                iva_rate=r.iva_rate,
                iva_amount=a.iva_amount,
                retention_rate=r.retention_rate,
                retention_amount=a.retention_amount,
                platform_fee_rate=r.platform_fee_rate,
                platform_fee_amount=a.platform_fee_amount,
                total=a.total,
                net_amount=invoice.net_amount,
            ),
            currency=invoice.currency,
            issue_date=invoice.issue_date,
            due_date=invoice.due_date,
            paid_date=invoice.paid_date,
            is_overdue=invoice.is_overdue(),
            payment_method=invoice.payment_method,
            payment_reference=invoice.payment_reference,
            cancellation_reason=invoice.cancellation_reason,
            refund_amount=invoice.refund_amount,
            refunded_at=invoice.refunded_at,
        )


class CancelInvoiceRequest(BaseModel):
    reason: Optional[str] = Field(default=None, max_length=500)
