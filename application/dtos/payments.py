"""
Payment DTOs (Pydantic v2) used at application boundaries.

Gateway DTOs carry integer minor units; gateways report outcomes as typed
results rather than raising, so the lifecycle manager owns every state change.
"""
from __future__ import annotations

from datetime import datetime
from typing import Any, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from domain.billing.providers import SUPPORTED_METHODS
from domain.payment.entity import SUPPORTED_CURRENCIES, Payment


ChargeOutcome = Literal["succeeded", "pending", "declined", "timeout", "error"]
RefundOutcome = Literal["completed", "pending", "failed"]


# ---- gateway port DTOs ----

class ChargeRequest(BaseModel):
    payment_id: str
    amount: int = Field(gt=0)
    currency: str
    method: str
    description: Optional[str] = None
    customer_id: Optional[str] = None
    # opaque, provider-specific instrument data (card token, PSE bank, phone ...)
    payment_data: dict[str, Any] = Field(default_factory=dict)
    idempotency_key: Optional[str] = None


class ChargeResult(BaseModel):
    outcome: ChargeOutcome
    transaction_id: Optional[str] = None
    provider_status: Optional[str] = None
    failure_reason: Optional[str] = None
    raw: Optional[dict[str, Any]] = None

    @property
    def internal_status(self) -> str:
        return {
            "succeeded": "completed",
            "pending": "processing",
            "declined": "failed",
            "timeout": "failed",
            "error": "failed",
        }[self.outcome]


class RefundCommand(BaseModel):
    payment_id: str
    transaction_id: Optional[str]
    amount: int = Field(gt=0)
    currency: str
    reason: Optional[str] = None
    idempotency_key: Optional[str] = None


class RefundResult(BaseModel):
    status: RefundOutcome
    refund_id: Optional[str] = None
    failure_reason: Optional[str] = None
    raw: Optional[dict[str, Any]] = None


class WebhookNotification(BaseModel):
    provider: str
    event_type: Optional[str] = None
    transaction_id: Optional[str] = None
    provider_status: Optional[str] = None
    # internal status after provider mapping; None when the status is unknown
    status: Optional[str] = None
    # set only for refund/void notifications, using the refund vocabulary
    refund_status: Optional[str] = None
    payment_id: Optional[str] = None
    raw: dict[str, Any] = Field(default_factory=dict)


# ---- API request/response DTOs ----

class CreatePaymentRequest(BaseModel):
    payment_method: str
    currency: str = "COP"
    payment_data: dict[str, Any] = Field(default_factory=dict)
    description: Optional[str] = Field(default=None, max_length=500)
    metadata: Optional[dict[str, Any]] = None

    @field_validator("payment_method")
    @classmethod
    def _known_method(cls, v: str) -> str:
        v = (v or "").strip().lower()
        if v not in SUPPORTED_METHODS:
            raise ValueError(f"unsupported payment method '{v}'")
        return v

    @field_validator("currency")
    @classmethod
    def _upper_and_validate_currency(cls, v: str) -> str:
        u = (v or "").upper()
        if u not in SUPPORTED_CURRENCIES:
            raise ValueError("unsupported currency")
        return u


class RefundPaymentRequest(BaseModel):
    amount: Optional[int] = Field(default=None, gt=0, description="Minor units; defaults to the refundable amount")
    reason: Optional[str] = Field(default=None, max_length=500)


class PaymentOut(BaseModel):
    id: str
    booking_id: str
    client_id: str
    professional_id: str
    status: str
    method: str
    provider: str
    currency: str
    service_amount: int
    platform_fee: int
    tax_amount: int
    total_amount: int
    processing_fee: int
    professional_payout: int
    provider_transaction_id: Optional[str] = None
    failure_reason: Optional[str] = None
    invoice_id: Optional[str] = None
    refund_status: str
    refund_amount: int
    refunded_amount: int
    refund_reason: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    refunded_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)

    @classmethod
    def from_entity(cls, payment: Payment) -> "PaymentOut":
        return cls(
            id=payment.id,
            booking_id=payment.booking_id,
            client_id=payment.client_id,
            professional_id=payment.professional_id,
            status=payment.status.value,
            method=payment.method,
            provider=payment.provider,
            currency=payment.currency,
            service_amount=payment.service_amount,
            platform_fee=payment.platform_fee,
            tax_amount=payment.tax_amount,
            total_amount=payment.total_amount,
            processing_fee=payment.processing_fee,
            professional_payout=payment.professional_payout,
            provider_transaction_id=payment.provider_transaction_id,
            failure_reason=payment.failure_reason,
            invoice_id=payment.invoice_id,
            refund_status=payment.refund_status.value,
            refund_amount=payment.refund_amount,
            refunded_amount=payment.refunded_amount,
            refund_reason=payment.refund_reason,
            created_at=payment.created_at,
            updated_at=payment.updated_at,
            completed_at=payment.completed_at,
            refunded_at=payment.refunded_at,
        )


class PaymentCreatedOut(BaseModel):
    payment: PaymentOut
    booking_id: str
    booking_payment_status: str


class WebhookAck(BaseModel):
    received: bool = True
    payment_id: Optional[str] = None
    applied: bool = False
