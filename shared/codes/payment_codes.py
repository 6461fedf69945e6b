"""
Payment specific codes and provider status mapping.
"""
from __future__ import annotations

from enum import IntEnum


class PaymentCode(IntEnum):
    # Generic success
    SUCCESS = 0

    # Calculator / selector errors (5xxxx)
    UNSUPPORTED_METHOD = 50100
    NO_PROVIDER_AVAILABLE = 50101

    # Provider/Network errors (6xxxx)
    PROVIDER_ERROR = 60000
    SIGNATURE_ERROR = 60002
    TIMEOUT = 60003

    # Lifecycle errors (7xxxx)
    PAYMENT_CONFLICT = 70000
    REFUND_CONFLICT = 70001
    STALE_PAYMENT = 70002


# Provider status -> internal payment status. Anything not listed is passed
# through unchanged and must already be one of the internal values.
PROVIDER_STATUS_TO_INTERNAL = {
    "wompi": {
        "PENDING": "processing",
        "APPROVED": "completed",
        "DECLINED": "failed",
        "VOIDED": "failed",
        "ERROR": "failed",
    },
    "mercadopago": {
        "pending": "processing",
        "in_process": "processing",
        "authorized": "processing",
        "approved": "completed",
        "rejected": "failed",
        "cancelled": "failed",
    },
    "stripe": {
        "requires_payment_method": "failed",
        "requires_action": "processing",
        "requires_confirmation": "processing",
        "requires_capture": "processing",
        "processing": "processing",
        "succeeded": "completed",
        "canceled": "failed",
    },
    "paypal": {
        "CREATED": "processing",
        "PENDING": "processing",
        "APPROVED": "processing",
        "COMPLETED": "completed",
        "DECLINED": "failed",
        "DENIED": "failed",
        "FAILED": "failed",
        "VOIDED": "failed",
    },
}

# Refund statuses share the same vocabulary on every provider we talk to.
# Anything not listed here is treated as a failed refund.
PROVIDER_REFUND_STATUS_TO_INTERNAL = {
    "APPROVED": "completed",
    "COMPLETED": "completed",
    "VOIDED": "completed",
    "REFUNDED": "completed",
    "approved": "completed",
    "refunded": "completed",
    "succeeded": "completed",
    "PENDING": "pending",
    "pending": "pending",
    "in_process": "pending",
    "requires_action": "pending",
    "DECLINED": "failed",
    "FAILED": "failed",
    "rejected": "failed",
    "failed": "failed",
    "canceled": "failed",
}
