"""
Business codes shared by domain, core and API layers.

`BusinessCode` covers generic failures; payment lifecycle and gateway
failures use `PaymentCode` from `shared.codes.payment_codes`.
"""
from enum import IntEnum


class BusinessCode(IntEnum):
    """Envelope `code` values; the HTTP status is derived from these."""

    SUCCESS = 0

    # Parameter errors (1xxxx)
    PARAM_ERROR = 10000
    PARAM_VALIDATION_ERROR = 10003

    # Business errors (2xxxx)
    BUSINESS_ERROR = 20000
    NOT_FOUND = 20006
    CONFLICT = 20007

    # Authorization errors (3xxxx)
    UNAUTHORIZED = 30001
    FORBIDDEN = 30002
    TOKEN_INVALID = 30003

    # System errors (4xxxx)
    SYSTEM_ERROR = 40000
    SERVICE_UNAVAILABLE = 40003


__all__ = ["BusinessCode"]
