"""领域层业务异常定义，供领域与基础设施使用。

核心（core）层仅负责全局映射与异常处理，尽量避免领域层反向依赖核心层。
"""
from __future__ import annotations

from typing import Optional

from shared.codes import BusinessCode
from shared.codes.payment_codes import PaymentCode


class BusinessException(Exception):
    """业务异常基类"""

    def __init__(
        self,
        code: int,
        message: str,
        error_type: str = "BusinessError",
        details: Optional[dict] = None,
        field: Optional[str] = None,
    ) -> None:
        self.code = code
        self.message = message
        self.error_type = error_type
        self.details = details
        self.field = field
        super().__init__(self.message)


class DomainValidationException(BusinessException):
    """Malformed or out-of-range input. Never retried automatically."""

    def __init__(
        self,
        message: str,
        *,
        field: str | None = None,
        details: dict | None = None,
    ):
        super().__init__(
            code=BusinessCode.PARAM_VALIDATION_ERROR,
            message=message,
            error_type="ValidationError",
            details=details,
            field=field,
        )


class NotFoundException(BusinessException):
    def __init__(self, resource: str, identifier: Optional[str] = None):
        details = {"resource": resource}
        if identifier is not None:
            details["id"] = identifier
        super().__init__(
            code=BusinessCode.NOT_FOUND,
            message=f"{resource} not found",
            error_type="NotFoundError",
            details=details,
        )


class ConflictException(BusinessException):
    """Violates the one-completed-payment or one-refund invariant."""

    def __init__(self, message: str, *, code: int = PaymentCode.PAYMENT_CONFLICT, details: Optional[dict] = None):
        super().__init__(
            code=code,
            message=message,
            error_type="ConflictError",
            details=details,
        )


class ForbiddenException(BusinessException):
    def __init__(self, message: str = "Forbidden"):
        super().__init__(
            code=BusinessCode.FORBIDDEN,
            message=message,
            error_type="Forbidden",
        )


class UnsupportedMethodError(BusinessException):
    def __init__(self, provider: str, method: str):
        super().__init__(
            code=PaymentCode.UNSUPPORTED_METHOD,
            message=f"Payment method '{method}' is not supported by provider '{provider}'",
            error_type="UnsupportedMethodError",
            details={"provider": provider, "method": method},
            field="payment_method",
        )


class NoProviderAvailableError(BusinessException):
    """Default provider missing or unconfigured; raised at boot."""

    def __init__(self, provider: str, reason: str):
        super().__init__(
            code=PaymentCode.NO_PROVIDER_AVAILABLE,
            message=f"Default payment provider '{provider}' unavailable: {reason}",
            error_type="NoProviderAvailableError",
            details={"provider": provider},
        )


class PaymentProviderError(BusinessException):
    """Gateway-side failure or timeout, already recorded on the Payment."""

    def __init__(
        self,
        message: str,
        *,
        provider: str,
        payment_id: Optional[str] = None,
        provider_code: Optional[str] = None,
        code: int = PaymentCode.PROVIDER_ERROR,
    ):
        super().__init__(
            code=code,
            message=message,
            error_type="PaymentProviderError",
            details={"provider": provider, "payment_id": payment_id, "provider_code": provider_code},
        )


class PaymentSignatureError(BusinessException):
    def __init__(self, message: str, *, provider: str):
        super().__init__(
            code=PaymentCode.SIGNATURE_ERROR,
            message=message,
            error_type="SignatureError",
            details={"provider": provider},
        )


class StalePaymentError(BusinessException):
    """Optimistic version check lost against a concurrent writer."""

    def __init__(self, payment_id: str, expected_version: int):
        super().__init__(
            code=PaymentCode.STALE_PAYMENT,
            message=f"Payment {payment_id} was modified concurrently",
            error_type="StalePaymentError",
            details={"payment_id": payment_id, "expected_version": expected_version},
        )
