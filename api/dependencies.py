"""
API依赖项 - 认证和服务注入
"""
from typing import Optional

import jwt
from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from pydantic import ValidationError

from application.dtos.actor import Actor
from application.services.invoice_service import InvoiceService
from application.services.payment_service import PaymentLifecycleService
from application.services.webhook_service import WebhookService
from core.config import settings
from core.exceptions import TokenInvalidException, UnauthorizedException
from infrastructure.bootstrap import PaymentServices


# HTTP Bearer for direct API calls
http_bearer = HTTPBearer(
    scheme_name="Bearer",
    description="JWT Bearer token issued by the identity service",
    auto_error=False,
)


async def get_token(
    bearer_token: Optional[HTTPAuthorizationCredentials] = Depends(http_bearer),
) -> str:
    """从Bearer token中提取token"""
    if bearer_token and bearer_token.credentials:
        return bearer_token.credentials
    raise UnauthorizedException("Missing authentication credentials")


def decode_actor(token: str) -> Actor:
    """验证JWT令牌，返回调用方身份（sub + role）"""
    try:
        payload = jwt.decode(token, settings.SECRET_KEY, algorithms=[settings.ALGORITHM])
    except jwt.ExpiredSignatureError:
        raise TokenInvalidException("Token expired") from None
    except jwt.PyJWTError:
        raise TokenInvalidException() from None

    if payload.get("type", "access") != "access" or not payload.get("sub"):
        raise TokenInvalidException()
    try:
        return Actor(user_id=str(payload["sub"]), role=payload.get("role", "client"))
    except ValidationError:
        raise TokenInvalidException("Unknown role") from None


async def get_current_actor(token: str = Depends(get_token)) -> Actor:
    """获取当前调用方"""
    return decode_actor(token)


def get_payment_services(request: Request) -> PaymentServices:
    return request.app.state.payment_services


def get_payment_service(services: PaymentServices = Depends(get_payment_services)) -> PaymentLifecycleService:
    return services.lifecycle


def get_webhook_service(services: PaymentServices = Depends(get_payment_services)) -> WebhookService:
    return services.webhooks


def get_invoice_service(services: PaymentServices = Depends(get_payment_services)) -> InvoiceService:
    return services.invoices
