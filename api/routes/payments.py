"""
Payments API routes.

Thin layer over the lifecycle and webhook services: request parsing,
authentication and response envelopes only. No gateway SDK details here.
"""
from __future__ import annotations

import ipaddress
from typing import Optional

from fastapi import APIRouter, Depends, Request, status

from api.dependencies import get_current_actor, get_payment_service, get_webhook_service
from api.middleware import resolve_client_ip
from application.dtos.actor import Actor
from application.dtos.payments import (
    CreatePaymentRequest,
    PaymentCreatedOut,
    PaymentOut,
    RefundPaymentRequest,
)
from application.services.payment_service import PaymentLifecycleService
from application.services.webhook_service import WebhookService
from core.logging_config import get_logger
from core.response import success_response
from core.settings import payment_settings
from domain.common.exceptions import ForbiddenException


router = APIRouter(prefix="/payments", tags=["Payments"])
logger = get_logger(__name__)

STRIPE_SIGNATURE_HEADER = "Stripe-Signature"


def _ip_allowed(remote_ip: str, allowlist: list[str]) -> bool:
    try:
        ip = ipaddress.ip_address(remote_ip)
    except ValueError:
        return False
    for entry in allowlist:
        try:
            if "/" in entry:
                if ip in ipaddress.ip_network(entry, strict=False):
                    return True
            elif ip == ipaddress.ip_address(entry):
                return True
        except ValueError:
            logger.warning("webhook_allowlist_entry_invalid", entry=entry)
    return False


def _signature_from(request: Request) -> Optional[str]:
    return request.headers.get(payment_settings.webhook.signature_header) or request.headers.get(
        STRIPE_SIGNATURE_HEADER
    )


@router.post("/service-requests/{booking_id}/pay", status_code=status.HTTP_201_CREATED)
async def pay_service_request(
    booking_id: str,
    body: CreatePaymentRequest,
    actor: Actor = Depends(get_current_actor),
    service: PaymentLifecycleService = Depends(get_payment_service),
):
    created = await service.create_payment(actor, booking_id, body)
    out = PaymentCreatedOut(
        payment=PaymentOut.from_entity(created.payment),
        booking_id=booking_id,
        booking_payment_status=created.booking_payment_status.value,
    )
    return success_response(data=out.model_dump(mode="json"), message="Payment created")


@router.get("/{payment_id}")
async def get_payment(
    payment_id: str,
    actor: Actor = Depends(get_current_actor),
    service: PaymentLifecycleService = Depends(get_payment_service),
):
    payment = await service.get_payment(actor, payment_id)
    return success_response(data=PaymentOut.from_entity(payment).model_dump(mode="json"))


@router.post("/{payment_id}/refund")
async def refund_payment(
    payment_id: str,
    body: RefundPaymentRequest,
    actor: Actor = Depends(get_current_actor),
    service: PaymentLifecycleService = Depends(get_payment_service),
):
    payment = await service.refund_payment(actor, payment_id, body)
    return success_response(data=PaymentOut.from_entity(payment).model_dump(mode="json"), message="Refund processed")


@router.post("/webhooks/{provider}")
async def payments_webhook(
    provider: str,
    request: Request,
    service: WebhookService = Depends(get_webhook_service),
):
    allowlist = payment_settings.webhook.ip_allowlist or []
    if allowlist:
        remote_ip = getattr(request.state, "client_ip", None) or resolve_client_ip(request)
        if not _ip_allowed(remote_ip, allowlist):
            logger.warning("webhook_ip_rejected", provider=provider, remote_ip=remote_ip, security_event=True)
            raise ForbiddenException("Webhook source not allowed")

    raw_body = await request.body()
    ack = await service.handle(provider.lower(), raw_body, _signature_from(request))
    return success_response(data=ack.model_dump(mode="json"), message="Webhook received")
