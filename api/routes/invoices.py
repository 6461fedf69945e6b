"""
Invoice API routes: view, PDF download and admin cancellation.
"""
from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends
from fastapi.responses import Response

from api.dependencies import get_current_actor, get_invoice_service
from application.dtos.actor import Actor
from application.dtos.invoices import CancelInvoiceRequest, InvoiceOut
from application.services.invoice_service import InvoiceService
from core.response import success_response


router = APIRouter(prefix="/invoices", tags=["Invoices"])


@router.get("/{invoice_id}")
async def get_invoice(
    invoice_id: str,
    actor: Actor = Depends(get_current_actor),
    service: InvoiceService = Depends(get_invoice_service),
):
    invoice = await service.get_invoice(actor, invoice_id)
    return success_response(data=InvoiceOut.from_entity(invoice).model_dump(mode="json"))


@router.get("/{invoice_id}/download")
async def download_invoice(
    invoice_id: str,
    actor: Actor = Depends(get_current_actor),
    service: InvoiceService = Depends(get_invoice_service),
):
    invoice, pdf = await service.render_invoice_pdf(actor, invoice_id)
    return Response(
        content=pdf,
        media_type=service.renderer.content_type,
        headers={"Content-Disposition": f'attachment; filename="{invoice.formatted_number}.pdf"'},
    )


@router.post("/{invoice_id}/cancel")
async def cancel_invoice(
    invoice_id: str,
    body: Optional[CancelInvoiceRequest] = None,
    actor: Actor = Depends(get_current_actor),
    service: InvoiceService = Depends(get_invoice_service),
):
    invoice = await service.cancel_invoice(actor, invoice_id, body.reason if body else None)
    return success_response(data=InvoiceOut.from_entity(invoice).model_dump(mode="json"), message="Invoice cancelled")
