"""
Invoice queries, PDF download and cancellation.

Invoices are created by the payment lifecycle when a payment completes;
this service only reads and administers them.
"""
from __future__ import annotations

from typing import Callable, Optional

from application.dtos.actor import Actor
from application.ports.documents import InvoiceRenderer
from core.logging_config import get_logger
from domain.common.exceptions import ConflictException, ForbiddenException, NotFoundException
from domain.common.unit_of_work import AbstractUnitOfWork
from domain.invoice.entity import Invoice, InvoiceStatus


logger = get_logger(__name__)

CANCELLABLE_STATUSES = {InvoiceStatus.DRAFT, InvoiceStatus.ISSUED}


class InvoiceService:
    def __init__(self, uow_factory: Callable[..., AbstractUnitOfWork], renderer: InvoiceRenderer) -> None:
        self._uow_factory = uow_factory
        self.renderer = renderer

    @staticmethod
    def _authorize(actor: Actor, invoice: Invoice) -> None:
        if actor.is_admin or actor.user_id in (invoice.client_id, invoice.professional_id):
            return
        raise ForbiddenException("Not allowed to access this invoice")

    async def get_invoice(self, actor: Actor, invoice_id: str) -> Invoice:
        async with self._uow_factory(readonly=True) as uow:
            invoice = await uow.invoice_repository.get_by_id(invoice_id)
        if invoice is None:
            raise NotFoundException("Invoice", invoice_id)
        self._authorize(actor, invoice)
        return invoice

    async def render_invoice_pdf(self, actor: Actor, invoice_id: str) -> tuple[Invoice, bytes]:
        invoice = await self.get_invoice(actor, invoice_id)
        return invoice, self.renderer.render(invoice)

    async def cancel_invoice(self, actor: Actor, invoice_id: str, reason: Optional[str] = None) -> Invoice:
        if not actor.is_admin:
            raise ForbiddenException("Only administrators can cancel invoices")
        async with self._uow_factory() as uow:
            invoice = await uow.invoice_repository.get_by_id(invoice_id)
            if invoice is None:
                raise NotFoundException("Invoice", invoice_id)
            if invoice.status not in CANCELLABLE_STATUSES:
                raise ConflictException(
                    f"Invoice in status '{invoice.status.value}' cannot be cancelled",
                    details={"status": invoice.status.value},
                )
            invoice.cancel(reason)
            await uow.invoice_repository.update(invoice)
            await uow.commit()
        logger.info("invoice_cancelled", invoice_id=invoice_id, actor=actor.user_id)
        return invoice
