import pytest

from application.dtos.payments import CreatePaymentRequest
from application.services.invoice_service import InvoiceService
from domain.common.exceptions import ConflictException, ForbiddenException, NotFoundException
from domain.invoice.entity import Invoice, InvoiceStatus
from infrastructure.documents.invoice_pdf import ReportLabInvoiceRenderer, format_money
from tests.fakes import ADMIN, CLIENT, PROFESSIONAL, STRANGER


@pytest.fixture
def invoices(uow_factory):
    return InvoiceService(uow_factory, ReportLabInvoiceRenderer(company_name="Servicios Test"))


@pytest.fixture
def paid_invoice(lifecycle, seed_booking, uow_factory):
    async def _make() -> Invoice:
        booking = await seed_booking()
        created = await lifecycle.create_payment(CLIENT, booking.id, CreatePaymentRequest(payment_method="pse"))
        async with uow_factory(readonly=True) as uow:
            return await uow.invoice_repository.get_by_payment_id(created.payment.id)

    return _make


def test_format_money_uses_colombian_grouping():
    assert format_money(1_234_567, "COP") == "COP 1.234.567"
    assert format_money(1_050, "USD") == "USD 10,50"


@pytest.mark.asyncio
async def test_get_invoice_authorization(invoices, paid_invoice):
    invoice = await paid_invoice()
    for actor in (CLIENT, PROFESSIONAL, ADMIN):
        assert (await invoices.get_invoice(actor, invoice.id)).id == invoice.id
    with pytest.raises(ForbiddenException):
        await invoices.get_invoice(STRANGER, invoice.id)
    with pytest.raises(NotFoundException):
        await invoices.get_invoice(ADMIN, "missing")


@pytest.mark.asyncio
async def test_render_pdf(invoices, paid_invoice):
    invoice = await paid_invoice()
    loaded, pdf = await invoices.render_invoice_pdf(CLIENT, invoice.id)
    assert loaded.id == invoice.id
    assert pdf.startswith(b"%PDF")
    assert invoices.renderer.content_type == "application/pdf"


@pytest.mark.asyncio
async def test_paid_invoice_cannot_be_cancelled(invoices, paid_invoice):
    invoice = await paid_invoice()
    with pytest.raises(ForbiddenException):
        await invoices.cancel_invoice(CLIENT, invoice.id, "mistake")
    with pytest.raises(ConflictException):
        await invoices.cancel_invoice(ADMIN, invoice.id, "mistake")


@pytest.mark.asyncio
@pytest.mark.parametrize("status", [InvoiceStatus.DRAFT, InvoiceStatus.ISSUED])
async def test_admin_cancels_open_invoice(invoices, paid_invoice, uow_factory, status):
    paid = await paid_invoice()
    async with uow_factory() as uow:
        open_invoice = Invoice(**{**paid.__dict__, "status": status})
        await uow.invoice_repository.update(open_invoice)
        await uow.commit()

    cancelled = await invoices.cancel_invoice(ADMIN, paid.id, "duplicate")

    assert cancelled.status == InvoiceStatus.CANCELLED
    stored = await invoices.get_invoice(ADMIN, paid.id)
    assert stored.status == InvoiceStatus.CANCELLED
