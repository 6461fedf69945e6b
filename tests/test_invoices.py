import asyncio
from datetime import datetime, timezone
from decimal import Decimal

import pytest

from domain.common.exceptions import DomainValidationException
from domain.invoice.entity import (
    Invoice,
    InvoiceRates,
    InvoiceStatus,
    ServiceDetails,
    compute_amounts,
    format_invoice_number,
    invoice_prefix,
)


NOW = datetime(2026, 3, 15, 12, 0, tzinfo=timezone.utc)
RATES = InvoiceRates(iva_rate=Decimal("0.19"), retention_rate=Decimal("0.025"), platform_fee_rate=Decimal("0.05"))


def test_compute_amounts():
    details = ServiceDetails(title="Cleaning", unit_price=40_000, quantity=3, discount=20_000)
    amounts = compute_amounts(details, RATES)
    assert amounts.subtotal == 120_000
    assert amounts.taxable_amount == 100_000
    assert amounts.iva_amount == 19_000
    assert amounts.retention_amount == 2_500
    assert amounts.platform_fee_amount == 5_000
    assert amounts.total == 116_500


def test_compute_amounts_is_idempotent():
    details = ServiceDetails(title="Cleaning", unit_price=33_333, quantity=7)
    assert compute_amounts(details, RATES) == compute_amounts(details, RATES)


@pytest.mark.parametrize(
    "details",
    [
        ServiceDetails(title="x", unit_price=1_000, quantity=0),
        ServiceDetails(title="x", unit_price=-1),
        ServiceDetails(title="x", unit_price=1_000, discount=1_001),
    ],
)
def test_compute_amounts_rejects_bad_lines(details):
    with pytest.raises(DomainValidationException):
        compute_amounts(details, RATES)


def test_invoice_number_format():
    assert invoice_prefix(NOW) == "202603"
    assert format_invoice_number("202603", 7) == "2026030007"
    with pytest.raises(DomainValidationException):
        format_invoice_number("202603", 0)
    assert format_invoice_number("202603", 9999) == "2026039999"
    with pytest.raises(DomainValidationException):
        format_invoice_number("202603", 10_000)


def _invoice(**overrides) -> Invoice:
    values = dict(
        invoice_number="2026030001",
        payment_id="PAY_1",
        booking_id="b1",
        client_id="c1",
        professional_id="p1",
        service=ServiceDetails(title="Cleaning", unit_price=100_000),
        rates=RATES,
        currency="COP",
        payment_method="pse",
        payment_reference="txn_1",
        now=NOW,
    )
    values.update(overrides)
    return Invoice.for_completed_payment(**values)


def test_invoice_for_completed_payment_is_paid():
    invoice = _invoice()
    assert invoice.status == InvoiceStatus.PAID
    assert invoice.formatted_number == "INV-2026030001"
    assert invoice.due_date == datetime(2026, 4, 14, 12, 0, tzinfo=timezone.utc)
    assert invoice.net_amount == invoice.amounts.total - invoice.amounts.platform_fee_amount
    assert not invoice.is_overdue(datetime(2027, 1, 1, tzinfo=timezone.utc))


def test_invoice_transitions():
    invoice = _invoice()
    with pytest.raises(DomainValidationException):
        invoice.cancel("too late")
    invoice.mark_refunded(116_500, "cancelled", "rf_1")
    assert invoice.status == InvoiceStatus.REFUNDED
    assert invoice.refund_amount == 116_500

    draft = Invoice(**{**_invoice().__dict__, "status": InvoiceStatus.DRAFT})
    draft.issue()
    assert draft.is_overdue(datetime(2027, 1, 1, tzinfo=timezone.utc))
    draft.cancel("duplicate")
    assert draft.status == InvoiceStatus.CANCELLED


@pytest.mark.asyncio
async def test_invoice_numbers_are_sequential(uow_factory):
    numbers = []
    for _ in range(3):
        async with uow_factory() as uow:
            numbers.append(await uow.invoice_repository.next_invoice_number(NOW))
            await uow.commit()
    assert numbers == ["2026030001", "2026030002", "2026030003"]

    async with uow_factory() as uow:
        assert await uow.invoice_repository.next_invoice_number(datetime(2026, 4, 1, tzinfo=timezone.utc)) == "2026040001"
        await uow.commit()


@pytest.mark.asyncio
async def test_invoice_numbers_unique_under_concurrency(uow_factory):
    async def allocate(i: int) -> str:
        async with uow_factory() as uow:
            number = await uow.invoice_repository.next_invoice_number(NOW)
            await uow.invoice_repository.create(_invoice(invoice_number=number, payment_id=f"PAY_{i}"))
            await asyncio.sleep(0)
            await uow.commit()
            return number

    numbers = await asyncio.gather(*(allocate(i) for i in range(10)))
    assert len(set(numbers)) == 10
    assert sorted(numbers) == [f"202603{i:04d}" for i in range(1, 11)]


@pytest.mark.asyncio
async def test_numbering_seeds_from_existing_invoices(uow_factory):
    async with uow_factory() as uow:
        await uow.invoice_repository.create(_invoice(invoice_number="2026030041"))
        await uow.commit()
    async with uow_factory() as uow:
        assert await uow.invoice_repository.next_invoice_number(NOW) == "2026030042"
        await uow.commit()


@pytest.mark.asyncio
async def test_invoice_round_trips_through_repository(uow_factory):
    invoice = _invoice()
    async with uow_factory() as uow:
        await uow.invoice_repository.create(invoice)
        await uow.commit()
    async with uow_factory(readonly=True) as uow:
        loaded = await uow.invoice_repository.get_by_payment_id("PAY_1")
    assert loaded.id == invoice.id
    assert loaded.amounts == invoice.amounts
    assert loaded.rates == invoice.rates
    assert loaded.status == InvoiceStatus.PAID
