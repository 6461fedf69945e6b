"""
Invoice PDF rendering with ReportLab (pure Python, no system dependencies).
"""
from __future__ import annotations

import io
from decimal import Decimal

from reportlab.lib import colors
from reportlab.lib.pagesizes import A4
from reportlab.lib.styles import ParagraphStyle, getSampleStyleSheet
from reportlab.lib.units import mm
from reportlab.platypus import Paragraph, SimpleDocTemplate, Spacer, Table, TableStyle

from core.logging_config import get_logger
from domain.invoice.entity import Invoice
from infrastructure.external.payments.base import CURRENCY_EXPONENT


logger = get_logger(__name__)

PRIMARY_COLOR = colors.HexColor("#2563eb")
LIGHT_GRAY = colors.HexColor("#f3f4f6")
DARK_GRAY = colors.HexColor("#333333")
MARGIN = 20 * mm


def format_money(amount: int, currency: str) -> str:
    exponent = CURRENCY_EXPONENT.get(currency.upper(), 2)
    value = Decimal(amount) / (Decimal(10) ** exponent)
    # es-CO grouping: 1.234.567,89
    text = f"{value:,.{exponent}f}".replace(",", "_").replace(".", ",").replace("_", ".")
    return f"{currency.upper()} {text}"


def format_rate(rate: Decimal) -> str:
    return f"{(rate * 100).normalize():f}%"


class ReportLabInvoiceRenderer:
    """Render an invoice as a single-page A4 PDF."""

    content_type = "application/pdf"

    def __init__(self, company_name: str = "Service Payment Broker") -> None:
        self.company_name = company_name
        base = getSampleStyleSheet()
        self.styles = {
            "Company": ParagraphStyle("Company", parent=base["Heading1"], textColor=PRIMARY_COLOR, fontSize=20),
            "Title": ParagraphStyle("Title", parent=base["Heading2"], textColor=DARK_GRAY, alignment=2),
            "Normal": ParagraphStyle("Body", parent=base["Normal"], fontSize=10, textColor=DARK_GRAY, leading=14),
        }

    def render(self, invoice: Invoice) -> bytes:
        buffer = io.BytesIO()
        doc = SimpleDocTemplate(
            buffer,
            pagesize=A4,
            leftMargin=MARGIN,
            rightMargin=MARGIN,
            topMargin=MARGIN,
            bottomMargin=MARGIN,
            title=invoice.formatted_number,
        )
        doc.build(self._story(invoice))
        pdf = buffer.getvalue()
        logger.info("invoice_pdf_rendered", invoice_id=invoice.id, size=len(pdf))
        return pdf

    def _story(self, invoice: Invoice) -> list:
        s = self.styles
        cur = invoice.currency
        a, r = invoice.amounts, invoice.rates
        money = lambda v: format_money(v, cur)  # noqa: E731

        header = [
            Paragraph(self.company_name, s["Company"]),
            Paragraph(f"Invoice {invoice.formatted_number}", s["Title"]),
            Paragraph(f"Status: {invoice.status.value}", s["Normal"]),
            Paragraph(f"Issued: {invoice.issue_date:%Y-%m-%d}" if invoice.issue_date else "Issued: -", s["Normal"]),
            Paragraph(f"Due: {invoice.due_date:%Y-%m-%d}" if invoice.due_date else "Due: -", s["Normal"]),
            Paragraph(f"Client: {invoice.client_id} &nbsp; Professional: {invoice.professional_id}", s["Normal"]),
            Spacer(1, 8 * mm),
        ]

        lines = Table(
            [
                ["Service", "Qty", "Unit price", "Subtotal"],
                [invoice.service.title, str(invoice.service.quantity), money(invoice.service.unit_price), money(a.subtotal)],
            ],
            colWidths=[80 * mm, 15 * mm, 35 * mm, 35 * mm],
        )
        lines.setStyle(
            TableStyle(
                [
                    ("BACKGROUND", (0, 0), (-1, 0), LIGHT_GRAY),
                    ("FONTNAME", (0, 0), (-1, 0), "Helvetica-Bold"),
                    ("ALIGN", (1, 0), (-1, -1), "RIGHT"),
                    ("LINEBELOW", (0, 0), (-1, 0), 0.5, DARK_GRAY),
                ]
            )
        )

        totals_rows = [
            ["Subtotal", money(a.subtotal)],
            ["Discount", money(a.discount)],
            ["Taxable amount", money(a.taxable_amount)],
            [f"IVA ({format_rate(r.iva_rate)})", money(a.iva_amount)],
            [f"Retention ({format_rate(r.retention_rate)})", money(a.retention_amount)],
            ["Total", money(a.total)],
        ]
        if invoice.refund_amount:
            totals_rows.append(["Refunded", money(invoice.refund_amount)])
        totals = Table(totals_rows, colWidths=[130 * mm, 35 * mm])
        totals.setStyle(
            TableStyle(
                [
                    ("ALIGN", (1, 0), (1, -1), "RIGHT"),
                    ("FONTNAME", (0, 5), (-1, 5), "Helvetica-Bold"),
                    ("LINEABOVE", (0, 5), (-1, 5), 0.5, DARK_GRAY),
                ]
            )
        )

        footer = [
            Spacer(1, 8 * mm),
            Paragraph(
                f"Payment: {invoice.payment_method or '-'} &nbsp; Reference: {invoice.payment_reference or '-'}",
                s["Normal"],
            ),
        ]
        return [*header, lines, Spacer(1, 6 * mm), totals, *footer]
