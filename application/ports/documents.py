"""Invoice document rendering port."""
from __future__ import annotations

from typing import Protocol, runtime_checkable

from domain.invoice.entity import Invoice


@runtime_checkable
class InvoiceRenderer(Protocol):
    content_type: str

    def render(self, invoice: Invoice) -> bytes: ...
