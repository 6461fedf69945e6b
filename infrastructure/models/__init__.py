"""Infrastructure models package exports."""
from .base import Base, metadata
from .booking import BookingModel
from .invoice import InvoiceModel, InvoiceSequenceModel
from .payment import PaymentModel

__all__ = [
    "Base",
    "metadata",
    "BookingModel",
    "InvoiceModel",
    "InvoiceSequenceModel",
    "PaymentModel",
]
