"""
Domain events for invoicing.

Immutable event objects that represent invoice state changes. A service
publishes what happened; handlers (notifications, exports) react without the
publisher knowing who's listening.

Events carry the full Invoice so handlers don't need to re-fetch state.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any
from uuid import uuid4

from utils.timezone import now_utc


@dataclass(frozen=True, kw_only=True)
class InvoicingEvent:
    """Base class for all invoicing domain events."""
    event_id: str = field(default_factory=lambda: str(uuid4()))
    occurred_at: datetime = field(default_factory=now_utc)


@dataclass(frozen=True)
class InvoiceCreated(InvoicingEvent):
    """An invoice was saved with a freshly committed number."""
    invoice: Any = None  # Invoice; Any avoids a circular import

    @classmethod
    def create(cls, invoice: Any) -> "InvoiceCreated":
        return cls(invoice=invoice)


@dataclass(frozen=True)
class InvoiceBinned(InvoicingEvent):
    """An invoice was moved to the bin."""
    invoice: Any = None

    @classmethod
    def create(cls, invoice: Any) -> "InvoiceBinned":
        return cls(invoice=invoice)


@dataclass(frozen=True)
class InvoiceRestored(InvoicingEvent):
    """A binned invoice was restored."""
    invoice: Any = None

    @classmethod
    def create(cls, invoice: Any) -> "InvoiceRestored":
        return cls(invoice=invoice)


@dataclass(frozen=True)
class BinPurged(InvoicingEvent):
    """Binned invoices were permanently removed."""
    invoice_numbers: tuple[str, ...] = ()
