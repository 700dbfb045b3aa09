"""Core domain models."""

from core.models.line_item import (
    LineItem, ServiceGroup, load_service_groups, new_item_id, to_amount,
)
from core.models.invoice import (
    Currency, Invoice, InvoiceCreate, InvoiceUpdate, Totals,
)

__all__ = [
    # LineItem
    "LineItem", "ServiceGroup", "load_service_groups", "new_item_id", "to_amount",
    # Invoice
    "Currency", "Invoice", "InvoiceCreate", "InvoiceUpdate", "Totals",
]
