"""Typed exceptions for invoicing failures."""


class InvoicingError(Exception):
    """Base class for invoicing errors."""


class InvalidExchangeRateError(InvoicingError, ValueError):
    """Exchange rate is zero, negative, or not a finite number."""

    def __init__(self, rate):
        self.rate = rate
        super().__init__(f"Exchange rate must be a positive number, got {rate!r}")


class PersistenceUnavailableError(InvoicingError):
    """
    Counter store or invoice storage could not be read or written.

    A committed invoice number is never handed out when this is raised.
    Callers should block finalization and offer a retry.
    """

    def __init__(self, operation: str, cause: Exception | None = None):
        self.operation = operation
        self.cause = cause
        message = f"Persistence unavailable during {operation}"
        if cause is not None:
            message = f"{message}: {cause}"
        super().__init__(message)


class InvoiceNotFoundError(InvoicingError, ValueError):
    """No invoice with the given ID exists in the requested state."""

    def __init__(self, invoice_id, where: str = ""):
        self.invoice_id = invoice_id
        suffix = f" in {where}" if where else ""
        super().__init__(f"Invoice {invoice_id} not found{suffix}")
