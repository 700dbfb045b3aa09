"""Invoicing configuration."""

from decimal import Decimal

from pydantic import BaseModel, Field


DEFAULT_NOTES = (
    "Payment Terms: Due on receipt\n"
    "Bank Details: [Your Bank Details Here]\n"
    "Thank you for your business!"
)


class InvoicingConfig(BaseModel):
    """
    Invoicing configuration.

    Durations are in their natural units (hours for rate caching, days for
    bin retention) to keep configuration readable.
    """

    # Exchange rate
    default_exchange_rate: Decimal = Field(
        default=Decimal("82"),
        description="USD to INR rate used when the rate API is unreachable",
        gt=0,
    )
    exchange_rate_api_url: str = Field(
        default="https://open.er-api.com/v6/latest/USD",
        description="Endpoint returning {'rates': {'INR': ...}} for USD",
    )
    exchange_rate_refresh_hours: int = Field(
        default=24,
        description="How long a fetched rate is reused before refetching",
        ge=1,
        le=168,
    )

    # Invoice defaults
    default_tax_rate: Decimal = Field(
        default=Decimal("5"),
        description="Tax percentage applied to new drafts",
        ge=0,
        le=100,
    )
    default_notes: str = Field(
        default=DEFAULT_NOTES,
        description="Notes block pre-filled on new drafts",
    )

    # Numbering
    default_prefix: str = Field(
        default="CUST",
        description="Invoice number prefix when the recipient name is blank",
        pattern=r"^[A-Z]{1,4}$",
    )
    counter_key_prefix: str = Field(
        default="invoiceSerial_",
        description="Counter store key prefix for per-prefix watermarks",
    )
    counter_namespace: str = Field(
        default="invoice_app_",
        description="Namespace prepended to every counter store key",
    )

    # Bin
    bin_retention_days: int = Field(
        default=30,
        description="Days a binned invoice is kept before permanent removal",
        ge=1,
        le=365,
    )
