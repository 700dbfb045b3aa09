"""Invoice domain models.

Amounts are Decimal in both currencies. Tax rate is a percentage
(5 = 5%). Totals are derived from items and tax rate and are never
edited by hand.
"""

import math
from datetime import date, datetime, timedelta
from decimal import Decimal
from enum import Enum
from typing import Any
from uuid import UUID

from pydantic import BaseModel, Field, field_validator

from core.models.line_item import ServiceGroup, load_service_groups, to_amount
from utils.timezone import today_utc

ZERO = Decimal("0")


class Currency(str, Enum):
    """Primary display currency. Both are always computed."""

    USD = "USD"
    INR = "INR"


class Totals(BaseModel):
    """Aggregates derived from an invoice's items and tax rate."""

    subtotal_usd: Decimal = ZERO
    subtotal_inr: Decimal = ZERO
    tax_amount_usd: Decimal = ZERO
    tax_amount_inr: Decimal = ZERO
    total_usd: Decimal = ZERO
    total_inr: Decimal = ZERO


def _coerce_tax_rate(value: Any) -> Decimal:
    return to_amount(value) or ZERO


def _coerce_items(value: Any) -> Any:
    if isinstance(value, (list, tuple)):
        return load_service_groups(value)
    return value


class InvoiceCreate(BaseModel):
    """Editable invoice fields. The invoice number is assigned on create."""

    invoice_date: date = Field(default_factory=today_utc)
    recipient_name: str = Field("", max_length=200)
    recipient_email: str | None = Field(None, max_length=320)
    recipient_address: str | None = Field(None, max_length=1000)
    recipient_phone: str | None = Field(None, max_length=50)
    recipient_gstin: str | None = Field(None, max_length=15)
    recipient_pan: str | None = Field(None, max_length=10)
    sender_name: str | None = Field(None, max_length=200)
    sender_address: str | None = Field(None, max_length=1000)
    sender_gstin: str | None = Field(None, max_length=15)
    logo_url: str | None = Field(None, max_length=2000)
    tax_rate: Decimal = Field(Decimal("5"), ge=0)
    currency: Currency = Currency.USD
    notes: str | None = Field(None, max_length=2000)
    items: list[ServiceGroup] = Field(default_factory=list)

    @field_validator("tax_rate", mode="before")
    @classmethod
    def coerce_tax_rate(cls, value: Any) -> Decimal:
        return _coerce_tax_rate(value)

    @field_validator("items", mode="before")
    @classmethod
    def normalize_items(cls, value: Any) -> Any:
        return _coerce_items(value)


class InvoiceUpdate(BaseModel):
    """Data that can be updated on an invoice. All fields optional."""

    invoice_date: date | None = None
    recipient_name: str | None = Field(None, max_length=200)
    recipient_email: str | None = Field(None, max_length=320)
    recipient_address: str | None = Field(None, max_length=1000)
    recipient_phone: str | None = Field(None, max_length=50)
    recipient_gstin: str | None = Field(None, max_length=15)
    recipient_pan: str | None = Field(None, max_length=10)
    sender_name: str | None = Field(None, max_length=200)
    sender_address: str | None = Field(None, max_length=1000)
    sender_gstin: str | None = Field(None, max_length=15)
    logo_url: str | None = Field(None, max_length=2000)
    tax_rate: Decimal | None = Field(None, ge=0)
    currency: Currency | None = None
    notes: str | None = Field(None, max_length=2000)
    items: list[ServiceGroup] | None = None

    @field_validator("tax_rate", mode="before")
    @classmethod
    def coerce_tax_rate(cls, value: Any) -> Decimal | None:
        if value is None:
            return None
        return _coerce_tax_rate(value)

    @field_validator("items", mode="before")
    @classmethod
    def normalize_items(cls, value: Any) -> Any:
        return _coerce_items(value)


class Invoice(BaseModel):
    """Full invoice entity as stored."""

    id: UUID
    invoice_number: str
    invoice_date: date
    recipient_name: str
    recipient_email: str | None = None
    recipient_address: str | None = None
    recipient_phone: str | None = None
    recipient_gstin: str | None = None
    recipient_pan: str | None = None
    sender_name: str | None = None
    sender_address: str | None = None
    sender_gstin: str | None = None
    logo_url: str | None = None
    tax_rate: Decimal
    currency: Currency
    exchange_rate: Decimal
    notes: str | None = None
    items: list[ServiceGroup]
    subtotal_usd: Decimal
    subtotal_inr: Decimal
    tax_amount_usd: Decimal
    tax_amount_inr: Decimal
    total_usd: Decimal
    total_inr: Decimal
    created_at: datetime
    updated_at: datetime
    deleted_at: datetime | None = None

    model_config = {"from_attributes": True}

    @field_validator("items", mode="before")
    @classmethod
    def normalize_items(cls, value: Any) -> Any:
        return _coerce_items(value)

    @property
    def totals(self) -> Totals:
        """Derived totals as a single value."""
        return Totals(
            subtotal_usd=self.subtotal_usd,
            subtotal_inr=self.subtotal_inr,
            tax_amount_usd=self.tax_amount_usd,
            tax_amount_inr=self.tax_amount_inr,
            total_usd=self.total_usd,
            total_inr=self.total_inr,
        )

    @property
    def is_binned(self) -> bool:
        """Whether invoice sits in the bin awaiting permanent removal."""
        return self.deleted_at is not None

    def bin_days_left(self, retention_days: int, now: datetime) -> int | None:
        """
        Whole days until a binned invoice is purged, rounded up.

        None when the invoice is not in the bin; 0 once it is due.
        """
        if self.deleted_at is None:
            return None
        expires_at = self.deleted_at + timedelta(days=retention_days)
        remaining = (expires_at - now) / timedelta(days=1)
        return max(0, math.ceil(remaining))
