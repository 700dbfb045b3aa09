"""
Invoice numbering.

Numbers look like ``ACME-20250101-0007``: a 1-4 letter prefix derived from
the recipient name, the invoice date as YYYYMMDD, and a serial that grows
per prefix. The last issued serial per prefix (the watermark) lives in a
counter store under ``invoiceSerial_<PREFIX>``. Allocation also scans the
invoice numbers already persisted so a watermark that fell behind can never
cause a repeat.

Single writer per prefix is assumed; two sessions allocating for the same
prefix at the same moment can both see the same watermark.
"""

import logging
import re
from datetime import date
from typing import NamedTuple, Protocol

from core.counter_store import CounterStore
from utils.timezone import compact_date

logger = logging.getLogger(__name__)

DEFAULT_PREFIX = "CUST"
DEFAULT_KEY_PREFIX = "invoiceSerial_"

_PREFIX_PATTERN = re.compile(r"^[A-Z]{1,4}$")
_DATE_PATTERN = re.compile(r"^\d{8}$")
_SERIAL_PATTERN = re.compile(r"^\d{4,}$")


class InvoiceNumber(NamedTuple):
    """Parsed parts of a canonical invoice number."""

    prefix: str
    date: str
    serial: int


class InvoiceNumberSource(Protocol):
    """Anything that can list the invoice numbers already in use."""

    def list_invoice_numbers(self) -> list[str]:
        ...


def parse_invoice_number(value: str) -> InvoiceNumber | None:
    """
    Split a canonical invoice number into its parts.

    Returns None for anything not shaped PREFIX-YYYYMMDD-SSSS.
    """
    parts = value.strip().split("-") if isinstance(value, str) else []
    if len(parts) != 3:
        return None

    prefix, day, serial = parts
    if not (
        _PREFIX_PATTERN.match(prefix)
        and _DATE_PATTERN.match(day)
        and _SERIAL_PATTERN.match(serial)
    ):
        return None
    return InvoiceNumber(prefix, day, int(serial))


def derive_prefix(customer_name: str | None, default: str = DEFAULT_PREFIX) -> str:
    """
    Numbering prefix for a customer: first four letters, upper-cased.

    This is not a plain slice of the first four characters. Anything outside
    A-Z (spaces, digits, punctuation, accented letters) is skipped before
    slicing, so "Al Noor" gives ``ALNO`` rather than ``AL N``, and every
    prefix parses back as 1-4 uppercase letters without a ``-``. Blank names
    (or names without letters) get ``default``.
    """
    letters = [ch for ch in (customer_name or "").strip().upper() if "A" <= ch <= "Z"]
    return "".join(letters[:4]) or default


def format_invoice_number(prefix: str, invoice_date: date, serial: int) -> str:
    """Render PREFIX-YYYYMMDD-SSSS (serial zero-padded to 4 digits)."""
    return f"{prefix}-{compact_date(invoice_date)}-{serial:04d}"


def update_prefix(
    current_invoice_number: str,
    new_customer_name: str | None,
    default: str = DEFAULT_PREFIX
) -> str:
    """
    Relabel an invoice number for a new customer name.

    Only the prefix segment changes; date and serial stay as issued and no
    serial is allocated. Input that is not exactly three hyphen-separated
    segments is returned unchanged.
    """
    parts = current_invoice_number.split("-")
    if len(parts) != 3:
        return current_invoice_number

    parts[0] = derive_prefix(new_customer_name, default)
    return "-".join(parts)


class SerialAllocator:
    """Hands out never-before-issued serials per prefix."""

    def __init__(
        self,
        store: CounterStore,
        source: InvoiceNumberSource,
        key_prefix: str = DEFAULT_KEY_PREFIX
    ):
        self.store = store
        self.source = source
        self.key_prefix = key_prefix

    def watermark_key(self, prefix: str) -> str:
        """Counter store key for a prefix's watermark."""
        return f"{self.key_prefix}{prefix}"

    def _highest_existing_serial(self, prefix: str) -> int:
        highest = 0
        for number in self.source.list_invoice_numbers():
            parsed = parse_invoice_number(number)
            if parsed is not None and parsed.prefix == prefix:
                highest = max(highest, parsed.serial)
        return highest

    def allocate(self, prefix: str, commit: bool = False) -> int:
        """
        Next serial for a prefix.

        Args:
            prefix: Normalized numbering prefix (1-4 uppercase letters)
            commit: Persist the serial as the new watermark before returning;
                False previews without side effects

        Returns:
            max(watermark, highest serial already used for prefix) + 1

        Raises:
            ValueError: If prefix is empty
            PersistenceUnavailableError: Counter store or invoice listing failed;
                nothing was committed
        """
        if not prefix:
            raise ValueError("prefix is required")

        key = self.watermark_key(prefix)
        watermark = self.store.get(key) or 0
        if watermark < 0:
            logger.warning(f"Negative watermark {watermark} for '{key}' treated as 0")
            watermark = 0

        existing = self._highest_existing_serial(prefix)
        if existing > watermark:
            logger.info(
                f"Watermark for {prefix} behind existing invoices ({watermark} < {existing})"
            )

        serial = max(watermark, existing) + 1

        if commit:
            self.store.set(key, serial)
            logger.info(f"Committed serial {serial} for prefix {prefix}")

        return serial


class InvoiceNumberFormatter:
    """Generates and relabels invoice numbers."""

    def __init__(self, allocator: SerialAllocator, default_prefix: str = DEFAULT_PREFIX):
        self.allocator = allocator
        self.default_prefix = default_prefix

    def prefix_for(self, customer_name: str | None) -> str:
        return derive_prefix(customer_name, self.default_prefix)

    def generate(
        self,
        customer_name: str | None,
        invoice_date: date,
        commit: bool = False
    ) -> str:
        """
        New invoice number for a customer and date.

        With commit=False this is a preview: repeated calls return the same
        number until something commits.

        Raises:
            PersistenceUnavailableError: See SerialAllocator.allocate
        """
        prefix = self.prefix_for(customer_name)
        serial = self.allocator.allocate(prefix, commit=commit)
        return format_invoice_number(prefix, invoice_date, serial)

    def update_prefix(self, current_invoice_number: str, new_customer_name: str | None) -> str:
        """Relabel for a new customer name. See module-level update_prefix."""
        return update_prefix(current_invoice_number, new_customer_name, self.default_prefix)
