"""
Invoice service: numbering, totals, storage and the bin.

Invoices live in the ``invoices`` table, one row per invoice with the item
tree in a JSONB ``items`` column and the six derived totals stored alongside.
Deleting moves an invoice to the bin (``deleted_at`` set); binned invoices
are restorable until the retention window passes and they are purged.

Numbers are committed through the SerialAllocator before the row is written,
so a counter store failure blocks creation instead of producing a number
that was never recorded. This service is also the allocator's source of
already used numbers.
"""

import logging
from datetime import date, datetime, timedelta
from typing import Any
from uuid import UUID, uuid4

import psycopg2

from clients.postgres_client import PostgresClient
from core.config import InvoicingConfig
from core.counter_store import CounterStore
from core.currency import recalculate, validate_exchange_rate
from core.event_bus import EventBus
from core.events import BinPurged, InvoiceBinned, InvoiceCreated, InvoiceRestored
from core.exceptions import InvoiceNotFoundError, PersistenceUnavailableError
from core.models import Currency, Invoice, InvoiceCreate, InvoiceUpdate, ServiceGroup, Totals
from core.numbering import InvoiceNumberFormatter, SerialAllocator
from utils.timezone import now_utc, today_utc

logger = logging.getLogger(__name__)

_UPDATABLE_COLUMNS = {
    "invoice_date", "recipient_name", "recipient_email", "recipient_address",
    "recipient_phone", "recipient_gstin", "recipient_pan", "sender_name",
    "sender_address", "sender_gstin", "logo_url", "tax_rate", "currency", "notes",
}


def _items_json(items: list[ServiceGroup]) -> list[dict]:
    return [group.model_dump(mode="json", by_alias=True) for group in items]


class InvoiceService:
    """Service for invoice operations."""

    def __init__(
        self,
        postgres: PostgresClient,
        counter_store: CounterStore,
        event_bus: EventBus,
        config: InvoicingConfig | None = None
    ):
        self.postgres = postgres
        self.event_bus = event_bus
        self.config = config or InvoicingConfig()
        self.allocator = SerialAllocator(
            counter_store, self, key_prefix=self.config.counter_key_prefix
        )
        self.numbering = InvoiceNumberFormatter(
            self.allocator, default_prefix=self.config.default_prefix
        )

    def _query(self, operation: str, call, *args):
        """Run a PostgresClient call, turning driver errors into PersistenceUnavailableError."""
        try:
            return call(*args)
        except psycopg2.Error as e:
            logger.error(f"Invoice {operation} failed: {e}")
            raise PersistenceUnavailableError(f"invoice {operation}", e)

    # -------------------------------------------------------------------------
    # Numbering
    # -------------------------------------------------------------------------

    def list_invoice_numbers(self) -> list[str]:
        """
        Every invoice number in storage, binned ones included.

        Raises:
            PersistenceUnavailableError: If the database cannot be read
        """
        rows = self._query("number scan", self.postgres.execute, "SELECT invoice_number FROM invoices")
        return [row["invoice_number"] for row in rows]

    def preview_number(self, recipient_name: str | None, invoice_date: date | None = None) -> str:
        """Number the next invoice for this recipient would get. Nothing is committed."""
        return self.numbering.generate(
            recipient_name, invoice_date or today_utc(), commit=False
        )

    def new_draft(self) -> InvoiceCreate:
        """Empty draft pre-filled with configured defaults."""
        return InvoiceCreate(
            tax_rate=self.config.default_tax_rate,
            notes=self.config.default_notes,
        )

    # -------------------------------------------------------------------------
    # CRUD
    # -------------------------------------------------------------------------

    def create(self, data: InvoiceCreate, exchange_rate: Any) -> Invoice:
        """
        Save a new invoice under a freshly committed number.

        Args:
            data: Invoice fields and items
            exchange_rate: INR per USD used to derive missing item amounts

        Returns:
            Created invoice with derived items and totals

        Raises:
            InvalidExchangeRateError: Rate not positive (no serial consumed)
            PersistenceUnavailableError: Number could not be committed, or the
                insert failed after committing (that serial is then skipped)
        """
        rate = validate_exchange_rate(exchange_rate)
        items, totals = recalculate(data.items, data.tax_rate, rate)

        invoice_number = self.numbering.generate(
            data.recipient_name, data.invoice_date, commit=True
        )

        now = now_utc()
        values = {
            **data.model_dump(exclude={"items", "currency"}),
            "id": uuid4(),
            "invoice_number": invoice_number,
            "currency": data.currency.value,
            "exchange_rate": rate,
            "items": _items_json(items),
            **totals.model_dump(),
            "created_at": now,
            "updated_at": now,
        }
        columns = list(values)

        row = self._query(
            "insert", self.postgres.execute_returning,
            f"""
            INSERT INTO invoices ({', '.join(columns)})
            VALUES ({', '.join(['%s'] * len(columns))})
            RETURNING *
            """,
            tuple(values.values())
        )[0]

        invoice = Invoice.model_validate(row)
        logger.info(f"Invoice {invoice.invoice_number} created ({invoice.id})")

        self.event_bus.publish(InvoiceCreated.create(invoice=invoice))

        return invoice

    def get_by_id(self, invoice_id: UUID) -> Invoice | None:
        """
        Get invoice by ID.

        Returns:
            Invoice if found and not binned, None otherwise.
        """
        row = self._query(
            "read", self.postgres.execute_single,
            "SELECT * FROM invoices WHERE id = %s AND deleted_at IS NULL",
            (invoice_id,)
        )

        if row is None:
            return None

        return Invoice.model_validate(row)

    def update(
        self,
        invoice_id: UUID,
        data: InvoiceUpdate,
        exchange_rate: Any | None = None
    ) -> Invoice:
        """
        Update invoice fields and recompute totals from scratch.

        A recipient name change relabels the number's prefix; the date and
        serial segments are kept and nothing is allocated.

        Args:
            invoice_id: Invoice UUID
            data: Fields to update
            exchange_rate: New rate, or None to keep the stored one

        Raises:
            InvoiceNotFoundError: Invoice missing or binned
            InvalidExchangeRateError: Rate not positive
            PersistenceUnavailableError: Database unavailable
        """
        current = self.get_by_id(invoice_id)
        if current is None:
            raise InvoiceNotFoundError(invoice_id)

        rate = validate_exchange_rate(
            current.exchange_rate if exchange_rate is None else exchange_rate
        )

        updates = data.model_dump(exclude_none=True, include=_UPDATABLE_COLUMNS)

        if "currency" in updates:
            updates["currency"] = updates["currency"].value

        source_items = data.items if data.items is not None else current.items
        tax_rate = updates.get("tax_rate", current.tax_rate)
        items, totals = recalculate(source_items, tax_rate, rate)

        invoice_number = current.invoice_number
        if "recipient_name" in updates and updates["recipient_name"] != current.recipient_name:
            invoice_number = self.numbering.update_prefix(
                current.invoice_number, updates["recipient_name"]
            )

        values = {
            **updates,
            "invoice_number": invoice_number,
            "exchange_rate": rate,
            "items": _items_json(items),
            **totals.model_dump(),
            "updated_at": now_utc(),
        }
        set_parts = [f"{column} = %s" for column in values]

        row = self._query(
            "update", self.postgres.execute_returning,
            f"""
            UPDATE invoices
            SET {', '.join(set_parts)}
            WHERE id = %s
            RETURNING *
            """,
            (*values.values(), invoice_id)
        )[0]

        return Invoice.model_validate(row)

    def list_invoices(self, limit: int = 50) -> list[Invoice]:
        """
        List invoices not in the bin.

        Returns:
            Invoices ordered by creation time DESC
        """
        rows = self._query(
            "list", self.postgres.execute,
            """
            SELECT * FROM invoices
            WHERE deleted_at IS NULL
            ORDER BY created_at DESC
            LIMIT %s
            """,
            (limit,)
        )

        return [Invoice.model_validate(row) for row in rows]

    # -------------------------------------------------------------------------
    # Bin
    # -------------------------------------------------------------------------

    def move_to_bin(self, invoice_id: UUID) -> bool:
        """
        Soft delete an invoice.

        Returns:
            True if binned, False if not found
        """
        current = self.get_by_id(invoice_id)
        if current is None:
            return False

        now = now_utc()
        row = self._query(
            "bin", self.postgres.execute_returning,
            """
            UPDATE invoices
            SET deleted_at = %s, updated_at = %s
            WHERE id = %s
            RETURNING *
            """,
            (now, now, invoice_id)
        )[0]

        self.event_bus.publish(InvoiceBinned.create(invoice=Invoice.model_validate(row)))

        return True

    def get_binned(self, invoice_id: UUID) -> Invoice | None:
        """Get a binned invoice by ID."""
        row = self._query(
            "bin read", self.postgres.execute_single,
            "SELECT * FROM invoices WHERE id = %s AND deleted_at IS NOT NULL",
            (invoice_id,)
        )

        if row is None:
            return None

        return Invoice.model_validate(row)

    def restore(self, invoice_id: UUID) -> Invoice:
        """
        Take an invoice back out of the bin.

        Raises:
            InvoiceNotFoundError: Not in the bin
        """
        if self.get_binned(invoice_id) is None:
            raise InvoiceNotFoundError(invoice_id, "bin")

        row = self._query(
            "restore", self.postgres.execute_returning,
            """
            UPDATE invoices
            SET deleted_at = NULL, updated_at = %s
            WHERE id = %s
            RETURNING *
            """,
            (now_utc(), invoice_id)
        )[0]

        restored = Invoice.model_validate(row)
        self.event_bus.publish(InvoiceRestored.create(invoice=restored))

        return restored

    def list_bin(self, limit: int = 100) -> list[Invoice]:
        """
        List binned invoices.

        Returns:
            Binned invoices, most recently deleted first
        """
        rows = self._query(
            "bin list", self.postgres.execute,
            """
            SELECT * FROM invoices
            WHERE deleted_at IS NOT NULL
            ORDER BY deleted_at DESC
            LIMIT %s
            """,
            (limit,)
        )

        return [Invoice.model_validate(row) for row in rows]

    def _purge(self, condition: str, params: tuple) -> int:
        rows = self._query(
            "purge", self.postgres.execute_returning,
            f"""
            DELETE FROM invoices
            WHERE deleted_at IS NOT NULL AND {condition}
            RETURNING invoice_number
            """,
            params
        )

        if rows:
            numbers = tuple(row["invoice_number"] for row in rows)
            logger.info(f"Purged {len(numbers)} binned invoice(s)")
            self.event_bus.publish(BinPurged(invoice_numbers=numbers))

        return len(rows)

    def delete_permanently(self, invoice_id: UUID) -> bool:
        """
        Permanently delete a binned invoice.

        Returns:
            True if deleted, False if it was not in the bin
        """
        return self._purge("id = %s", (invoice_id,)) > 0

    def empty_bin(self) -> int:
        """Permanently delete every binned invoice. Returns count removed."""
        return self._purge("TRUE", ())

    def purge_expired(self, now: datetime | None = None) -> int:
        """
        Permanently delete invoices binned longer than the retention window.

        Returns:
            Number of invoices removed
        """
        cutoff = (now or now_utc()) - timedelta(days=self.config.bin_retention_days)
        return self._purge("deleted_at < %s", (cutoff,))

    def bin_days_left(self, invoice: Invoice, now: datetime | None = None) -> int | None:
        """Days until a binned invoice is purged under this service's retention."""
        return invoice.bin_days_left(self.config.bin_retention_days, now or now_utc())

    # -------------------------------------------------------------------------
    # Pure helpers exposed for editors
    # -------------------------------------------------------------------------

    def recalculate(
        self,
        items: list[Any],
        tax_rate: Any,
        exchange_rate: Any,
        source: Currency | None = None
    ) -> tuple[list[ServiceGroup], Totals]:
        """Derive item amounts and totals without storing anything."""
        return recalculate(items, tax_rate, exchange_rate, source)

    def update_prefix(self, invoice_number: str, recipient_name: str | None) -> str:
        """Relabel a number for a new recipient without allocating."""
        return self.numbering.update_prefix(invoice_number, recipient_name)
