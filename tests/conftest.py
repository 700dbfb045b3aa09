"""Shared test fixtures for the invoicing test suite."""

import re
from datetime import date
from pathlib import Path

import pytest
from dotenv import load_dotenv

# Load .env file BEFORE any other imports that might use env vars
load_dotenv(Path(__file__).parent.parent / ".env", override=True)

# Reset vault client singleton to pick up env vars
import clients.vault_client as vault_module
vault_module._vault_client_instance = None
vault_module._secret_cache.clear()

from core.counter_store import MemoryCounterStore
from core.event_bus import EventBus
from core.exceptions import PersistenceUnavailableError
from core.models import ServiceGroup
from core.numbering import InvoiceNumberFormatter, SerialAllocator
from core.services.invoice_service import InvoiceService


# =============================================================================
# TEST DOUBLES
# =============================================================================


class InvoiceNumberList:
    """In-memory stand-in for the persisted invoice listing."""

    def __init__(self, numbers=None):
        self.numbers = list(numbers or [])

    def list_invoice_numbers(self) -> list[str]:
        return list(self.numbers)


class UnavailableCounterStore:
    """Counter store whose backend is down for reads, writes, or both."""

    def __init__(self, fail_get: bool = True, fail_set: bool = True):
        self.fail_get = fail_get
        self.fail_set = fail_set
        self.values: dict[str, int] = {}

    def get(self, key: str) -> int | None:
        if self.fail_get:
            raise PersistenceUnavailableError(f"counter read '{key}'")
        return self.values.get(key)

    def set(self, key: str, value: int) -> None:
        if self.fail_set:
            raise PersistenceUnavailableError(f"counter write '{key}'")
        self.values[key] = value


class InvoiceTable:
    """
    In-memory stand-in for PostgresClient over the invoices table.

    Understands exactly the statements InvoiceService issues and fails
    loudly on anything else.
    """

    def __init__(self):
        self.rows: dict[str, dict] = {}

    @staticmethod
    def _normalize(query: str) -> str:
        return " ".join(query.split())

    def _matching(self, binned: bool) -> list[dict]:
        return [row for row in self.rows.values() if (row["deleted_at"] is not None) == binned]

    def execute(self, query: str, params=None) -> list[dict]:
        q = self._normalize(query)
        if q == "SELECT invoice_number FROM invoices":
            return [{"invoice_number": row["invoice_number"]} for row in self.rows.values()]

        if q.startswith("SELECT * FROM invoices WHERE deleted_at"):
            binned = "deleted_at IS NOT NULL" in q
            order = "deleted_at" if binned else "created_at"
            rows = sorted(self._matching(binned), key=lambda row: row[order], reverse=True)
            return [dict(row) for row in rows[:params[0]]]

        raise AssertionError(f"Unexpected query: {q}")

    def execute_single(self, query: str, params=None) -> dict | None:
        q = self._normalize(query)
        if not q.startswith("SELECT * FROM invoices WHERE id = %s"):
            raise AssertionError(f"Unexpected query: {q}")

        binned = "deleted_at IS NOT NULL" in q
        row = self.rows.get(str(params[0]))
        if row is None or (row["deleted_at"] is not None) != binned:
            return None
        return dict(row)

    def execute_returning(self, query: str, params=None) -> list[dict]:
        q = self._normalize(query)

        if q.startswith("INSERT INTO invoices"):
            columns = [c.strip() for c in re.search(r"\((.*?)\) VALUES", q).group(1).split(",")]
            row = {"deleted_at": None, **dict(zip(columns, params))}
            self.rows[str(row["id"])] = row
            return [dict(row)]

        if q.startswith("UPDATE invoices"):
            assignments = re.search(r"SET (.*) WHERE id = %s", q).group(1).split(", ")
            values = list(params)
            row = self.rows[str(values.pop())]
            for assignment in assignments:
                column, value = assignment.split(" = ")
                row[column] = values.pop(0) if value == "%s" else None
            return [dict(row)]

        if q.startswith("DELETE FROM invoices"):
            condition = re.search(r"IS NOT NULL AND (.*) RETURNING", q).group(1)
            binned = self._matching(binned=True)
            if condition == "id = %s":
                doomed = [row for row in binned if str(row["id"]) == str(params[0])]
            elif condition == "deleted_at < %s":
                doomed = [row for row in binned if row["deleted_at"] < params[0]]
            else:
                doomed = binned
            for row in doomed:
                del self.rows[str(row["id"])]
            return [{"invoice_number": row["invoice_number"]} for row in doomed]

        raise AssertionError(f"Unexpected query: {q}")


# =============================================================================
# NUMBERING FIXTURES
# =============================================================================


@pytest.fixture
def number_list():
    """Factory for invoice number listings."""
    return InvoiceNumberList


@pytest.fixture
def unavailable_store():
    """Factory for counter stores with a failing backend."""
    return UnavailableCounterStore


@pytest.fixture
def counter_store() -> MemoryCounterStore:
    return MemoryCounterStore()


@pytest.fixture
def existing_numbers() -> InvoiceNumberList:
    return InvoiceNumberList()


@pytest.fixture
def allocator(counter_store, existing_numbers) -> SerialAllocator:
    return SerialAllocator(counter_store, existing_numbers)


@pytest.fixture
def formatter(allocator) -> InvoiceNumberFormatter:
    return InvoiceNumberFormatter(allocator)


@pytest.fixture
def invoice_date() -> date:
    return date(2025, 1, 1)


# =============================================================================
# ITEM FIXTURES
# =============================================================================


@pytest.fixture
def consulting_group() -> ServiceGroup:
    """One main service with two fully priced sub-services (150 USD / 12300 INR)."""
    return ServiceGroup.model_validate({
        "id": "grp-1",
        "name": "Consulting",
        "type": "main",
        "subServices": [
            {"id": "sub-1", "name": "Design", "amountUSD": "100", "amountINR": "8200"},
            {"id": "sub-2", "name": "Review", "amountUSD": "50", "amountINR": "4100"},
        ],
    })


# =============================================================================
# SERVICE FIXTURES
# =============================================================================


@pytest.fixture
def invoice_db() -> InvoiceTable:
    return InvoiceTable()


@pytest.fixture
def event_bus() -> EventBus:
    return EventBus()


@pytest.fixture
def invoice_service(invoice_db, counter_store, event_bus) -> InvoiceService:
    """InvoiceService over the in-memory invoices table."""
    return InvoiceService(invoice_db, counter_store, event_bus)
