"""
Counter stores holding the last issued serial per numbering prefix.

The allocator only needs get/set by string key. Values are non-negative
integers; a corrupt stored value reads as absent so the allocator falls
back to its reconciliation floor instead of failing.
"""

import logging
from typing import Protocol

import redis

from clients.valkey_client import ValkeyClient
from core.exceptions import PersistenceUnavailableError

logger = logging.getLogger(__name__)


class CounterStore(Protocol):
    """Key-value surface the serial allocator reads and writes."""

    def get(self, key: str) -> int | None:
        """Return the stored integer, or None if absent."""
        ...

    def set(self, key: str, value: int) -> None:
        """Durably store value under key."""
        ...


class ValkeyCounterStore:
    """
    Counter store on Valkey.

    Keys are namespaced (e.g. ``invoice_app_invoiceSerial_ACME``) so the
    counters can share a database with other data.
    """

    def __init__(self, valkey: ValkeyClient, namespace: str = ""):
        self.valkey = valkey
        self.namespace = namespace

    def _key(self, key: str) -> str:
        return f"{self.namespace}{key}"

    def get(self, key: str) -> int | None:
        """
        Read a counter.

        Raises:
            PersistenceUnavailableError: Valkey unreachable
        """
        try:
            return self.valkey.get_int(self._key(key))
        except ValueError as e:
            logger.warning(f"Ignoring corrupt counter: {e}")
            return None
        except redis.RedisError as e:
            logger.error(f"Counter read failed for '{key}': {e}")
            raise PersistenceUnavailableError(f"counter read '{key}'", e)

    def set(self, key: str, value: int) -> None:
        """
        Write a counter.

        Raises:
            PersistenceUnavailableError: Valkey unreachable
        """
        try:
            self.valkey.set(self._key(key), int(value))
        except redis.RedisError as e:
            logger.error(f"Counter write failed for '{key}': {e}")
            raise PersistenceUnavailableError(f"counter write '{key}'", e)


class MemoryCounterStore:
    """
    Process-local counter store.

    Lives only as long as the process; for previews, local runs and tests.
    """

    def __init__(self, initial: dict[str, int] | None = None):
        self._values: dict[str, int] = dict(initial or {})

    def get(self, key: str) -> int | None:
        return self._values.get(key)

    def set(self, key: str, value: int) -> None:
        self._values[key] = int(value)
