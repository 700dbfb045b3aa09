"""
USD to INR exchange rate client.

Fetches from an open.er-api style endpoint ({"rates": {"INR": 83.1}}) and
caches the rate for a refresh interval. Unlike the infrastructure clients
this one degrades instead of failing: an unreachable API or a bad payload is
logged and the last good rate (or the configured default) is returned, so
an invoice can always be edited.
"""

import logging
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Callable

import requests

from core.currency import validate_exchange_rate
from core.exceptions import InvalidExchangeRateError
from utils.timezone import now_utc

logger = logging.getLogger(__name__)


class ExchangeRateError(Exception):
    """Raised internally when the rate API gives no usable rate."""


class ExchangeRateClient:
    """Cached USD→INR rate lookups."""

    def __init__(
        self,
        api_url: str,
        default_rate: Decimal,
        refresh_interval: timedelta = timedelta(hours=24),
        clock: Callable[[], datetime] = now_utc,
    ):
        """
        Args:
            api_url: Endpoint returning latest USD rates
            default_rate: Rate used until a fetch succeeds
            refresh_interval: How long a fetched rate is reused
            clock: Source of the current time

        Raises:
            ValueError: If api_url is empty
            InvalidExchangeRateError: If default_rate is not positive
        """
        if not api_url:
            raise ValueError("api_url is required")

        self.api_url = api_url
        self.default_rate = validate_exchange_rate(default_rate)
        self.refresh_interval = refresh_interval
        self._clock = clock
        self._rate = self.default_rate
        self._last_updated: datetime | None = None

    @property
    def last_updated(self) -> datetime | None:
        """When the cached rate was last fetched, None if never."""
        return self._last_updated

    def _request_rate(self) -> Decimal:
        try:
            response = requests.get(self.api_url, timeout=10)
        except requests.exceptions.RequestException as e:
            raise ExchangeRateError(f"Rate API connection failed: {e}")

        if not response.ok:
            raise ExchangeRateError(f"Rate API returned {response.status_code}")

        try:
            payload = response.json()
        except ValueError as e:
            raise ExchangeRateError(f"Rate API returned invalid JSON: {e}")

        raw = (payload.get("rates") or {}).get("INR") if isinstance(payload, dict) else None
        if raw is None:
            raise ExchangeRateError("INR rate missing from response")

        try:
            return validate_exchange_rate(raw)
        except InvalidExchangeRateError as e:
            raise ExchangeRateError(str(e))

    def fetch_rate(self, force: bool = False) -> Decimal:
        """
        Latest USD→INR rate.

        Served from cache inside the refresh interval unless force=True.
        Never raises: on failure the cached rate (initially the default) is
        returned.
        """
        now = self._clock()
        if (
            not force
            and self._last_updated is not None
            and now - self._last_updated < self.refresh_interval
        ):
            return self._rate

        try:
            rate = self._request_rate()
        except ExchangeRateError as e:
            logger.warning(f"Using cached exchange rate {self._rate}: {e}")
            return self._rate

        self._rate = rate
        self._last_updated = now
        logger.info(f"Exchange rate updated: 1 USD = {rate} INR")
        return rate

