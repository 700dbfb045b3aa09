"""API test fixtures: TestClient over the in-memory invoice service."""

from decimal import Decimal
from unittest.mock import Mock

import pytest
from starlette.testclient import TestClient

from api.app import create_app
from clients.exchange_rate_client import ExchangeRateClient


# =============================================================================
# SERVICES DICT
# =============================================================================


@pytest.fixture
def exchange_rates():
    """Rate client pinned at 82 INR per USD, never fetched."""
    mock = Mock(spec=ExchangeRateClient)
    mock.fetch_rate.return_value = Decimal("82")
    mock.last_updated = None
    return mock


@pytest.fixture
def services(invoice_service, exchange_rates):
    return {
        "invoice": invoice_service,
        "exchange_rate": exchange_rates,
    }


# =============================================================================
# APP & CLIENT FIXTURES
# =============================================================================


@pytest.fixture
def app(services):
    """FastAPI app with error handlers and data/actions routes."""
    return create_app(services)


@pytest.fixture
def client(app):
    return TestClient(app, raise_server_exceptions=False)


@pytest.fixture
def post_action(client):
    """POST one action and return the response."""
    def _post(domain: str, action: str, data: dict | None = None):
        return client.post("/api/actions", json={
            "domain": domain,
            "action": action,
            "data": data or {},
        })
    return _post
