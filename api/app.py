"""Application wiring: infrastructure clients, services and the FastAPI app."""

import logging
from datetime import timedelta

from fastapi import FastAPI

from api.actions import create_actions_router
from api.data import create_data_router
from api.errors import register_error_handlers
from clients.exchange_rate_client import ExchangeRateClient
from clients.postgres_client import PostgresClient
from clients.valkey_client import ValkeyClient
from clients.vault_client import get_database_url, get_valkey_url
from core.config import InvoicingConfig
from core.counter_store import ValkeyCounterStore
from core.event_bus import EventBus
from core.services.invoice_service import InvoiceService

logger = logging.getLogger(__name__)


def build_services(config: InvoicingConfig | None = None) -> dict:
    """
    Connect to Postgres and Valkey (URLs from Vault) and build the services.

    Fails fast if any backing service is unreachable.
    """
    config = config or InvoicingConfig()

    postgres = PostgresClient(get_database_url())
    valkey = ValkeyClient(get_valkey_url())

    invoice_service = InvoiceService(
        postgres,
        ValkeyCounterStore(valkey, namespace=config.counter_namespace),
        EventBus(),
        config,
    )
    exchange_rates = ExchangeRateClient(
        config.exchange_rate_api_url,
        config.default_exchange_rate,
        refresh_interval=timedelta(hours=config.exchange_rate_refresh_hours),
    )

    logger.info("Invoicing services ready")
    return {"invoice": invoice_service, "exchange_rate": exchange_rates}


def create_app(services: dict) -> FastAPI:
    """FastAPI app with error handlers and data/actions routes."""
    app = FastAPI(title="Invoicing")
    register_error_handlers(app)

    app.include_router(create_data_router(services), prefix="/api")
    app.include_router(create_actions_router(services), prefix="/api")

    return app
