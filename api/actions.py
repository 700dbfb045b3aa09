"""POST /api/actions: unified mutation endpoint."""

from datetime import date
from uuid import UUID

from fastapi import APIRouter, Request
from pydantic import BaseModel

from api.base import success_response
from core.models import Currency, InvoiceCreate, InvoiceUpdate


class ActionRequest(BaseModel):
    domain: str
    action: str
    data: dict


def create_actions_router(services: dict) -> APIRouter:
    router = APIRouter()

    handlers = {
        "invoice": InvoiceHandler(services["invoice"], services["exchange_rate"]),
        "exchange_rate": ExchangeRateHandler(services["exchange_rate"]),
    }

    @router.post("/actions")
    async def perform_action(request: Request, body: ActionRequest):
        handler = handlers.get(body.domain)
        if handler is None:
            raise ValueError(
                f"Unknown domain '{body.domain}'. "
                f"Valid domains: {', '.join(sorted(handlers.keys()))}"
            )

        if body.action not in handler.ALLOWED_ACTIONS:
            raise ValueError(
                f"Action '{body.action}' not allowed on '{body.domain}'. "
                f"Allowed: {', '.join(sorted(handler.ALLOWED_ACTIONS))}"
            )

        method = getattr(handler, f"_handle_{body.action}")
        result = method(body.data)
        return success_response(result).model_dump(mode="json")

    return router


# =============================================================================
# HANDLER CLASSES
# =============================================================================


class InvoiceHandler:
    ALLOWED_ACTIONS = {
        "new_draft", "preview_number", "update_prefix", "recalculate",
        "create", "update", "bin", "restore",
        "delete_permanently", "empty_bin", "purge_expired",
    }

    def __init__(self, service, exchange_rates):
        self.service = service
        self.exchange_rates = exchange_rates

    def _rate(self, data: dict):
        rate = data.pop("exchange_rate", None)
        return self.exchange_rates.fetch_rate() if rate is None else rate

    def _handle_new_draft(self, data: dict):
        draft = self.service.new_draft()
        return {
            **draft.model_dump(mode="json"),
            "invoice_number": self.service.preview_number(draft.recipient_name, draft.invoice_date),
        }

    def _handle_preview_number(self, data: dict):
        invoice_date = data.get("invoice_date")
        number = self.service.preview_number(
            data.get("recipient_name", ""),
            date.fromisoformat(invoice_date) if invoice_date else None,
        )
        return {"invoice_number": number}

    def _handle_update_prefix(self, data: dict):
        number = self.service.update_prefix(data["invoice_number"], data.get("recipient_name", ""))
        return {"invoice_number": number}

    def _handle_recalculate(self, data: dict):
        source = data.get("source")
        items, totals = self.service.recalculate(
            data.get("items", []),
            data.get("tax_rate", 0),
            self._rate(data),
            Currency(source) if source else None,
        )
        return {
            "items": [group.model_dump(mode="json", by_alias=True) for group in items],
            "totals": totals.model_dump(mode="json"),
        }

    def _handle_create(self, data: dict):
        rate = self._rate(data)
        invoice = self.service.create(InvoiceCreate(**data), rate)
        return invoice.model_dump(mode="json", by_alias=True)

    def _handle_update(self, data: dict):
        invoice_id = UUID(data.pop("id"))
        rate = data.pop("exchange_rate", None)
        invoice = self.service.update(invoice_id, InvoiceUpdate(**data), rate)
        return invoice.model_dump(mode="json", by_alias=True)

    def _handle_bin(self, data: dict):
        invoice_id = UUID(data["id"])
        if not self.service.move_to_bin(invoice_id):
            raise ValueError(f"Invoice {invoice_id} not found")
        return {"binned": True}

    def _handle_restore(self, data: dict):
        invoice = self.service.restore(UUID(data["id"]))
        return invoice.model_dump(mode="json", by_alias=True)

    def _handle_delete_permanently(self, data: dict):
        invoice_id = UUID(data["id"])
        if not self.service.delete_permanently(invoice_id):
            raise ValueError(f"Invoice {invoice_id} not found in bin")
        return {"deleted": True}

    def _handle_empty_bin(self, data: dict):
        return {"deleted": self.service.empty_bin()}

    def _handle_purge_expired(self, data: dict):
        return {"deleted": self.service.purge_expired()}


class ExchangeRateHandler:
    ALLOWED_ACTIONS = {"refresh"}

    def __init__(self, client):
        self.client = client

    def _handle_refresh(self, data: dict):
        rate = self.client.fetch_rate(force=True)
        last_updated = self.client.last_updated
        return {
            "rate": str(rate),
            "last_updated": last_updated.isoformat() if last_updated else None,
        }
