"""GET /api/data: unified read endpoint."""

from uuid import UUID

from fastapi import APIRouter, Query, Request

from api.base import success_response


VALID_TYPES = {"invoices", "bin"}


def create_data_router(services: dict) -> APIRouter:
    router = APIRouter()

    invoice_svc = services["invoice"]
    exchange_rates = services["exchange_rate"]

    # -------------------------------------------------------------------------
    # Convenience routes (must be registered before the generic /data route)
    # -------------------------------------------------------------------------

    @router.get("/data/exchange-rate")
    async def exchange_rate(request: Request):
        rate = exchange_rates.fetch_rate()
        last_updated = exchange_rates.last_updated
        return success_response({
            "rate": str(rate),
            "last_updated": last_updated.isoformat() if last_updated else None,
        }).model_dump(mode="json")

    # -------------------------------------------------------------------------
    # Generic data endpoint
    # -------------------------------------------------------------------------

    @router.get("/data")
    async def get_data(
        request: Request,
        type: str | None = Query(None),
        id: str | None = Query(None),
        limit: int = Query(50, ge=1, le=500),
    ):
        if type is None:
            raise ValueError("'type' query parameter is required")

        if type not in VALID_TYPES:
            raise ValueError(f"Unknown type '{type}'. Valid types: {', '.join(sorted(VALID_TYPES))}")

        if type == "invoices":
            return _handle_invoices(invoice_svc, id, limit)

        return _handle_bin(invoice_svc, id, limit)

    return router


def _handle_invoices(svc, id: str | None, limit: int):
    if id is not None:
        invoice = svc.get_by_id(UUID(id))
        if invoice is None:
            raise ValueError(f"Invoice {id} not found")
        return success_response(invoice.model_dump(mode="json", by_alias=True)).model_dump(mode="json")

    invoices = svc.list_invoices(limit=limit)
    return success_response(
        [inv.model_dump(mode="json", by_alias=True) for inv in invoices]
    ).model_dump(mode="json")


def _binned(svc, invoice) -> dict:
    return {
        **invoice.model_dump(mode="json", by_alias=True),
        "days_left": svc.bin_days_left(invoice),
    }


def _handle_bin(svc, id: str | None, limit: int):
    if id is not None:
        invoice = svc.get_binned(UUID(id))
        if invoice is None:
            raise ValueError(f"Invoice {id} not found in bin")
        return success_response(_binned(svc, invoice)).model_dump(mode="json")

    invoices = svc.list_bin(limit=limit)
    return success_response([_binned(svc, inv) for inv in invoices]).model_dump(mode="json")
