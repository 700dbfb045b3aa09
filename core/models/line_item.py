"""Line item domain models.

Invoices bill a two-level tree: a ServiceGroup (main line) holds ordered
sub-services (LineItem), each carrying a USD and/or INR amount. Amounts are
Decimal. Wire names follow the stored JSON shape (``amountUSD``,
``subServices``); snake_case names are accepted too.

Older drafts were saved in two other shapes, both normalized here on load:
groups whose children live under ``nestedRows``, and flat items with the
amounts directly on the item.
"""

from decimal import Decimal, InvalidOperation
from typing import Any, Iterable, Literal
from uuid import uuid4

from pydantic import BaseModel, Field, field_validator, model_validator


def new_item_id() -> str:
    """Opaque client-style identifier for items and groups."""
    return uuid4().hex


def to_amount(value: Any) -> Decimal | None:
    """
    Parse a monetary value leniently.

    Returns None for blanks, booleans, non-numeric text and NaN/infinity,
    so the caller can treat them as absent.
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, Decimal):
        return value if value.is_finite() else None
    text = str(value).strip()
    if not text:
        return None
    try:
        amount = Decimal(text)
    except (InvalidOperation, ValueError):
        return None
    return amount if amount.is_finite() else None


class LineItem(BaseModel):
    """A billable sub-service under a ServiceGroup."""

    id: str = Field(default_factory=new_item_id)
    name: str = Field("", max_length=500)
    description: str | None = Field(None, max_length=2000)
    amount_usd: Decimal | None = Field(None, ge=0, alias="amountUSD")
    amount_inr: Decimal | None = Field(None, ge=0, alias="amountINR")

    model_config = {"populate_by_name": True}

    @field_validator("id", mode="before")
    @classmethod
    def stringify_id(cls, value: Any) -> Any:
        if value is None or value == "":
            return new_item_id()
        return str(value)

    @field_validator("amount_usd", "amount_inr", mode="before")
    @classmethod
    def coerce_amount(cls, value: Any) -> Decimal | None:
        return to_amount(value)


def _nested_row_to_item(row: Any) -> Any:
    # Legacy rows were plain text lines typed under the main item.
    if isinstance(row, str):
        return {"name": row}
    return row


class ServiceGroup(BaseModel):
    """A main service line grouping its sub-services in display order."""

    id: str = Field(default_factory=new_item_id)
    name: str = Field("", max_length=500)
    type: Literal["main"] = "main"
    sub_services: list[LineItem] = Field(default_factory=list, alias="subServices")

    model_config = {"populate_by_name": True}

    @model_validator(mode="before")
    @classmethod
    def migrate_nested_rows(cls, data: Any) -> Any:
        """Move legacy ``nestedRows`` into ``subServices``."""
        if not isinstance(data, dict) or "nestedRows" not in data:
            return data

        data = dict(data)
        nested = data.pop("nestedRows") or []
        current = data.get("subServices") or data.get("sub_services") or []

        if nested and current:
            raise ValueError(
                "ServiceGroup has both nestedRows and subServices populated"
            )
        if nested:
            data.pop("sub_services", None)
            data["subServices"] = [_nested_row_to_item(row) for row in nested]
        return data

    @field_validator("id", mode="before")
    @classmethod
    def stringify_id(cls, value: Any) -> Any:
        if value is None or value == "":
            return new_item_id()
        return str(value)


def _is_group_shape(entry: dict) -> bool:
    return (
        entry.get("type") == "main"
        or "subServices" in entry
        or "sub_services" in entry
    )


def _group_from_flat_item(entry: dict) -> ServiceGroup:
    """Wrap a legacy flat item: its own amounts become the first sub-service."""
    name = entry.get("name") or entry.get("description") or ""
    head = LineItem(
        name=name,
        description=entry.get("description"),
        amount_usd=entry.get("amountUSD", entry.get("amount_usd")),
        amount_inr=entry.get("amountINR", entry.get("amount_inr")),
    )
    rows = [
        LineItem.model_validate(_nested_row_to_item(row))
        for row in entry.get("nestedRows") or []
    ]
    return ServiceGroup(id=entry.get("id"), name=name, sub_services=[head, *rows])


def load_service_groups(raw: Iterable[Any] | None) -> list[ServiceGroup]:
    """
    Normalize stored or submitted items into canonical ServiceGroups.

    Accepts ServiceGroup instances, canonical dicts, ``nestedRows`` groups
    and legacy flat items. Order is preserved.
    """
    if raw is None:
        return []

    groups = []
    for entry in raw:
        if isinstance(entry, ServiceGroup):
            groups.append(entry)
        elif isinstance(entry, dict) and not _is_group_shape(entry) and (
            "amountUSD" in entry or "amountINR" in entry
            or "amount_usd" in entry or "amount_inr" in entry
        ):
            groups.append(_group_from_flat_item(entry))
        else:
            groups.append(ServiceGroup.model_validate(entry))
    return groups
