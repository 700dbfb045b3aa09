"""
USD/INR amount derivation and invoice totals.

Everything here is pure. Callers recompute from scratch whenever items,
tax rate or exchange rate change; totals are never patched incrementally.
"""

from decimal import Decimal, ROUND_HALF_UP
from typing import Any, Iterable

from core.exceptions import InvalidExchangeRateError
from core.models import Currency, LineItem, ServiceGroup, Totals, load_service_groups, to_amount

ZERO = Decimal("0")
HUNDRED = Decimal("100")
CENTS = Decimal("0.01")


def validate_exchange_rate(exchange_rate: Any) -> Decimal:
    """
    Parse an exchange rate, rejecting anything that is not a positive number.

    Raises:
        InvalidExchangeRateError: rate is missing, non-numeric, zero or negative
    """
    rate = to_amount(exchange_rate)
    if rate is None or rate <= 0:
        raise InvalidExchangeRateError(exchange_rate)
    return rate


def _round(amount: Decimal) -> Decimal:
    return amount.quantize(CENTS, rounding=ROUND_HALF_UP)


def derive_amounts(
    item: LineItem,
    exchange_rate: Any,
    source: Currency | None = None
) -> LineItem:
    """
    Fill in the counterpart currency of a sub-service.

    With no explicit source, a non-zero USD amount drives INR; otherwise a
    non-zero INR amount drives USD; otherwise both become 0. Passing
    ``source`` forces the edited currency to drive. Derived amounts are
    rounded to 2 places.

    Args:
        item: Sub-service to derive
        exchange_rate: INR per USD
        source: Currency the user edited, if known

    Returns:
        New LineItem; the input is not modified

    Raises:
        InvalidExchangeRateError: rate <= 0 or not a number
    """
    rate = validate_exchange_rate(exchange_rate)
    usd = item.amount_usd
    inr = item.amount_inr

    if source is None:
        if usd:
            source = Currency.USD
        elif inr:
            source = Currency.INR

    if source is Currency.USD:
        usd = usd or ZERO
        return item.model_copy(update={"amount_usd": usd, "amount_inr": _round(usd * rate)})

    if source is Currency.INR:
        inr = inr or ZERO
        return item.model_copy(update={"amount_usd": _round(inr / rate), "amount_inr": inr})

    return item.model_copy(update={"amount_usd": ZERO, "amount_inr": ZERO})


def compute_totals(items: Iterable[ServiceGroup], tax_rate_percent: Any) -> Totals:
    """
    Sum sub-service amounts per currency and apply tax.

    USD and INR are summed independently; INR is never derived from the USD
    subtotal. Missing amounts and a non-numeric tax rate count as 0.
    """
    subtotal_usd = ZERO
    subtotal_inr = ZERO
    for group in load_service_groups(items):
        for sub in group.sub_services:
            subtotal_usd += sub.amount_usd or ZERO
            subtotal_inr += sub.amount_inr or ZERO

    tax_rate = to_amount(tax_rate_percent) or ZERO
    tax_amount_usd = subtotal_usd * tax_rate / HUNDRED
    tax_amount_inr = subtotal_inr * tax_rate / HUNDRED

    return Totals(
        subtotal_usd=subtotal_usd,
        subtotal_inr=subtotal_inr,
        tax_amount_usd=tax_amount_usd,
        tax_amount_inr=tax_amount_inr,
        total_usd=subtotal_usd + tax_amount_usd,
        total_inr=subtotal_inr + tax_amount_inr,
    )


def recalculate(
    items: Iterable[Any],
    tax_rate_percent: Any,
    exchange_rate: Any,
    source: Currency | None = None
) -> tuple[list[ServiceGroup], Totals]:
    """
    Derive every sub-service, then compute totals over the result.

    Args:
        items: ServiceGroups or raw stored items (legacy shapes accepted)
        tax_rate_percent: Tax percentage
        exchange_rate: INR per USD
        source: Currency that drives derivation for every item, if any

    Returns:
        (derived groups in original order, totals)

    Raises:
        InvalidExchangeRateError: rate <= 0 or not a number
    """
    validate_exchange_rate(exchange_rate)

    groups = [
        group.model_copy(update={
            "sub_services": [
                derive_amounts(sub, exchange_rate, source) for sub in group.sub_services
            ]
        })
        for group in load_service_groups(items)
    ]
    return groups, compute_totals(groups, tax_rate_percent)
