"""
Derived invoice fields computed from a list of line items.

The payload convention comes from the invoicing automations that call the
webhooks: line items live under ``prestations`` and each carries a quantity
and a unit price, possibly pre-formatted with currency symbols. Totals are
written back into the same field map before any template is resolved.
"""

from __future__ import annotations

import logging
import re
from decimal import ROUND_HALF_UP, Decimal, localcontext
from typing import Any, Iterable, Optional

from .fieldmap import FieldMap, Record

logger = logging.getLogger(__name__)

LINE_ITEMS_FIELD = "prestations"
QUANTITY_KEYS = ("quantity", "quantite")
UNIT_PRICE_KEYS = ("price", "prix_unitaire")
TAX_RATE_FIELD = "tva_rate"
DEFAULT_TAX_RATE = Decimal("0.20")

LINE_TOTAL_FIELD = "total_ht"
SUBTOTAL_FIELD = "total_ht"
TAX_FIELD = "tva"
TOTAL_FIELD = "total_ttc"

_NON_NUMERIC = re.compile(r"[^0-9.\-]")
_LEADING_NUMBER = re.compile(r"-?(?:[0-9]+\.?[0-9]*|\.[0-9]+)")
_CENTS = Decimal("0.01")


def lenient_decimal(value: Any) -> Decimal:
    """Strip everything but digits, '.' and '-' and read the leading number.

    ``"12.50€"`` and ``" 12.50 "`` both give ``12.50``; anything without a
    leading number gives zero. Thousands separators are not recognised, so
    ``"1.234,56"`` reads as ``1.23456``.
    """
    if value is None:
        return Decimal(0)
    cleaned = _NON_NUMERIC.sub("", str(value))
    match = _LEADING_NUMBER.match(cleaned)
    if not match:
        return Decimal(0)
    number = match.group(0)
    if number.endswith("."):
        number = number[:-1]
    return Decimal(number)


def format_amount(amount: Decimal, suffix: str = "€") -> str:
    with localcontext() as ctx:
        # room for every integer digit plus the two decimals
        ctx.prec = max(ctx.prec, amount.adjusted() + 4)
        rounded = amount.quantize(_CENTS, rounding=ROUND_HALF_UP)
    if rounded.is_zero():
        rounded = rounded.copy_abs()
    return f"{rounded}{suffix}"


def _first_present(record: Record, keys: Iterable[str]) -> Optional[Any]:
    for key in keys:
        value = record.get(key)
        if value is not None and value != "":
            return value
    return None


def line_total(record: Record) -> Decimal:
    quantity = lenient_decimal(_first_present(record, QUANTITY_KEYS))
    unit_price = lenient_decimal(_first_present(record, UNIT_PRICE_KEYS))
    return quantity * unit_price


def apply_derived_fields(fields: FieldMap, currency_suffix: str = "€") -> bool:
    """Add line totals and the subtotal / tax / total fields in place.

    Returns False (and leaves ``fields`` untouched) when there is no line
    item list to work from.
    """
    items = fields.get(LINE_ITEMS_FIELD)
    if not isinstance(items, list):
        return False

    subtotal = Decimal(0)
    enriched = []
    for item in items:
        record = dict(item) if isinstance(item, dict) else {}
        amount = line_total(record)
        subtotal += amount
        record[LINE_TOTAL_FIELD] = format_amount(amount, currency_suffix)
        enriched.append(record)

    explicit_rate = fields.get(TAX_RATE_FIELD)
    if explicit_rate is None:
        rate = DEFAULT_TAX_RATE
    else:
        rate = lenient_decimal(explicit_rate) / 100

    tax = subtotal * rate
    total = subtotal + tax

    fields[LINE_ITEMS_FIELD] = enriched
    fields[SUBTOTAL_FIELD] = format_amount(subtotal, currency_suffix)
    fields[TAX_FIELD] = format_amount(tax, currency_suffix)
    fields[TOTAL_FIELD] = format_amount(total, currency_suffix)

    logger.debug(
        "Derived totals for %d line items: %s / %s / %s",
        len(enriched),
        fields[SUBTOTAL_FIELD],
        fields[TAX_FIELD],
        fields[TOTAL_FIELD],
    )
    return True
