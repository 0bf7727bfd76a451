from __future__ import annotations

from collections.abc import Mapping
from typing import Iterable, List, Tuple, Union

from ..models.invoice_models import Invoice, InvoiceItem, InvoiceTotals

ItemLike = Union[InvoiceItem, Mapping]


def calculate_totals(items: Iterable[ItemLike], tax_rate: float = 0.0) -> InvoiceTotals:
    """Derive line totals, subtotal, tax and total from quantities and prices.

    ``tax_rate`` is a percentage (8.5 means 8.5%). Line totals are always
    recomputed; any total carried by the input is ignored. No rounding is
    applied here, display precision belongs to the formatter.
    """
    line_totals: List[float] = []
    for item in items:
        quantity, unit_price = _quantity_and_price(item)
        line_totals.append(quantity * unit_price)

    subtotal = sum(line_totals, 0.0)
    tax = subtotal * (tax_rate / 100)
    return InvoiceTotals(
        subtotal=subtotal,
        tax=tax,
        total_amount=subtotal + tax,
        line_totals=tuple(line_totals),
    )


def calculate_invoice_totals(invoice: Invoice) -> InvoiceTotals:
    return calculate_totals(invoice.items, invoice.tax_rate)


def _quantity_and_price(item: ItemLike) -> Tuple[float, float]:
    if isinstance(item, Mapping):
        price = item.get("unit_price", item.get("price", 0))
        return item.get("quantity", 0), price
    return item.quantity, item.unit_price
