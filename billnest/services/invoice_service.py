from __future__ import annotations

import logging
from dataclasses import replace
from datetime import date, datetime
from functools import partial
from pathlib import Path
from typing import List, Optional, Union

from ..data import invoice_repository, product_repository, settings_repository
from ..data.database import write_transaction
from ..models.invoice_models import (
    DEFAULT_INVOICE_STATUS,
    INVOICE_STATUSES,
    CompanySettings,
    Invoice,
    InvoiceItem,
    InvoiceSummary,
    InvoiceTotals,
    Product,
)
from . import formatting, numbering
from .document_layout import InvoiceLayout, build_invoice_layout
from .totals import calculate_invoice_totals

logger = logging.getLogger(__name__)


def list_invoice_statuses() -> List[str]:
    return list(INVOICE_STATUSES)


def build_invoice(
    client_name: str,
    items: List[InvoiceItem],
    *,
    invoice_number: str = "",
    issue_date: Optional[date] = None,
    due_date: Optional[date] = None,
    status: str = DEFAULT_INVOICE_STATUS,
    tax_rate: float = 0.0,
    currency: Optional[str] = None,
    language: Optional[str] = None,
    client_email: str = "",
    client_address: str = "",
    notes: str = "",
    terms: str = "",
) -> Invoice:
    """Validate and normalise user input into an :class:`Invoice`.

    Currency and language default to the company settings.
    """
    if not client_name.strip():
        raise ValueError("Client name is required")
    if not items:
        raise ValueError("Invoice must have at least one item")
    if tax_rate < 0:
        raise ValueError("Tax rate cannot be negative")

    normalized_items = [_normalize_item(item) for item in items]

    settings = settings_repository.get_company_settings()
    return Invoice(
        invoice_number=invoice_number.strip(),
        client_name=client_name.strip(),
        client_email=client_email.strip(),
        client_address=client_address.strip(),
        issue_date=issue_date or date.today(),
        due_date=due_date,
        status=_normalize_status(status),
        items=normalized_items,
        tax_rate=float(tax_rate),
        currency=formatting.normalize_currency(currency or settings.currency),
        language=formatting.normalize_language(language or settings.language),
        notes=notes.strip(),
        terms=(terms or settings.terms_and_conditions).strip(),
    )


def compute_invoice_totals(invoice: Invoice) -> InvoiceTotals:
    return calculate_invoice_totals(invoice)


def preview_next_invoice_number() -> str:
    return numbering.preview_next_invoice_number()


def create_invoice(invoice: Invoice) -> Invoice:
    """Persist ``invoice`` under a freshly reserved number.

    The displayed number is only a proposal; the stored one is allocated in
    the same transaction as the insert.
    """
    if not invoice.items:
        raise ValueError("Invoice must have at least one item")

    totals = calculate_invoice_totals(invoice)
    invoice_id, invoice_number = invoice_repository.insert_invoice_with_reserved_number(
        invoice,
        totals,
        partial(numbering.reserve_invoice_number, proposed=invoice.invoice_number or None),
    )
    logger.info("Created invoice %s (id %s)", invoice_number, invoice_id)

    saved = invoice_repository.fetch_invoice(invoice_id)
    if saved is None:
        raise ValueError("Invoice not found")
    return saved


def update_invoice(invoice_id: int, updated: Invoice) -> Invoice:
    existing = invoice_repository.fetch_invoice(invoice_id)
    if existing is None:
        raise ValueError("Invoice not found")
    if not updated.items:
        raise ValueError("Invoice must have at least one item")

    normalized = replace(
        updated,
        id=int(invoice_id),
        status=_normalize_status(updated.status),
        items=[_normalize_item(item) for item in updated.items],
    )
    invoice_repository.update_invoice(invoice_id, normalized, calculate_invoice_totals(normalized))
    numbering.ensure_next_invoice_number_progress(normalized.invoice_number)

    saved = invoice_repository.fetch_invoice(invoice_id)
    if saved is None:
        raise ValueError("Invoice not found")
    return saved


def update_invoice_status(invoice_id: int, status: str) -> None:
    if invoice_repository.fetch_invoice(invoice_id) is None:
        raise ValueError("Invoice not found")
    invoice_repository.update_invoice_status(invoice_id, _normalize_status(status))


def mark_invoice_paid(invoice_id: int) -> None:
    update_invoice_status(invoice_id, "paid")


def delete_invoice(invoice_id: int) -> None:
    invoice_repository.delete_invoice(invoice_id)


def fetch_invoice(invoice_id: int) -> Optional[Invoice]:
    return invoice_repository.fetch_invoice(invoice_id)


def list_invoices(limit: Optional[int] = 50) -> List[Invoice]:
    return invoice_repository.fetch_invoices(limit)


def get_invoice_summary() -> InvoiceSummary:
    invoices = invoice_repository.fetch_invoices(limit=None)
    return InvoiceSummary(
        total_invoices=len(invoices),
        paid_invoices=sum(1 for invoice in invoices if invoice.status == "paid"),
        pending_invoices=sum(1 for invoice in invoices if invoice.status == "pending"),
        total_amount=sum(calculate_invoice_totals(invoice).total_amount for invoice in invoices),
    )


def get_company_settings() -> CompanySettings:
    return settings_repository.get_company_settings()


def update_company_settings(settings: CompanySettings) -> CompanySettings:
    if settings.next_invoice_number is not None and settings.next_invoice_number < 1:
        raise ValueError("Next invoice number must be a positive integer")

    normalized = replace(
        settings,
        currency=formatting.normalize_currency(settings.currency),
        language=formatting.normalize_language(settings.language),
    )
    with write_transaction() as connection:
        settings_repository.save_company_settings(normalized, connection=connection)
        if normalized.next_invoice_number is not None:
            # A stale snapshot of the counter cannot rewind it.
            numbering.advance_next_invoice_sequence(connection, normalized.next_invoice_number)
    return settings_repository.get_company_settings()


def list_products() -> List[Product]:
    return product_repository.list_products()


def save_product(product: Product) -> Product:
    if product.price < 0:
        raise ValueError("Product price cannot be negative")
    return product_repository.save_product(product)


def delete_product(product_id: int) -> None:
    product_repository.delete_product(product_id)


def item_from_product(product: Product, quantity: float = 1) -> InvoiceItem:
    return _normalize_item(
        InvoiceItem(description=product.name, quantity=quantity, unit_price=product.price)
    )


def render_invoice_layout(
    invoice_id: int,
    *,
    language: Optional[str] = None,
    generated_at: Optional[datetime] = None,
) -> InvoiceLayout:
    invoice = invoice_repository.fetch_invoice(int(invoice_id))
    if invoice is None:
        raise ValueError("Invoice not found.")

    settings = settings_repository.get_company_settings()
    return build_invoice_layout(
        invoice,
        settings,
        calculate_invoice_totals(invoice),
        currency=invoice.currency or settings.currency,
        language=language or invoice.language,
        generated_at=generated_at,
        logo_data=_load_logo_data(settings.logo_path),
    )


def export_invoice_pdf(
    invoice_id: int,
    destination: Union[str, Path],
    *,
    language: Optional[str] = None,
    generated_at: Optional[datetime] = None,
) -> Path:
    # Qt is loaded only when a PDF is actually written.
    from .pdf_export import write_layout_pdf

    layout = render_invoice_layout(invoice_id, language=language, generated_at=generated_at)
    return write_layout_pdf(layout, destination)


def _load_logo_data(path_str: str) -> Optional[bytes]:
    candidate = (path_str or "").strip()
    if not candidate:
        return None

    path = Path(candidate).expanduser()
    if not path.is_file():
        logger.warning("Logo file %s does not exist; falling back to the company name", path)
        return None

    try:
        return path.read_bytes()
    except OSError:
        logger.warning("Logo file %s could not be read", path, exc_info=True)
        return None


def _normalize_item(item: InvoiceItem) -> InvoiceItem:
    try:
        quantity = float(item.quantity)
        unit_price = float(item.unit_price)
    except (TypeError, ValueError) as exc:
        raise ValueError("Quantity and price must be numbers") from exc
    if quantity <= 0:
        raise ValueError("Quantity must be positive")
    if unit_price < 0:
        raise ValueError("Price cannot be negative")

    return replace(
        item,
        description=item.description.strip(),
        quantity=quantity,
        unit_price=unit_price,
    )


def _normalize_status(status: str) -> str:
    candidate = (status or "").strip().lower()
    if candidate in INVOICE_STATUSES:
        return candidate
    return DEFAULT_INVOICE_STATUS
