from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from typing import List, Optional, Tuple
from uuid import uuid4


INVOICE_STATUSES: Tuple[str, ...] = ("draft", "pending", "paid")
DEFAULT_INVOICE_STATUS = "pending"

CURRENCY_CODES: Tuple[str, ...] = ("USD", "EUR", "GBP", "SAR")
DEFAULT_CURRENCY = "USD"

LANGUAGES: Tuple[str, ...] = ("en", "ar")
DEFAULT_LANGUAGE = "en"


def _new_item_id() -> str:
    return uuid4().hex


@dataclass
class InvoiceItem:
    description: str
    quantity: float
    unit_price: float
    item_id: str = field(default_factory=_new_item_id)

    @property
    def line_total(self) -> float:
        return self.quantity * self.unit_price


@dataclass
class Invoice:
    invoice_number: str
    client_name: str
    issue_date: Optional[date]
    due_date: Optional[date]
    status: str = DEFAULT_INVOICE_STATUS
    items: List[InvoiceItem] = field(default_factory=list)
    tax_rate: float = 0.0
    currency: str = DEFAULT_CURRENCY
    language: str = DEFAULT_LANGUAGE
    client_email: str = ""
    client_address: str = ""
    notes: str = ""
    terms: str = ""
    id: Optional[int] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


@dataclass(frozen=True)
class InvoiceTotals:
    subtotal: float
    tax: float
    total_amount: float
    line_totals: Tuple[float, ...] = ()


@dataclass
class CompanySettings:
    company_name: str = ""
    address: str = ""
    email: str = ""
    phone: str = ""
    website: str = ""
    tax_number: str = ""
    logo_path: str = ""
    terms_and_conditions: str = ""
    currency: str = DEFAULT_CURRENCY
    language: str = DEFAULT_LANGUAGE
    next_invoice_number: Optional[int] = None


@dataclass
class Product:
    name: str
    description: str
    price: float
    sku: str = ""
    id: Optional[int] = None


@dataclass
class InvoiceSummary:
    total_invoices: int
    paid_invoices: int
    pending_invoices: int
    total_amount: float
