"""Money, date and label formatting for the two supported locales.

Every function takes the language explicitly and never raises on bad input.
"""

from __future__ import annotations

import math
from datetime import date, datetime, timezone
from typing import Dict, Optional

from ..models.invoice_models import CURRENCY_CODES, DEFAULT_CURRENCY, DEFAULT_LANGUAGE, LANGUAGES

_CURRENCY_SYMBOLS: Dict[str, str] = {
    "SAR": "ر.س",
    "USD": "$",
    "EUR": "€",
    "GBP": "£",
}
_DEFAULT_SYMBOL = "$"

_RTL_LANGUAGES = {"ar"}
_ARABIC_DIGITS = str.maketrans("0123456789", "٠١٢٣٤٥٦٧٨٩")

_LABELS: Dict[str, Dict[str, str]] = {
    "en": {
        "company_name": "Company Name",
        "email": "Email: ",
        "phone": "Phone: ",
        "website": "Website: ",
        "tax_number": "Tax Number: ",
        "invoice": "INVOICE",
        "invoice_number": "Invoice Number: ",
        "date": "Date: ",
        "due_date": "Due Date: ",
        "status": "Status: ",
        "bill_to": "Bill To:",
        "item": "Item",
        "quantity": "Quantity",
        "price": "Price",
        "total": "Total",
        "subtotal": "Subtotal:",
        "tax": "Tax",
        "grand_total": "Total:",
        "notes": "Notes:",
        "terms": "Terms and Conditions:",
        "generated_on": "Generated on {timestamp}",
        "table_error": "Error generating table. Please check the invoice items.",
        "not_available": "N/A",
        "status_draft": "Draft",
        "status_pending": "Pending",
        "status_paid": "Paid",
    },
    "ar": {
        "company_name": "اسم الشركة",
        "email": "البريد الإلكتروني: ",
        "phone": "الهاتف: ",
        "website": "الموقع الإلكتروني: ",
        "tax_number": "الرقم الضريبي: ",
        "invoice": "فاتورة",
        "invoice_number": "رقم الفاتورة: ",
        "date": "التاريخ: ",
        "due_date": "تاريخ الاستحقاق: ",
        "status": "الحالة: ",
        "bill_to": "فاتورة إلى:",
        "item": "البند",
        "quantity": "الكمية",
        "price": "السعر",
        "total": "المجموع",
        "subtotal": "المجموع الفرعي:",
        "tax": "الضريبة",
        "grand_total": "المجموع:",
        "notes": "ملاحظات:",
        "terms": "الشروط والأحكام:",
        "generated_on": "تم إنشاؤها في {timestamp}",
        "table_error": "حدث خطأ أثناء إنشاء جدول البنود.",
        "not_available": "غير متاح",
        "status_draft": "مسودة",
        "status_pending": "قيد الانتظار",
        "status_paid": "مدفوعة",
    },
}


def normalize_language(language: Optional[str]) -> str:
    candidate = (language or "").strip().lower()
    if candidate in LANGUAGES:
        return candidate
    return DEFAULT_LANGUAGE


def normalize_currency(currency: Optional[str]) -> str:
    candidate = (currency or "").strip().upper()
    if candidate in CURRENCY_CODES:
        return candidate
    return DEFAULT_CURRENCY


def text_direction(language: Optional[str]) -> str:
    return "rtl" if normalize_language(language) in _RTL_LANGUAGES else "ltr"


def label(language: Optional[str], key: str) -> str:
    catalog = _LABELS[normalize_language(language)]
    return catalog.get(key, _LABELS[DEFAULT_LANGUAGE].get(key, key))


def currency_symbol(currency: Optional[str]) -> str:
    return _CURRENCY_SYMBOLS.get((currency or "").strip().upper(), _DEFAULT_SYMBOL)


def format_currency(amount: object, currency: Optional[str]) -> str:
    try:
        value = float(amount)  # type: ignore[arg-type]
    except (TypeError, ValueError):
        value = 0.0
    return f"{currency_symbol(currency)} {value:.2f}"


def format_status(status: Optional[str], language: Optional[str]) -> str:
    key = f"status_{(status or '').strip().lower()}"
    catalog = _LABELS[normalize_language(language)]
    if key in catalog:
        return catalog[key]
    return (status or "").strip() or label(language, "not_available")


def format_date(value: object, language: Optional[str]) -> str:
    resolved = _coerce_datetime(value)
    if resolved is None:
        return label(language, "not_available")

    if normalize_language(language) == "ar":
        return f"{resolved.day}/{resolved.month}/{resolved.year}".translate(_ARABIC_DIGITS)
    return f"{resolved.month}/{resolved.day}/{resolved.year}"


def format_timestamp(value: object, language: Optional[str]) -> str:
    resolved = _coerce_datetime(value)
    if resolved is None:
        return label(language, "not_available")

    hour = resolved.hour % 12 or 12
    clock = f"{hour}:{resolved.minute:02d}:{resolved.second:02d}"
    if normalize_language(language) == "ar":
        meridiem = "ص" if resolved.hour < 12 else "م"
        text = f"{resolved.day}/{resolved.month}/{resolved.year}، {clock} {meridiem}"
        return text.translate(_ARABIC_DIGITS)

    meridiem = "AM" if resolved.hour < 12 else "PM"
    return f"{resolved.month}/{resolved.day}/{resolved.year}, {clock} {meridiem}"


def _coerce_datetime(value: object) -> Optional[datetime]:
    if value is None:
        return None
    if isinstance(value, datetime):
        return value
    if isinstance(value, date):
        return datetime(value.year, value.month, value.day)
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        if not math.isfinite(value):
            return None
        try:
            return datetime.fromtimestamp(value, tz=timezone.utc)
        except (OverflowError, OSError, ValueError):
            return None
    if isinstance(value, str):
        text = value.strip()
        if not text:
            return None
        if text[-1] in "Zz":
            # fromisoformat only understands a "Z" suffix from Python 3.11 on.
            text = f"{text[:-1]}+00:00"
        try:
            return datetime.fromisoformat(text)
        except ValueError:
            return None
    return None
