from __future__ import annotations

import sqlite3
from typing import Dict, Optional

from ..models.invoice_models import (
    CURRENCY_CODES,
    DEFAULT_CURRENCY,
    DEFAULT_LANGUAGE,
    LANGUAGES,
    CompanySettings,
)
from .database import connection_scope

NEXT_INVOICE_NUMBER_KEY = "next_invoice_number"

# ``next_invoice_number`` has no default: an absent key means "no stored counter".
_DEFAULTS: Dict[str, str] = {
    "company_name": "",
    "address": "",
    "email": "",
    "phone": "",
    "website": "",
    "tax_number": "",
    "logo_path": "",
    "terms_and_conditions": "",
    "currency": DEFAULT_CURRENCY,
    "language": DEFAULT_LANGUAGE,
}


def get_setting(key: str, *, connection: Optional[sqlite3.Connection] = None) -> str:
    key = key.strip()
    with connection_scope(connection) as active:
        row = active.execute(
            "SELECT value FROM settings WHERE key = ?",
            (key,),
        ).fetchone()

    if row is None:
        return _DEFAULTS.get(key, "")
    return row["value"]


def set_setting(key: str, value: str, *, connection: Optional[sqlite3.Connection] = None) -> None:
    key = key.strip()
    with connection_scope(connection) as active:
        active.execute(
            """
            INSERT INTO settings (key, value)
            VALUES (?, ?)
            ON CONFLICT(key) DO UPDATE SET value = excluded.value
            """,
            (key, value),
        )


def get_next_invoice_sequence(*, connection: Optional[sqlite3.Connection] = None) -> Optional[int]:
    raw = get_setting(NEXT_INVOICE_NUMBER_KEY, connection=connection).strip()
    if not raw:
        return None
    try:
        value = int(raw)
    except ValueError:
        return None
    if value < 1:
        return None
    return value


def set_next_invoice_sequence(value: int, *, connection: Optional[sqlite3.Connection] = None) -> None:
    set_setting(NEXT_INVOICE_NUMBER_KEY, str(max(1, int(value))), connection=connection)


def get_company_settings() -> CompanySettings:
    currency = (get_setting("currency") or _DEFAULTS["currency"]).strip().upper()
    if currency not in CURRENCY_CODES:
        currency = _DEFAULTS["currency"]

    language = (get_setting("language") or _DEFAULTS["language"]).strip().lower()
    if language not in LANGUAGES:
        language = _DEFAULTS["language"]

    return CompanySettings(
        company_name=get_setting("company_name").strip(),
        address=get_setting("address").strip(),
        email=get_setting("email").strip(),
        phone=get_setting("phone").strip(),
        website=get_setting("website").strip(),
        tax_number=get_setting("tax_number").strip(),
        logo_path=get_setting("logo_path").strip(),
        terms_and_conditions=get_setting("terms_and_conditions").strip(),
        currency=currency,
        language=language,
        next_invoice_number=get_next_invoice_sequence(),
    )


def save_company_settings(
    settings: CompanySettings,
    *,
    connection: Optional[sqlite3.Connection] = None,
) -> None:
    # next_invoice_number is written only by the numbering service.
    with connection_scope(connection) as active:
        values = {
            "company_name": settings.company_name,
            "address": settings.address,
            "email": settings.email,
            "phone": settings.phone,
            "website": settings.website,
            "tax_number": settings.tax_number,
            "logo_path": settings.logo_path,
            "terms_and_conditions": settings.terms_and_conditions,
            "currency": settings.currency,
            "language": settings.language,
        }
        for key, value in values.items():
            set_setting(key, (value or "").strip(), connection=active)
