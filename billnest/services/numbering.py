"""Sequential invoice identifiers of the form ``INV-0001``.

Two entry points: :func:`preview_next_invoice_number` proposes a number for
display and never writes, :func:`reserve_invoice_number` allocates the number
inside the transaction that persists the invoice and advances the counter.
"""

from __future__ import annotations

import logging
import re
import sqlite3
from typing import Callable, Optional

from ..data import invoice_repository, settings_repository
from ..data.database import write_transaction

logger = logging.getLogger(__name__)

INVOICE_NUMBER_PREFIX = "INV-"
SEQUENCE_PADDING = 4
BASELINE_SEQUENCE = 1

_INVOICE_NUMBER_PATTERN = re.compile(r"^INV-(\d+)$")

_LOOKUP_ERRORS = (sqlite3.Error, OSError)


def format_invoice_number(sequence: int) -> str:
    return f"{INVOICE_NUMBER_PREFIX}{max(BASELINE_SEQUENCE, int(sequence)):0{SEQUENCE_PADDING}d}"


def parse_invoice_sequence(invoice_number: Optional[str]) -> Optional[int]:
    if not invoice_number:
        return None
    match = _INVOICE_NUMBER_PATTERN.match(invoice_number.strip())
    if match is None:
        return None
    return int(match.group(1))


def _read_highest_invoice_number() -> Optional[str]:
    return invoice_repository.fetch_highest_invoice_number(INVOICE_NUMBER_PREFIX)


def preview_next_invoice_number(
    read_stored_sequence: Callable[[], Optional[int]] = settings_repository.get_next_invoice_sequence,
    read_highest_number: Callable[[], Optional[str]] = _read_highest_invoice_number,
) -> str:
    """Propose the next identifier without reserving it.

    A stored counter wins; otherwise the highest existing identifier plus one;
    otherwise the baseline. Lookup failures degrade to the baseline.
    """
    try:
        stored = read_stored_sequence()
        if stored:
            return format_invoice_number(stored)

        highest = parse_invoice_sequence(read_highest_number())
        if highest is not None:
            return format_invoice_number(highest + 1)
    except _LOOKUP_ERRORS:
        logger.warning("Invoice number lookup failed; proposing the baseline number", exc_info=True)

    return format_invoice_number(BASELINE_SEQUENCE)


def reserve_invoice_number(connection: sqlite3.Connection, proposed: Optional[str] = None) -> str:
    """Allocate the identifier for an invoice being persisted on ``connection``.

    Must run inside a write transaction (``BEGIN IMMEDIATE``) so that the
    read of the counter and its advance cannot interleave with another creator.
    """
    sequence = _authoritative_next_sequence(connection)

    proposed_sequence = parse_invoice_sequence(proposed)
    if proposed_sequence is not None and proposed_sequence >= sequence:
        sequence = proposed_sequence
    elif proposed:
        logger.info(
            "Proposed invoice number %s is no longer available; assigning %s",
            proposed,
            format_invoice_number(sequence),
        )

    settings_repository.set_next_invoice_sequence(sequence + 1, connection=connection)
    return format_invoice_number(sequence)


def advance_next_invoice_sequence(connection: sqlite3.Connection, sequence: int) -> int:
    """Raise the stored counter to at least ``sequence``; it is never lowered.

    The counter also never falls to an already issued number. Run inside a
    write transaction, as :func:`reserve_invoice_number` is.
    """
    target = max(int(sequence), _authoritative_next_sequence(connection))
    settings_repository.set_next_invoice_sequence(target, connection=connection)
    return target


def ensure_next_invoice_number_progress(invoice_number: str) -> None:
    sequence_value = parse_invoice_sequence(invoice_number)
    if sequence_value is None:
        return
    with write_transaction() as connection:
        advance_next_invoice_sequence(connection, sequence_value + 1)


def _authoritative_next_sequence(connection: sqlite3.Connection) -> int:
    candidates = [BASELINE_SEQUENCE]

    stored = settings_repository.get_next_invoice_sequence(connection=connection)
    if stored:
        candidates.append(stored)

    highest = parse_invoice_sequence(
        invoice_repository.fetch_highest_invoice_number(INVOICE_NUMBER_PREFIX, connection=connection)
    )
    if highest is not None:
        candidates.append(highest + 1)

    return max(candidates)
