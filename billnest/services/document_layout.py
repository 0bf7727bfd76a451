"""Page layout for printable invoices.

The engine makes one forward pass over a vertical cursor and emits
page-relative drawing operations in millimetres on an A4 page. Text ``y``
values are baselines measured from the top edge. Blocks are positioned in
logical start/end coordinates and mirrored by :class:`_Frame`, so a
right-to-left document is the exact mirror of its left-to-right twin except
for numeric table cells, which stay right aligned in both directions.
"""

from __future__ import annotations

import base64
import json
import logging
from dataclasses import asdict, dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import List, Optional, Sequence, Tuple, Union

from reportlab.pdfbase.pdfmetrics import stringWidth

from ..models.invoice_models import CompanySettings, Invoice, InvoiceTotals
from . import formatting

logger = logging.getLogger(__name__)

PAGE_WIDTH = 210.0
PAGE_HEIGHT = 297.0
MARGIN = 20.0
CONTENT_WIDTH = PAGE_WIDTH - 2 * MARGIN
BOTTOM_LIMIT = PAGE_HEIGHT - MARGIN
FOOTER_OFFSET = 10.0

LINE_HEIGHT = 5.0
BLOCK_SPACING = 10.0
BODY_FONT_SIZE = 10.0

_FONT = "Helvetica"
_BOLD_FONT = "Helvetica-Bold"
_POINTS_PER_MM = 72 / 25.4

_LOGO_WIDTH = 50.0
_LOGO_HEIGHT = 20.0
_LOGO_ADVANCE = 25.0
_COMPANY_NAME_SIZE = 24.0
_COMPANY_NAME_ADVANCE = 15.0
_TITLE_SIZE = 16.0
_TITLE_ADVANCE = 10.0
_BILL_TO_SIZE = 12.0
_BILL_TO_ADVANCE = 6.0
_META_SPACING = 15.0

_NUMERIC_COLUMN_WIDTHS = (20.0, 35.0, 35.0)
_TABLE_FONT_SIZE = 9.0
_TABLE_HEADER_HEIGHT = 8.0
_CELL_PADDING = 2.0
_TABLE_ERROR_ADVANCE = 20.0

_SUMMARY_WIDTH = 70.0
_SUMMARY_ROW_HEIGHT = 15.0
_SUMMARY_ROWS = 3
_SUMMARY_TEXT_PITCH = 10.0
_SUMMARY_INSET = 5.0
_SUMMARY_TOTAL_SIZE = 12.0

_FOOTER_SIZE = 8.0

Color = Tuple[int, int, int]

_BLACK: Color = (0, 0, 0)
_WHITE: Color = (255, 255, 255)
_HEADER_FILL: Color = (75, 85, 99)
_GRID_STROKE: Color = (209, 213, 219)
_SUMMARY_FILL: Color = (240, 240, 240)


@dataclass(frozen=True)
class TextOp:
    page: int
    x: float
    y: float
    text: str
    size: float
    align: str = "left"
    bold: bool = False
    color: Color = _BLACK


@dataclass(frozen=True)
class RectOp:
    page: int
    x: float
    y: float
    width: float
    height: float
    fill: Optional[Color] = None
    stroke: Optional[Color] = None


@dataclass(frozen=True)
class CellOp:
    """A table cell: a framed box holding one or more lines of text."""

    page: int
    x: float
    y: float
    width: float
    height: float
    lines: Tuple[str, ...]
    size: float
    align: str = "left"
    bold: bool = False
    color: Color = _BLACK
    fill: Optional[Color] = None
    stroke: Optional[Color] = _GRID_STROKE
    padding: float = _CELL_PADDING
    line_height: float = LINE_HEIGHT

    def text_x(self) -> float:
        if self.align == "right":
            return self.x + self.width - self.padding
        if self.align == "center":
            return self.x + self.width / 2
        return self.x + self.padding

    def baselines(self) -> Tuple[float, ...]:
        # Baseline sits a quarter line above the bottom of each line box.
        return tuple(
            self.y + self.padding + self.line_height * (index + 0.75)
            for index in range(len(self.lines))
        )


@dataclass(frozen=True)
class ImageOp:
    page: int
    x: float
    y: float
    width: float
    height: float
    data: bytes = field(repr=False)


DrawOp = Union[TextOp, RectOp, CellOp, ImageOp]


@dataclass(frozen=True)
class InvoiceLayout:
    name: str
    language: str
    direction: str
    page_count: int
    operations: Tuple[DrawOp, ...]
    page_width: float = PAGE_WIDTH
    page_height: float = PAGE_HEIGHT

    @property
    def is_rtl(self) -> bool:
        return self.direction == "rtl"

    def operations_for_page(self, page: int) -> List[DrawOp]:
        return [operation for operation in self.operations if operation.page == page]

    def dumps(self) -> bytes:
        """Serialise the drawing sequence to canonical JSON bytes."""
        payload = {
            "name": self.name,
            "language": self.language,
            "direction": self.direction,
            "page_count": self.page_count,
            "page_width": self.page_width,
            "page_height": self.page_height,
            "operations": [
                {"kind": type(operation).__name__, **asdict(operation)}
                for operation in self.operations
            ],
        }
        return json.dumps(
            payload,
            sort_keys=True,
            ensure_ascii=False,
            separators=(",", ":"),
            default=_encode_bytes,
        ).encode("utf-8")


@dataclass
class LayoutCursor:
    y: float = MARGIN
    page: int = 0


@dataclass(frozen=True)
class _Frame:
    """Maps logical start/end geometry onto physical page coordinates."""

    rtl: bool

    @property
    def start(self) -> float:
        return MARGIN

    @property
    def end(self) -> float:
        return PAGE_WIDTH - MARGIN

    def x(self, logical_x: float) -> float:
        return PAGE_WIDTH - logical_x if self.rtl else logical_x

    def box_x(self, logical_x: float, width: float) -> float:
        return PAGE_WIDTH - logical_x - width if self.rtl else logical_x

    def align(self, logical: str) -> str:
        if logical == "start":
            return "right" if self.rtl else "left"
        if logical == "end":
            return "left" if self.rtl else "right"
        return logical


@dataclass(frozen=True)
class _Column:
    logical_x: float
    width: float
    header: str
    align: str
    numeric: bool


def measure_text(text: str, size: float, bold: bool = False) -> float:
    """Width of ``text`` in millimetres at ``size`` points."""
    return stringWidth(text, _BOLD_FONT if bold else _FONT, size) / _POINTS_PER_MM


def wrap_text(text: str, size: float, max_width: float, bold: bool = False) -> List[str]:
    """Word-wrap ``text`` to ``max_width`` millimetres, keeping explicit line breaks."""
    lines: List[str] = []
    for paragraph in str(text or "").splitlines() or [""]:
        lines.extend(_wrap_paragraph(paragraph, size, max_width, bold))
    return lines or [""]


def _wrap_paragraph(paragraph: str, size: float, max_width: float, bold: bool) -> List[str]:
    words: List[str] = []
    for word in paragraph.split():
        words.extend(_split_long_token(word, size, max_width, bold))

    lines: List[str] = []
    current = ""
    for word in words:
        candidate = f"{current} {word}" if current else word
        if measure_text(candidate, size, bold) <= max_width:
            current = candidate
        else:
            if current:
                lines.append(current)
            current = word
    if current:
        lines.append(current)
    return lines or [""]


def _split_long_token(token: str, size: float, max_width: float, bold: bool) -> List[str]:
    if measure_text(token, size, bold) <= max_width:
        return [token]

    chunks: List[str] = []
    remaining = token
    while remaining:
        low, high = 1, len(remaining)
        fit = 1
        while low <= high:
            middle = (low + high) // 2
            if measure_text(remaining[:middle], size, bold) <= max_width:
                fit = middle
                low = middle + 1
            else:
                high = middle - 1
        chunks.append(remaining[:fit])
        remaining = remaining[fit:]
    return chunks


def document_name(invoice_number: str, language: Optional[str]) -> str:
    return f"Invoice-{invoice_number}-{formatting.normalize_language(language).upper()}"


def build_invoice_layout(
    invoice: Invoice,
    settings: Optional[CompanySettings],
    totals: InvoiceTotals,
    *,
    currency: Optional[str] = None,
    language: Optional[str] = None,
    generated_at: Optional[datetime] = None,
    logo_data: Optional[bytes] = None,
) -> InvoiceLayout:
    """Lay out ``invoice`` as a paginated sequence of drawing operations.

    ``language`` overrides the invoice's own language tag and selects both the
    labels and the writing direction. The output is a pure function of the
    arguments; pass ``generated_at`` to make the footer timestamp reproducible.
    """
    company = settings or CompanySettings()
    resolved_language = formatting.normalize_language(language or invoice.language)
    resolved_currency = currency or invoice.currency or company.currency
    builder = _LayoutBuilder(
        invoice=invoice,
        settings=company,
        totals=totals,
        currency=resolved_currency,
        language=resolved_language,
        generated_at=generated_at or datetime.now(),
        logo_data=logo_data,
    )
    return builder.build()


class _LayoutBuilder:
    def __init__(
        self,
        *,
        invoice: Invoice,
        settings: CompanySettings,
        totals: InvoiceTotals,
        currency: str,
        language: str,
        generated_at: datetime,
        logo_data: Optional[bytes],
    ) -> None:
        self.invoice = invoice
        self.settings = settings
        self.totals = totals
        self.currency = currency
        self.language = language
        self.generated_at = generated_at
        self.logo_data = logo_data
        self.direction = formatting.text_direction(language)
        self.frame = _Frame(rtl=self.direction == "rtl")
        self.cursor = LayoutCursor()
        self.page_count = 1
        self.operations: List[DrawOp] = []

    def build(self) -> InvoiceLayout:
        self._draw_header()
        self._draw_company_contact()
        self._draw_title_block()
        self._draw_client_block()
        self._draw_item_table()
        self._draw_summary()
        self._draw_text_section(self._label("notes"), self.invoice.notes)
        self._draw_text_section(
            self._label("terms"),
            self.invoice.terms or self.settings.terms_and_conditions,
        )
        self._draw_footers()
        return InvoiceLayout(
            name=document_name(self.invoice.invoice_number, self.language),
            language=self.language,
            direction=self.direction,
            page_count=self.page_count,
            operations=tuple(self.operations),
        )

    def _label(self, key: str) -> str:
        return formatting.label(self.language, key)

    def _money(self, amount: float) -> str:
        return formatting.format_currency(amount, self.currency)

    def _text(
        self,
        logical_x: float,
        text: str,
        *,
        size: float = BODY_FONT_SIZE,
        align: str = "start",
        bold: bool = False,
        color: Color = _BLACK,
        y: Optional[float] = None,
    ) -> None:
        self.operations.append(
            TextOp(
                page=self.cursor.page,
                x=self.frame.x(logical_x),
                y=self.cursor.y if y is None else y,
                text=text,
                size=size,
                align=self.frame.align(align),
                bold=bold,
                color=color,
            )
        )

    def _new_page(self) -> None:
        self.page_count += 1
        self.cursor.page += 1
        self.cursor.y = MARGIN

    def _ensure_space(self, height: float) -> None:
        if self.cursor.y + height > BOTTOM_LIMIT:
            self._new_page()

    def _ensure_text_line(self, reserve: float = 0.0) -> None:
        # Baselines on a continuation page start one line below the top margin.
        if self.cursor.y + reserve > BOTTOM_LIMIT:
            self._new_page()
            self.cursor.y += LINE_HEIGHT

    def _draw_header(self) -> None:
        if self.logo_data:
            self.operations.append(
                ImageOp(
                    page=self.cursor.page,
                    x=self.frame.box_x(self.frame.start, _LOGO_WIDTH),
                    y=self.cursor.y,
                    width=_LOGO_WIDTH,
                    height=_LOGO_HEIGHT,
                    data=self.logo_data,
                )
            )
            self.cursor.y += _LOGO_ADVANCE
            return

        company_name = self.settings.company_name.strip() or self._label("company_name")
        self._text(self.frame.start, company_name, size=_COMPANY_NAME_SIZE, bold=True)
        self.cursor.y += _COMPANY_NAME_ADVANCE

    def _draw_company_contact(self) -> None:
        company = self.settings
        lines: List[str] = []
        address = _single_line(company.address)
        if address:
            lines.append(address)
        for key, value in (
            ("email", company.email),
            ("phone", company.phone),
            ("website", company.website),
            ("tax_number", company.tax_number),
        ):
            cleaned = (value or "").strip()
            if cleaned:
                lines.append(f"{self._label(key)}{cleaned}")

        for line in lines:
            self._text(self.frame.start, line)
            self.cursor.y += LINE_HEIGHT
        self.cursor.y += BLOCK_SPACING

    def _draw_title_block(self) -> None:
        # The title block sits on the edge opposite the body text.
        end = self.frame.end
        self._text(end, self._label("invoice"), size=_TITLE_SIZE, align="end", bold=True)
        self.cursor.y += _TITLE_ADVANCE

        details = [
            f"{self._label('invoice_number')}{self.invoice.invoice_number}",
            f"{self._label('date')}{formatting.format_date(self.invoice.issue_date, self.language)}",
            f"{self._label('due_date')}{formatting.format_date(self.invoice.due_date, self.language)}",
            f"{self._label('status')}{formatting.format_status(self.invoice.status, self.language)}",
        ]
        for line in details:
            self._text(end, line, align="end")
            self.cursor.y += LINE_HEIGHT
        self.cursor.y += _META_SPACING - LINE_HEIGHT

    def _draw_client_block(self) -> None:
        start = self.frame.start
        self._text(start, self._label("bill_to"), size=_BILL_TO_SIZE, bold=True)
        self.cursor.y += _BILL_TO_ADVANCE

        lines = [self.invoice.client_name.strip() or self._label("not_available")]
        address = _single_line(self.invoice.client_address)
        if address:
            lines.append(address)
        email = self.invoice.client_email.strip()
        if email:
            lines.append(f"{self._label('email')}{email}")

        for line in lines:
            self._text(start, line)
            self.cursor.y += LINE_HEIGHT
        self.cursor.y += BLOCK_SPACING

    def _draw_item_table(self) -> None:
        checkpoint = (len(self.operations), self.cursor.y, self.cursor.page, self.page_count)
        try:
            self._layout_item_table()
        except Exception:
            logger.exception(
                "Item table could not be laid out for invoice %s", self.invoice.invoice_number
            )
            operation_count, self.cursor.y, self.cursor.page, self.page_count = checkpoint
            del self.operations[operation_count:]
            self.cursor.y += BLOCK_SPACING
            self._text(self.frame.start, self._label("table_error"))
            self.cursor.y += _TABLE_ERROR_ADVANCE
            return
        self.cursor.y += BLOCK_SPACING

    def _table_columns(self) -> List[_Column]:
        quantity_width, price_width, total_width = _NUMERIC_COLUMN_WIDTHS
        description_width = CONTENT_WIDTH - sum(_NUMERIC_COLUMN_WIDTHS)
        definitions = [
            (description_width, "item", "start", False),
            (quantity_width, "quantity", "right", True),
            (price_width, "price", "right", True),
            (total_width, "total", "right", True),
        ]
        columns: List[_Column] = []
        logical_x = self.frame.start
        for width, header_key, align, numeric in definitions:
            columns.append(_Column(logical_x, width, self._label(header_key), align, numeric))
            logical_x += width
        return columns

    def _layout_item_table(self) -> None:
        columns = self._table_columns()
        description_width = columns[0].width - 2 * _CELL_PADDING

        rows: List[Tuple[List[str], Tuple[str, str, str]]] = []
        for item in self.invoice.items:
            rows.append(
                (
                    wrap_text(item.description, _TABLE_FONT_SIZE, description_width),
                    (
                        _format_quantity(item.quantity),
                        self._money(item.unit_price),
                        self._money(item.line_total),
                    ),
                )
            )

        self._ensure_space(_TABLE_HEADER_HEIGHT + _row_height(1))
        self._draw_table_header(columns)
        at_table_top = True

        for description_lines, values in rows:
            remaining = list(description_lines)
            first_chunk = True
            while remaining:
                capacity = int((BOTTOM_LIMIT - self.cursor.y - 2 * _CELL_PADDING) // LINE_HEIGHT)
                if capacity < 1 or (capacity < len(remaining) and not at_table_top):
                    self._new_page()
                    self._draw_table_header(columns)
                    at_table_top = True
                    continue

                chunk, remaining = remaining[:capacity], remaining[capacity:]
                self._draw_table_row(columns, chunk, values if first_chunk else ("", "", ""))
                first_chunk = False
                at_table_top = False

    def _cell_align(self, column: _Column) -> str:
        # Numerals always read left to right, so numeric cells never mirror.
        return column.align if column.numeric else self.frame.align(column.align)

    def _draw_table_header(self, columns: Sequence[_Column]) -> None:
        for column in columns:
            self.operations.append(
                CellOp(
                    page=self.cursor.page,
                    x=self.frame.box_x(column.logical_x, column.width),
                    y=self.cursor.y,
                    width=column.width,
                    height=_TABLE_HEADER_HEIGHT,
                    lines=(column.header,),
                    size=_TABLE_FONT_SIZE,
                    align=self._cell_align(column),
                    bold=True,
                    color=_WHITE,
                    fill=_HEADER_FILL,
                    stroke=_HEADER_FILL,
                    line_height=_TABLE_HEADER_HEIGHT - 2 * _CELL_PADDING,
                )
            )
        self.cursor.y += _TABLE_HEADER_HEIGHT

    def _draw_table_row(
        self,
        columns: Sequence[_Column],
        description_lines: Sequence[str],
        values: Tuple[str, str, str],
    ) -> None:
        height = _row_height(len(description_lines))
        contents = [tuple(description_lines)] + [(value,) for value in values]
        for column, lines in zip(columns, contents):
            self.operations.append(
                CellOp(
                    page=self.cursor.page,
                    x=self.frame.box_x(column.logical_x, column.width),
                    y=self.cursor.y,
                    width=column.width,
                    height=height,
                    lines=lines,
                    size=_TABLE_FONT_SIZE,
                    align=self._cell_align(column),
                )
            )
        self.cursor.y += height

    def _draw_summary(self) -> None:
        height = _SUMMARY_ROW_HEIGHT * _SUMMARY_ROWS
        self._ensure_space(height)

        # Trailing edge: right for LTR, left for RTL.
        box_start = self.frame.end - _SUMMARY_WIDTH
        top = self.cursor.y
        self.operations.append(
            RectOp(
                page=self.cursor.page,
                x=self.frame.box_x(box_start, _SUMMARY_WIDTH),
                y=top,
                width=_SUMMARY_WIDTH,
                height=height,
                fill=_SUMMARY_FILL,
            )
        )

        tax_caption = f"{self._label('tax')} ({_format_rate(self.invoice.tax_rate)}%):"
        rows = [
            (self._label("subtotal"), self._money(self.totals.subtotal), BODY_FONT_SIZE, False),
            (tax_caption, self._money(self.totals.tax), BODY_FONT_SIZE, False),
            (self._label("grand_total"), self._money(self.totals.total_amount), _SUMMARY_TOTAL_SIZE, True),
        ]
        for index, (caption, value, size, bold) in enumerate(rows, start=1):
            baseline = top + _SUMMARY_TEXT_PITCH * index
            self._text(box_start + _SUMMARY_INSET, caption, size=size, bold=bold, y=baseline)
            self._text(
                box_start + _SUMMARY_WIDTH - _SUMMARY_INSET,
                value,
                size=size,
                bold=bold,
                align="end",
                y=baseline,
            )

        self.cursor.y = top + height + BLOCK_SPACING

    def _draw_text_section(self, heading: str, body: Optional[str]) -> None:
        text = (body or "").strip()
        if not text:
            return

        lines = wrap_text(text, BODY_FONT_SIZE, CONTENT_WIDTH)
        self._ensure_text_line(reserve=LINE_HEIGHT)
        self._text(self.frame.start, heading, bold=True)
        self.cursor.y += LINE_HEIGHT

        for line in lines:
            self._ensure_text_line()
            self._text(self.frame.start, line)
            self.cursor.y += LINE_HEIGHT
        self.cursor.y += BLOCK_SPACING

    def _draw_footers(self) -> None:
        timestamp = formatting.format_timestamp(self.generated_at, self.language)
        footer = self._label("generated_on").format(timestamp=timestamp)
        for page in range(self.page_count):
            self.operations.append(
                TextOp(
                    page=page,
                    x=PAGE_WIDTH / 2,
                    y=PAGE_HEIGHT - FOOTER_OFFSET,
                    text=footer,
                    size=_FOOTER_SIZE,
                    align="center",
                )
            )


def _row_height(line_count: int) -> float:
    return line_count * LINE_HEIGHT + 2 * _CELL_PADDING


def _single_line(value: Optional[str]) -> str:
    parts = [part.strip() for part in (value or "").splitlines()]
    return ", ".join(part for part in parts if part)


def _format_quantity(quantity: float) -> str:
    return _plain_number(quantity)


def _format_rate(rate: float) -> str:
    try:
        return _plain_number(rate)
    except (TypeError, ValueError, ArithmeticError):
        return str(rate)


def _plain_number(value: float) -> str:
    # Fixed point without trailing zeros: 2000000 -> "2000000", 8.123456 -> "8.123456".
    number = Decimal(str(float(value)))
    if number == number.to_integral_value():
        return str(int(number))
    return format(number.normalize(), "f")


def _encode_bytes(value: object) -> str:
    if isinstance(value, (bytes, bytearray)):
        return base64.b64encode(bytes(value)).decode("ascii")
    raise TypeError(f"Object of type {type(value).__name__} is not JSON serializable")
