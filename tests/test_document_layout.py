from datetime import date, datetime

import pytest

from billnest.models.invoice_models import CompanySettings, Invoice, InvoiceItem, InvoiceTotals
from billnest.services import document_layout
from billnest.services.document_layout import (
    BOTTOM_LIMIT,
    MARGIN,
    PAGE_HEIGHT,
    PAGE_WIDTH,
    CellOp,
    ImageOp,
    RectOp,
    TextOp,
    build_invoice_layout,
    measure_text,
    wrap_text,
)
from billnest.services.totals import calculate_invoice_totals

GENERATED_AT = datetime(2025, 1, 20, 9, 30, 0)
_MIRRORED_ALIGN = {"left": "right", "right": "left", "center": "center"}


def _settings(**overrides):
    values = dict(
        company_name="Northwind Trading",
        address="12 Harbour Road\nPort City",
        email="billing@northwind.test",
        phone="+1 555 0100",
        website="northwind.test",
        tax_number="TX-99812",
        terms_and_conditions="Payment due within 30 days.",
        currency="USD",
        language="en",
    )
    values.update(overrides)
    return CompanySettings(**values)


def _invoice(**overrides):
    values = dict(
        invoice_number="INV-0001",
        client_name="Acme Corp",
        client_email="ap@acme.test",
        client_address="1 Main Street",
        issue_date=date(2025, 1, 15),
        due_date=date(2025, 2, 14),
        status="pending",
        items=[
            InvoiceItem("Consulting hours for the quarterly infrastructure review", 2, 50.0, item_id="a"),
            InvoiceItem("Travel", 1, 120.0, item_id="b"),
        ],
        tax_rate=10,
        notes="Thank you for your business.",
    )
    values.update(overrides)
    return Invoice(**values)


def _layout(invoice=None, settings=None, **kwargs):
    invoice = invoice or _invoice()
    settings = settings or _settings()
    kwargs.setdefault("generated_at", GENERATED_AT)
    return build_invoice_layout(invoice, settings, calculate_invoice_totals(invoice), **kwargs)


def _texts(layout):
    return [operation for operation in layout.operations if isinstance(operation, TextOp)]


def _find_text(layout, text):
    matches = [operation for operation in _texts(layout) if operation.text == text]
    assert matches, f"{text!r} not drawn"
    return matches[0]


def test_document_name_carries_invoice_number_and_language():
    assert _layout().name == "Invoice-INV-0001-EN"
    assert _layout(language="ar").name == "Invoice-INV-0001-AR"


def test_language_argument_overrides_invoice_tag():
    layout = _layout(invoice=_invoice(language="ar"), language="en")
    assert layout.direction == "ltr"
    assert _layout(invoice=_invoice(language="ar")).direction == "rtl"


def test_rendering_is_deterministic():
    first = _layout()
    second = _layout()
    assert first.operations == second.operations
    assert first.dumps() == second.dumps()


def test_rtl_layout_mirrors_ltr_layout():
    ltr = _layout(language="en")
    rtl = _layout(language="ar")

    assert ltr.page_count == rtl.page_count
    assert len(ltr.operations) == len(rtl.operations)

    for left, right in zip(ltr.operations, rtl.operations):
        assert type(left) is type(right)
        assert left.page == right.page
        assert left.y == pytest.approx(right.y)
        if isinstance(left, TextOp):
            assert right.x == pytest.approx(PAGE_WIDTH - left.x)
            assert right.align == _MIRRORED_ALIGN[left.align]
        else:
            assert right.width == left.width
            assert right.height == left.height
            assert right.x == pytest.approx(PAGE_WIDTH - left.x - left.width)
        if isinstance(left, CellOp):
            if left.align == "left":
                assert right.align == "right"
            else:
                assert right.align == left.align


def test_numeric_cells_stay_right_aligned_in_rtl():
    rtl = _layout(language="ar")
    money_cells = [
        operation
        for operation in rtl.operations
        if isinstance(operation, CellOp) and operation.lines and operation.lines[0].startswith("$")
    ]
    assert money_cells
    assert all(cell.align == "right" for cell in money_cells)

    description_cell = next(
        operation
        for operation in rtl.operations
        if isinstance(operation, CellOp) and operation.lines[0] == "Travel"
    )
    assert description_cell.align == "right"
    assert description_cell.x + description_cell.width == pytest.approx(PAGE_WIDTH - MARGIN)


def test_title_block_sits_on_opposite_edge():
    ltr_title = _find_text(_layout(), "INVOICE")
    assert ltr_title.x == PAGE_WIDTH - MARGIN
    assert ltr_title.align == "right"

    rtl_title = _find_text(_layout(language="ar"), "فاتورة")
    assert rtl_title.x == MARGIN
    assert rtl_title.align == "left"

    company = _find_text(_layout(), "Northwind Trading")
    assert company.x == MARGIN
    assert company.align == "left"


def test_missing_website_shortens_contact_block():
    full = _layout()
    trimmed = _layout(settings=_settings(website=""))

    assert any(text.text.startswith("Website: ") for text in _texts(full))
    assert not any(text.text.startswith("Website: ") for text in _texts(trimmed))
    assert len(trimmed.operations) == len(full.operations) - 1
    shift = _find_text(full, "INVOICE").y - _find_text(trimmed, "INVOICE").y
    assert shift == pytest.approx(document_layout.LINE_HEIGHT)


def test_contact_lines_use_labels_and_flatten_address():
    texts = [text.text for text in _texts(_layout())]
    assert "12 Harbour Road, Port City" in texts
    assert "Email: billing@northwind.test" in texts
    assert "Tax Number: TX-99812" in texts
    assert "Invoice Number: INV-0001" in texts
    assert "Date: 1/15/2025" in texts
    assert "Due Date: 2/14/2025" in texts
    assert "Status: Pending" in texts


def test_missing_due_date_renders_marker():
    texts = [text.text for text in _texts(_layout(invoice=_invoice(due_date=None)))]
    assert "Due Date: N/A" in texts


def test_logo_replaces_company_heading():
    ltr = _layout(logo_data=b"\x89PNG fake")
    images = [operation for operation in ltr.operations if isinstance(operation, ImageOp)]
    assert len(images) == 1
    assert images[0].x == MARGIN
    assert not any(text.text == "Northwind Trading" for text in _texts(ltr))

    rtl = _layout(logo_data=b"\x89PNG fake", language="ar")
    rtl_image = next(operation for operation in rtl.operations if isinstance(operation, ImageOp))
    assert rtl_image.x + rtl_image.width == pytest.approx(PAGE_WIDTH - MARGIN)


def test_summary_box_holds_three_rows_on_trailing_edge():
    layout = _layout()
    boxes = [operation for operation in layout.operations if isinstance(operation, RectOp)]
    assert len(boxes) == 1
    box = boxes[0]
    assert box.x + box.width == pytest.approx(PAGE_WIDTH - MARGIN)
    assert box.height == 45

    subtotal = _find_text(layout, "$ 220.00")
    tax = _find_text(layout, "$ 22.00")
    total = _find_text(layout, "$ 242.00")
    assert _find_text(layout, "Tax (10%):").y == tax.y
    assert subtotal.y < tax.y < total.y
    assert total.size > subtotal.size
    assert total.bold

    rtl_box = next(operation for operation in _layout(language="ar").operations if isinstance(operation, RectOp))
    assert rtl_box.x == pytest.approx(MARGIN)


def test_fractional_tax_rate_is_labelled_literally():
    layout = _layout(invoice=_invoice(tax_rate=8.5))
    assert _find_text(layout, "Tax (8.5%):")

    precise = _layout(invoice=_invoice(tax_rate=8.123456))
    assert _find_text(precise, "Tax (8.123456%):")


@pytest.mark.parametrize(
    "quantity, expected",
    [(2000000, "2000000"), (1234567, "1234567"), (2.5, "2.5"), (3.0, "3"), (0.125, "0.125")],
)
def test_quantities_print_in_full(quantity, expected):
    layout = _layout(invoice=_invoice(items=[InvoiceItem("Screws", quantity, 0.01, item_id="s")]))
    cells = [operation for operation in layout.operations if isinstance(operation, CellOp)]
    row = [cell.lines[0] for cell in cells if cell.fill is None]
    assert row[:2] == ["Screws", expected]


def test_long_item_table_repeats_header_on_each_page():
    items = [InvoiceItem(f"Line item {index}", 1, 1.0, item_id=str(index)) for index in range(120)]
    layout = _layout(invoice=_invoice(items=items))

    assert layout.page_count >= 2
    cells = [operation for operation in layout.operations if isinstance(operation, CellOp)]
    headers = [cell for cell in cells if cell.lines == ("Item",)]
    header_pages = sorted({cell.page for cell in headers})
    assert len(header_pages) >= 2
    assert header_pages == list(range(len(header_pages)))
    assert {cell.page for cell in cells} <= set(header_pages)
    for cell in cells:
        assert cell.y + cell.height <= BOTTOM_LIMIT + 1e-9

    continuation_header = next(cell for cell in headers if cell.page == 1)
    assert continuation_header.y == MARGIN


def test_footer_on_every_page_at_fixed_distance():
    items = [InvoiceItem(f"Line item {index}", 1, 1.0, item_id=str(index)) for index in range(120)]
    layout = _layout(invoice=_invoice(items=items))
    footers = [text for text in _texts(layout) if text.text.startswith("Generated on ")]
    assert [footer.page for footer in footers] == list(range(layout.page_count))
    for footer in footers:
        assert footer.y == PAGE_HEIGHT - document_layout.FOOTER_OFFSET
        assert footer.x == PAGE_WIDTH / 2
        assert footer.align == "center"
        assert footer.text == "Generated on 1/20/2025, 9:30:00 AM"


def test_tall_description_is_wrapped_within_its_column():
    description = "Detailed description " * 30
    layout = _layout(invoice=_invoice(items=[InvoiceItem(description, 1, 5.0, item_id="x")]))
    cell = next(
        operation
        for operation in layout.operations
        if isinstance(operation, CellOp) and operation.lines[0].startswith("Detailed")
    )
    assert len(cell.lines) > 1
    for line in cell.lines:
        assert measure_text(line, cell.size) <= cell.width - 2 * cell.padding
    assert len(cell.baselines()) == len(cell.lines)


def test_table_failure_degrades_to_error_line():
    broken = _invoice(items=[InvoiceItem("Broken", "abc", 10.0, item_id="z")])
    layout = build_invoice_layout(
        broken,
        _settings(),
        InvoiceTotals(subtotal=0.0, tax=0.0, total_amount=0.0),
        generated_at=GENERATED_AT,
    )

    assert not any(isinstance(operation, CellOp) for operation in layout.operations)
    assert _find_text(layout, "Error generating table. Please check the invoice items.")
    assert any(isinstance(operation, RectOp) for operation in layout.operations)
    assert _find_text(layout, "Notes:")


def test_empty_notes_and_terms_are_omitted():
    layout = _layout(invoice=_invoice(notes="", terms=""), settings=_settings(terms_and_conditions=""))
    texts = [text.text for text in _texts(layout)]
    assert "Notes:" not in texts
    assert "Terms and Conditions:" not in texts


def test_terms_fall_back_to_company_terms():
    texts = [text.text for text in _texts(_layout())]
    assert "Terms and Conditions:" in texts
    assert "Payment due within 30 days." in texts

    own_terms = _layout(invoice=_invoice(terms="Net 15"))
    assert _find_text(own_terms, "Net 15")


def test_long_notes_flow_onto_following_pages():
    notes = " ".join(f"word{index}" for index in range(3000))
    layout = _layout(invoice=_invoice(notes=notes), settings=_settings(terms_and_conditions=""))

    assert layout.page_count >= 2
    body = [
        text
        for text in _texts(layout)
        if text.text.startswith("word")
    ]
    assert {text.page for text in body} == set(range(layout.page_count))
    for text in body:
        assert text.y <= BOTTOM_LIMIT
        assert text.y > MARGIN


def test_wrap_text_keeps_line_breaks_and_splits_long_tokens():
    assert wrap_text("first\nsecond", 10, 100) == ["first", "second"]
    assert wrap_text("", 10, 100) == [""]

    token = "x" * 200
    chunks = wrap_text(token, 10, 30)
    assert "".join(chunks) == token
    assert all(measure_text(chunk, 10) <= 30 for chunk in chunks)


def test_dumps_encodes_images():
    payload = _layout(logo_data=b"logo").dumps()
    assert b'"kind":"ImageOp"' in payload
    assert b'"data":"bG9nbw=="' in payload
