from __future__ import annotations

import logging
import sys
from pathlib import Path
from typing import Optional, Tuple, Union

from PySide6.QtCore import QMarginsF, QPointF, QRectF, Qt
from PySide6.QtGui import (
    QColor,
    QFont,
    QFontMetricsF,
    QGuiApplication,
    QImage,
    QPageLayout,
    QPageSize,
    QPainter,
    QPdfWriter,
    QPen,
)

from .document_layout import CellOp, DrawOp, ImageOp, InvoiceLayout, RectOp, TextOp

logger = logging.getLogger(__name__)

_RESOLUTION = 144
_MM_PER_INCH = 25.4
_FONT_FAMILY = "Helvetica"

_gui_application: Optional[QGuiApplication] = None


def resolve_destination(layout: InvoiceLayout, destination: Union[str, Path]) -> Path:
    path = Path(destination).expanduser()
    if path.is_dir():
        path = path / f"{layout.name}.pdf"
    elif path.suffix.lower() != ".pdf":
        path = path.with_suffix(".pdf")
    if not path.parent.exists():
        path.parent.mkdir(parents=True, exist_ok=True)
    return path


def write_layout_pdf(layout: InvoiceLayout, destination: Union[str, Path]) -> Path:
    path = resolve_destination(layout, destination)
    _ensure_gui_application()

    pdf_writer = QPdfWriter(str(path))
    pdf_writer.setPageSize(QPageSize(QPageSize.PageSizeId.A4))
    pdf_writer.setPageMargins(QMarginsF(0, 0, 0, 0), QPageLayout.Unit.Millimeter)
    pdf_writer.setResolution(_RESOLUTION)
    pdf_writer.setTitle(layout.name)
    pdf_writer.setCreator("BillNest")

    painter = QPainter()
    if not painter.begin(pdf_writer):
        raise OSError(f"Unable to write PDF to {path}")
    try:
        painter.setLayoutDirection(
            Qt.LayoutDirection.RightToLeft if layout.is_rtl else Qt.LayoutDirection.LeftToRight
        )
        for page in range(layout.page_count):
            if page:
                pdf_writer.newPage()
            for operation in layout.operations_for_page(page):
                _paint(painter, pdf_writer, operation)
    finally:
        painter.end()

    return path


def _ensure_gui_application() -> None:
    # QPdfWriter needs the font database, which only exists once a GUI application does.
    global _gui_application
    if QGuiApplication.instance() is None:
        _gui_application = QGuiApplication(sys.argv[:1] or ["billnest"])


def _paint(painter: QPainter, device: QPdfWriter, operation: DrawOp) -> None:
    if isinstance(operation, TextOp):
        _draw_text(
            painter,
            device,
            operation.x,
            operation.y,
            operation.text,
            size=operation.size,
            align=operation.align,
            bold=operation.bold,
            color=operation.color,
        )
    elif isinstance(operation, RectOp):
        _draw_box(painter, _rect(operation.x, operation.y, operation.width, operation.height), operation.fill, operation.stroke)
    elif isinstance(operation, CellOp):
        _draw_box(painter, _rect(operation.x, operation.y, operation.width, operation.height), operation.fill, operation.stroke)
        text_x = operation.text_x()
        for line, baseline in zip(operation.lines, operation.baselines()):
            if not line:
                continue
            _draw_text(
                painter,
                device,
                text_x,
                baseline,
                line,
                size=operation.size,
                align=operation.align,
                bold=operation.bold,
                color=operation.color,
            )
    elif isinstance(operation, ImageOp):
        image = QImage()
        if image.loadFromData(operation.data):
            painter.drawImage(_rect(operation.x, operation.y, operation.width, operation.height), image)
        else:
            logger.warning("Skipping logo image that could not be decoded")


def _draw_text(
    painter: QPainter,
    device: QPdfWriter,
    x_mm: float,
    y_mm: float,
    text: str,
    *,
    size: float,
    align: str,
    bold: bool,
    color: Tuple[int, int, int],
) -> None:
    font = QFont(_FONT_FAMILY)
    font.setStyleHint(QFont.StyleHint.SansSerif)
    font.setPointSizeF(size)
    font.setBold(bold)
    painter.setFont(font)
    painter.setPen(QColor(*color))

    width = QFontMetricsF(font, device).horizontalAdvance(text)
    x = _to_device(x_mm)
    if align == "right":
        x -= width
    elif align == "center":
        x -= width / 2
    painter.drawText(QPointF(x, _to_device(y_mm)), text)


def _draw_box(
    painter: QPainter,
    rect: QRectF,
    fill: Optional[Tuple[int, int, int]],
    stroke: Optional[Tuple[int, int, int]],
) -> None:
    if fill is not None:
        painter.fillRect(rect, QColor(*fill))
    if stroke is not None:
        painter.setPen(QPen(QColor(*stroke)))
        painter.setBrush(Qt.BrushStyle.NoBrush)
        painter.drawRect(rect)


def _rect(x_mm: float, y_mm: float, width_mm: float, height_mm: float) -> QRectF:
    return QRectF(_to_device(x_mm), _to_device(y_mm), _to_device(width_mm), _to_device(height_mm))


def _to_device(value_mm: float) -> float:
    return value_mm * _RESOLUTION / _MM_PER_INCH
