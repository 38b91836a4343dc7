import os
import sys

# Offscreen platform for Qt
os.environ["QT_QPA_PLATFORM"] = "offscreen"

import pytest
from PySide6.QtCore import QRect, Qt
from PySide6.QtGui import QColor, QGuiApplication, QImage, QLinearGradient, QPainter

from cardslicer.errors import RenderError

app = QGuiApplication.instance() or QGuiApplication(sys.argv[:1])

MARKER = 10


def marker_color(page: int, cell: int) -> QColor:
    return QColor((page * 16 + cell * 8) % 256, 100, 200)


def paint_sheet(width: int, height: int, rows: int, columns: int, page: int = 0) -> QImage:
    """A sheet whose cells carry a gradient and a solid marker square in their top-left corner."""
    image = QImage(width, height, QImage.Format_RGB32)
    image.fill(Qt.white)
    cell_w = width // columns
    cell_h = height // rows
    painter = QPainter(image)
    for cell in range(rows * columns):
        row, column = divmod(cell, columns)
        x, y = column * cell_w, row * cell_h
        gradient = QLinearGradient(x, y, x + cell_w, y + cell_h)
        gradient.setColorAt(0.0, QColor(20, 40, 60))
        gradient.setColorAt(1.0, QColor(240, 220, 200))
        painter.fillRect(QRect(x, y, cell_w, cell_h), gradient)
        painter.fillRect(QRect(x, y, MARKER, MARKER), marker_color(page, cell))
    painter.end()
    return image


class MemoryProvider:
    """Serves pre-painted sheets; pages listed in ``broken`` raise RenderError."""

    def __init__(self, sheets, broken=()):
        self.sheets = sheets
        self.broken = set(broken)
        self.calls = []

    def surface(self, page):
        key = page.source_page if page.source_page is not None else page.index
        self.calls.append(key)
        if key in self.broken:
            raise RenderError("corrupt page", key)
        return self.sheets[key]


@pytest.fixture
def sheet():
    return paint_sheet


@pytest.fixture
def marker():
    return marker_color


@pytest.fixture
def memory_provider():
    return MemoryProvider
