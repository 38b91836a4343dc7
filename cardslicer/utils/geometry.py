from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Tuple

from PySide6.QtCore import QPointF, QRect, Qt
from PySide6.QtGui import QImage, QPainter

from cardslicer.config import VALID_ROTATIONS


@dataclass(frozen=True)
class CropRect:
    """Integer pixel rectangle on a page surface."""
    x: int
    y: int
    width: int
    height: int

    @property
    def right(self) -> int:
        return self.x + self.width

    @property
    def bottom(self) -> int:
        return self.y + self.height

    def within(self, surface_width: int, surface_height: int) -> bool:
        return (
            0 <= self.x < surface_width
            and 0 <= self.y < surface_height
            and self.right <= surface_width
            and self.bottom <= surface_height
        )

    def to_qrect(self) -> QRect:
        return QRect(self.x, self.y, self.width, self.height)

    def as_tuple(self) -> Tuple[int, int, int, int]:
        return self.x, self.y, self.width, self.height


def clamp_rect(x: float, y: float, width: float, height: float,
               surface_width: int, surface_height: int) -> CropRect:
    """Floor to whole pixels and keep the rectangle on the surface.

    Origin is clamped to ``[0, size - 1]`` and the extent to ``>= 1``, so a
    bad margin or gutter shrinks the read to a 1x1 cell instead of reading
    outside the surface.
    """
    sx = max(0, min(math.floor(x), surface_width - 1))
    sy = max(0, min(math.floor(y), surface_height - 1))
    sw = max(1, min(math.floor(width), surface_width - sx))
    sh = max(1, min(math.floor(height), surface_height - sy))
    return CropRect(sx, sy, sw, sh)


# --- Mirror transforms ---

def mirror_row(row: int, rows: int) -> int:
    return rows - 1 - row


def mirror_column(column: int, columns: int) -> int:
    return columns - 1 - column


def mirror_across_gutter(position: int, half: int) -> int:
    """Map a position in one half of a split axis to its partner in the other half.

    With ``half`` cells per side the first cell of the front half pairs with
    the last cell of the back half: ``p -> 2*half - 1 - p``.
    """
    return 2 * half - 1 - position


# --- Rotation ---

def normalize_rotation(degrees: int) -> int:
    d = int(degrees) % 360
    if d not in VALID_ROTATIONS:
        raise ValueError(f"Rotation must be one of {VALID_ROTATIONS}, got {degrees}")
    return d


def rotated_size(width: int, height: int, degrees: int) -> Tuple[int, int]:
    if normalize_rotation(degrees) in (90, 270):
        return height, width
    return width, height


def rotate_image(image: QImage, degrees: int) -> QImage:
    """Rotate by a multiple of 90 degrees onto a canvas sized to the rotated bounds."""
    angle = normalize_rotation(degrees)
    if angle == 0:
        return image
    out_w, out_h = rotated_size(image.width(), image.height(), angle)
    rotated = QImage(out_w, out_h, QImage.Format_ARGB32)
    rotated.fill(Qt.transparent)

    painter = QPainter(rotated)
    painter.translate(out_w / 2, out_h / 2)
    painter.rotate(angle)
    painter.drawImage(QPointF(-image.width() / 2, -image.height() / 2), image)
    painter.end()
    return rotated


def crop_image(image: QImage, rect: CropRect) -> QImage:
    return image.copy(rect.to_qrect())
