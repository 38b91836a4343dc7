import pytest
from PySide6.QtGui import QImage

from cardslicer.utils.geometry import (
    CropRect,
    clamp_rect,
    mirror_across_gutter,
    mirror_column,
    mirror_row,
    normalize_rotation,
    rotate_image,
    rotated_size,
)
from cardslicer.utils.unit_converter import extraction_scale, parse_dimension, points_to_pixels


def test_clamp_rect_floors_and_keeps_inside():
    assert clamp_rect(10.7, 20.2, 100.9, 50.5, 1000, 1000) == CropRect(10, 20, 100, 50)
    assert clamp_rect(-5, -5, 20, 20, 100, 100) == CropRect(0, 0, 20, 20)
    assert clamp_rect(90, 90, 50, 50, 100, 100) == CropRect(90, 90, 10, 10)


def test_clamp_rect_origin_past_edge_becomes_last_pixel():
    rect = clamp_rect(150, 10, 20, 20, 100, 100)
    assert rect == CropRect(99, 10, 1, 20)
    assert rect.within(100, 100)


def test_mirrors():
    assert [mirror_row(r, 3) for r in range(3)] == [2, 1, 0]
    assert [mirror_column(c, 4) for c in range(4)] == [3, 2, 1, 0]
    assert [mirror_across_gutter(p, 2) for p in range(4)] == [3, 2, 1, 0]


@pytest.mark.parametrize("angle, expected", [(0, (30, 20)), (90, (20, 30)), (180, (30, 20)), (270, (20, 30))])
def test_rotate_image_dimensions_and_area(angle, expected):
    image = QImage(30, 20, QImage.Format_RGB32)
    image.fill(0xFF336699)
    rotated = rotate_image(image, angle)
    assert (rotated.width(), rotated.height()) == expected
    assert rotated.width() * rotated.height() == 600
    assert rotated_size(30, 20, angle) == expected


def test_rotate_180_moves_corner(sheet, marker):
    image = sheet(40, 40, 1, 1)
    rotated = rotate_image(image, 180)
    assert rotated.pixel(39 - 5, 39 - 5) == marker(0, 0).rgb()


def test_normalize_rotation():
    assert normalize_rotation(-90) == 270
    assert normalize_rotation(450) == 90
    with pytest.raises(ValueError):
        normalize_rotation(45)


def test_unit_helpers():
    assert extraction_scale() == pytest.approx(300 / 72)
    assert points_to_pixels(72) == pytest.approx(300)
    assert parse_dimension("1in") == pytest.approx(300)
    assert parse_dimension("25.4mm", to_unit="in") == pytest.approx(1)
