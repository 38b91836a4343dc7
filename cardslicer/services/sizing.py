"""Output card geometry and placement of card images. All lengths in inches."""
from __future__ import annotations

from dataclasses import dataclass
from typing import Tuple

from cardslicer.config import EXTRACTION_DPI, PREVIEW_MAX, SCREEN_DPI, VALID_SIZING_MODES
from cardslicer.models.extraction_settings import OutputSettings
from cardslicer.models.layout_mode import FaceType
from cardslicer.utils.geometry import rotated_size
from cardslicer.utils.unit_converter import compute_scale_factor, inches_to_pixels, pixels_to_inches


@dataclass(frozen=True)
class OutputCardGeometry:
    base_width: float
    base_height: float
    bleed: float
    scale_factor: float
    target_width: float
    target_height: float
    width: float
    height: float

    @property
    def width_px(self) -> float:
        return inches_to_pixels(self.width)

    @property
    def height_px(self) -> float:
        return inches_to_pixels(self.height)

    @property
    def aspect_ratio(self) -> float:
        return self.width / self.height


@dataclass(frozen=True)
class Placement:
    draw_width: float
    draw_height: float
    offset_x: float
    offset_y: float


@dataclass(frozen=True)
class CardPosition:
    x: float
    y: float
    width: float
    height: float
    rotation: int


@dataclass(frozen=True)
class PreviewScale:
    scale: float
    width: float
    height: float


def card_geometry(base_width: float, base_height: float, bleed: float = 0.0,
                  scale_percent: float = 100.0) -> OutputCardGeometry:
    """Bleed goes on every edge, then the whole card is scaled."""
    target_w = base_width + 2 * bleed
    target_h = base_height + 2 * bleed
    factor = scale_percent / 100
    return OutputCardGeometry(
        base_width=base_width,
        base_height=base_height,
        bleed=bleed,
        scale_factor=factor,
        target_width=target_w,
        target_height=target_h,
        width=target_w * factor,
        height=target_h * factor,
    )


def geometry_for(output: OutputSettings) -> OutputCardGeometry:
    return card_geometry(output.card_width, output.card_height, output.bleed, output.scale_percent)


def image_size_inches(width_px: int, height_px: int) -> Tuple[float, float]:
    """Size of an extracted card, which is always at the extraction DPI."""
    return pixels_to_inches(width_px, EXTRACTION_DPI), pixels_to_inches(height_px, EXTRACTION_DPI)


def place_image(image_width: float, image_height: float,
                target_width: float, target_height: float,
                mode: str = "actual-size") -> Placement:
    """Draw size and centring offsets of an image inside the target card.

    Offsets go negative when the image overflows the target: always for an
    oversized ``actual-size`` image, and on the cropped axis for ``fill-card``.
    """
    if mode not in VALID_SIZING_MODES:
        raise ValueError(f"Unknown sizing mode {mode!r}; expected one of {VALID_SIZING_MODES}")

    draw_w, draw_h = image_width, image_height
    if mode != "actual-size" and image_width > 0 and image_height > 0:
        scale_w = target_width / image_width
        scale_h = target_height / image_height
        scale = min(scale_w, scale_h) if mode == "fit-to-card" else max(scale_w, scale_h)
        draw_w, draw_h = image_width * scale, image_height * scale

    return Placement(
        draw_width=draw_w,
        draw_height=draw_h,
        offset_x=(target_width - draw_w) / 2,
        offset_y=(target_height - draw_h) / 2,
    )


def card_positioning(geometry: OutputCardGeometry, output: OutputSettings, face: FaceType) -> CardPosition:
    """Centre the card on the output page, then shift by the page offsets."""
    rotation = output.rotation.for_face(face)
    width, height = rotated_size(geometry.width, geometry.height, rotation)
    return CardPosition(
        x=(output.page_width - width) / 2 + output.offset_x,
        y=(output.page_height - height) / 2 + output.offset_y,
        width=width,
        height=height,
        rotation=rotation,
    )


def preview_scale(page_width: float, page_height: float,
                  max_width: float = PREVIEW_MAX["width"],
                  max_height: float = PREVIEW_MAX["height"]) -> PreviewScale:
    """Fit a page (inches) into a preview box measured in screen points."""
    width = page_width * SCREEN_DPI
    height = page_height * SCREEN_DPI
    scale = compute_scale_factor((max_width, max_height), (width, height))
    return PreviewScale(scale=scale, width=width * scale, height=height * scale)
