"""Cut single cards out of rendered page surfaces.

A surface is a ``QImage`` rendered at ``EXTRACTION_DPI``, so crop margins,
gutter width and card crop (all stored in pixels at that DPI) apply to it
directly whether the page came from a PDF or a raster image.

Pipeline for one card index::

    locate -> page surface -> source rectangle -> card crop -> rotation -> PNG check
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional, Protocol

from PySide6.QtCore import QBuffer, QByteArray, QIODevice
from PySide6.QtGui import QImage

from cardslicer.config import MAX_OUTPUT_BYTES, MIN_OUTPUT_BYTES
from cardslicer.errors import ExtractionError, OutputValidationError
from cardslicer.models.extraction_settings import CropMargins, ExtractionSettings
from cardslicer.models.layout_mode import LayoutMode
from cardslicer.models.page import PageDescriptor, active_pages
from cardslicer.services.addressing import CardIdentity, locate, resolve_identity, rotation_for_face
from cardslicer.services.settings_resolver import EffectiveSettings
from cardslicer.utils.geometry import CropRect, clamp_rect, crop_image, rotate_image

logger = logging.getLogger(__name__)


class SurfaceProvider(Protocol):
    def surface(self, page: PageDescriptor) -> QImage:
        """Rendered page at the extraction DPI. Raises RenderError on failure."""


@dataclass(frozen=True)
class ExtractedCard:
    card_index: int
    page_index: int
    card_on_page: int
    identity: CardIdentity
    image: QImage
    png: bytes

    @property
    def filename(self) -> str:
        return f"{self.identity.face.value}_{self.identity.logical_id}.png"


# ---- Rectangle math ----

def card_source_rect(
    card_on_page: int,
    surface_width: int,
    surface_height: int,
    settings: ExtractionSettings,
    mode: LayoutMode,
) -> Optional[CropRect]:
    """Pixel rectangle of one grid cell, or None when the crop leaves no page."""
    crop = settings.crop
    grid = settings.grid
    cropped_w = surface_width - crop.left - crop.right
    cropped_h = surface_height - crop.top - crop.bottom
    if cropped_w <= 0 or cropped_h <= 0:
        return None

    row, column = grid.position(card_on_page)
    gutter = settings.gutter_width

    if mode.is_gutter_fold and gutter > 0:
        if mode.is_vertical_fold:
            half_count = grid.columns // 2
            half_span = (cropped_w - gutter) / 2
            card_w = half_span / half_count
            card_h = cropped_h / grid.rows
            if column < half_count:
                x = crop.left + column * card_w
            else:
                x = crop.left + half_span + gutter + (column - half_count) * card_w
            y = crop.top + row * card_h
        else:
            half_count = grid.rows // 2
            half_span = (cropped_h - gutter) / 2
            card_w = cropped_w / grid.columns
            card_h = half_span / half_count
            x = crop.left + column * card_w
            if row < half_count:
                y = crop.top + row * card_h
            else:
                y = crop.top + half_span + gutter + (row - half_count) * card_h
    else:
        card_w = cropped_w / grid.columns
        card_h = cropped_h / grid.rows
        x = crop.left + column * card_w
        y = crop.top + row * card_h

    return clamp_rect(x, y, card_w, card_h, surface_width, surface_height)


def apply_card_crop(image: QImage, card_crop: CropMargins) -> QImage:
    """Trim the extracted card; a crop that would leave nothing is ignored."""
    if card_crop.is_empty:
        return image
    width = int(image.width() - card_crop.left - card_crop.right)
    height = int(image.height() - card_crop.top - card_crop.bottom)
    if width <= 0 or height <= 0:
        logger.debug("card crop %s larger than card %dx%d, skipped",
                     card_crop.to_dict(), image.width(), image.height())
        return image
    return crop_image(image, CropRect(int(card_crop.left), int(card_crop.top), width, height))


# ---- Output ----

def encode_png(image: QImage) -> bytes:
    data = QByteArray()
    buffer = QBuffer(data)
    buffer.open(QIODevice.WriteOnly)
    image.save(buffer, "PNG")
    buffer.close()
    return bytes(data)


def validate_output(png: bytes) -> Optional[str]:
    """Reason the encoded card is unusable, or None."""
    size = len(png)
    if size < MIN_OUTPUT_BYTES:
        return f"encoded card is only {size} bytes"
    if size > MAX_OUTPUT_BYTES:
        return f"encoded card is {size} bytes, over the {MAX_OUTPUT_BYTES} byte limit"
    return None


# ---- Extraction ----

def extract_card_or_raise(
    card_index: int,
    surface_provider: SurfaceProvider,
    settings: EffectiveSettings,
) -> Optional[ExtractedCard]:
    """Extract one card.

    Returns None when the index addresses no card. Raises ExtractionError
    (with index/page/mode context) when the card exists but cannot be
    produced; RenderError from the provider passes through untouched.
    """
    extraction = settings.extraction
    mode = settings.mode
    pages = active_pages(settings.pages)
    cards_per_page = extraction.cards_per_page
    if card_index < 0 or cards_per_page <= 0 or not pages:
        return None
    loc = locate(card_index, extraction.grid)
    if loc.page_index >= len(pages):
        return None

    def fail(message, cls=ExtractionError):
        return cls(
            message,
            card_index=card_index,
            page_index=loc.page_index,
            card_on_page=loc.card_on_page,
            mode=mode.name,
        )

    surface = surface_provider.surface(pages[loc.page_index])
    if surface is None or surface.isNull():
        raise fail("page surface is empty")

    rect = card_source_rect(loc.card_on_page, surface.width(), surface.height(), extraction, mode)
    if rect is None:
        raise fail(f"crop margins leave no area on a {surface.width()}x{surface.height()} surface")
    logger.debug("card %d: page %d cell %d -> rect %s", card_index, loc.page_index, loc.card_on_page, rect.as_tuple())

    card = apply_card_crop(crop_image(surface, rect), extraction.card_crop)
    if card.isNull():
        raise fail(f"could not copy rectangle {rect.as_tuple()}")

    identity = resolve_identity(card_index, pages, extraction, mode)
    try:
        card = rotate_image(card, rotation_for_face(extraction, identity.face))
    except ValueError as exc:
        raise fail(str(exc)) from exc

    png = encode_png(card)
    problem = validate_output(png)
    if problem:
        raise fail(problem, OutputValidationError)

    return ExtractedCard(card_index, loc.page_index, loc.card_on_page, identity, card, png)


def extract_card(
    card_index: int,
    surface_provider: SurfaceProvider,
    settings: EffectiveSettings,
) -> Optional[QImage]:
    """Extracted card image, or None on any per-card failure (logged with context)."""
    try:
        extracted = extract_card_or_raise(card_index, surface_provider, settings)
    except ExtractionError as exc:
        logger.error("Card extraction failed: %s", exc)
        return None
    return extracted.image if extracted else None
