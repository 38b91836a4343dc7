"""Resolve partial user settings into one validated configuration.

Every caller that is about to address or extract cards goes through
:func:`resolve_settings` first.  It fills in mode-aware defaults (grid,
back rotation), validates the document against the JSON schemas and then
checks the cross-field rules no schema can express (even split axis for
gutter-fold, gutter narrower than the cropped span).  Downstream code never
re-checks these rules; it trusts the :class:`EffectiveSettings` it is handed.
"""
from __future__ import annotations

import copy
import json
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional, Tuple

from cardslicer.config import DEFAULT_GRIDS, VALID_ROTATIONS
from cardslicer.errors import InvalidConfigurationError
from cardslicer.models.extraction_settings import (
    ExtractionSettings,
    Grid,
    ImageRotation,
    OutputSettings,
)
from cardslicer.models.layout_mode import FlipEdge, GutterOrientation, LayoutMode
from cardslicer.models.page import PageDescriptor
from cardslicer.utils.validator import SchemaValidator

logger = logging.getLogger(__name__)

_validator: Optional[SchemaValidator] = None


def _schema_validator() -> SchemaValidator:
    global _validator
    if _validator is None:
        _validator = SchemaValidator()
    return _validator


@dataclass(frozen=True)
class EffectiveSettings:
    mode: LayoutMode
    extraction: ExtractionSettings
    output: OutputSettings = field(default_factory=OutputSettings)
    pages: Tuple[PageDescriptor, ...] = ()

    @property
    def grid(self) -> Grid:
        return self.extraction.grid

    @property
    def cards_per_page(self) -> int:
        return self.extraction.cards_per_page


# ---------------------------------------------------------------------------
# Mode-aware defaults
# ---------------------------------------------------------------------------

def default_grid(mode: LayoutMode) -> Grid:
    entry = DEFAULT_GRIDS[mode.kind.value]
    if mode.is_gutter_fold:
        entry = entry[mode.orientation.value]
    rows, columns = entry
    return Grid(rows=rows, columns=columns)


def default_rotation(mode: LayoutMode) -> ImageRotation:
    """Front is never rotated; backs printed upside down get 180."""
    back = 0
    if mode.is_duplex and mode.flip_edge is FlipEdge.LONG:
        back = 180
    elif mode.is_gutter_fold and mode.orientation is GutterOrientation.HORIZONTAL:
        back = 180
    return ImageRotation(front=0, back=back)


def default_extraction_dict(mode: LayoutMode) -> dict:
    return {
        "grid": default_grid(mode).to_dict(),
        "crop": {"top": 0, "right": 0, "bottom": 0, "left": 0},
        "gutterWidth": 0,
        "cardCrop": {"top": 0, "right": 0, "bottom": 0, "left": 0},
        "imageRotation": default_rotation(mode).to_dict(),
        "skippedCards": [],
        "cardTypeOverrides": [],
    }


# ---------------------------------------------------------------------------
# Validation
# ---------------------------------------------------------------------------

def split_axis_count(mode: LayoutMode, grid: Grid) -> int:
    """Number of cells along the axis the gutter splits (0 when not gutter-fold)."""
    if not mode.is_gutter_fold:
        return 0
    return grid.columns if mode.is_vertical_fold else grid.rows


def validate_settings(
    mode: LayoutMode,
    settings: ExtractionSettings,
    surface_size: Optional[Tuple[int, int]] = None,
) -> ExtractionSettings:
    """Raise InvalidConfigurationError for settings addressing must never see.

    ``surface_size`` (pixels at the extraction DPI) enables the checks that
    depend on the rendered page: the cropped extent must stay positive and
    the gutter must be narrower than the cropped span.
    """
    grid = settings.grid
    if grid.rows < 1 or grid.columns < 1:
        raise InvalidConfigurationError(
            f"Grid must have at least one row and one column, got {grid.rows}x{grid.columns}"
        )

    for name, margins in (("crop", settings.crop), ("cardCrop", settings.card_crop)):
        for side in ("top", "right", "bottom", "left"):
            if getattr(margins, side) < 0:
                raise InvalidConfigurationError(f"{name}.{side} must not be negative")

    for face in ("front", "back"):
        angle = getattr(settings.rotation, face)
        if angle not in VALID_ROTATIONS:
            raise InvalidConfigurationError(f"imageRotation.{face} must be one of {VALID_ROTATIONS}, got {angle}")

    if settings.gutter_width < 0:
        raise InvalidConfigurationError("gutterWidth must not be negative")

    if mode.is_gutter_fold:
        axis = split_axis_count(mode, grid)
        if axis % 2:
            which = "columns" if mode.is_vertical_fold else "rows"
            raise InvalidConfigurationError(
                f"Gutter-fold {mode.orientation.value} needs an even number of {which}, got {axis}"
            )
    elif settings.gutter_width:
        logger.debug("gutterWidth %s ignored outside gutter-fold mode", settings.gutter_width)

    if surface_size is not None:
        width, height = surface_size
        cropped_w = width - settings.crop.left - settings.crop.right
        cropped_h = height - settings.crop.top - settings.crop.bottom
        if cropped_w <= 0 or cropped_h <= 0:
            raise InvalidConfigurationError(
                f"Crop margins leave no page area ({cropped_w} x {cropped_h} px)"
            )
        if mode.is_gutter_fold and settings.gutter_width > 0:
            span = cropped_w if mode.is_vertical_fold else cropped_h
            if settings.gutter_width >= span:
                raise InvalidConfigurationError(
                    f"gutterWidth {settings.gutter_width} must be less than the cropped span {span}"
                )
    return settings


def _check_schema(data: dict, kind: str) -> None:
    ok, message = _schema_validator().validate(data, kind)
    if not ok:
        raise InvalidConfigurationError(message)


# ---------------------------------------------------------------------------
# Resolution
# ---------------------------------------------------------------------------

def resolve_extraction(mode: LayoutMode, data: Optional[dict] = None) -> ExtractionSettings:
    """Merge *data* over the mode defaults, validate, and build the settings."""
    merged = default_extraction_dict(mode)
    for key, value in (data or {}).items():
        if value is None:
            continue
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = {**merged[key], **value}
        else:
            merged[key] = copy.deepcopy(value)
    _check_schema(merged, "extraction")
    return validate_settings(mode, ExtractionSettings.from_dict(merged))


def resolve_output(data: Optional[dict] = None) -> OutputSettings:
    data = data or {}
    _check_schema(data, "output")
    return OutputSettings.from_dict(data)


def resolve_settings(
    mode: LayoutMode | dict,
    extraction: Optional[dict] = None,
    output: Optional[dict] = None,
    pages: Optional[List[PageDescriptor]] = None,
) -> EffectiveSettings:
    if isinstance(mode, dict):
        _check_schema(mode, "mode")
        mode = LayoutMode.from_dict(mode)
    return EffectiveSettings(
        mode=mode,
        extraction=resolve_extraction(mode, extraction),
        output=resolve_output(output),
        pages=tuple(pages or ()),
    )


def load_settings_document(path: Path | str) -> EffectiveSettings:
    """Read a saved settings JSON (pdfMode / extractionSettings / outputSettings / pageSettings)."""
    try:
        data = json.loads(Path(path).read_text(encoding="utf-8"))
    except json.JSONDecodeError as exc:
        raise InvalidConfigurationError(f"{path} is not valid JSON: {exc}") from exc
    _check_schema(data, "document")
    pages = [
        PageDescriptor.from_dict({"index": i, **page})
        for i, page in enumerate(data.get("pageSettings", []))
    ]
    return resolve_settings(
        data.get("pdfMode", {"type": "duplex", "flipEdge": "short"}),
        data.get("extractionSettings"),
        data.get("outputSettings"),
        pages,
    )
