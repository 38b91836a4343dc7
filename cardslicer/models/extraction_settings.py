from __future__ import annotations

from dataclasses import dataclass, field, replace
from typing import Any, Dict, Optional, Tuple

from cardslicer.config import DEFAULT_CARD_SIZE_IN
from cardslicer.models.layout_mode import FaceType


@dataclass(frozen=True)
class Grid:
    rows: int
    columns: int

    @property
    def cards_per_page(self) -> int:
        return self.rows * self.columns

    def position(self, card_on_page: int) -> Tuple[int, int]:
        """(row, column) of a cell in row-major order."""
        return card_on_page // self.columns, card_on_page % self.columns

    def index(self, row: int, column: int) -> int:
        return row * self.columns + column

    def to_dict(self) -> dict:
        return {"rows": self.rows, "columns": self.columns}

    @classmethod
    def from_dict(cls, data: dict) -> "Grid":
        return cls(rows=int(data["rows"]), columns=int(data["columns"]))


@dataclass(frozen=True)
class CropMargins:
    """Whole-page crop in pixels at the extraction DPI."""
    top: float = 0
    right: float = 0
    bottom: float = 0
    left: float = 0

    @property
    def is_empty(self) -> bool:
        return not (self.top > 0 or self.right > 0 or self.bottom > 0 or self.left > 0)

    def to_dict(self) -> dict:
        return {"top": self.top, "right": self.right, "bottom": self.bottom, "left": self.left}

    @classmethod
    def from_dict(cls, data: Optional[dict]) -> "CropMargins":
        data = data or {}
        return cls(
            top=data.get("top", 0) or 0,
            right=data.get("right", 0) or 0,
            bottom=data.get("bottom", 0) or 0,
            left=data.get("left", 0) or 0,
        )


class CardCrop(CropMargins):
    """Secondary crop applied to a single extracted card."""


@dataclass(frozen=True)
class ImageRotation:
    front: int = 0
    back: int = 0

    def for_face(self, face: FaceType) -> int:
        if face is FaceType.BACK:
            return self.back
        if face is FaceType.FRONT:
            return self.front
        return 0

    def to_dict(self) -> dict:
        return {"front": self.front, "back": self.back}

    @classmethod
    def from_dict(cls, data) -> "ImageRotation":
        # older documents store a single angle for both faces
        if isinstance(data, (int, float)):
            return cls(front=int(data), back=int(data))
        data = data or {}
        return cls(front=int(data.get("front", 0) or 0), back=int(data.get("back", 0) or 0))


@dataclass(frozen=True)
class SkipEntry:
    """A skipped cell. ``face`` of None matches either face at that cell."""
    page_index: int
    row: int
    column: int
    face: Optional[FaceType] = None

    def matches(self, page_index: int, row: int, column: int, face: Optional[FaceType] = None) -> bool:
        return (
            self.page_index == page_index
            and self.row == row
            and self.column == column
            and (face is None or self.face is None or self.face is face)
        )

    def to_dict(self) -> dict:
        data = {"pageIndex": self.page_index, "gridRow": self.row, "gridColumn": self.column}
        if self.face is not None:
            data["cardType"] = self.face.value
        return data

    @classmethod
    def from_dict(cls, data: dict) -> "SkipEntry":
        return cls(
            page_index=int(data["pageIndex"]),
            row=int(data["gridRow"]),
            column=int(data["gridColumn"]),
            face=FaceType.parse(data.get("cardType")),
        )


@dataclass(frozen=True)
class OverrideEntry:
    page_index: int
    row: int
    column: int
    face: FaceType

    def at(self, page_index: int, row: int, column: int) -> bool:
        return self.page_index == page_index and self.row == row and self.column == column

    def to_dict(self) -> dict:
        return {
            "pageIndex": self.page_index,
            "gridRow": self.row,
            "gridColumn": self.column,
            "cardType": self.face.value,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "OverrideEntry":
        return cls(
            page_index=int(data["pageIndex"]),
            row=int(data["gridRow"]),
            column=int(data["gridColumn"]),
            face=FaceType.parse(data["cardType"]),
        )


@dataclass(frozen=True)
class ExtractionSettings:
    grid: Grid
    crop: CropMargins = field(default_factory=CropMargins)
    gutter_width: float = 0
    card_crop: CardCrop = field(default_factory=CardCrop)
    rotation: ImageRotation = field(default_factory=ImageRotation)
    skipped: Tuple[SkipEntry, ...] = ()
    overrides: Tuple[OverrideEntry, ...] = ()
    page_dimensions: Optional[Tuple[float, float]] = None

    @property
    def cards_per_page(self) -> int:
        return self.grid.cards_per_page

    def evolve(self, **changes) -> "ExtractionSettings":
        return replace(self, **changes)

    # --- Serialization ---
    def to_dict(self) -> Dict[str, Any]:
        data = {
            "grid": self.grid.to_dict(),
            "crop": self.crop.to_dict(),
            "gutterWidth": self.gutter_width,
            "cardCrop": self.card_crop.to_dict(),
            "imageRotation": self.rotation.to_dict(),
            "skippedCards": [s.to_dict() for s in self.skipped],
            "cardTypeOverrides": [o.to_dict() for o in self.overrides],
        }
        if self.page_dimensions is not None:
            w, h = self.page_dimensions
            data["pageDimensions"] = {"width": w, "height": h}
        return data

    @classmethod
    def from_dict(cls, data: dict) -> "ExtractionSettings":
        dims = data.get("pageDimensions")
        return cls(
            grid=Grid.from_dict(data["grid"]),
            crop=CropMargins.from_dict(data.get("crop")),
            gutter_width=data.get("gutterWidth", 0) or 0,
            card_crop=CardCrop.from_dict(data.get("cardCrop")),
            rotation=ImageRotation.from_dict(data.get("imageRotation")),
            skipped=tuple(SkipEntry.from_dict(s) for s in data.get("skippedCards", [])),
            overrides=tuple(OverrideEntry.from_dict(o) for o in data.get("cardTypeOverrides", [])),
            page_dimensions=(float(dims["width"]), float(dims["height"])) if dims else None,
        )


@dataclass(frozen=True)
class OutputSettings:
    """Output card/page sizing. All lengths are inches."""
    card_width: float = DEFAULT_CARD_SIZE_IN[0]
    card_height: float = DEFAULT_CARD_SIZE_IN[1]
    bleed: float = 0.0
    scale_percent: float = 100.0
    sizing_mode: str = "actual-size"
    page_width: float = 3.5
    page_height: float = 3.5
    offset_x: float = 0.0
    offset_y: float = 0.0
    rotation: ImageRotation = field(default_factory=ImageRotation)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "cardSize": {"widthInches": self.card_width, "heightInches": self.card_height},
            "bleedMarginInches": self.bleed,
            "cardScalePercent": self.scale_percent,
            "cardImageSizingMode": self.sizing_mode,
            "pageSize": {"width": self.page_width, "height": self.page_height},
            "offset": {"horizontal": self.offset_x, "vertical": self.offset_y},
            "rotation": self.rotation.to_dict(),
        }

    @classmethod
    def from_dict(cls, data: dict) -> "OutputSettings":
        card = data.get("cardSize") or {}
        page = data.get("pageSize") or {}
        offset = data.get("offset") or {}
        return cls(
            card_width=card.get("widthInches") or DEFAULT_CARD_SIZE_IN[0],
            card_height=card.get("heightInches") or DEFAULT_CARD_SIZE_IN[1],
            bleed=data.get("bleedMarginInches") or 0.0,
            scale_percent=data.get("cardScalePercent") or 100.0,
            sizing_mode=data.get("cardImageSizingMode", "actual-size"),
            page_width=page.get("width", 3.5),
            page_height=page.get("height", 3.5),
            offset_x=offset.get("horizontal", 0.0) or 0.0,
            offset_y=offset.get("vertical", 0.0) or 0.0,
            rotation=ImageRotation.from_dict(data.get("rotation")),
        )
