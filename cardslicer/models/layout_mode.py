from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Optional

from cardslicer.errors import InvalidConfigurationError


# Face enumerations
class FaceType(Enum):
    FRONT = "front"
    BACK = "back"
    UNKNOWN = "unknown"

    @property
    def label(self) -> str:
        return self.value.capitalize()

    @classmethod
    def parse(cls, value) -> Optional["FaceType"]:
        """Accept a FaceType, 'front'/'Front'/'back', or None."""
        if value is None or isinstance(value, cls):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError as exc:
            raise InvalidConfigurationError(f"Unknown face type {value!r}") from exc


class FlipEdge(Enum):
    SHORT = "short"
    LONG = "long"


class GutterOrientation(Enum):
    VERTICAL = "vertical"
    HORIZONTAL = "horizontal"


class LayoutKind(Enum):
    SIMPLEX = "simplex"
    DUPLEX = "duplex"
    GUTTER_FOLD = "gutter-fold"


@dataclass(frozen=True)
class LayoutMode:
    """Closed tagged variant describing how cards sit on the printed sheets.

    Only the field belonging to ``kind`` is meaningful: ``flip_edge`` for
    duplex, ``orientation`` for gutter-fold. Use the constructors
    :meth:`simplex`, :meth:`duplex` and :meth:`gutter_fold` rather than
    building instances by hand.
    """

    kind: LayoutKind
    flip_edge: Optional[FlipEdge] = None
    orientation: Optional[GutterOrientation] = None

    # --- Constructors ---
    @classmethod
    def simplex(cls) -> "LayoutMode":
        return cls(LayoutKind.SIMPLEX)

    @classmethod
    def duplex(cls, flip_edge: FlipEdge | str = FlipEdge.SHORT) -> "LayoutMode":
        return cls(LayoutKind.DUPLEX, flip_edge=FlipEdge(flip_edge))

    @classmethod
    def gutter_fold(cls, orientation: GutterOrientation | str = GutterOrientation.VERTICAL) -> "LayoutMode":
        return cls(LayoutKind.GUTTER_FOLD, orientation=GutterOrientation(orientation))

    # --- Predicates ---
    @property
    def is_duplex(self) -> bool:
        return self.kind is LayoutKind.DUPLEX

    @property
    def is_gutter_fold(self) -> bool:
        return self.kind is LayoutKind.GUTTER_FOLD

    @property
    def is_vertical_fold(self) -> bool:
        return self.is_gutter_fold and self.orientation is GutterOrientation.VERTICAL

    @property
    def name(self) -> str:
        return self.kind.value

    # --- Serialization ---
    def to_dict(self) -> dict:
        data = {"type": self.kind.value}
        if self.is_duplex:
            data["flipEdge"] = self.flip_edge.value
        elif self.is_gutter_fold:
            data["orientation"] = self.orientation.value
        return data

    @classmethod
    def from_dict(cls, data: dict) -> "LayoutMode":
        kind = data.get("type", LayoutKind.SIMPLEX.value)
        try:
            kind = LayoutKind(kind)
        except ValueError as exc:
            raise InvalidConfigurationError(f"Unknown layout mode {kind!r}") from exc
        try:
            if kind is LayoutKind.DUPLEX:
                return cls.duplex(data.get("flipEdge", FlipEdge.SHORT.value))
            if kind is LayoutKind.GUTTER_FOLD:
                return cls.gutter_fold(data.get("orientation", GutterOrientation.VERTICAL.value))
        except ValueError as exc:
            raise InvalidConfigurationError(str(exc)) from exc
        return cls.simplex()
