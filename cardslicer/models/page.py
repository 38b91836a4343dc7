from dataclasses import dataclass, replace
from typing import Any, Dict, List, Optional, Sequence

from cardslicer.models.layout_mode import FaceType


@dataclass(frozen=True)
class PageDescriptor:
    """One imported sheet page, in display/print order.

    ``width``/``height`` are physical units (PDF points for PDF sources,
    pixels for raster sources); only their ratio matters to the core.
    """
    index: int
    face_type: Optional[FaceType] = None
    skip: bool = False
    width: float = 0.0
    height: float = 0.0
    removed: bool = False
    source_file: Optional[str] = None
    source_page: Optional[int] = None

    @property
    def is_portrait(self) -> bool:
        return self.height > self.width

    def with_face(self, face: Optional[FaceType]) -> "PageDescriptor":
        return replace(self, face_type=face)

    def to_dict(self) -> Dict[str, Any]:
        data = {
            "index": self.index,
            "type": self.face_type.value if self.face_type else None,
            "skip": self.skip,
            "width": self.width,
            "height": self.height,
        }
        if self.removed:
            data["removed"] = True
        if self.source_file is not None:
            data["sourceFile"] = self.source_file
        if self.source_page is not None:
            data["originalPageIndex"] = self.source_page
        return data

    @classmethod
    def from_dict(cls, data: dict) -> "PageDescriptor":
        return cls(
            index=int(data.get("index", 0)),
            face_type=FaceType.parse(data.get("type")),
            skip=bool(data.get("skip", False)),
            width=float(data.get("width", 0.0)),
            height=float(data.get("height", 0.0)),
            removed=bool(data.get("removed", False)),
            source_file=data.get("sourceFile"),
            source_page=data.get("originalPageIndex"),
        )


def active_pages(pages: Sequence[PageDescriptor]) -> List[PageDescriptor]:
    """Pages that take part in addressing: neither skipped nor removed."""
    return [p for p in pages if not p.skip and not p.removed]


def actual_page_number(page_index: int, pages: Sequence[PageDescriptor]) -> int:
    """Map an index into the active pages back to its 1-based position in *pages*.

    Returns 0 when *page_index* does not exist among the active pages.
    """
    seen = -1
    for position, page in enumerate(pages):
        if page.skip or page.removed:
            continue
        seen += 1
        if seen == page_index:
            return position + 1
    return 0


def alternating_pages(count: int, width: float = 612.0, height: float = 792.0) -> List[PageDescriptor]:
    """Front, back, front, back... the common duplex import default."""
    return [
        PageDescriptor(
            index=i,
            face_type=FaceType.FRONT if i % 2 == 0 else FaceType.BACK,
            width=width,
            height=height,
        )
        for i in range(count)
    ]
