"""Card addressing: how many cards exist and which card sits at an index.

These functions are deliberately *framework-free*: they accept plain model
objects (PageDescriptor, Grid, LayoutMode) and numbers; no Qt classes are
imported here.  They never raise for a bad index: anything that cannot be
addressed comes back as the ``UNKNOWN_CARD`` sentinel.

Numbering rules by mode
-----------------------
* **Simplex** – every card is independent, ``logical_id = card_index + 1``.
* **Duplex** – front pages are numbered sequentially; a back page maps onto
  its corresponding front page through the flip-edge mirror, so the two
  sides of one physical card share a ``logical_id``.
* **Gutter-fold** – each page is split into a front half and a back half;
  the back half is mirrored across the gutter.

Face overrides are *not* applied by :func:`identify`; use
:func:`resolve_identity` for the override-aware answer.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

from cardslicer.models.extraction_settings import ExtractionSettings, Grid, OverrideEntry, SkipEntry
from cardslicer.models.layout_mode import FaceType, FlipEdge, LayoutMode
from cardslicer.models.page import PageDescriptor, active_pages
from cardslicer.utils.geometry import mirror_across_gutter, mirror_column, mirror_row

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CardIdentity:
    face: FaceType
    logical_id: int

    @property
    def is_known(self) -> bool:
        return self.face is not FaceType.UNKNOWN

    @property
    def label(self) -> str:
        return f"{self.face.label} {self.logical_id}"


UNKNOWN_CARD = CardIdentity(FaceType.UNKNOWN, 0)


@dataclass(frozen=True)
class CardLocation:
    card_index: int
    page_index: int
    card_on_page: int
    row: int
    column: int


def locate(card_index: int, grid: Grid) -> CardLocation:
    cards_per_page = grid.cards_per_page
    page_index, card_on_page = divmod(card_index, cards_per_page)
    row, column = grid.position(card_on_page)
    return CardLocation(card_index, page_index, card_on_page, row, column)


# ---------------------------------------------------------------------------
# Counting
# ---------------------------------------------------------------------------

def effective_face(page: PageDescriptor) -> FaceType:
    """Declared face of a page; undeclared pages count as fronts."""
    return page.face_type or FaceType.FRONT


def _pages_of_face(pages: Sequence[PageDescriptor], face: FaceType) -> int:
    return sum(1 for p in pages if effective_face(p) is face)


def _ordinal_of_face(pages: Sequence[PageDescriptor], page_index: int, face: FaceType) -> int:
    """How many pages of *face* come before *page_index* (0-based ordinal)."""
    return sum(1 for p in pages[:page_index] if effective_face(p) is face)


def total_card_count(mode: LayoutMode, active_pages: Sequence[PageDescriptor], cards_per_page: int) -> int:
    """Unique cards in the deck.

    Duplex back pages are the other side of front cards and add nothing.
    A duplex page with no declared face counts as a front here, unlike a
    count of declared fronts only, so the total matches what :func:`identify`
    numbers.
    """
    if cards_per_page <= 0:
        return 0
    if mode.is_duplex:
        return _pages_of_face(active_pages, FaceType.FRONT) * cards_per_page
    return len(active_pages) * cards_per_page


def effective_card_count(
    mode: LayoutMode,
    active_pages: Sequence[PageDescriptor],
    cards_per_page: int,
    skipped: Sequence[SkipEntry] = (),
) -> int:
    return max(0, total_card_count(mode, active_pages, cards_per_page) - len(skipped))


def addressable_card_count(mode: LayoutMode, active_pages: Sequence[PageDescriptor], cards_per_page: int) -> int:
    """Physical cells to walk when enumerating cards (backs included)."""
    if mode.is_duplex or mode.is_gutter_fold:
        return len(active_pages) * max(cards_per_page, 0)
    return total_card_count(mode, active_pages, cards_per_page)


# ---------------------------------------------------------------------------
# Duplex flip handling
# ---------------------------------------------------------------------------

def should_flip_rows(
    flip_edge: FlipEdge,
    page_width: Optional[float] = None,
    page_height: Optional[float] = None,
) -> bool:
    """True when the back sheet is mirrored top-to-bottom, False for left-to-right."""
    if page_width and page_height:
        if page_height > page_width:
            return flip_edge is FlipEdge.SHORT
        return flip_edge is FlipEdge.LONG
    logger.warning(
        "Page dimensions unavailable for duplex flip; falling back to flip_rows=%s for %s edge",
        flip_edge is FlipEdge.LONG, flip_edge.value,
    )
    return flip_edge is FlipEdge.LONG


def flip_cell(card_on_page: int, grid: Grid, flip_rows: bool) -> int:
    row, column = grid.position(card_on_page)
    if flip_rows:
        return grid.index(mirror_row(row, grid.rows), column)
    return grid.index(row, mirror_column(column, grid.columns))


def _duplex_identity(
    face: FaceType,
    loc: CardLocation,
    pages: Sequence[PageDescriptor],
    grid: Grid,
    mode: LayoutMode,
    cards_per_page: int,
    page_width: Optional[float],
    page_height: Optional[float],
) -> CardIdentity:
    if face is FaceType.FRONT:
        ordinal = _ordinal_of_face(pages, loc.page_index, FaceType.FRONT)
        return CardIdentity(FaceType.FRONT, ordinal * cards_per_page + loc.card_on_page + 1)

    back_ordinal = _ordinal_of_face(pages, loc.page_index, FaceType.BACK)
    total_front = _pages_of_face(pages, FaceType.FRONT)
    total_back = _pages_of_face(pages, FaceType.BACK)

    if total_back == 1 and total_front > 1:
        # one shared back sheet tiled across every front sheet
        target = loc.card_on_page % (total_front * cards_per_page)
        front_page, target_on_page = divmod(target, cards_per_page)
        flip_rows = should_flip_rows(mode.flip_edge, page_width, page_height)
        if flip_cell(target_on_page, grid, flip_rows) == loc.card_on_page:
            return CardIdentity(FaceType.BACK, front_page * cards_per_page + target_on_page + 1)
        return CardIdentity(FaceType.BACK, loc.card_on_page + 1)

    if total_front == 0:
        return CardIdentity(FaceType.BACK, back_ordinal * cards_per_page + loc.card_on_page + 1)

    front_page = (back_ordinal * total_front) // max(total_back, 1)
    flip_rows = should_flip_rows(mode.flip_edge, page_width, page_height)
    logical_cell = flip_cell(loc.card_on_page, grid, flip_rows)
    return CardIdentity(FaceType.BACK, front_page * cards_per_page + logical_cell + 1)


def _gutter_fold_identity(loc: CardLocation, grid: Grid, mode: LayoutMode) -> CardIdentity:
    vertical = mode.is_vertical_fold
    axis = grid.columns if vertical else grid.rows
    half = axis // 2
    position = loc.column if vertical else loc.row

    if axis % 2 and position == half:
        # middle cell of an odd split axis has no partner across the gutter
        return UNKNOWN_CARD

    cards_per_half = grid.rows * half if vertical else half * grid.columns
    page_offset = loc.page_index * cards_per_half

    if position < half:
        face, mirrored = FaceType.FRONT, position
    else:
        # back half starts after the (possible) unpaired middle cell
        face = FaceType.BACK
        mirrored = mirror_across_gutter(position - (axis - 2 * half), half)

    if vertical:
        in_section = loc.row * half + mirrored
    else:
        in_section = mirrored * grid.columns + loc.column
    return CardIdentity(face, page_offset + in_section + 1)


def identify(
    card_index: int,
    active_pages: Sequence[PageDescriptor],
    grid: Grid,
    mode: LayoutMode,
    cards_per_page: int,
    page_width: Optional[float] = None,
    page_height: Optional[float] = None,
) -> CardIdentity:
    """Face and logical id of the card at *card_index*."""
    if not active_pages or cards_per_page <= 0 or card_index < 0:
        return UNKNOWN_CARD
    loc = locate(card_index, grid)
    if loc.page_index >= len(active_pages):
        return UNKNOWN_CARD

    page = active_pages[loc.page_index]
    if mode.is_duplex:
        return _duplex_identity(
            effective_face(page), loc, active_pages, grid, mode, cards_per_page, page_width, page_height
        )
    if mode.is_gutter_fold:
        return _gutter_fold_identity(loc, grid, mode)
    return CardIdentity(effective_face(page), card_index + 1)


# ---------------------------------------------------------------------------
# Override-aware identity and enumeration
# ---------------------------------------------------------------------------

def find_override(
    overrides: Iterable[OverrideEntry], page_index: int, row: int, column: int
) -> Optional[OverrideEntry]:
    return next((o for o in overrides if o.at(page_index, row, column)), None)


def page_dimensions_for(
    page: Optional[PageDescriptor], settings: ExtractionSettings
) -> Tuple[Optional[float], Optional[float]]:
    """Dimensions used for the duplex flip axis: explicit settings first, then the page."""
    if settings.page_dimensions:
        return settings.page_dimensions
    if page is not None and page.width > 0 and page.height > 0:
        return page.width, page.height
    return None, None


def resolve_identity(
    card_index: int,
    active_pages: Sequence[PageDescriptor],
    settings: ExtractionSettings,
    mode: LayoutMode,
    page_width: Optional[float] = None,
    page_height: Optional[float] = None,
) -> CardIdentity:
    """:func:`identify` with the cell's manual face override applied on top."""
    grid = settings.grid
    cards_per_page = grid.cards_per_page
    if page_width is None and page_height is None and 0 <= card_index and cards_per_page > 0:
        page_index = card_index // cards_per_page
        page = active_pages[page_index] if page_index < len(active_pages) else None
        page_width, page_height = page_dimensions_for(page, settings)

    identity = identify(card_index, active_pages, grid, mode, cards_per_page, page_width, page_height)
    if not identity.is_known or not settings.overrides:
        return identity

    loc = locate(card_index, grid)
    override = find_override(settings.overrides, loc.page_index, loc.row, loc.column)
    if override is None or override.face is identity.face:
        return identity
    if mode.is_duplex:
        return _duplex_identity(
            override.face, loc, active_pages, grid, mode, cards_per_page, page_width, page_height
        )
    return CardIdentity(override.face, identity.logical_id)


def iter_identities(
    active_pages: Sequence[PageDescriptor],
    settings: ExtractionSettings,
    mode: LayoutMode,
):
    """Yield (CardLocation, CardIdentity) for every addressable cell."""
    grid = settings.grid
    for card_index in range(addressable_card_count(mode, active_pages, grid.cards_per_page)):
        yield locate(card_index, grid), resolve_identity(card_index, active_pages, settings, mode)


def _is_skipped(skipped: Sequence[SkipEntry], loc: CardLocation, face: FaceType) -> bool:
    return any(s.matches(loc.page_index, loc.row, loc.column, face) for s in skipped)


def available_card_ids(
    face: FaceType,
    active_pages: Sequence[PageDescriptor],
    settings: ExtractionSettings,
    mode: LayoutMode,
) -> List[int]:
    """Sorted unique logical ids present for *face*, excluding skipped cells."""
    ids = set()
    for loc, identity in iter_identities(active_pages, settings, mode):
        if identity.face is face and not _is_skipped(settings.skipped, loc, face):
            ids.add(identity.logical_id)
    return sorted(ids)


def count_cards_by_type(
    face: FaceType,
    active_pages: Sequence[PageDescriptor],
    settings: ExtractionSettings,
    mode: LayoutMode,
) -> int:
    return sum(1 for _loc, identity in iter_identities(active_pages, settings, mode) if identity.face is face)


def card_index_for_id(
    face: FaceType,
    logical_id: int,
    active_pages: Sequence[PageDescriptor],
    settings: ExtractionSettings,
    mode: LayoutMode,
) -> Optional[int]:
    """First non-skipped card index showing *face* of *logical_id*."""
    for loc, identity in iter_identities(active_pages, settings, mode):
        if identity.face is face and identity.logical_id == logical_id:
            if not _is_skipped(settings.skipped, loc, face):
                return loc.card_index
    return None


def card_numbers_for_pages(
    pages: Sequence[PageDescriptor],
    mode: LayoutMode,
    grid: Grid,
) -> Dict[int, List[int]]:
    """Logical ids shown on each page, keyed by display index (skipped pages get [])."""
    active = active_pages(pages)
    numbers: Dict[int, List[int]] = {}
    cards_per_page = grid.cards_per_page
    active_index = 0
    for display_index, page in enumerate(pages):
        if page.skip or page.removed:
            numbers[display_index] = []
            continue
        width, height = (page.width, page.height) if page.width > 0 and page.height > 0 else (None, None)
        numbers[display_index] = [
            identify(active_index * cards_per_page + cell, active, grid, mode, cards_per_page, width, height).logical_id
            for cell in range(cards_per_page)
        ]
        active_index += 1
    return numbers


def rotation_for_face(settings: ExtractionSettings, face: FaceType) -> int:
    return settings.rotation.for_face(face)
