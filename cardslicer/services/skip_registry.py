"""Skip flags and manual face overrides for grid cells.

Both registries are immutable tuples of entries; every operation returns a
new tuple so callers can drop the result straight into
``ExtractionSettings.evolve(skipped=...)`` / ``evolve(overrides=...)``.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, Optional, Tuple

from cardslicer.models.extraction_settings import Grid, OverrideEntry, SkipEntry
from cardslicer.models.layout_mode import FaceType, LayoutMode
from cardslicer.utils.geometry import mirror_across_gutter

Skips = Tuple[SkipEntry, ...]
Overrides = Tuple[OverrideEntry, ...]


@dataclass(frozen=True)
class PairedCell:
    page_index: int
    row: int
    column: int
    face: FaceType


# ---- Skips ----

def is_skipped(
    page_index: int,
    row: int,
    column: int,
    skipped: Iterable[SkipEntry],
    face: Optional[FaceType] = None,
) -> bool:
    return any(s.matches(page_index, row, column, face) for s in skipped)


def toggle_skip(
    skipped: Iterable[SkipEntry],
    page_index: int,
    row: int,
    column: int,
    face: Optional[FaceType] = None,
) -> Skips:
    """Remove the first matching entry, or add a new one when nothing matches."""
    entries = tuple(skipped)
    for i, entry in enumerate(entries):
        if entry.matches(page_index, row, column, face):
            return entries[:i] + entries[i + 1:]
    return entries + (SkipEntry(page_index, row, column, face),)


def _skip(entries: Skips, page_index: int, row: int, column: int, face: Optional[FaceType]) -> Skips:
    if is_skipped(page_index, row, column, entries, face):
        return entries
    return entries + (SkipEntry(page_index, row, column, face),)


def skip_all_in_row(
    skipped: Iterable[SkipEntry], page_index: int, row: int, columns: int,
    face: Optional[FaceType] = None,
) -> Skips:
    entries = tuple(skipped)
    for column in range(columns):
        entries = _skip(entries, page_index, row, column, face)
    return entries


def skip_all_in_column(
    skipped: Iterable[SkipEntry], page_index: int, column: int, rows: int,
    face: Optional[FaceType] = None,
) -> Skips:
    entries = tuple(skipped)
    for row in range(rows):
        entries = _skip(entries, page_index, row, column, face)
    return entries


def clear_all_skips() -> Skips:
    return ()


# ---- Gutter-fold pairing ----

def find_paired_cell(
    page_index: int, row: int, column: int, grid: Grid, mode: LayoutMode
) -> Optional[PairedCell]:
    """The cell across the gutter that holds the other side of the same card.

    None outside gutter-fold mode, and for the middle cell of an odd split
    axis, which has no partner.
    """
    if not mode.is_gutter_fold:
        return None
    vertical = mode.is_vertical_fold
    axis = grid.columns if vertical else grid.rows
    position = column if vertical else row
    half = axis // 2
    middle = axis - 2 * half  # 1 for an odd axis, else 0

    if middle and position == half:
        return None
    if position < half:
        partner = mirror_across_gutter(position, half) + middle
        face = FaceType.BACK
    else:
        partner = mirror_across_gutter(position - middle, half)
        face = FaceType.FRONT

    if vertical:
        return PairedCell(page_index, row, partner, face)
    return PairedCell(page_index, partner, column, face)


def toggle_skip_with_pairing(
    skipped: Iterable[SkipEntry],
    page_index: int,
    row: int,
    column: int,
    face: Optional[FaceType],
    grid: Grid,
    mode: LayoutMode,
) -> Skips:
    """Toggle one cell; in gutter-fold mode bring its paired cell to the same state."""
    entries = toggle_skip(skipped, page_index, row, column, face)
    pair = find_paired_cell(page_index, row, column, grid, mode)
    if pair is None:
        return entries

    now_skipped = is_skipped(page_index, row, column, entries, face)
    pair_skipped = is_skipped(pair.page_index, pair.row, pair.column, entries, pair.face)
    if now_skipped != pair_skipped:
        entries = toggle_skip(entries, pair.page_index, pair.row, pair.column, pair.face)
    return entries


def _skip_with_pair(entries: Skips, page_index, row, column, face, grid, mode) -> Skips:
    entries = _skip(entries, page_index, row, column, face)
    pair = find_paired_cell(page_index, row, column, grid, mode)
    if pair is not None:
        entries = _skip(entries, pair.page_index, pair.row, pair.column, pair.face)
    return entries


def skip_all_in_row_with_pairing(
    skipped: Iterable[SkipEntry], page_index: int, row: int, face: Optional[FaceType],
    grid: Grid, mode: LayoutMode,
) -> Skips:
    """Skip (never un-skip) every cell in a row together with its pairs."""
    entries = tuple(skipped)
    for column in range(grid.columns):
        entries = _skip_with_pair(entries, page_index, row, column, face, grid, mode)
    return entries


def skip_all_in_column_with_pairing(
    skipped: Iterable[SkipEntry], page_index: int, column: int, face: Optional[FaceType],
    grid: Grid, mode: LayoutMode,
) -> Skips:
    entries = tuple(skipped)
    for row in range(grid.rows):
        entries = _skip_with_pair(entries, page_index, row, column, face, grid, mode)
    return entries


# ---- Overrides ----

def get_override(
    page_index: int, row: int, column: int, overrides: Iterable[OverrideEntry]
) -> Optional[OverrideEntry]:
    return next((o for o in overrides if o.at(page_index, row, column)), None)


def set_override(
    overrides: Iterable[OverrideEntry], page_index: int, row: int, column: int, face: FaceType
) -> Overrides:
    face = FaceType.parse(face)
    if face not in (FaceType.FRONT, FaceType.BACK):
        raise ValueError(f"Override face must be front or back, got {face}")
    entry = OverrideEntry(page_index, row, column, face)
    entries = tuple(overrides)
    for i, existing in enumerate(entries):
        if existing.at(page_index, row, column):
            return entries[:i] + (entry,) + entries[i + 1:]
    return entries + (entry,)


def remove_override(overrides: Iterable[OverrideEntry], page_index: int, row: int, column: int) -> Overrides:
    return tuple(o for o in overrides if not o.at(page_index, row, column))


def toggle_override(overrides: Iterable[OverrideEntry], page_index: int, row: int, column: int) -> Overrides:
    """Cycle a cell through no override -> front -> back -> no override."""
    current = get_override(page_index, row, column, overrides)
    if current is None:
        return set_override(overrides, page_index, row, column, FaceType.FRONT)
    if current.face is FaceType.FRONT:
        return set_override(overrides, page_index, row, column, FaceType.BACK)
    return remove_override(overrides, page_index, row, column)


def override_status(
    page_index: int, row: int, column: int, overrides: Iterable[OverrideEntry]
) -> Tuple[bool, Optional[FaceType]]:
    current = get_override(page_index, row, column, overrides)
    return current is not None, (current.face if current else None)


def clear_all_overrides() -> Overrides:
    return ()
