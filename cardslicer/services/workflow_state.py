from __future__ import annotations

import logging
from typing import List, Optional, Sequence

from PySide6.QtCore import QObject, Property, Signal
from PySide6.QtGui import QImage

from cardslicer.models.extraction_settings import CropMargins, ExtractionSettings, Grid, OutputSettings
from cardslicer.models.layout_mode import FaceType, LayoutMode
from cardslicer.models.page import PageDescriptor, active_pages
from cardslicer.services import addressing, skip_registry
from cardslicer.services.extraction import extract_card
from cardslicer.services.render_scheduler import RenderScheduler
from cardslicer.services.settings_resolver import (
    EffectiveSettings,
    default_grid,
    default_rotation,
    validate_settings,
)
from cardslicer.services.surface_provider import SurfaceCache

logger = logging.getLogger(__name__)


class WorkflowState(QObject):
    """Live settings for one session, re-validated on every change.

    UI collaborators listen to the signals; every setter hands back the new
    validated ExtractionSettings through ``extraction_changed``.
    """

    mode_changed = Signal(object)
    pages_changed = Signal(object)
    extraction_changed = Signal(object)
    output_changed = Signal(object)
    card_preview_ready = Signal(int, object)  # card index, QImage

    def __init__(self, mode: LayoutMode, pages: Sequence[PageDescriptor] = (),
                 extraction: Optional[ExtractionSettings] = None,
                 output: Optional[OutputSettings] = None,
                 provider=None, parent: Optional[QObject] = None):
        super().__init__(parent)
        self._mode = mode
        self._pages = tuple(pages)
        self._extraction = extraction or ExtractionSettings(grid=default_grid(mode), rotation=default_rotation(mode))
        self._output = output or OutputSettings()
        self._cache = SurfaceCache(provider) if provider is not None else None
        self.scheduler = RenderScheduler(parent=self)

    @classmethod
    def from_effective(cls, settings: EffectiveSettings, provider=None) -> "WorkflowState":
        return cls(settings.mode, settings.pages, settings.extraction, settings.output, provider)

    # ---- properties ----
    @Property(object)
    def mode(self) -> LayoutMode:
        return self._mode

    @mode.setter
    def mode(self, mode: LayoutMode) -> None:
        if mode == self._mode:
            return
        self._mode = mode
        # a new mode starts from its own grid and back rotation; skips and overrides are per-layout
        self._extraction = self._extraction.evolve(
            grid=default_grid(mode), rotation=default_rotation(mode), skipped=(), overrides=()
        )
        self.mode_changed.emit(mode)
        self.extraction_changed.emit(self._extraction)

    @Property(object)
    def pages(self):
        return self._pages

    @pages.setter
    def pages(self, pages: Sequence[PageDescriptor]) -> None:
        self._pages = tuple(pages)
        if self._cache is not None:
            self._cache.clear()
        self.pages_changed.emit(self._pages)

    @Property(object)
    def extraction(self) -> ExtractionSettings:
        return self._extraction

    @Property(object)
    def output(self) -> OutputSettings:
        return self._output

    @output.setter
    def output(self, output: OutputSettings) -> None:
        if output != self._output:
            self._output = output
            self.output_changed.emit(output)

    def effective(self) -> EffectiveSettings:
        return EffectiveSettings(self._mode, self._extraction, self._output, self._pages)

    @property
    def active_pages(self) -> List[PageDescriptor]:
        return active_pages(self._pages)

    # ---- extraction setters ----
    def _update(self, **changes) -> ExtractionSettings:
        updated = validate_settings(self._mode, self._extraction.evolve(**changes))
        if updated != self._extraction:
            self._extraction = updated
            self.extraction_changed.emit(updated)
        return updated

    def set_grid(self, rows: int, columns: int) -> ExtractionSettings:
        return self._update(grid=Grid(rows, columns))

    def set_crop(self, top=0, right=0, bottom=0, left=0) -> ExtractionSettings:
        return self._update(crop=CropMargins(top, right, bottom, left))

    def set_gutter_width(self, width: float) -> ExtractionSettings:
        return self._update(gutter_width=width)

    def toggle_skip(self, page_index: int, row: int, column: int,
                    face: Optional[FaceType] = None) -> ExtractionSettings:
        skipped = skip_registry.toggle_skip_with_pairing(
            self._extraction.skipped, page_index, row, column, face, self._extraction.grid, self._mode
        )
        return self._update(skipped=skipped)

    def skip_row(self, page_index: int, row: int, face: Optional[FaceType] = None) -> ExtractionSettings:
        skipped = skip_registry.skip_all_in_row_with_pairing(
            self._extraction.skipped, page_index, row, face, self._extraction.grid, self._mode
        )
        return self._update(skipped=skipped)

    def skip_column(self, page_index: int, column: int, face: Optional[FaceType] = None) -> ExtractionSettings:
        skipped = skip_registry.skip_all_in_column_with_pairing(
            self._extraction.skipped, page_index, column, face, self._extraction.grid, self._mode
        )
        return self._update(skipped=skipped)

    def clear_skips(self) -> ExtractionSettings:
        return self._update(skipped=skip_registry.clear_all_skips())

    def toggle_override(self, page_index: int, row: int, column: int) -> ExtractionSettings:
        overrides = skip_registry.toggle_override(self._extraction.overrides, page_index, row, column)
        return self._update(overrides=overrides)

    def clear_overrides(self) -> ExtractionSettings:
        return self._update(overrides=skip_registry.clear_all_overrides())

    # ---- queries ----
    def total_cards(self) -> int:
        return addressing.total_card_count(self._mode, self.active_pages, self._extraction.cards_per_page)

    def identity(self, card_index: int) -> addressing.CardIdentity:
        return addressing.resolve_identity(card_index, self.active_pages, self._extraction, self._mode)

    def available_ids(self, face: FaceType) -> List[int]:
        return addressing.available_card_ids(face, self.active_pages, self._extraction, self._mode)

    # ---- preview ----
    def preview_card(self, card_index: int) -> Optional[QImage]:
        """Extract one card for display; only the latest request is published.

        Raises InvalidConfigurationError when the crop margins or gutter do
        not fit the rendered page.
        """
        if self._cache is None:
            raise RuntimeError("WorkflowState has no surface provider")
        settings = self.effective()
        pages = self.active_pages

        def render():
            loc = addressing.locate(card_index, settings.grid)
            if 0 <= card_index and loc.page_index < len(pages):
                surface = self._cache.surface(pages[loc.page_index])
                validate_settings(settings.mode, settings.extraction, (surface.width(), surface.height()))
            return extract_card(card_index, self._cache, settings)

        image = self.scheduler.run(("card", card_index), render)
        if image is not None:
            self.card_preview_ready.emit(card_index, image)
        return image
