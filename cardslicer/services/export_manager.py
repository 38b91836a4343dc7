# export_manager.py
from __future__ import annotations

import logging
from collections import OrderedDict
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional, Tuple

from cardslicer.errors import ExtractionError, RenderError
from cardslicer.models.page import active_pages
from cardslicer.services.addressing import CardIdentity, CardLocation, iter_identities
from cardslicer.services.extraction import ExtractedCard, extract_card_or_raise
from cardslicer.services.settings_resolver import EffectiveSettings, validate_settings
from cardslicer.services.skip_registry import is_skipped
from cardslicer.services.surface_provider import SurfaceCache

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CardFailure:
    card_index: int
    identity: CardIdentity
    message: str


@dataclass
class ExportReport:
    """Outcome of one export run.

    ``skipped`` counts cells the user skipped, ``unaddressed`` cells that hold
    no card (the middle of an odd gutter-fold axis) and ``duplicates`` cells
    whose identity was already taken by an earlier cell.
    """
    written: Dict[str, Path] = field(default_factory=dict)
    extracted: int = 0
    skipped: int = 0
    unaddressed: int = 0
    duplicates: int = 0
    failures: List[CardFailure] = field(default_factory=list)

    @property
    def failed_ids(self) -> List[str]:
        return [f.identity.label for f in self.failures]

    @property
    def ok(self) -> bool:
        return not self.failures

    def summary(self) -> str:
        text = f"{self.extracted} cards extracted, {self.skipped} skipped"
        if self.duplicates:
            text += f", {self.duplicates} duplicate ids dropped"
        if self.failures:
            text += f", {len(self.failures)} failed: {', '.join(self.failed_ids)}"
        return text


class ExportManager:
    """Extract every non-skipped card, one page at a time over a thread pool.

    A page is rendered once through the surface cache, its cards are cut in
    parallel from that surface, and the surface is dropped before the next
    page. A failing card (or page) is recorded and the run continues.
    """

    def __init__(self, provider, settings: EffectiveSettings, max_workers: int = 4):
        self.settings = settings
        self.cache = provider if isinstance(provider, SurfaceCache) else SurfaceCache(provider)
        self.max_workers = max(1, max_workers)

    def plan(self, report: Optional[ExportReport] = None) -> "OrderedDict[int, List[Tuple[CardLocation, CardIdentity]]]":
        """Cards to extract grouped by active page index, skips and duplicates removed.

        When *report* is given, the dropped cells are tallied on it: skipped
        cells, cells with no card identity, and repeated identities.
        """
        report = report if report is not None else ExportReport()
        pages = active_pages(self.settings.pages)
        extraction = self.settings.extraction
        planned: "OrderedDict[int, List[Tuple[CardLocation, CardIdentity]]]" = OrderedDict()
        seen = set()
        for loc, identity in iter_identities(pages, extraction, self.settings.mode):
            if not identity.is_known:
                report.unaddressed += 1
                continue
            if is_skipped(loc.page_index, loc.row, loc.column, extraction.skipped, identity.face):
                report.skipped += 1
                continue
            if identity in seen:
                logger.warning("%s appears again at card index %d; keeping the first", identity.label, loc.card_index)
                report.duplicates += 1
                continue
            seen.add(identity)
            planned.setdefault(loc.page_index, []).append((loc, identity))
        return planned

    def _extract_one(self, loc: CardLocation) -> Optional[ExtractedCard]:
        return extract_card_or_raise(loc.card_index, self.cache, self.settings)

    def extract_all(self, report: Optional[ExportReport] = None) -> Tuple[Dict[int, ExtractedCard], ExportReport]:
        """Extract every planned card.

        Raises InvalidConfigurationError when the crop margins or gutter do
        not fit a rendered page; nothing is extracted from that page on.
        """
        report = report or ExportReport()
        pages = active_pages(self.settings.pages)
        plan = self.plan(report)
        mode, extraction = self.settings.mode, self.settings.extraction

        results: Dict[int, ExtractedCard] = {}
        with ThreadPoolExecutor(max_workers=self.max_workers) as pool:
            for page_index, cards in plan.items():
                page = pages[page_index]
                try:
                    surface = self.cache.surface(page)
                except RenderError as exc:
                    logger.error("Page %d could not be rendered: %s", page_index, exc)
                    report.failures.extend(CardFailure(loc.card_index, ident, str(exc)) for loc, ident in cards)
                    continue
                validate_settings(mode, extraction, (surface.width(), surface.height()))

                futures = [(loc, ident, pool.submit(self._extract_one, loc)) for loc, ident in cards]
                for loc, ident, future in futures:
                    try:
                        card = future.result()
                    except (ExtractionError, RenderError) as exc:
                        logger.error("Card extraction failed: %s", exc)
                        report.failures.append(CardFailure(loc.card_index, ident, str(exc)))
                        continue
                    if card is None:
                        report.failures.append(CardFailure(loc.card_index, ident, "card not found"))
                        continue
                    results[loc.card_index] = card
                self.cache.evict(page)

        report.extracted = len(results)
        return results, report

    def export(self, out_dir: Path | str) -> ExportReport:
        """Write ``front_<id>.png`` / ``back_<id>.png`` files into *out_dir*."""
        out = Path(out_dir)
        out.mkdir(parents=True, exist_ok=True)
        results, report = self.extract_all()
        for card_index in sorted(results):
            card = results[card_index]
            target = out / card.filename
            target.write_bytes(card.png)
            report.written[card.filename] = target
        logger.info("Export to %s: %s", out, report.summary())
        return report
