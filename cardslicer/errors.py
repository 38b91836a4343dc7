# cardslicer/errors.py
from __future__ import annotations

from typing import Optional


class CardSlicerError(Exception):
    """Base class for every error raised by cardslicer."""


class InvalidConfigurationError(CardSlicerError, ValueError):
    """Settings that must be rejected before any addressing runs."""


class RenderError(CardSlicerError):
    """A page surface could not be produced (corrupt source, timeout, oversize)."""

    def __init__(self, message: str, page_index: Optional[int] = None):
        super().__init__(message)
        self.page_index = page_index

    def __str__(self) -> str:
        base = super().__str__()
        if self.page_index is None:
            return base
        return f"{base} (page_index={self.page_index})"


class ExtractionError(CardSlicerError):
    """Failure while extracting a single card, with its addressing context."""

    def __init__(
        self,
        message: str,
        *,
        card_index: int,
        page_index: int,
        card_on_page: int,
        mode: str,
    ):
        super().__init__(message)
        self.card_index = card_index
        self.page_index = page_index
        self.card_on_page = card_on_page
        self.mode = mode

    @property
    def context(self) -> dict:
        return {
            "cardIndex": self.card_index,
            "pageIndex": self.page_index,
            "cardOnPage": self.card_on_page,
            "mode": self.mode,
        }

    def __str__(self) -> str:
        ctx = ", ".join(f"{k}={v}" for k, v in self.context.items())
        return f"{super().__str__()} [{ctx}]"


class OutputValidationError(ExtractionError):
    """The encoded card raster is degenerate or exceeds the size limit."""
