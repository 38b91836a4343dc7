"""Page surfaces: rendered pages as QImage at the extraction DPI.

``PdfSurfaceProvider`` renders with PyMuPDF, ``ImageSurfaceProvider`` treats
every raster file as one page, ``MultiSourceProvider`` strings several
sources into one page sequence, and ``SurfaceCache`` memoizes the renders so
every card on a page reads the same surface.
"""
from __future__ import annotations

import logging
import threading
from concurrent.futures import ThreadPoolExecutor, TimeoutError as FutureTimeout
from pathlib import Path
from typing import Callable, Dict, List, Optional, Sequence, Tuple, Union

import fitz  # PyMuPDF
from PySide6.QtGui import QImage, QImageReader

from cardslicer.config import MAX_SURFACE_DIMENSION, PAGE_LOAD_TIMEOUT, RENDER_TIMEOUT
from cardslicer.errors import RenderError
from cardslicer.models.page import PageDescriptor
from cardslicer.utils.unit_converter import extraction_scale
from cardslicer.utils.valid_path import ValidPath

logger = logging.getLogger(__name__)


def _check_dimensions(width: int, height: int, page_number: int) -> None:
    if width <= 0 or height <= 0:
        raise RenderError(f"Invalid surface dimensions {width} x {height}", page_number)
    if width > MAX_SURFACE_DIMENSION or height > MAX_SURFACE_DIMENSION:
        raise RenderError(
            f"Surface too large: {width} x {height}. Maximum allowed: "
            f"{MAX_SURFACE_DIMENSION} x {MAX_SURFACE_DIMENSION}",
            page_number,
        )


def _with_timeout(fn: Callable, timeout: float, what: str, page_number: int):
    """Run *fn* on a helper thread and give up after *timeout* seconds."""
    pool = ThreadPoolExecutor(max_workers=1)
    try:
        return pool.submit(fn).result(timeout=timeout)
    except FutureTimeout as exc:
        raise RenderError(f"{what} timed out after {timeout:g}s", page_number) from exc
    finally:
        pool.shutdown(wait=False)


class PdfSurfaceProvider:
    """Render PDF pages through PyMuPDF at EXTRACTION_DPI / 72."""

    kind = "pdf"

    def __init__(self, path: Union[str, Path], scale: Optional[float] = None):
        self.path = Path(path)
        self.scale = scale or extraction_scale()
        try:
            self._doc = fitz.open(str(self.path))
        except (RuntimeError, ValueError) as exc:
            raise RenderError(f"Cannot open PDF {self.path}: {exc}") from exc
        # a fitz Document is not safe for concurrent use
        self._lock = threading.Lock()

    def page_count(self) -> int:
        return self._doc.page_count

    def page_size(self, page_number: int) -> Tuple[float, float]:
        """Page size in PDF points."""
        with self._lock:
            rect = self._doc[page_number].rect
        return rect.width, rect.height

    def _render(self, page_number: int) -> QImage:
        # a render abandoned by its timeout keeps the lock until fitz returns
        if not self._lock.acquire(timeout=PAGE_LOAD_TIMEOUT):
            raise RenderError(f"{self.path.name} is still busy with an earlier render", page_number)
        try:
            page = self._doc.load_page(page_number)
            bounds = page.rect
            _check_dimensions(round(bounds.width * self.scale), round(bounds.height * self.scale), page_number)
            pix = page.get_pixmap(matrix=fitz.Matrix(self.scale, self.scale), alpha=False)
        finally:
            self._lock.release()
        image = QImage(pix.samples, pix.width, pix.height, pix.stride, QImage.Format_RGB888)
        # detach from the pixmap buffer before it is released
        return image.copy()

    def render(self, page_number: int) -> QImage:
        if not 0 <= page_number < self.page_count():
            raise RenderError(f"{self.path.name} has no page {page_number + 1}", page_number)
        try:
            return _with_timeout(lambda: self._render(page_number), RENDER_TIMEOUT,
                                 f"Rendering PDF page {page_number + 1}", page_number)
        except RuntimeError as exc:
            raise RenderError(f"Page rendering failed: {exc}", page_number) from exc

    def surface(self, page: PageDescriptor) -> QImage:
        return self.render(page.source_page if page.source_page is not None else page.index)

    def close(self) -> None:
        self._doc.close()


class ImageSurfaceProvider:
    """Every raster file is one page; its pixels are used as-is."""

    kind = "image"

    def __init__(self, paths: Sequence[Union[str, Path]]):
        self.paths: List[Path] = [Path(p) for p in paths]

    def page_count(self) -> int:
        return len(self.paths)

    def page_size(self, page_number: int) -> Tuple[float, float]:
        size = QImageReader(str(self.paths[page_number])).size()
        return float(size.width()), float(size.height())

    def render(self, page_number: int) -> QImage:
        if not 0 <= page_number < len(self.paths):
            raise RenderError(f"No image for page {page_number + 1}", page_number)
        path = self.paths[page_number]
        reader = QImageReader(str(path))
        reader.setAutoTransform(True)
        size = reader.size()
        if size.isValid():
            _check_dimensions(size.width(), size.height(), page_number)
        image = reader.read()
        if image.isNull():
            raise RenderError(f"Cannot decode {path.name}: {reader.errorString()}", page_number)
        return image

    def surface(self, page: PageDescriptor) -> QImage:
        return self.render(page.source_page if page.source_page is not None else page.index)

    def close(self) -> None:
        pass


Provider = Union[PdfSurfaceProvider, ImageSurfaceProvider]


class MultiSourceProvider:
    """Concatenate several PDFs and image files into one page sequence."""

    def __init__(self, providers: Sequence[Provider]):
        self.providers = list(providers)
        self._offsets: List[int] = []
        total = 0
        for provider in self.providers:
            self._offsets.append(total)
            total += provider.page_count()
        self._count = total

    def page_count(self) -> int:
        return self._count

    def _resolve(self, page_number: int) -> Tuple[Provider, int]:
        for provider, offset in zip(reversed(self.providers), reversed(self._offsets)):
            if page_number >= offset:
                return provider, page_number - offset
        raise RenderError(f"No source holds page {page_number + 1}", page_number)

    def page_size(self, page_number: int) -> Tuple[float, float]:
        provider, local = self._resolve(page_number)
        return provider.page_size(local)

    def render(self, page_number: int) -> QImage:
        if not 0 <= page_number < self._count:
            raise RenderError(f"No source holds page {page_number + 1}", page_number)
        provider, local = self._resolve(page_number)
        return provider.render(local)

    def surface(self, page: PageDescriptor) -> QImage:
        return self.render(page.source_page if page.source_page is not None else page.index)

    def describe_pages(self) -> List[PageDescriptor]:
        """One PageDescriptor per source page, faces left undeclared."""
        pages = []
        for provider, offset in zip(self.providers, self._offsets):
            for local in range(provider.page_count()):
                width, height = provider.page_size(local)
                if isinstance(provider, PdfSurfaceProvider):
                    source = str(provider.path)
                else:
                    source = str(provider.paths[local])
                pages.append(PageDescriptor(
                    index=offset + local, width=width, height=height,
                    source_file=source, source_page=offset + local,
                ))
        return pages

    def close(self) -> None:
        for provider in self.providers:
            provider.close()


def open_sources(paths: Sequence[Union[str, Path]]) -> MultiSourceProvider:
    """Open PDFs and images in order; consecutive images share one provider."""
    providers: List[Provider] = []
    images: List[Path] = []
    for raw in paths:
        kind = ValidPath.source_kind(raw)
        if kind is None:
            raise RenderError(f"Unsupported or missing source: {raw}")
        if kind == "image":
            images.append(Path(raw))
            continue
        if images:
            providers.append(ImageSurfaceProvider(images))
            images = []
        providers.append(PdfSurfaceProvider(raw))
    if images:
        providers.append(ImageSurfaceProvider(images))
    return MultiSourceProvider(providers)


class SurfaceCache:
    """Render each page once; concurrent callers for one page wait for that render."""

    def __init__(self, provider) -> None:
        self._provider = provider
        self._surfaces: Dict[int, QImage] = {}
        self._page_locks: Dict[int, threading.Lock] = {}
        self._guard = threading.Lock()

    @staticmethod
    def key(page: PageDescriptor) -> int:
        return page.source_page if page.source_page is not None else page.index

    def _lock_for(self, key: int) -> threading.Lock:
        with self._guard:
            return self._page_locks.setdefault(key, threading.Lock())

    def surface(self, page: PageDescriptor) -> QImage:
        key = self.key(page)
        cached = self._surfaces.get(key)
        if cached is not None:
            return cached
        with self._lock_for(key):
            cached = self._surfaces.get(key)
            if cached is None:
                logger.debug("rendering page %d", key)
                cached = self._provider.surface(page)
                self._surfaces[key] = cached
        return cached

    def evict(self, page: PageDescriptor) -> None:
        self._surfaces.pop(self.key(page), None)

    def clear(self) -> None:
        self._surfaces.clear()

    def __len__(self) -> int:
        return len(self._surfaces)
