import threading

import fitz
import pytest

import cardslicer.services.surface_provider as surface_provider
from cardslicer.errors import RenderError
from cardslicer.models.page import PageDescriptor
from cardslicer.services.surface_provider import (
    ImageSurfaceProvider,
    PdfSurfaceProvider,
    SurfaceCache,
    open_sources,
)


def write_sheets(tmp_path, sheet, count, name="sheet"):
    paths = []
    for i in range(count):
        path = tmp_path / f"{name}{i}.png"
        assert sheet(600, 600, 2, 2, page=i).save(str(path))
        paths.append(path)
    return paths


def write_pdf(tmp_path, pages=2):
    path = tmp_path / "sheets.pdf"
    doc = fitz.open()
    for _ in range(pages):
        page = doc.new_page(width=144, height=216)
        page.draw_rect(fitz.Rect(0, 0, 36, 36), color=(1, 0, 0), fill=(1, 0, 0))
    doc.save(str(path))
    doc.close()
    return path


def test_image_provider_reads_pixels(tmp_path, sheet, marker):
    paths = write_sheets(tmp_path, sheet, 2)
    provider = ImageSurfaceProvider(paths)
    assert provider.page_count() == 2
    assert provider.page_size(1) == (600.0, 600.0)
    image = provider.render(1)
    assert image.pixel(2, 2) == marker(1, 0).rgb()


def test_image_provider_rejects_undecodable_file(tmp_path):
    path = tmp_path / "broken.png"
    path.write_bytes(b"not an image")
    with pytest.raises(RenderError):
        ImageSurfaceProvider([path]).render(0)
    with pytest.raises(RenderError):
        ImageSurfaceProvider([path]).render(3)


def test_pdf_provider_renders_at_extraction_dpi(tmp_path):
    provider = PdfSurfaceProvider(write_pdf(tmp_path))
    assert provider.page_count() == 2
    assert provider.page_size(0) == pytest.approx((144, 216))
    image = provider.render(0)
    assert (image.width(), image.height()) == (600, 900)
    red = image.pixelColor(10, 10)
    assert (red.red(), red.green(), red.blue()) == (255, 0, 0)
    with pytest.raises(RenderError):
        provider.render(2)
    provider.close()


def test_pdf_provider_rejects_garbage(tmp_path):
    path = tmp_path / "bad.pdf"
    path.write_bytes(b"%PDF-garbage")
    with pytest.raises(RenderError):
        PdfSurfaceProvider(path)


def test_open_sources_concatenates_in_order(tmp_path, sheet):
    pdf = write_pdf(tmp_path)
    images = write_sheets(tmp_path, sheet, 2)
    provider = open_sources([images[0], pdf, images[1]])
    assert provider.page_count() == 4
    pages = provider.describe_pages()
    assert [p.source_page for p in pages] == [0, 1, 2, 3]
    assert pages[1].source_file == str(pdf)
    assert pages[1].is_portrait
    assert provider.render(3).width() == 600
    assert provider.render(2).height() == 900
    with pytest.raises(RenderError):
        provider.render(4)
    provider.close()


def test_open_sources_rejects_unknown_files(tmp_path):
    path = tmp_path / "notes.txt"
    path.write_text("hello")
    with pytest.raises(RenderError):
        open_sources([path])


def test_surface_cache_renders_each_page_once(sheet, memory_provider):
    provider = memory_provider({0: sheet(100, 100, 1, 1), 1: sheet(100, 100, 1, 1)})
    cache = SurfaceCache(provider)
    page = PageDescriptor(0)
    first = cache.surface(page)
    assert cache.surface(page) is first
    cache.surface(PageDescriptor(1))
    assert provider.calls == [0, 1]
    assert len(cache) == 2
    cache.evict(page)
    cache.surface(page)
    assert provider.calls == [0, 1, 0]
    cache.clear()
    assert len(cache) == 0


class SlowDocument:
    """Wraps a fitz Document; ``load_page`` blocks until released."""

    def __init__(self, doc):
        self.doc = doc
        self.released = threading.Event()
        self.loads = 0

    @property
    def page_count(self):
        return self.doc.page_count

    def load_page(self, number):
        self.loads += 1
        self.released.wait(5)
        return self.doc.load_page(number)

    def close(self):
        self.doc.close()


def test_timed_out_render_keeps_document_locked(tmp_path, monkeypatch):
    monkeypatch.setattr(surface_provider, "RENDER_TIMEOUT", 0.2)
    monkeypatch.setattr(surface_provider, "PAGE_LOAD_TIMEOUT", 0.1)
    provider = PdfSurfaceProvider(write_pdf(tmp_path))
    slow = SlowDocument(provider._doc)
    provider._doc = slow

    with pytest.raises(RenderError, match="timed out"):
        provider.render(0)
    # the abandoned render still holds the document
    with pytest.raises(RenderError, match="busy"):
        provider.render(1)
    assert slow.loads == 1

    slow.released.set()
    monkeypatch.setattr(surface_provider, "PAGE_LOAD_TIMEOUT", 5)
    assert provider.render(1).width() == 600
    assert slow.loads == 2
    provider.close()
