import pytest
from PySide6.QtGui import QImage

from cardslicer.errors import InvalidConfigurationError
from cardslicer.models.extraction_settings import CropMargins, ExtractionSettings, Grid, SkipEntry
from cardslicer.models.layout_mode import FaceType, LayoutMode
from cardslicer.models.page import PageDescriptor, alternating_pages
from cardslicer.services.export_manager import ExportManager, ExportReport
from cardslicer.services.settings_resolver import EffectiveSettings


def effective(mode, grid, pages, **kw):
    return EffectiveSettings(mode=mode, extraction=ExtractionSettings(grid=grid, **kw), pages=tuple(pages))


def test_simplex_export_writes_every_card(tmp_path, sheet, memory_provider):
    pages = [PageDescriptor(i, FaceType.FRONT) for i in range(2)]
    provider = memory_provider({i: sheet(600, 600, 2, 2, page=i) for i in range(2)})
    report = ExportManager(provider, effective(LayoutMode.simplex(), Grid(2, 2), pages), max_workers=3).export(tmp_path)
    assert report.ok
    assert sorted(report.written) == sorted(f"front_{i}.png" for i in range(1, 9))
    assert all(path.stat().st_size > 0 for path in report.written.values())
    # each page rendered exactly once
    assert sorted(provider.calls) == [0, 1]


def test_skipped_cells_are_not_written(tmp_path, sheet, memory_provider):
    pages = [PageDescriptor(0, FaceType.FRONT)]
    provider = memory_provider({0: sheet(600, 600, 2, 2)})
    settings = effective(LayoutMode.simplex(), Grid(2, 2), pages, skipped=(SkipEntry(0, 1, 1),))
    report = ExportManager(provider, settings).export(tmp_path)
    assert "front_4.png" not in report.written
    assert report.extracted == 3
    assert report.skipped == 1


def test_failed_page_does_not_abort_export(tmp_path, sheet, memory_provider):
    pages = [PageDescriptor(i, FaceType.FRONT) for i in range(2)]
    provider = memory_provider({0: sheet(600, 600, 2, 2)}, broken={1})
    report = ExportManager(provider, effective(LayoutMode.simplex(), Grid(2, 2), pages)).export(tmp_path)
    assert not report.ok
    assert len(report.written) == 4
    assert report.failed_ids == ["Front 5", "Front 6", "Front 7", "Front 8"]
    assert "4 failed" in report.summary()


def test_duplex_back_files_come_from_mirrored_cells(tmp_path, sheet, marker, memory_provider):
    pages = alternating_pages(2)
    provider = memory_provider({0: sheet(600, 800, 2, 2, page=0), 1: sheet(600, 800, 2, 2, page=1)})
    report = ExportManager(provider, effective(LayoutMode.duplex("short"), Grid(2, 2), pages)).export(tmp_path)
    assert report.ok
    assert len(report.written) == 8
    back_1 = QImage(str(report.written["back_1.png"]))
    # portrait short-edge flip: back of card 1 sits in cell (1, 0) of the back page
    assert back_1.pixel(5, 5) == marker(1, 2).rgb()
    front_1 = QImage(str(report.written["front_1.png"]))
    assert front_1.pixel(5, 5) == marker(0, 0).rgb()


def test_gutter_fold_plan_pairs_halves(sheet, memory_provider):
    pages = [PageDescriptor(0)]
    provider = memory_provider({0: sheet(800, 400, 1, 4)})
    manager = ExportManager(provider, effective(LayoutMode.gutter_fold(), Grid(1, 4), pages))
    plan = manager.plan()
    labels = [ident.label for _loc, ident in plan[0]]
    assert labels == ["Front 1", "Front 2", "Back 2", "Back 1"]
    results, report = manager.extract_all()
    assert report.ok and len(results) == 4


def test_gutter_wider_than_page_is_rejected(tmp_path, sheet, memory_provider):
    pages = [PageDescriptor(0)]
    provider = memory_provider({0: sheet(600, 800, 2, 2)})
    settings = effective(LayoutMode.gutter_fold(), Grid(2, 2), pages, gutter_width=5000)
    with pytest.raises(InvalidConfigurationError, match="cropped span"):
        ExportManager(provider, settings).export(tmp_path / "out")
    assert list((tmp_path / "out").iterdir()) == []


def test_crop_leaving_no_page_is_rejected(sheet, memory_provider):
    pages = [PageDescriptor(0, FaceType.FRONT)]
    provider = memory_provider({0: sheet(600, 600, 2, 2)})
    settings = effective(LayoutMode.simplex(), Grid(2, 2), pages, crop=CropMargins(left=400, right=300))
    with pytest.raises(InvalidConfigurationError, match="no page area"):
        ExportManager(provider, settings).extract_all()


def test_report_counts_unaddressed_cells_apart_from_skips(memory_provider):
    # odd split axis: the middle column belongs to neither half
    pages = [PageDescriptor(0)]
    settings = effective(LayoutMode.gutter_fold(), Grid(1, 3), pages, skipped=(SkipEntry(0, 0, 0),))
    report = ExportReport()
    plan = ExportManager(memory_provider({}), settings).plan(report)
    assert [ident.label for _loc, ident in plan[0]] == ["Back 1"]
    assert (report.skipped, report.unaddressed, report.duplicates) == (1, 1, 0)


def test_report_counts_duplicate_identities(memory_provider):
    pages = [PageDescriptor(i, face, width=612, height=792) for i, face in enumerate((FaceType.FRONT, FaceType.BACK, FaceType.BACK))]
    manager = ExportManager(memory_provider({}), effective(LayoutMode.duplex("short"), Grid(2, 2), pages))
    report = ExportReport()
    plan = manager.plan(report)
    assert sum(len(cards) for cards in plan.values()) == 8
    assert (report.skipped, report.unaddressed, report.duplicates) == (0, 0, 4)
    report.extracted = 8
    assert "4 duplicate ids dropped" in report.summary()
