import json

import pytest

from cardslicer.main import _parse_page_types, main
from cardslicer.models.layout_mode import FaceType


def write_sheets(tmp_path, sheet, count):
    paths = []
    for i in range(count):
        path = tmp_path / f"sheet{i}.png"
        assert sheet(600, 800, 2, 2, page=i).save(str(path))
        paths.append(str(path))
    return paths


def test_parse_page_types_repeats_last_entry():
    assert _parse_page_types("f,b", 3) == [FaceType.FRONT, FaceType.BACK, FaceType.BACK]
    assert _parse_page_types("front,-", 2) == [FaceType.FRONT, None]


def test_simplex_export_from_images(tmp_path, sheet, capsys):
    sources = write_sheets(tmp_path, sheet, 2)
    out = tmp_path / "cards"
    code = main([*sources, "--mode", "simplex", "--rows", "2", "--columns", "2", "--out", str(out)])
    assert code == 0
    assert sorted(p.name for p in out.iterdir()) == sorted(f"front_{i}.png" for i in range(1, 9))
    assert "8 cards extracted" in capsys.readouterr().out


def test_duplex_export_with_page_types(tmp_path, sheet):
    sources = write_sheets(tmp_path, sheet, 2)
    out = tmp_path / "cards"
    code = main([*sources, "--mode", "duplex", "--rows", "2", "--columns", "2",
                 "--page-types", "f,b", "--out", str(out)])
    assert code == 0
    names = {p.name for p in out.iterdir()}
    assert names == {f"{face}_{i}.png" for face in ("front", "back") for i in range(1, 5)}


def test_settings_file_drives_layout(tmp_path, sheet):
    sources = write_sheets(tmp_path, sheet, 1)
    settings = tmp_path / "settings.json"
    settings.write_text(json.dumps({
        "pdfMode": {"type": "gutter-fold", "orientation": "horizontal"},
        "extractionSettings": {"grid": {"rows": 2, "columns": 2}},
    }))
    out = tmp_path / "cards"
    assert main([*sources, "--settings", str(settings), "--out", str(out)]) == 0
    assert {p.name for p in out.iterdir()} == {"front_1.png", "front_2.png", "back_1.png", "back_2.png"}


def test_invalid_grid_exits_with_config_error(tmp_path, sheet):
    sources = write_sheets(tmp_path, sheet, 1)
    with pytest.raises(SystemExit) as exc:
        main([*sources, "--mode", "gutter-fold", "--rows", "3", "--columns", "3", "--out", str(tmp_path / "o")])
    assert exc.value.code == 2


def test_missing_source_exits(tmp_path):
    with pytest.raises(SystemExit) as exc:
        main([str(tmp_path / "nope.pdf"), "--out", str(tmp_path / "o")])
    assert exc.value.code == 2


def test_gutter_wider_than_page_exits_with_config_error(tmp_path, sheet, capsys):
    sources = write_sheets(tmp_path, sheet, 1)
    out = tmp_path / "cards"
    with pytest.raises(SystemExit) as exc:
        main([*sources, "--mode", "gutter-fold", "--rows", "2", "--columns", "2",
              "--gutter", "5000", "--out", str(out)])
    assert exc.value.code == 2
    assert "cropped span" in capsys.readouterr().err
    assert not any(out.glob("*.png"))


def test_config_error_closes_opened_sources(tmp_path, sheet, monkeypatch):
    import cardslicer.services.surface_provider as surface_provider

    closed = []
    real_open = surface_provider.open_sources

    def tracking_open(paths):
        provider = real_open(paths)
        monkeypatch.setattr(provider, "close", lambda: closed.append(True))
        return provider

    monkeypatch.setattr(surface_provider, "open_sources", tracking_open)
    sources = write_sheets(tmp_path, sheet, 1)
    with pytest.raises(SystemExit):
        main([*sources, "--mode", "simplex", "--rows", "2", "--columns", "2",
              "--crop", "0", "0", "0", "-5", "--out", str(tmp_path / "o")])
    assert closed == [True]
