#!/usr/bin/env python3
import argparse
import logging
import os
import sys
from dataclasses import replace
from typing import List, Optional

from cardslicer.errors import CardSlicerError, InvalidConfigurationError
from cardslicer.models.layout_mode import FaceType, LayoutMode
from cardslicer.models.page import PageDescriptor
from cardslicer.utils.valid_path import ValidPath

logger = logging.getLogger("cardslicer")

# --- Helpers ---------------------------------------------------------------

def _die(msg: str, code: int = 2):
    print(f"Error: {msg}", file=sys.stderr)
    sys.exit(code)


def _parse_page_types(value: str, count: int) -> List[Optional[FaceType]]:
    """'f,b,f,b' (or front/back/-) for each page; the last entry repeats."""
    aliases = {"f": "front", "b": "back", "-": None, "": None}
    faces = []
    for token in value.split(","):
        token = token.strip().lower()
        faces.append(FaceType.parse(aliases.get(token, token)))
    if not faces:
        return [None] * count
    return [faces[min(i, len(faces) - 1)] for i in range(count)]


def _default_faces(mode: LayoutMode, count: int) -> List[Optional[FaceType]]:
    if mode.is_duplex:
        return [FaceType.FRONT if i % 2 == 0 else FaceType.BACK for i in range(count)]
    return [FaceType.FRONT] * count


def _mode_from_args(args) -> Optional[LayoutMode]:
    if args.mode is None:
        return None
    if args.mode == "duplex":
        return LayoutMode.duplex(args.flip_edge)
    if args.mode == "gutter-fold":
        return LayoutMode.gutter_fold(args.orientation)
    return LayoutMode.simplex()


# --- Argparse --------------------------------------------------------------

def build_parser():
    p = argparse.ArgumentParser(
        prog="cardslicer",
        description="Cut print-and-play sheets (PDF or images) into individual card images",
    )
    p.add_argument("sources", nargs="+", help="PDF or image files, in page order")
    p.add_argument("--mode", "-m", choices=["simplex", "duplex", "gutter-fold"],
                   help="sheet layout (default: from --settings, else duplex)")
    p.add_argument("--flip-edge", choices=["short", "long"], default="short",
                   help="duplex flip edge")
    p.add_argument("--orientation", choices=["vertical", "horizontal"], default="vertical",
                   help="gutter-fold orientation")
    p.add_argument("--rows", type=int, help="grid rows")
    p.add_argument("--columns", type=int, help="grid columns")
    p.add_argument("--crop", type=float, nargs=4, metavar=("T", "R", "B", "L"),
                   help="page crop in pixels at 300 DPI")
    p.add_argument("--gutter", type=float, help="gutter width in pixels at 300 DPI")
    p.add_argument("--settings", "-s", help="saved settings JSON")
    p.add_argument("--page-types", help="comma separated page faces, e.g. f,b,f,b")
    p.add_argument("--out", "-o", default="cards", help="output directory")
    p.add_argument("--workers", "-w", type=int, default=4, help="extraction threads")
    p.add_argument("--verbose", "-v", action="store_true", help="debug logging")
    return p


# --- Main ------------------------------------------------------------------

def main(argv=None):
    parser = build_parser()
    args = parser.parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(levelname)s %(name)s: %(message)s",
    )

    os.environ.setdefault("QT_QPA_PLATFORM", "offscreen")
    from PySide6.QtGui import QGuiApplication

    from cardslicer.services.export_manager import ExportManager
    from cardslicer.services.settings_resolver import load_settings_document, resolve_settings
    from cardslicer.services.surface_provider import open_sources

    app = QGuiApplication.instance() or QGuiApplication(sys.argv[:1])  # noqa: F841

    source_paths = []
    for s in args.sources:
        p = ValidPath.check(s, must_exist=True, require_file=True, normalize=True)
        if p is None or ValidPath.source_kind(p) is None:
            _die(f"source does not exist or is not a PDF/image: {s}")
        source_paths.append(p)

    out_dir = ValidPath.check(args.out, normalize=True)
    if out_dir is None or (out_dir.exists() and not out_dir.is_dir()):
        _die(f"invalid output directory: {args.out}")

    provider = None
    try:
        base = None
        if args.settings:
            settings_path = ValidPath.check(args.settings, must_exist=True, require_file=True, has_ext="json")
            if settings_path is None:
                _die(f"settings file not found: {args.settings}")
            base = load_settings_document(settings_path)

        mode = _mode_from_args(args) or (base.mode if base else LayoutMode.duplex(args.flip_edge))
        extraction = base.extraction.to_dict() if base and base.mode == mode else {}
        if args.rows is not None or args.columns is not None:
            grid = extraction.get("grid")
            if grid is None and (args.rows is None or args.columns is None):
                _die("--rows and --columns must be given together")
            grid = grid or {}
            extraction["grid"] = {
                "rows": args.rows if args.rows is not None else grid["rows"],
                "columns": args.columns if args.columns is not None else grid["columns"],
            }
        if args.crop:
            extraction["crop"] = dict(zip(("top", "right", "bottom", "left"), args.crop))
        if args.gutter is not None:
            extraction["gutterWidth"] = args.gutter

        provider = open_sources(source_paths)
        pages: List[PageDescriptor] = provider.describe_pages()
        logger.info("%d pages from %d sources, %s layout", len(pages), len(source_paths), mode.name)
        if args.page_types:
            faces = _parse_page_types(args.page_types, len(pages))
        elif base and len(base.pages) == len(pages):
            faces = [p.face_type for p in base.pages]
            pages = [replace(page, skip=saved.skip) for page, saved in zip(pages, base.pages)]
        else:
            faces = _default_faces(mode, len(pages))
        pages = [page.with_face(face) for page, face in zip(pages, faces)]

        settings = resolve_settings(mode, extraction, base.output.to_dict() if base else None, pages)
        # margins and gutter are checked against each page once it is rendered
        report = ExportManager(provider, settings, max_workers=args.workers).export(out_dir)
    except InvalidConfigurationError as exc:
        _die(str(exc), 2)
    except CardSlicerError as exc:
        _die(str(exc), 1)
    finally:
        if provider is not None:
            provider.close()

    print(report.summary())
    return 0 if report.ok else 1


if __name__ == "__main__":
    sys.exit(main())
