# valid_path.py
from __future__ import annotations

from os import fspath
from pathlib import Path
from typing import Callable, Optional, Union

Predicate = Callable[[Path], bool]

PDF_EXTS = [".pdf"]
IMAGE_EXTS = [".png", ".jpg", ".jpeg", ".webp", ".bmp", ".gif", ".tif", ".tiff"]


class ValidPath:
    """Validate source and output paths with simple flags."""

    @staticmethod
    def _to_path(pathlike: Union[str, Path]) -> Optional[Path]:
        if isinstance(pathlike, Path):
            return pathlike
        try:
            return Path(fspath(pathlike))
        except TypeError:
            return None

    # -------- Predicates --------
    exists: Predicate = staticmethod(lambda p: p.exists())
    is_file: Predicate = staticmethod(lambda p: p.is_file())
    is_dir: Predicate = staticmethod(lambda p: p.is_dir())

    @staticmethod
    def has_any_ext(exts: list[str]) -> Predicate:
        canon = [(e if e.startswith(".") else "." + e).lower() for e in exts]
        return lambda p: p.suffix.lower() in canon

    # -------- Core API --------
    @classmethod
    def check(
        cls,
        pathlike: Union[str, Path],
        *,
        must_exist: bool = False,
        require_file: bool = False,
        require_dir: bool = False,
        has_ext: Optional[Union[str, list[str]]] = None,
        normalize: bool = False,
    ) -> Optional[Path]:
        """
        Return the path when every requested check passes, else None.

        - must_exist: require that the path exists
        - require_file / require_dir: require file or directory
        - has_ext: a str ('.pdf' or 'pdf') or list of allowable extensions
        - normalize: expand ~ and resolve() (non-strict)
        """
        p = cls._to_path(pathlike)
        if p is None:
            return None
        if normalize:
            p = p.expanduser().resolve()

        preds: list[Predicate] = []
        if must_exist:
            preds.append(cls.exists)
        if require_file:
            preds.append(cls.is_file)
        if require_dir:
            preds.append(cls.is_dir)
        if has_ext is not None:
            preds.append(cls.has_any_ext(has_ext if isinstance(has_ext, list) else [has_ext]))

        return p if all(pred(p) for pred in preds) else None

    @classmethod
    def source_kind(cls, pathlike: Union[str, Path]) -> Optional[str]:
        """'pdf' or 'image' for a supported existing source file, else None."""
        if cls.check(pathlike, require_file=True, has_ext=PDF_EXTS):
            return "pdf"
        if cls.check(pathlike, require_file=True, has_ext=IMAGE_EXTS):
            return "image"
        return None
