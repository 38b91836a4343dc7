import re
from typing import Tuple

from cardslicer.config import EXTRACTION_DPI, SCREEN_DPI

UNITS_TO_INCHES = {
    "in": 1.0,
    "cm": 1 / 2.54,
    "mm": 1 / 25.4,
    "pt": 1 / 72.0,
    "px": None  # depends on dpi
}
INCHES_TO_UNITS = {
    "in": 1.0,
    "cm": 2.54,
    "mm": 25.4,
    "pt": 72.0,
}


def parse_dimension(value, dpi: int = EXTRACTION_DPI, to_unit: str = "px") -> float:
    """
    Parses a dimension string or number into the target unit.
    Supported units: "in", "cm", "mm", "pt", "px"
    Numeric input is taken as px. A bare number inside a string is inches.
    """
    to_unit = to_unit.lower().replace('"', "in").strip()
    if to_unit not in UNITS_TO_INCHES:
        raise ValueError(f"Unsupported target unit: {to_unit}")

    if isinstance(value, (int, float)):
        px_val = float(value)
    else:
        value = str(value).strip().lower().replace('"', "in")
        match = re.fullmatch(r"([0-9]*\.?[0-9]+)\s*([a-z]+)?", value)
        if not match:
            raise ValueError(f"Invalid dimension format: '{value}'")
        num, unit = match.groups()
        num = float(num)
        unit = (unit or "in").strip()
        if unit not in UNITS_TO_INCHES:
            raise ValueError(f"Unsupported input unit: {unit}")
        if unit == "px":
            px_val = num
        else:
            px_val = num * UNITS_TO_INCHES[unit] * dpi

    if to_unit == "px":
        return px_val
    inches = px_val / dpi
    return inches * INCHES_TO_UNITS[to_unit]


def inches_to_pixels(inches: float, dpi: int = EXTRACTION_DPI) -> float:
    """
    Converts a measurement in inches to pixels.
    Raises:
        ValueError: If DPI is not positive.
    """
    if dpi <= 0:
        raise ValueError("DPI must be a positive value.")
    return inches * dpi


def pixels_to_inches(pixels: float, dpi: int = EXTRACTION_DPI) -> float:
    if dpi <= 0:
        raise ValueError("DPI must be a positive value.")
    return pixels / dpi


def points_to_pixels(points: float, dpi: int = EXTRACTION_DPI) -> float:
    return points / SCREEN_DPI * dpi


def extraction_scale() -> float:
    """Render scale taking a 72 DPI PDF page to the extraction DPI."""
    return EXTRACTION_DPI / SCREEN_DPI


def compute_scale_factor(
    max_size: Tuple[float, float],
    current_size: Tuple[float, float]
) -> float:
    """
    Given max_size (width, height) and current_size (width, height),
    return the uniform scale factor <= 1.0 needed to make
    current_size fit inside max_size.  Returns 1.0 if no scaling needed.
    """
    max_w, max_h = max_size
    cur_w, cur_h = current_size

    if cur_w <= 0 or cur_h <= 0:
        return 1.0

    if cur_w <= max_w and cur_h <= max_h:
        return 1.0

    return min(max_w / cur_w, max_h / cur_h)
