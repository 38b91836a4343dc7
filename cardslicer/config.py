# cardslicer/config.py
EXTRACTION_DPI = 300  # every crop/gutter/card-crop pixel value is defined at this resolution
SCREEN_DPI = 72       # PDF base resolution

MIN_OUTPUT_BYTES = 100
MAX_OUTPUT_BYTES = 50 * 1024 * 1024
MAX_SURFACE_DIMENSION = 50000

PAGE_LOAD_TIMEOUT = 15.0  # wait for a PDF document held by an earlier render
RENDER_TIMEOUT = 30.0

DEFAULT_CARD_SIZE_IN = (2.5, 3.5)

PREVIEW_MAX = {
    "width": 400,
    "height": 500,
}

SIZING_MODES = {
    "actual-size": {"scales": False, "desc": "Actual Size (No Scaling)"},
    "fit-to-card": {"scales": True,  "desc": "Fit Within Card (Letterbox)"},
    "fill-card":   {"scales": True,  "desc": "Fill Card (Crop Overflow)"},
}

VALID_SIZING_MODES = [m for m in SIZING_MODES]

# (rows, columns) keyed by layout kind, then by gutter orientation where relevant
DEFAULT_GRIDS = {
    "simplex": (2, 3),
    "duplex": (2, 3),
    "gutter-fold": {
        "vertical":   (4, 2),
        "horizontal": (2, 4),
    },
}

VALID_ROTATIONS = (0, 90, 180, 270)

# watchdog threshold for repeated requests against a render still in flight
STALE_RENDER_LIMIT = 5
