from __future__ import annotations

import math
import re
from typing import Dict, Tuple

REFERENCE_BASE_SIZE = 1024
DIMENSION_ALIGNMENT = 8
FALLBACK_DIMENSIONS: Tuple[int, int] = (1024, 1024)

# Precomputed at REFERENCE_BASE_SIZE. Values are reproduced verbatim, including
# the few that are not multiples of 8 (e.g. 3:2 -> 1216x810).
ASPECT_RATIOS: Dict[str, Tuple[int, int]] = {
    # Standard
    "1:1": (1024, 1024),
    "4:3": (1152, 864),
    "3:2": (1216, 810),
    "16:10": (1280, 800),
    "5:4": (1024, 819),
    "3:4": (864, 1152),
    "2:3": (810, 1216),
    "10:16": (800, 1280),
    "4:5": (819, 1024),
    # Widescreen
    "16:9": (1344, 768),
    "21:9": (1536, 658),
    "32:9": (1792, 512),
    # Portrait
    "9:16": (768, 1344),
    "9:21": (658, 1536),
    "9:32": (512, 1792),
    # Cinema
    "2.35:1": (1472, 626),
    "2.4:1": (1536, 640),
    "1:2.35": (626, 1472),
    "1:2.4": (640, 1536),
}

_RATIO_RE = re.compile(r"^(\d+(?:\.\d+)?):(\d+(?:\.\d+)?)$")


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def _align_down(value: int) -> int:
    return (value // DIMENSION_ALIGNMENT) * DIMENSION_ALIGNMENT


def parse_ratio(aspect_ratio: str) -> Tuple[float, float] | None:
    match = _RATIO_RE.match((aspect_ratio or "").strip())
    if not match:
        return None
    w_ratio = float(match.group(1))
    h_ratio = float(match.group(2))
    if w_ratio <= 0 or h_ratio <= 0:
        return None
    return w_ratio, h_ratio


def aspect_ratio_to_dimensions(aspect_ratio: str, base_size: int = REFERENCE_BASE_SIZE) -> Tuple[int, int]:
    """
    Convert an aspect ratio like "16:9" into (width, height).

    Known ratios at the reference base size come from the lookup table. Any
    other ratio, or any base size other than 1024, is computed: the longer side
    gets `base_size`, the shorter one is scaled, and both are floored to a
    multiple of 8. Malformed input yields a 1024x1024 square.
    """
    if base_size == REFERENCE_BASE_SIZE and aspect_ratio in ASPECT_RATIOS:
        return ASPECT_RATIOS[aspect_ratio]

    ratio = parse_ratio(aspect_ratio)
    if ratio is None:
        return FALLBACK_DIMENSIONS

    w_ratio, h_ratio = ratio
    if w_ratio >= h_ratio:
        width = base_size
        height = _round_half_up(base_size * h_ratio / w_ratio)
    else:
        height = base_size
        width = _round_half_up(base_size * w_ratio / h_ratio)

    return _align_down(width), _align_down(height)
