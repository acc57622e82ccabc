"""
==============================================================================
Scan Region Strategies
==============================================================================

Ordered lists of frame sub-regions to attempt decoding on.

A single-result decoder run over the full frame tends to miss the second and
third barcode in view. Running it again over each quadrant and the centre
recovers most of them. Strategies are data, so the set of regions can be
swapped without touching the drivers.

Strategies:
-----------
- full_frame: the whole image only
- quadrants: whole image, four quadrants, centre

==============================================================================
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, Tuple

import numpy as np


@dataclass(frozen=True)
class ScanRegion:
    """
    Rectangular sub-region expressed as fractions of the frame size.

    Attributes:
        name: Label used in logs
        left: Left edge (0.0 - 1.0)
        top: Top edge (0.0 - 1.0)
        width: Width fraction (0.0 - 1.0)
        height: Height fraction (0.0 - 1.0)
    """
    name: str
    left: float = 0.0
    top: float = 0.0
    width: float = 1.0
    height: float = 1.0

    def __post_init__(self) -> None:
        if not (0.0 <= self.left < 1.0 and 0.0 <= self.top < 1.0):
            raise ValueError(f"Region {self.name!r} origin outside frame")
        if self.width <= 0 or self.height <= 0:
            raise ValueError(f"Region {self.name!r} must have a positive size")
        if self.left + self.width > 1.0 + 1e-9 or self.top + self.height > 1.0 + 1e-9:
            raise ValueError(f"Region {self.name!r} extends past the frame")

    def bounds(self, frame_width: int, frame_height: int) -> Tuple[int, int, int, int]:
        """Pixel bounds (x1, y1, x2, y2) for a frame of the given size."""
        x1 = int(round(self.left * frame_width))
        y1 = int(round(self.top * frame_height))
        x2 = min(frame_width, int(round((self.left + self.width) * frame_width)))
        y2 = min(frame_height, int(round((self.top + self.height) * frame_height)))
        return x1, y1, x2, y2

    def crop(self, image: np.ndarray) -> np.ndarray:
        """Return a view of the image restricted to this region."""
        height, width = image.shape[:2]
        x1, y1, x2, y2 = self.bounds(width, height)
        return image[y1:y2, x1:x2]


@dataclass(frozen=True)
class ScanStrategy:
    """Named, ordered collection of regions."""
    name: str
    regions: Tuple[ScanRegion, ...]

    def __post_init__(self) -> None:
        if not self.regions:
            raise ValueError(f"Strategy {self.name!r} has no regions")

    def __len__(self) -> int:
        return len(self.regions)

    def __iter__(self):
        return iter(self.regions)


FULL_REGION = ScanRegion("full")

FULL_FRAME = ScanStrategy("full_frame", (FULL_REGION,))

QUADRANTS = ScanStrategy(
    "quadrants",
    (
        FULL_REGION,
        ScanRegion("top_left", 0.0, 0.0, 0.5, 0.5),
        ScanRegion("top_right", 0.5, 0.0, 0.5, 0.5),
        ScanRegion("bottom_left", 0.0, 0.5, 0.5, 0.5),
        ScanRegion("bottom_right", 0.5, 0.5, 0.5, 0.5),
        ScanRegion("center", 0.25, 0.25, 0.5, 0.5),
    ),
)

_STRATEGIES: Dict[str, ScanStrategy] = {
    FULL_FRAME.name: FULL_FRAME,
    QUADRANTS.name: QUADRANTS,
}


def get_strategy(name: str) -> ScanStrategy:
    """
    Resolve a built-in strategy by name.

    Raises:
        ValueError: If the name is unknown
    """
    try:
        return _STRATEGIES[name.lower().strip()]
    except KeyError:
        raise ValueError(
            f"Unknown scan strategy: {name}. "
            f"Supported: {', '.join(sorted(_STRATEGIES))}"
        ) from None
