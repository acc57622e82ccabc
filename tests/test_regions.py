"""
==============================================================================
Scan Region Tests
==============================================================================

Tests for region geometry and strategy lookup.

==============================================================================
"""

import numpy as np
import pytest

from app.scanner.regions import (
    FULL_FRAME,
    QUADRANTS,
    ScanRegion,
    ScanStrategy,
    get_strategy,
)


class TestScanRegion:
    """Tests for ScanRegion."""

    def test_full_region_crop_is_whole_image(self):
        """The full region returns the image unchanged."""
        image = np.zeros((480, 640, 3), dtype=np.uint8)
        assert FULL_FRAME.regions[0].crop(image).shape == (480, 640, 3)

    def test_quadrant_bounds(self):
        """Quadrants split the frame in half on each axis."""
        region = ScanRegion("bottom_right", 0.5, 0.5, 0.5, 0.5)
        assert region.bounds(640, 480) == (320, 240, 640, 480)

    def test_center_crop_shape(self):
        """The center region is half the frame in each dimension."""
        image = np.zeros((100, 200), dtype=np.uint8)
        center = ScanRegion("center", 0.25, 0.25, 0.5, 0.5)
        assert center.crop(image).shape == (50, 100)

    def test_crop_is_a_view(self):
        """Cropping does not copy pixels."""
        image = np.zeros((10, 10), dtype=np.uint8)
        crop = ScanRegion("tl", 0.0, 0.0, 0.5, 0.5).crop(image)
        crop[0, 0] = 7
        assert image[0, 0] == 7

    @pytest.mark.parametrize(
        "left,top,width,height",
        [
            (1.0, 0.0, 0.1, 0.1),
            (0.0, 0.0, 0.0, 0.5),
            (0.6, 0.0, 0.5, 0.5),
            (0.0, 0.7, 0.5, 0.5),
        ],
    )
    def test_invalid_geometry_rejected(self, left, top, width, height):
        """Regions must lie inside the frame with a positive size."""
        with pytest.raises(ValueError):
            ScanRegion("bad", left, top, width, height)


class TestScanStrategy:
    """Tests for strategies."""

    def test_full_frame_has_single_region(self):
        assert len(FULL_FRAME) == 1

    def test_quadrants_order(self):
        """Full frame first, then four quadrants, then the centre."""
        assert [r.name for r in QUADRANTS] == [
            "full", "top_left", "top_right", "bottom_left", "bottom_right", "center",
        ]

    def test_empty_strategy_rejected(self):
        with pytest.raises(ValueError):
            ScanStrategy("empty", ())

    @pytest.mark.parametrize("name,expected", [
        ("full_frame", FULL_FRAME),
        ("QUADRANTS", QUADRANTS),
        (" quadrants ", QUADRANTS),
    ])
    def test_get_strategy(self, name, expected):
        assert get_strategy(name) is expected

    def test_unknown_strategy(self):
        with pytest.raises(ValueError, match="Unknown scan strategy"):
            get_strategy("spiral")
