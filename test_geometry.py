"""
Tests for bounding-box expansion and region cropping.
"""

import numpy as np
import pytest

from bottle_morph.models.composite import BoundingBox
from bottle_morph.services.errors import EmptyRegionError, InvalidGeometryError
from bottle_morph.services.geometry import crop_region, expand_box


def test_expand_centered_box():
    """A box away from the edges grows symmetrically by the padding fraction."""
    box = BoundingBox(x=0.4, y=0.3, width=0.2, height=0.4)

    expanded = expand_box(box, 0.30, (1000, 1000))

    assert expanded.x == pytest.approx(0.34, abs=1e-9)
    assert expanded.y == pytest.approx(0.18, abs=1e-9)
    assert expanded.width == pytest.approx(0.32, abs=1e-9)
    assert expanded.height == pytest.approx(0.64, abs=1e-9)


def test_expand_clamps_only_the_overflowing_side():
    """Overflow on the left is absorbed there; the right side keeps its full padding."""
    box = BoundingBox(x=0.05, y=0.1, width=0.2, height=0.5)

    expanded = expand_box(box, 0.30, (1000, 1000))

    assert expanded.x == 0.0
    assert expanded.right == pytest.approx(0.31, abs=1e-9)
    assert expanded.y == pytest.approx(0.0, abs=1e-9)
    assert expanded.bottom == pytest.approx(0.75, abs=1e-9)


def test_expand_box_touching_all_edges():
    box = BoundingBox(x=0.0, y=0.0, width=1.0, height=1.0)

    expanded = expand_box(box, 0.5, (640, 480))

    assert (expanded.x, expanded.y) == (0.0, 0.0)
    assert expanded.width == pytest.approx(1.0)
    assert expanded.height == pytest.approx(1.0)


def test_expanded_box_contains_original_and_stays_in_bounds():
    """Randomised boxes and paddings always yield a valid containing box."""
    rng = np.random.default_rng(1234)
    for _ in range(500):
        x, y = rng.uniform(0.0, 0.9, size=2)
        width = rng.uniform(0.01, 1.0 - x)
        height = rng.uniform(0.01, 1.0 - y)
        padding = rng.uniform(0.0, 1.5)
        image_size = (int(rng.integers(1, 4000)), int(rng.integers(1, 4000)))
        box = BoundingBox(x=float(x), y=float(y), width=float(width), height=float(height))

        expanded = expand_box(box, float(padding), image_size)

        assert expanded.contains(box)
        assert expanded.x >= 0.0 and expanded.y >= 0.0
        assert expanded.right <= 1.0 + 1e-9 and expanded.bottom <= 1.0 + 1e-9
        expanded.validate()


def test_expand_snaps_outward_to_pixels():
    """With zero padding the box is still widened to whole pixels, never shrunk."""
    box = BoundingBox(x=0.1234, y=0.2345, width=0.3, height=0.3)

    expanded = expand_box(box, 0.0, (100, 100))

    assert expanded.contains(box)
    assert expanded.x == pytest.approx(0.12)
    assert expanded.y == pytest.approx(0.23)
    assert expanded.right == pytest.approx(0.43)
    assert expanded.bottom == pytest.approx(0.54)


@pytest.mark.parametrize(
    "box",
    [
        BoundingBox(x=0.1, y=0.1, width=0.0, height=0.5),
        BoundingBox(x=0.1, y=0.1, width=0.5, height=-0.1),
        BoundingBox(x=-0.1, y=0.1, width=0.5, height=0.5),
        BoundingBox(x=0.7, y=0.1, width=0.5, height=0.5),
        BoundingBox(x=0.1, y=0.6, width=0.5, height=0.5),
        BoundingBox(x=float("nan"), y=0.1, width=0.5, height=0.5),
    ],
)
def test_expand_rejects_invalid_boxes(box):
    with pytest.raises(InvalidGeometryError):
        expand_box(box, 0.3, (100, 100))


def test_expand_rejects_negative_padding():
    with pytest.raises(InvalidGeometryError):
        expand_box(BoundingBox(x=0.1, y=0.1, width=0.2, height=0.2), -0.1, (100, 100))


def test_crop_region_returns_copy_and_rect():
    image = (np.arange(10 * 20 * 3) % 256).astype(np.uint8).reshape(10, 20, 3)
    box = BoundingBox(x=0.25, y=0.2, width=0.5, height=0.5)

    crop, rect = crop_region(image, box)

    assert (rect.x, rect.y, rect.width, rect.height) == (5, 2, 10, 5)
    assert crop.shape == (5, 10, 3)
    assert np.array_equal(crop, image[2:7, 5:15])
    snapshot = image.copy()
    crop[:] = 0
    assert np.array_equal(image, snapshot)


def test_crop_region_rejects_sub_pixel_box():
    image = np.zeros((10, 10, 3), dtype=np.uint8)
    with pytest.raises(EmptyRegionError):
        crop_region(image, BoundingBox(x=0.5, y=0.5, width=0.01, height=0.01))
