"""
Tests for generator input sizing.
"""

import numpy as np
import pytest

from bottle_morph.services.errors import DimensionMismatchError, EmptyRegionError
from bottle_morph.services.resize_planner import plan_resize, resize_for_generation, restore_generated_size


def test_landscape_is_scaled_to_max_dimension():
    assert plan_resize((2000, 1500), 1536) == (1536, 1152)


def test_portrait_is_scaled_to_max_dimension():
    assert plan_resize((1500, 3000), 1536) == (768, 1536)


@pytest.mark.parametrize("size", [(1000, 800), (1536, 1536), (1, 1), (1536, 10)])
def test_small_crops_are_left_alone(size):
    assert plan_resize(size, 1536) == size


def test_extreme_aspect_keeps_at_least_one_pixel():
    assert plan_resize((10000, 3), 1536) == (1536, 1)


def test_legacy_max_dimension():
    assert plan_resize((2000, 1500), 1000) == (1000, 750)


def test_aspect_ratio_is_preserved_within_rounding():
    width, height = plan_resize((3001, 1999), 1536)
    assert width == 1536
    assert abs(width / height - 3001 / 1999) < 1.0 / height


def test_resize_for_generation_matches_plan():
    region = np.full((300, 400, 3), 90, dtype=np.uint8)

    resized = resize_for_generation(region, (200, 150))

    assert resized.shape == (150, 200, 3)
    assert resized.dtype == np.uint8
    assert np.all(resized == 90)


def test_resize_for_generation_identity_returns_copy():
    region = np.zeros((4, 4, 3), dtype=np.uint8)
    resized = resize_for_generation(region, (4, 4))
    assert resized is not region
    assert np.array_equal(resized, region)


def test_resize_rejects_empty_region():
    with pytest.raises(EmptyRegionError):
        resize_for_generation(np.zeros((0, 4, 3), dtype=np.uint8), (1, 1))


def test_restore_maps_back_to_crop_size():
    generated = np.full((150, 200, 3), 40, dtype=np.uint8)

    restored = restore_generated_size(generated, (200, 150), (400, 300))

    assert restored.shape == (300, 400, 3)
    assert np.all(restored == 40)


def test_restore_rejects_generator_size_change():
    generated = np.zeros((150, 201, 3), dtype=np.uint8)
    with pytest.raises(DimensionMismatchError):
        restore_generated_size(generated, (200, 150), (400, 300))


@pytest.mark.parametrize("max_dimension", [0, -5])
def test_non_positive_max_dimension_is_rejected(max_dimension):
    with pytest.raises(ValueError):
        plan_resize((100, 50), max_dimension)


def test_max_dimension_of_one_still_yields_whole_pixels():
    assert plan_resize((100, 50), 1) == (1, 1)
