import math

import cv2
import numpy as np
import pytest

from panoramic import ConfigurationError, CylindricalProjector, equalize, to_grayscale

from conftest import make_color_texture


@pytest.mark.parametrize("half_fov", [0.0, -0.2, math.pi / 2, float("inf")])
def test_invalid_half_fov(half_fov):
    with pytest.raises(ConfigurationError):
        CylindricalProjector(half_fov)


def test_focal_length():
    projector = CylindricalProjector(math.radians(45))
    assert projector.focal_length(200) == pytest.approx(100.0)


def test_projection_keeps_shape_and_dtype():
    image = make_color_texture(120, 160, seed=1)
    projected = CylindricalProjector(math.radians(30)).project(image)
    assert projected.shape == image.shape
    assert projected.dtype == np.uint8


def test_center_column_is_unchanged():
    image = make_color_texture(120, 160, seed=2)
    projected = CylindricalProjector(math.radians(30)).project(image)
    np.testing.assert_array_equal(projected[:, 80], image[:, 80])


def test_side_columns_fall_outside_the_source():
    image = np.full((100, 200, 3), 255, dtype=np.uint8)
    projected = CylindricalProjector(math.radians(33)).project(image)

    assert not projected[:, 0].any()
    assert not projected[:, -1].any()
    # Middle of the image is fully covered.
    assert (projected[40:60, 90:110] == 255).all()


def test_corners_are_black_and_edges_bow_inward():
    image = np.full((100, 200), 200, dtype=np.uint8)
    projected = CylindricalProjector(math.radians(33)).project(image)

    # Column 30 samples inside the source only near the middle row.
    assert projected[0, 30] == 0
    assert projected[99, 30] == 0
    assert projected[50, 30] == 200


def test_maps_are_cached_per_size():
    projector = CylindricalProjector(math.radians(20))
    first = projector.maps_for(64, 48)
    assert projector.maps_for(64, 48) is first
    assert projector.maps_for(48, 64) is not first


def test_empty_image_rejected():
    with pytest.raises(ConfigurationError):
        CylindricalProjector(0.5).project(np.zeros((0, 0, 3), dtype=np.uint8))


def test_to_grayscale():
    image = make_color_texture(40, 60, seed=3)
    gray = to_grayscale(image)
    assert gray.shape == (40, 60)
    np.testing.assert_array_equal(gray, cv2.cvtColor(image, cv2.COLOR_BGR2GRAY))
    assert to_grayscale(gray) is gray


def test_equalize_works_per_channel():
    image = make_color_texture(60, 80, seed=4)
    image[:, :, 1] //= 4

    result = equalize(image)
    assert result.shape == image.shape
    for channel in range(3):
        np.testing.assert_array_equal(result[:, :, channel], cv2.equalizeHist(image[:, :, channel]))


def test_equalize_grayscale():
    gray = (make_color_texture(60, 80, seed=5)[:, :, 0] // 3).astype(np.uint8)
    result = equalize(gray)
    assert result.ndim == 2
    assert result.max() == 255
