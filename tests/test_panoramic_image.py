from concurrent.futures import ThreadPoolExecutor

import cv2
import numpy as np
import pytest

from panoramic import (
    ConfigurationError,
    DegenerateFeaturesError,
    Direction,
    InsufficientCorrespondenceError,
    ORBExtractor,
    ORBPanoramicImage,
    PanoramicImage,
    SIFTExtractor,
    SIFTPanoramicImage,
    StitchConfig,
    VariantCache,
)

from conftest import make_color_texture

SETTINGS = dict(half_fov=10.0, dist_ratio=20.0)


@pytest.fixture
def panorama(color_chain):
    return PanoramicImage(color_chain, **SETTINGS)


def test_shift_chain(panorama):
    shifts = panorama.shifts
    assert len(shifts) == 2
    assert abs(shifts[0].dx - 96) <= 2 and abs(shifts[0].dy) <= 2
    assert abs(shifts[1].dx - 96) <= 2 and abs(shifts[1].dy - 8) <= 2

    extent = panorama.extent
    assert extent.left == 0
    assert extent.upper == min(0, shifts[0].dy, shifts[0].dy + shifts[1].dy)
    assert extent.right == shifts[0].dx + shifts[1].dx
    assert extent.lower == max(0, shifts[0].dy, shifts[0].dy + shifts[1].dy)
    assert panorama.offsets[-1] == (extent.right, shifts[0].dy + shifts[1].dy)


def test_result_dimensions(panorama):
    result = panorama.get()
    extent = panorama.extent
    assert result.shape == (160 - extent.vertical_span, 240 + extent.horizontal_span, 3)
    assert result.dtype == np.uint8


def test_get_is_idempotent(panorama):
    first = panorama.get(False, False)
    second = panorama.get(False, False)

    assert second is first
    assert panorama.stats.shift_passes == 1
    assert panorama.stats.composites_built == 1
    assert panorama.stats.cache_hits == 1
    assert panorama.stats.images_projected == 3


def test_cached_result_is_read_only(panorama):
    result = panorama.get()
    with pytest.raises(ValueError):
        result[0, 0] = 0


def test_variants_share_one_shift_pass(panorama):
    color = panorama.get(False, False)
    gray = panorama.get(True, False)
    equalized = panorama.get(False, True)
    gray_equalized = panorama.get(True, True)

    assert panorama.stats.shift_passes == 1
    assert panorama.stats.composites_built == 4
    assert panorama.stats.equalizations == 6
    assert gray.ndim == 2 and gray_equalized.ndim == 2
    assert color.shape[:2] == gray.shape == equalized.shape[:2] == gray_equalized.shape
    assert not np.array_equal(color, equalized)


def test_fresh_objects_are_deterministic(color_chain):
    first = PanoramicImage(color_chain, **SETTINGS).get()
    second = PanoramicImage(color_chain, max_workers=1, **SETTINGS).get()
    np.testing.assert_array_equal(first, second)


def test_direction_flag_reverses_input(color_chain):
    forward = PanoramicImage(color_chain, direction=Direction.RIGHT, **SETTINGS)
    backward = PanoramicImage(list(reversed(color_chain)), direction=Direction.LEFT, **SETTINGS)

    assert backward.extent == forward.extent
    np.testing.assert_array_equal(backward.get(), forward.get())
    for ours, theirs in zip(backward.images, color_chain):
        np.testing.assert_array_equal(ours, theirs)


def test_direction_accepts_strings(color_chain):
    panorama = PanoramicImage(list(reversed(color_chain)), direction="l", **SETTINGS)
    np.testing.assert_array_equal(panorama.images[0], color_chain[0])


def test_reversed_order_without_direction_flag_fails(color_chain):
    panorama = PanoramicImage(list(reversed(color_chain)), **SETTINGS)

    with pytest.raises(InsufficientCorrespondenceError, match="direction"):
        panorama.get()
    assert panorama.stats.composites_built == 0


@pytest.mark.parametrize("detector", ["sift", "orb"])
def test_unrelated_images_fail_at_default_settings(detector):
    images = [make_color_texture(160, 240, seed=100), make_color_texture(160, 240, seed=200)]
    panorama = PanoramicImage(images, detector=detector)

    with pytest.raises(InsufficientCorrespondenceError):
        panorama.get()


def test_get_all_order_and_channels(panorama):
    results = panorama.get_all()

    assert len(results) == 4
    assert all(image.ndim == 3 and image.shape[2] == 3 for image in results)
    np.testing.assert_array_equal(results[0], panorama.get(False, False))
    np.testing.assert_array_equal(results[1], panorama.get(False, True))
    np.testing.assert_array_equal(results[2], cv2.cvtColor(panorama.get(True, False), cv2.COLOR_GRAY2BGR))
    np.testing.assert_array_equal(results[3], cv2.cvtColor(panorama.get(True, True), cv2.COLOR_GRAY2BGR))


def test_match_images_only_after_draw(panorama):
    assert panorama.match_images() == []

    result = panorama.get()
    assert panorama.match_images() == []

    drawn = panorama.get(draw=True)
    matches = panorama.match_images()
    assert drawn is result
    assert len(matches) == 2
    assert all(image.ndim == 3 for image in matches)
    assert panorama.stats.shift_passes == 2
    assert panorama.stats.composites_built == 1

    # Already drawn: nothing is recomputed.
    panorama.get(draw=True)
    panorama.get_all(draw=True)
    assert panorama.stats.shift_passes == 2


def test_get_all_with_draw(color_chain):
    panorama = PanoramicImage(color_chain, **SETTINGS)
    panorama.get_all(draw=True)
    assert len(panorama.match_images()) == 2
    assert panorama.stats.shift_passes == 1


def test_concurrent_first_access(panorama):
    variants = [(False, False), (False, True), (True, False), (True, True)] * 2
    with ThreadPoolExecutor(max_workers=4) as executor:
        results = list(executor.map(lambda v: panorama.get(*v), variants))

    assert panorama.stats.shift_passes == 1
    assert panorama.stats.composites_built == 4
    assert results[0] is results[4]


def test_single_image_rejected(color_chain):
    with pytest.raises(ConfigurationError):
        PanoramicImage(color_chain[:1], **SETTINGS)


@pytest.mark.parametrize("half_fov", [0.0, -5.0])
def test_invalid_half_fov_rejected(color_chain, half_fov):
    with pytest.raises(ConfigurationError):
        PanoramicImage(color_chain, half_fov=half_fov)


def test_unknown_detector_rejected(color_chain):
    with pytest.raises(ConfigurationError):
        PanoramicImage(color_chain, detector="surf")


def test_grayscale_source_rejected(color_chain):
    gray = [cv2.cvtColor(image, cv2.COLOR_BGR2GRAY) for image in color_chain]
    with pytest.raises(ConfigurationError):
        PanoramicImage(gray)


def test_featureless_image_fails_explicitly(color_chain):
    blank = np.zeros_like(color_chain[1])
    panorama = PanoramicImage([color_chain[0], blank], **SETTINGS)

    with pytest.raises(InsufficientCorrespondenceError) as info:
        panorama.get()
    assert isinstance(info.value, DegenerateFeaturesError)
    assert info.value.pair_index == 0

    # Nothing was cached, the failure repeats.
    with pytest.raises(InsufficientCorrespondenceError):
        panorama.get()
    assert panorama.stats.composites_built == 0


def test_mismatched_sizes_are_resized(color_chain):
    smaller = cv2.resize(color_chain[1], (200, 120))
    panorama = PanoramicImage([color_chain[0], smaller], **SETTINGS)
    assert panorama.images[1].shape == color_chain[0].shape


def test_from_config(color_chain):
    config = StitchConfig(half_fov_degrees=10.0, dist_ratio=20.0)
    panorama = PanoramicImage.from_config(color_chain, config)
    assert panorama.config is config
    assert len(panorama.shifts) == 2


def test_custom_extractor(color_chain):
    extractor = SIFTExtractor()
    panorama = PanoramicImage(color_chain, extractor=extractor, **SETTINGS)
    assert panorama.extractor is extractor


def test_detector_subclasses(color_chain):
    assert isinstance(SIFTPanoramicImage(color_chain, **SETTINGS).extractor, SIFTExtractor)

    orb = ORBPanoramicImage(color_chain, orb_max_features=1000, **SETTINGS)
    assert isinstance(orb.extractor, ORBExtractor)
    assert orb.extractor.max_features == 1000


def test_variant_cache():
    cache = VariantCache()
    assert cache.get(True, False) is None

    image = np.zeros((2, 2), np.uint8)
    cache.put(True, False, image)
    assert cache.get(True, False) is image
    assert cache.get(False, True) is None
