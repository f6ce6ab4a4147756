"""Synthetic, deterministic images shared by the test modules."""

import cv2
import numpy as np
import pytest


def make_texture(height, width, seed=0, block=8):
    """Blurred random blocks: plenty of corners and blobs for any detector."""
    rng = np.random.default_rng(seed)
    small = rng.integers(0, 256, size=(height // block + 1, width // block + 1), dtype=np.uint8)
    big = cv2.resize(small, (small.shape[1] * block, small.shape[0] * block),
                     interpolation=cv2.INTER_NEAREST)
    return cv2.GaussianBlur(big[:height, :width], (5, 5), 0)


def make_color_texture(height, width, seed=0):
    return cv2.merge([make_texture(height, width, seed + k) for k in range(3)])


def crop_chain(scene, width, height, steps):
    """
    Crops of `scene` whose top-left corners follow the cumulative steps.

    Args:
        scene: Large image to cut from
        width, height: Size of each crop
        steps: (dx, dy) between consecutive crops

    Returns:
        List of crops, left to right
    """
    x, y = 0, 32
    crops = [scene[y:y + height, x:x + width].copy()]
    for dx, dy in steps:
        x += dx
        y += dy
        crops.append(scene[y:y + height, x:x + width].copy())
    return crops


@pytest.fixture(scope="session")
def gray_scene():
    return make_texture(256, 640, seed=7)


@pytest.fixture(scope="session")
def color_scene():
    return make_color_texture(256, 640, seed=11)


@pytest.fixture
def color_chain(color_scene):
    """Three overlapping color frames, each 96 px right of the previous."""
    return crop_chain(color_scene, 240, 160, [(96, 0), (96, 8)])
