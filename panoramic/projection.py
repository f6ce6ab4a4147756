"""
Cylindrical Projection
======================

Reprojects perspective images onto a cylinder so that a camera rotating
about its vertical axis produces frames related by a pure translation.
"""

import math
import threading
from typing import Dict, Tuple

import cv2
import numpy as np

from .errors import ConfigurationError


class CylindricalProjector:
    """
    Cylindrical reprojection with cached remap tables.

    Remap tables depend only on the image size, so they are computed once
    per (width, height) and shared by every image of that size.
    """

    def __init__(self, half_fov: float):
        """
        Initialize the projector.

        Args:
            half_fov: Half the camera field of view, in radians

        Raises:
            ConfigurationError: If half_fov is not in (0, pi/2)
        """
        if not math.isfinite(half_fov) or not 0 < half_fov < math.pi / 2:
            raise ConfigurationError(f"Half field of view must be in (0, pi/2) radians, got {half_fov}")

        self.half_fov = half_fov
        self._maps: Dict[Tuple[int, int], Tuple[np.ndarray, np.ndarray]] = {}
        self._maps_lock = threading.Lock()

    def focal_length(self, width: int) -> float:
        """Focal length in pixels for an image of the given width."""
        return width / (2.0 * math.tan(self.half_fov))

    def _build_maps(self, width: int, height: int) -> Tuple[np.ndarray, np.ndarray]:
        """Source sampling coordinates for every destination pixel."""
        f = self.focal_length(width)
        xc = width / 2.0
        yc = height / 2.0

        xs, ys = np.meshgrid(np.arange(width, dtype=np.float64),
                             np.arange(height, dtype=np.float64))
        theta = (xs - xc) / f

        map_x = f * np.tan(theta) + xc
        map_y = (ys - yc) / np.cos(theta) + yc
        return map_x.astype(np.float32), map_y.astype(np.float32)

    def maps_for(self, width: int, height: int) -> Tuple[np.ndarray, np.ndarray]:
        """Get (and cache) the remap tables for an image size."""
        key = (width, height)
        with self._maps_lock:
            if key not in self._maps:
                self._maps[key] = self._build_maps(width, height)
            return self._maps[key]

    def project(self, image: np.ndarray) -> np.ndarray:
        """
        Project an image onto the cylinder.

        Args:
            image: Color or grayscale image buffer

        Returns:
            Same-size projected image; samples falling outside the source are black
        """
        if image is None or image.size == 0:
            raise ConfigurationError("Cannot project an empty image")

        height, width = image.shape[:2]
        map_x, map_y = self.maps_for(width, height)

        try:
            return cv2.remap(
                image,
                map_x,
                map_y,
                interpolation=cv2.INTER_LINEAR,
                borderMode=cv2.BORDER_CONSTANT,
                borderValue=0
            )
        except cv2.error as e:
            raise ConfigurationError(f"Cylindrical projection failed: {e}") from e


def to_grayscale(image: np.ndarray) -> np.ndarray:
    """BGR image to single-channel grayscale; grayscale input is returned as-is."""
    if image.ndim == 2:
        return image
    return cv2.cvtColor(image, cv2.COLOR_BGR2GRAY)


def equalize(image: np.ndarray) -> np.ndarray:
    """
    Histogram-equalize each channel of an image independently.

    Args:
        image: 8-bit grayscale or BGR image

    Returns:
        Equalized image with the same shape and channel count
    """
    if image.ndim == 2:
        return cv2.equalizeHist(image)

    planes = [cv2.equalizeHist(plane) for plane in cv2.split(image)]
    return cv2.merge(planes)
