"""
Panoramic Image
===============

Facade over the stitching pipeline. Projects the source images, estimates
the shift chain once, and lazily builds and caches each of the four
output variants (color / grayscale, plain / equalized).
"""

import logging
import threading
import time
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from typing import Any, Callable, List, Optional, Sequence, Tuple

import cv2
import numpy as np

from .accumulator import CanvasExtent, accumulate_shifts
from .compositor import Compositor
from .config import DetectorType, Direction, StitchConfig
from .errors import ConfigurationError
from .features import FeatureExtractor, FeatureSet, create_extractor
from .matcher import CorrespondenceMatcher, PairMatch, ShiftEstimate, draw_matches
from .projection import CylindricalProjector, equalize, to_grayscale

logger = logging.getLogger(__name__)


@dataclass
class ProcessingStats:
    """Counters describing how much work the pipeline has done."""
    images_projected: int = 0
    shift_passes: int = 0
    equalizations: int = 0
    composites_built: int = 0
    cache_hits: int = 0
    last_shift_time_ms: float = 0.0


class VariantCache:
    """Composite results indexed by (grayscale, equalized)."""

    def __init__(self):
        self._results: List[List[Optional[np.ndarray]]] = [[None, None], [None, None]]

    def get(self, gray: bool, equalized: bool) -> Optional[np.ndarray]:
        return self._results[int(gray)][int(equalized)]

    def put(self, gray: bool, equalized: bool, image: np.ndarray) -> None:
        self._results[int(gray)][int(equalized)] = image


class PanoramicImage:
    """
    Panorama built from an ordered sequence of overlapping photographs.

    Features:
    - Cylindrical projection and feature detection in parallel
    - One shift chain shared by every output variant
    - Lazy, memoized composites for the four color / equalization variants
    - Optional visualization of the inlier matches of each pair

    The public methods are guarded by a single lock, so one instance may be
    shared between threads.
    """

    def __init__(self,
                 images: Sequence[np.ndarray],
                 half_fov: float = 33.0,
                 dist_ratio: float = 10.0,
                 direction: Direction = Direction.RIGHT,
                 detector: DetectorType = DetectorType.SIFT,
                 extractor: Optional[FeatureExtractor] = None,
                 **options: Any):
        """
        Initialize the panorama.

        Args:
            images: BGR images sorted in the order given by `direction`
            half_fov: Half the field of view of the camera, in degrees
            dist_ratio: Only matches below dist_ratio times the minimum distance are kept
            direction: Direction.LEFT if the images are sorted right to left
            detector: Feature detector family
            extractor: Custom extractor, overrides `detector`
            **options: Any other StitchConfig field

        Raises:
            ConfigurationError: On invalid parameters or images
        """
        config = StitchConfig.from_dict(dict(
            options,
            half_fov_degrees=half_fov,
            dist_ratio=dist_ratio,
            direction=direction,
            detector=detector
        ))
        self._setup(images, config, extractor)

    @classmethod
    def from_config(cls, images: Sequence[np.ndarray], config: StitchConfig,
                    extractor: Optional[FeatureExtractor] = None) -> "PanoramicImage":
        """Build a panorama from an existing configuration."""
        panorama = cls.__new__(cls)
        panorama._setup(images, config.validate(), extractor)
        return panorama

    def _setup(self, images: Sequence[np.ndarray], config: StitchConfig,
               extractor: Optional[FeatureExtractor]) -> None:
        self.config = config
        self._source_images = self._validate_images(images)

        # Canonical order is left to right; reverse once, permanently.
        if config.direction is Direction.LEFT:
            self._source_images.reverse()

        self.projector = CylindricalProjector(config.half_fov)
        self.extractor = extractor or create_extractor(config.detector, config)
        self.matcher = CorrespondenceMatcher(
            config.dist_ratio, config.min_inliers, config.ransac_reproj_threshold,
            config.min_inlier_ratio, config.max_distortion
        )
        self.compositor = Compositor(config.blend_ratio)
        self.stats = ProcessingStats()

        # Projected material and its equalized variants, indexed by grayscale flag.
        self._projected: Optional[List[np.ndarray]] = None
        self._projected_gray: Optional[List[np.ndarray]] = None
        self._equalized: List[Optional[List[np.ndarray]]] = [None, None]

        # Shift chain, computed on the non-equalized grayscale projections only.
        self._shifts: Optional[List[ShiftEstimate]] = None
        self._offsets: Optional[List[Tuple[int, int]]] = None
        self._extent: Optional[CanvasExtent] = None

        self._cache = VariantCache()
        self._match_images: List[np.ndarray] = []
        self._lock = threading.RLock()

        logger.info(
            "Panorama of %d images, half fov %.1f deg, dist ratio %.2f, %s detector",
            len(self._source_images), config.half_fov_degrees, config.dist_ratio, self.extractor.name
        )

    @staticmethod
    def _validate_images(images: Sequence[np.ndarray]) -> List[np.ndarray]:
        images = list(images)
        if len(images) < 2:
            raise ConfigurationError(f"Need at least 2 images to stitch, got {len(images)}")

        for i, image in enumerate(images):
            if image is None or not isinstance(image, np.ndarray) or image.size == 0:
                raise ConfigurationError(f"Image {i} is empty")
            if image.ndim != 3 or image.shape[2] != 3:
                raise ConfigurationError(f"Image {i} is not a 3-channel color image: {image.shape}")
            if image.dtype != np.uint8:
                raise ConfigurationError(f"Image {i} must be 8-bit, got {image.dtype}")

        # The compositor works on equally sized material images.
        height, width = images[0].shape[:2]
        for i, image in enumerate(images[1:], start=1):
            if image.shape[:2] != (height, width):
                logger.warning("Resizing image %d from %dx%d to %dx%d",
                               i, image.shape[1], image.shape[0], width, height)
                images[i] = cv2.resize(image, (width, height), interpolation=cv2.INTER_AREA)

        return images

    def _map_parallel(self, function: Callable, *iterables) -> List[Any]:
        """Run function over the iterables on the worker pool, preserving order."""
        with ThreadPoolExecutor(max_workers=self.config.max_workers) as executor:
            futures = [executor.submit(function, *args) for args in zip(*iterables)]
            return [future.result() for future in futures]

    # Pipeline stages

    def _project_images(self) -> None:
        if self._projected is not None:
            return

        def project(image: np.ndarray) -> Tuple[np.ndarray, np.ndarray]:
            projected = self.projector.project(image)
            return projected, to_grayscale(projected)

        results = self._map_parallel(project, self._source_images)
        self._projected = [color for color, _ in results]
        self._projected_gray = [gray for _, gray in results]
        self.stats.images_projected += len(results)
        logger.debug("Projected %d images onto the cylinder", len(results))

    def _prepare_shifts(self, draw: bool) -> None:
        """Detect, match and accumulate. Only needs to run once."""
        start_time = time.time()
        self._project_images()
        gray = self._projected_gray

        features: List[FeatureSet] = self._map_parallel(self.extractor.detect, gray)
        for i, feature_set in enumerate(features):
            logger.debug("Image %d: %d features", i, len(feature_set))

        pairs = range(len(features) - 1)
        pair_matches: List[PairMatch] = self._map_parallel(
            self.matcher.match_pair, features[:-1], features[1:], pairs
        )

        shifts = [pair.shift for pair in pair_matches]
        offsets, extent = accumulate_shifts(shifts)

        self._shifts = shifts
        self._offsets = offsets
        self._extent = extent

        if draw:
            self._match_images = [
                draw_matches(gray[i], features[i], gray[i + 1], features[i + 1], pair_matches[i])
                for i in pairs
            ]

        self.stats.shift_passes += 1
        self.stats.last_shift_time_ms = (time.time() - start_time) * 1000
        logger.info("Shifts %s, extent %s (%.0f ms)",
                    [(s.dx, s.dy) for s in shifts], extent, self.stats.last_shift_time_ms)

    def _material(self, gray: bool, equalized: bool) -> List[np.ndarray]:
        """Images to paste for a variant, equalizing them on first use."""
        base = self._projected_gray if gray else self._projected
        if not equalized:
            return base

        if self._equalized[int(gray)] is None:
            self._equalized[int(gray)] = self._map_parallel(equalize, base)
            self.stats.equalizations += len(base)
        return self._equalized[int(gray)]

    # Public API

    def get(self, gray: bool = False, equalize: bool = False, draw: bool = False) -> np.ndarray:
        """
        Panorama for one variant, computed the first time and cached afterwards.

        Args:
            gray: Build the result from grayscale images
            equalize: Build the result from histogram-equalized images
            draw: Also produce match visualizations, see match_images()

        Returns:
            The (read-only) panoramic image

        Raises:
            InsufficientCorrespondenceError: If some adjacent pair cannot be aligned
        """
        with self._lock:
            should_draw = draw and not self._match_images
            result = self._cache.get(gray, equalize)

            if result is not None and not should_draw:
                self.stats.cache_hits += 1
                return result

            if self._shifts is None or should_draw:
                self._prepare_shifts(draw)

            # Drawing never changes the composite.
            if result is not None:
                return result

            result = self.compositor.compose(self._material(gray, equalize), self._shifts, self._extent)
            result.flags.writeable = False
            self._cache.put(gray, equalize, result)
            self.stats.composites_built += 1
            logger.info("Built %s%s panorama %dx%d",
                        "grayscale" if gray else "color",
                        " equalized" if equalize else "",
                        result.shape[1], result.shape[0])
            return result

    def get_all(self, draw: bool = False) -> List[np.ndarray]:
        """
        All four variants: color, equalized color, grayscale, equalized grayscale.
        Grayscale results are converted to BGR for uniform handling.
        """
        with self._lock:
            return [
                self.get(False, False, draw),
                self.get(False, True, draw),
                cv2.cvtColor(self.get(True, False, draw), cv2.COLOR_GRAY2BGR),
                cv2.cvtColor(self.get(True, True, draw), cv2.COLOR_GRAY2BGR),
            ]

    def match_images(self) -> List[np.ndarray]:
        """Match visualizations per adjacent pair. Empty until get() ran with draw=True."""
        with self._lock:
            return list(self._match_images)

    @property
    def images(self) -> List[np.ndarray]:
        """Source images in canonical left-to-right order."""
        return list(self._source_images)

    @property
    def shifts(self) -> List[ShiftEstimate]:
        """Shift between each adjacent pair, computing the chain if needed."""
        with self._lock:
            if self._shifts is None:
                self._prepare_shifts(False)
            return list(self._shifts)

    @property
    def offsets(self) -> List[Tuple[int, int]]:
        """Cumulative offset of every image relative to the first."""
        with self._lock:
            if self._offsets is None:
                self._prepare_shifts(False)
            return list(self._offsets)

    @property
    def extent(self) -> CanvasExtent:
        with self._lock:
            if self._extent is None:
                self._prepare_shifts(False)
            return self._extent


class SIFTPanoramicImage(PanoramicImage):
    """Panorama aligned with SIFT features."""

    def __init__(self, images: Sequence[np.ndarray], half_fov: float = 33.0,
                 dist_ratio: float = 10.0, direction: Direction = Direction.RIGHT, **options: Any):
        super().__init__(images, half_fov, dist_ratio, direction, DetectorType.SIFT, **options)


class ORBPanoramicImage(PanoramicImage):
    """Panorama aligned with ORB features."""

    def __init__(self, images: Sequence[np.ndarray], half_fov: float = 33.0,
                 dist_ratio: float = 10.0, direction: Direction = Direction.RIGHT, **options: Any):
        super().__init__(images, half_fov, dist_ratio, direction, DetectorType.ORB, **options)
