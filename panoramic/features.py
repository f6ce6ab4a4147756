"""
Feature Extraction
==================

Interchangeable feature detectors behind a single `detect` capability.
Every other stage only sees the resulting FeatureSet, so swapping the
detector family changes nothing downstream.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import List, Optional

import cv2
import numpy as np

from .config import DetectorType, StitchConfig
from .errors import ConfigurationError


@dataclass
class FeatureSet:
    """Feature points of one image and their descriptor rows."""
    keypoints: List[cv2.KeyPoint] = field(default_factory=list)
    descriptors: Optional[np.ndarray] = None

    def __len__(self) -> int:
        if self.descriptors is None:
            return 0
        return min(len(self.keypoints), len(self.descriptors))

    @property
    def is_empty(self) -> bool:
        return len(self) == 0

    @property
    def points(self) -> np.ndarray:
        """Keypoint locations as an (N, 2) float32 array."""
        if not self.keypoints:
            return np.empty((0, 2), dtype=np.float32)
        return np.float32([kp.pt for kp in self.keypoints])


class FeatureExtractor(ABC):
    """Detects feature points and computes their descriptors."""

    name = "abstract"

    @abstractmethod
    def _create_detector(self) -> cv2.Feature2D:
        """Build a fresh OpenCV detector; instances are not shared between threads."""

    def detect(self, gray: np.ndarray) -> FeatureSet:
        """
        Detect features in a grayscale image.

        Args:
            gray: Single-channel 8-bit image

        Returns:
            FeatureSet, possibly empty for featureless images
        """
        if gray is None or gray.ndim != 2:
            raise ConfigurationError("Feature detection requires a single-channel image")

        keypoints, descriptors = self._create_detector().detectAndCompute(gray, None)
        if descriptors is None or len(keypoints) == 0:
            return FeatureSet()
        return FeatureSet(list(keypoints), descriptors)


class SIFTExtractor(FeatureExtractor):
    """Scale and rotation invariant SIFT features, float descriptors."""

    name = "sift"

    def _create_detector(self) -> cv2.Feature2D:
        return cv2.SIFT_create()


class ORBExtractor(FeatureExtractor):
    """Fast ORB features with binary descriptors, capped in number."""

    name = "orb"

    def __init__(self, max_features: int = 5000):
        if max_features < 1:
            raise ConfigurationError(f"ORB feature cap must be positive, got {max_features}")
        self.max_features = max_features

    def _create_detector(self) -> cv2.Feature2D:
        return cv2.ORB_create(nfeatures=self.max_features)


def create_extractor(detector: DetectorType, config: Optional[StitchConfig] = None) -> FeatureExtractor:
    """Build the extractor for a detector selector."""
    config = config or StitchConfig()
    detector = DetectorType.parse(detector)

    if detector is DetectorType.SIFT:
        return SIFTExtractor()
    if detector is DetectorType.ORB:
        return ORBExtractor(config.orb_max_features)
    raise ConfigurationError(f"Unknown detector: {detector!r}")
