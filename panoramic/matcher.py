"""
Correspondence Matching
=======================

Brute-force descriptor matching between adjacent images, a global
distance filter, and a RANSAC homography fit whose inliers give the
translation between the two frames.
"""

import logging
import math
from dataclasses import dataclass, field
from typing import List

import cv2
import numpy as np

from .errors import ConfigurationError, DegenerateFeaturesError, InsufficientCorrespondenceError
from .features import FeatureSet

logger = logging.getLogger(__name__)

# A homography needs at least four point pairs.
MIN_HOMOGRAPHY_POINTS = 4


@dataclass(frozen=True)
class Correspondence:
    """A match between feature `left_index` of image i and `right_index` of image i + 1."""
    left_index: int
    right_index: int
    distance: float

    def to_dmatch(self) -> cv2.DMatch:
        return cv2.DMatch(self.left_index, self.right_index, self.distance)


@dataclass(frozen=True)
class ShiftEstimate:
    """Integer translation from image i to image i + 1."""
    dx: int
    dy: int


@dataclass
class PairMatch:
    """Outcome of matching one adjacent pair."""
    pair_index: int
    shift: ShiftEstimate
    inliers: List[Correspondence] = field(default_factory=list)
    raw_count: int = 0       # nearest-neighbour matches
    filtered_count: int = 0  # after the distance threshold


def round_half_away(value: float) -> int:
    """Round to the nearest integer, halves away from zero."""
    return int(math.copysign(math.floor(abs(value) + 0.5), value))


class CorrespondenceMatcher:
    """
    Estimates the shift between adjacent images from their feature sets.

    Features:
    - Brute-force L2 nearest neighbour matching
    - Threshold relative to the pair's best match distance
    - RANSAC outlier rejection with minimum inlier count and ratio
    - Rejection of fits that are not close to a pure translation
    """

    def __init__(self, dist_ratio: float = 10.0, min_inliers: int = 8,
                 ransac_reproj_threshold: float = 3.0, min_inlier_ratio: float = 0.1,
                 max_distortion: float = 0.15):
        """
        Initialize the matcher.

        Args:
            dist_ratio: Keep matches with distance <= max(1, min distance) * dist_ratio
            min_inliers: Fewest RANSAC inliers accepted for a shift estimate
            ransac_reproj_threshold: Maximum reprojection error of a RANSAC inlier, in pixels
            min_inlier_ratio: Fewest inliers accepted, as a fraction of the filtered matches
            max_distortion: Largest deviation of the fitted homography from a pure translation
        """
        if dist_ratio <= 0:
            raise ConfigurationError(f"Distance ratio must be positive, got {dist_ratio}")
        if min_inliers < 1:
            raise ConfigurationError(f"Minimum inlier count must be positive, got {min_inliers}")
        if not 0 <= min_inlier_ratio <= 1:
            raise ConfigurationError(f"Minimum inlier ratio must be in [0, 1], got {min_inlier_ratio}")
        if max_distortion <= 0:
            raise ConfigurationError(f"Maximum distortion must be positive, got {max_distortion}")

        self.dist_ratio = dist_ratio
        self.min_inliers = min_inliers
        self.ransac_reproj_threshold = ransac_reproj_threshold
        self.min_inlier_ratio = min_inlier_ratio
        self.max_distortion = max_distortion

    def nearest_matches(self, left: FeatureSet, right: FeatureSet) -> List[Correspondence]:
        """Closest right descriptor for every left descriptor."""
        matcher = cv2.BFMatcher(cv2.NORM_L2, crossCheck=False)
        matches = matcher.match(left.descriptors, right.descriptors)
        return [Correspondence(m.queryIdx, m.trainIdx, float(m.distance)) for m in matches]

    def filter_by_distance(self, matches: List[Correspondence]) -> List[Correspondence]:
        """Keep matches within dist_ratio times the pair's minimum distance (floored at 1)."""
        if not matches:
            return []
        min_distance = max(1.0, min(m.distance for m in matches))
        threshold = min_distance * self.dist_ratio
        return [m for m in matches if m.distance <= threshold]

    @staticmethod
    def translation_distortion(homography: np.ndarray, points: np.ndarray) -> float:
        """
        How far a homography is from a pure translation over the given points.

        Largest of the deviation of its linear part from identity and the
        relative scale change its perspective row causes across the points.
        """
        h = homography / homography[2, 2]
        linear = np.abs(h[:2, :2] - np.eye(2)).max()
        spread = float(np.ptp(points, axis=0).max()) if len(points) else 0.0
        perspective = (abs(h[2, 0]) + abs(h[2, 1])) * spread
        return float(max(linear, perspective))

    def match_pair(self, left: FeatureSet, right: FeatureSet, pair_index: int = 0) -> PairMatch:
        """
        Estimate the translation between two adjacent images.

        Args:
            left: Features of image i
            right: Features of image i + 1
            pair_index: i, used in error messages

        Returns:
            PairMatch with the shift and the inlier correspondences

        Raises:
            DegenerateFeaturesError: If either image has no features
            InsufficientCorrespondenceError: If too few matches or inliers survive
        """
        if left.is_empty or right.is_empty:
            side = "left" if left.is_empty else "right"
            raise DegenerateFeaturesError(f"no features detected in the {side} image", pair_index)

        try:
            raw = self.nearest_matches(left, right)
        except cv2.error as e:
            raise InsufficientCorrespondenceError(f"descriptor matching failed: {e}", pair_index) from e

        close = self.filter_by_distance(raw)
        if len(close) < MIN_HOMOGRAPHY_POINTS:
            raise InsufficientCorrespondenceError(
                f"{len(close)} of {len(raw)} matches passed the distance filter, "
                f"need {MIN_HOMOGRAPHY_POINTS}",
                pair_index
            )

        left_pts = np.float32([left.keypoints[m.left_index].pt for m in close])
        right_pts = np.float32([right.keypoints[m.right_index].pt for m in close])

        try:
            homography, mask = cv2.findHomography(
                left_pts, right_pts, cv2.RANSAC, self.ransac_reproj_threshold
            )
        except cv2.error as e:
            raise InsufficientCorrespondenceError(f"homography fit failed: {e}", pair_index) from e

        if homography is None or mask is None:
            raise InsufficientCorrespondenceError("homography fit found no consensus", pair_index)

        inlier_mask = mask.ravel().astype(bool)
        inlier_count = int(inlier_mask.sum())
        if inlier_count < self.min_inliers:
            raise InsufficientCorrespondenceError(
                f"{inlier_count} RANSAC inliers, need {self.min_inliers}", pair_index
            )
        if inlier_count < self.min_inlier_ratio * len(close):
            raise InsufficientCorrespondenceError(
                f"only {inlier_count} of {len(close)} matches agree on one transform", pair_index
            )

        distortion = self.translation_distortion(homography, left_pts[inlier_mask])
        if distortion > self.max_distortion:
            raise InsufficientCorrespondenceError(
                f"fitted transform is not a translation (distortion {distortion:.2f})", pair_index
            )

        # Images progress rightward, so the left point sits further right.
        displacement = left_pts[inlier_mask] - right_pts[inlier_mask]
        mean_dx, mean_dy = displacement.astype(np.float64).mean(axis=0)
        shift = ShiftEstimate(round_half_away(mean_dx), round_half_away(mean_dy))
        if shift.dx < 0:
            raise InsufficientCorrespondenceError(
                f"right image lies {-shift.dx} pixels left of its neighbour; "
                f"check the image order or the direction flag",
                pair_index
            )

        inliers = [m for m, keep in zip(close, inlier_mask) if keep]
        logger.debug(
            "Pair %d: %d matches, %d within distance, %d inliers, shift (%d, %d)",
            pair_index, len(raw), len(close), inlier_count, shift.dx, shift.dy
        )
        return PairMatch(pair_index, shift, inliers, len(raw), len(close))


def draw_matches(left_gray: np.ndarray, left: FeatureSet,
                 right_gray: np.ndarray, right: FeatureSet,
                 pair_match: PairMatch) -> np.ndarray:
    """Side-by-side visualization of a pair's inlier correspondences."""
    return cv2.drawMatches(
        left_gray, left.keypoints,
        right_gray, right.keypoints,
        [m.to_dmatch() for m in pair_match.inliers],
        None,
        flags=cv2.DrawMatchesFlags_NOT_DRAW_SINGLE_POINTS
    )
