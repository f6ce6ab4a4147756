"""
Stitching Configuration
=======================

Configuration for the panorama pipeline using frozen dataclasses,
with optional loading from YAML files.
"""

import math
from dataclasses import dataclass, fields, replace
from enum import Enum
from typing import Any, Dict, Mapping, Optional

import yaml

from .errors import ConfigurationError


class Direction(Enum):
    """Order in which the source images were supplied."""
    RIGHT = "right"  # left to right, canonical
    LEFT = "left"    # right to left, reversed before processing

    @classmethod
    def parse(cls, value: Any) -> "Direction":
        """Accept a Direction, its value, or the short forms 'l' / 'r'."""
        if isinstance(value, cls):
            return value
        text = str(value).strip().lower()
        aliases = {"r": cls.RIGHT, "right": cls.RIGHT, "l": cls.LEFT, "left": cls.LEFT}
        if text not in aliases:
            raise ConfigurationError(f"Unknown direction: {value!r}. Use 'l' or 'r'")
        return aliases[text]


class DetectorType(Enum):
    """Available feature detector families."""
    SIFT = "sift"
    ORB = "orb"

    @classmethod
    def parse(cls, value: Any) -> "DetectorType":
        if isinstance(value, cls):
            return value
        text = str(value).strip().lower()
        for member in cls:
            if member.value == text:
                return member
        available = [member.value for member in cls]
        raise ConfigurationError(f"Unknown detector: {value!r}. Available: {available}")


@dataclass(frozen=True)
class StitchConfig:
    """Parameters for one stitching attempt."""

    half_fov_degrees: float = 33.0   # half the camera field of view
    dist_ratio: float = 10.0         # keep matches below min distance * dist_ratio
    direction: Direction = Direction.RIGHT
    detector: DetectorType = DetectorType.SIFT

    # Feature matching
    orb_max_features: int = 5000
    min_inliers: int = 8
    min_inlier_ratio: float = 0.1    # inliers as a fraction of the filtered matches
    ransac_reproj_threshold: float = 3.0
    max_distortion: float = 0.15     # allowed departure of the fit from a translation

    # Compositing
    blend_ratio: float = 0.6         # seam piece starts at overlap * blend_ratio

    # Parallel projection / detection / matching
    max_workers: int = 4

    @property
    def half_fov(self) -> float:
        """Half field of view in radians."""
        return math.radians(self.half_fov_degrees)

    def validate(self) -> "StitchConfig":
        """
        Check every parameter.

        Returns:
            Self for method chaining

        Raises:
            ConfigurationError: If any parameter is out of range
        """
        if not math.isfinite(self.half_fov_degrees) or not 0 < self.half_fov_degrees < 90:
            raise ConfigurationError(
                f"Half field of view must be in (0, 90) degrees, got {self.half_fov_degrees}"
            )
        if not math.isfinite(self.dist_ratio) or self.dist_ratio <= 0:
            raise ConfigurationError(f"Distance ratio must be positive, got {self.dist_ratio}")
        if not isinstance(self.direction, Direction):
            raise ConfigurationError(f"Invalid direction: {self.direction!r}")
        if not isinstance(self.detector, DetectorType):
            raise ConfigurationError(f"Invalid detector: {self.detector!r}")
        if self.orb_max_features < 1:
            raise ConfigurationError(f"ORB feature cap must be positive, got {self.orb_max_features}")
        if self.min_inliers < 1:
            raise ConfigurationError(f"Minimum inlier count must be positive, got {self.min_inliers}")
        if not 0 <= self.min_inlier_ratio <= 1:
            raise ConfigurationError(f"Minimum inlier ratio must be in [0, 1], got {self.min_inlier_ratio}")
        if self.max_distortion <= 0:
            raise ConfigurationError(f"Maximum distortion must be positive, got {self.max_distortion}")
        if self.ransac_reproj_threshold <= 0:
            raise ConfigurationError(
                f"RANSAC reprojection threshold must be positive, got {self.ransac_reproj_threshold}"
            )
        if not 0.5 < self.blend_ratio <= 1.0:
            raise ConfigurationError(f"Blend ratio must be in (0.5, 1.0], got {self.blend_ratio}")
        if self.max_workers < 1:
            raise ConfigurationError(f"Worker count must be positive, got {self.max_workers}")
        return self

    def with_overrides(self, **overrides: Any) -> "StitchConfig":
        """Copy of this config with the given fields replaced and re-validated."""
        return StitchConfig.from_dict(overrides, base=self)

    @classmethod
    def from_dict(cls, values: Mapping[str, Any], base: Optional["StitchConfig"] = None) -> "StitchConfig":
        """
        Build a config from a plain mapping, e.g. a parsed YAML document.

        Args:
            values: Field names mapped to values; enum fields accept strings
            base: Config providing defaults for missing fields

        Raises:
            ConfigurationError: On unknown keys or invalid values
        """
        known = {f.name for f in fields(cls)}
        unknown = sorted(set(values) - known)
        if unknown:
            raise ConfigurationError(f"Unknown configuration keys: {unknown}")

        parsed: Dict[str, Any] = dict(values)
        if "direction" in parsed:
            parsed["direction"] = Direction.parse(parsed["direction"])
        if "detector" in parsed:
            parsed["detector"] = DetectorType.parse(parsed["detector"])

        try:
            return replace(base or cls(), **parsed).validate()
        except TypeError as e:
            raise ConfigurationError(f"Invalid configuration: {e}") from e

    @classmethod
    def from_yaml(cls, path: str) -> "StitchConfig":
        """Load a config from a YAML file containing a single mapping."""
        try:
            with open(path, "r") as f:
                document = yaml.safe_load(f)
        except (OSError, yaml.YAMLError) as e:
            raise ConfigurationError(f"Failed to load configuration {path}: {e}") from e

        if document is None:
            document = {}
        if not isinstance(document, dict):
            raise ConfigurationError(f"Configuration {path} must contain a mapping")
        return cls.from_dict(document)
