"""
Cylindrical Panorama Stitching
==============================

Stitches an ordered sequence of overlapping photographs, taken by a camera
rotating about a fixed axis, into a single wide panoramic image:
- Cylindrical projection from the camera's field of view
- SIFT or ORB features with RANSAC-filtered correspondences
- Cumulative shift chain with drift-aware canvas sizing
- Seam-blended compositing with lazily cached output variants
"""

from .config import Direction, DetectorType, StitchConfig
from .errors import (
    PanoramaError,
    ConfigurationError,
    InsufficientCorrespondenceError,
    DegenerateFeaturesError,
)
from .projection import CylindricalProjector, equalize, to_grayscale
from .features import FeatureSet, FeatureExtractor, SIFTExtractor, ORBExtractor, create_extractor
from .matcher import Correspondence, ShiftEstimate, PairMatch, CorrespondenceMatcher, draw_matches
from .accumulator import CanvasExtent, accumulate_shifts
from .compositor import Compositor, SeamBounds
from .panoramic_image import (
    PanoramicImage,
    SIFTPanoramicImage,
    ORBPanoramicImage,
    ProcessingStats,
    VariantCache,
)

__version__ = "1.0.0"
__title__ = "Cylindrical Panorama Stitching"
__license__ = "MIT"

# Public API
__all__ = [
    "Direction",
    "DetectorType",
    "StitchConfig",
    "PanoramaError",
    "ConfigurationError",
    "InsufficientCorrespondenceError",
    "DegenerateFeaturesError",
    "CylindricalProjector",
    "equalize",
    "to_grayscale",
    "FeatureSet",
    "FeatureExtractor",
    "SIFTExtractor",
    "ORBExtractor",
    "create_extractor",
    "Correspondence",
    "ShiftEstimate",
    "PairMatch",
    "CorrespondenceMatcher",
    "draw_matches",
    "CanvasExtent",
    "accumulate_shifts",
    "Compositor",
    "SeamBounds",
    "PanoramicImage",
    "SIFTPanoramicImage",
    "ORBPanoramicImage",
    "ProcessingStats",
    "VariantCache",
]
