"""
Panorama Errors
===============

Exception hierarchy shared by every stage of the stitching pipeline.
"""

from typing import Optional


class PanoramaError(Exception):
    """Base class for all stitching failures."""
    pass


class ConfigurationError(PanoramaError, ValueError):
    """Invalid parameters or input images, detected before any work is done."""
    pass


class InsufficientCorrespondenceError(PanoramaError):
    """
    An adjacent image pair cannot yield a shift estimate.

    Attributes:
        pair_index: Index i of the failing pair (i, i + 1), if known
        reason: Short description of which stage ran out of correspondences
    """

    def __init__(self, reason: str, pair_index: Optional[int] = None):
        self.reason = reason
        self.pair_index = pair_index
        if pair_index is None:
            message = reason
        else:
            message = f"pair ({pair_index}, {pair_index + 1}): {reason}"
        super().__init__(message)


class DegenerateFeaturesError(InsufficientCorrespondenceError):
    """One image of a pair produced no usable feature points."""
    pass
