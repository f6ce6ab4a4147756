"""
Panorama Compositing
====================

Pastes projected images onto a shared canvas at their cumulative offsets,
cross-fading each seam linearly, then crops the black margins left by
vertical drift.
"""

import logging
from dataclasses import dataclass
from typing import Optional, Sequence

import numpy as np

from .accumulator import CanvasExtent, accumulate_shifts
from .errors import ConfigurationError, InsufficientCorrespondenceError, PanoramaError
from .matcher import ShiftEstimate, round_half_away

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SeamBounds:
    """Columns of the incoming image, relative to its left edge, around one seam."""
    junction: int
    start: int   # first blended column
    end: int     # first column pasted unmodified

    @property
    def span(self) -> int:
        return self.end - self.start


class Compositor:
    """
    Sequential left-to-right compositor.

    Each image after the first is blended into whatever the previous image
    left on the canvas, so pasting order matters and cannot be parallelized.
    """

    def __init__(self, blend_ratio: float = 0.6):
        """
        Args:
            blend_ratio: Fraction of the overlap after which the new image is pasted as-is
        """
        if not 0.5 < blend_ratio <= 1.0:
            raise ConfigurationError(f"Blend ratio must be in (0.5, 1.0], got {blend_ratio}")
        self.blend_ratio = blend_ratio

    def seam_bounds(self, width: int, shift_x: int, pair_index: int = 0) -> SeamBounds:
        """
        Blend window for an image placed shift_x pixels right of its neighbour.

        Raises:
            InsufficientCorrespondenceError: If the two images do not overlap enough to blend
        """
        overlap = width - shift_x
        if shift_x < 0 or overlap <= 0:
            raise InsufficientCorrespondenceError(
                f"shift {shift_x} is outside the image width {width}", pair_index
            )

        piece_left = round_half_away(overlap * self.blend_ratio)
        junction = overlap // 2
        # Window stays centred on the junction and inside the overlap.
        half_span = min(piece_left - junction, junction)
        bounds = SeamBounds(junction, junction - half_span, junction + half_span)

        if bounds.span <= 0:
            raise InsufficientCorrespondenceError(
                f"overlap of {overlap} pixels leaves no room to blend", pair_index
            )
        return bounds

    def compose(self, images: Sequence[np.ndarray], shifts: Sequence[ShiftEstimate],
                extent: Optional[CanvasExtent] = None, crop: bool = True) -> np.ndarray:
        """
        Build the panorama.

        Args:
            images: Equally sized material images, left to right
            shifts: Shift between each adjacent pair (len(images) - 1 entries)
            extent: Precomputed extent of the chain; derived from shifts when omitted
            crop: Remove the top and bottom margins caused by vertical drift

        Returns:
            The composite image, with the dtype and channel count of the inputs
        """
        if len(images) < 2:
            raise ConfigurationError(f"Need at least 2 images to composite, got {len(images)}")
        if len(shifts) != len(images) - 1:
            raise ConfigurationError(f"Expected {len(images) - 1} shifts, got {len(shifts)}")

        shape = images[0].shape
        if any(image.shape != shape for image in images):
            raise ConfigurationError("All material images must share the same shape")

        offsets, chain_extent = accumulate_shifts(shifts)
        extent = extent or chain_extent
        height, width = shape[:2]
        total_width, total_height = extent.canvas_size(width, height)

        canvas = np.zeros((total_height, total_width) + shape[2:], dtype=images[0].dtype)
        logger.debug("Compositing %d images on a %dx%d canvas", len(images), total_width, total_height)

        for i, image in enumerate(images):
            x = offsets[i][0] - extent.left
            y = offsets[i][1] - extent.upper
            rows = slice(y, y + height)

            piece_left = 0
            if i > 0:
                seam = self.seam_bounds(width, shifts[i - 1].dx, i - 1)
                self._blend_seam(canvas[rows, x + seam.start:x + seam.end],
                                 image[:, seam.start:seam.end])
                piece_left = seam.end

            canvas[rows, x + piece_left:x + width] = image[:, piece_left:]

        if not crop:
            return canvas
        return self.crop_vertical(canvas, extent)

    @staticmethod
    def _blend_seam(destination: np.ndarray, incoming: np.ndarray) -> None:
        """Cross-fade in place, alpha rising linearly from 0 across the columns."""
        span = destination.shape[1]
        alpha = np.arange(span, dtype=np.float64) / span
        alpha = alpha.reshape((1, span) + (1,) * (destination.ndim - 2))

        blended = destination.astype(np.float64) * (1.0 - alpha) + incoming.astype(np.float64) * alpha
        if np.issubdtype(destination.dtype, np.integer):
            info = np.iinfo(destination.dtype)
            blended = np.clip(np.rint(blended), info.min, info.max)
        destination[...] = blended.astype(destination.dtype)

    @staticmethod
    def crop_vertical(canvas: np.ndarray, extent: CanvasExtent) -> np.ndarray:
        """Drop the drift margin from both the top and the bottom of the canvas."""
        margin = extent.vertical_span
        total_height = canvas.shape[0]
        if total_height - 2 * margin <= 0:
            raise PanoramaError(
                f"Vertical drift of {margin} pixels leaves nothing of a {total_height} pixel canvas"
            )
        return canvas[margin:total_height - margin]

