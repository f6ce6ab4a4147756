"""
Shift Accumulation
==================

Folds pairwise shifts into cumulative offsets and the canvas extent
needed to hold every image.
"""

from dataclasses import dataclass
from typing import List, Sequence, Tuple

from .matcher import ShiftEstimate


@dataclass(frozen=True)
class CanvasExtent:
    """Cumulative bounds of the image chain: left <= 0 <= right, upper <= 0 <= lower."""
    left: int = 0
    right: int = 0
    upper: int = 0
    lower: int = 0

    def include(self, x: int, y: int) -> "CanvasExtent":
        """Extent widened to cover the cumulative position (x, y)."""
        return CanvasExtent(
            left=min(self.left, x),
            right=max(self.right, x),
            upper=min(self.upper, y),
            lower=max(self.lower, y)
        )

    @property
    def horizontal_span(self) -> int:
        return self.right - self.left

    @property
    def vertical_span(self) -> int:
        return self.lower - self.upper

    def canvas_size(self, width: int, height: int) -> Tuple[int, int]:
        """(width, height) of a canvas holding images of the given size."""
        return width + self.horizontal_span, height + self.vertical_span


def accumulate_shifts(shifts: Sequence[ShiftEstimate]) -> Tuple[List[Tuple[int, int]], CanvasExtent]:
    """
    Chain pairwise shifts into cumulative offsets.

    Args:
        shifts: Shift from image i to image i + 1, for each adjacent pair

    Returns:
        Cumulative (x, y) offset of every image (the first at the origin)
        and the extent covering all of them
    """
    x, y = 0, 0
    offsets = [(x, y)]
    extent = CanvasExtent()

    for shift in shifts:
        x += shift.dx
        y += shift.dy
        offsets.append((x, y))
        extent = extent.include(x, y)

    return offsets, extent
