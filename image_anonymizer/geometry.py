"""Bounding polygon to redaction rectangle conversion."""

import logging
from typing import Optional

from .types import BoundingPoly, RedactionRect

logger = logging.getLogger(__name__)


def compute_redaction_rect(
    poly: Optional[BoundingPoly],
    width: int,
    height: int,
    max_region_fraction: Optional[float] = 0.5
) -> Optional[RedactionRect]:
    """Clamp a polygon's bounding box to the image and validate its size.

    Detector vertices may be negative or lie past the image edge; the
    axis-aligned box around them is clamped to ``[0, width-1] x [0, height-1]``.

    Args:
        poly: Bounding polygon, or None when the detector returned none
        width: Image width in pixels
        height: Image height in pixels
        max_region_fraction: Reject rectangles whose extent exceeds this
            fraction of the image width or height. None disables the check.

    Returns:
        The clamped rectangle, or None when the region must be skipped
        (no vertices, entirely off-image, or oversized)
    """
    if width <= 0 or height <= 0:
        raise ValueError(f"Invalid image dimensions: {width}x{height}")

    vertices = BoundingPoly.vertices_of(poly)
    if not vertices:
        logger.debug("Skipping region: no bounding polygon")
        return None

    xs = [v.x for v in vertices]
    ys = [v.y for v in vertices]

    min_x = max(0, min(xs))
    min_y = max(0, min(ys))
    max_x = min(width - 1, max(0, max(xs)))
    max_y = min(height - 1, max(0, max(ys)))

    # Polygon lies entirely past the right or bottom edge
    if min_x > max_x or min_y > max_y:
        logger.debug(f"Skipping region outside image: ({min_x}, {min_y})-({max_x}, {max_y})")
        return None

    if max_region_fraction is not None:
        if (max_x - min_x) > width * max_region_fraction or \
           (max_y - min_y) > height * max_region_fraction:
            logger.debug(
                f"Skipping oversized region ({min_x}, {min_y})-({max_x}, {max_y}) "
                f"in {width}x{height} image"
            )
            return None

    return RedactionRect(min_x=min_x, min_y=min_y, max_x=max_x, max_y=max_y)
