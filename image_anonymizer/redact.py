"""Redaction engine with solid overlay and mosaic methods."""

import logging
import numpy as np
from typing import Optional, Tuple
from enum import Enum

from .types import RedactionRect
from .config import RedactionConfig

logger = logging.getLogger(__name__)


class RedactionMethod(Enum):
    """Supported redaction methods."""
    SOLID = "solid"
    PIXELATE = "pixelate"


def validate_image(image: np.ndarray) -> Tuple[int, int]:
    """Check that `image` is a non-empty RGBA uint8 buffer.

    Returns:
        (width, height) of the image
    """
    if image is None or not isinstance(image, np.ndarray):
        raise ValueError("Invalid image: expected a numpy array")
    if image.ndim != 3 or image.shape[2] != 4:
        raise ValueError(f"Invalid image: expected HxWx4 RGBA array, got shape {image.shape}")
    if image.dtype != np.uint8:
        raise ValueError(f"Invalid image: expected uint8 pixels, got {image.dtype}")
    height, width = image.shape[:2]
    if width == 0 or height == 0:
        raise ValueError(f"Invalid image: zero-sized buffer {width}x{height}")
    return width, height


class RedactionEngine:
    """Engine for painting over sensitive regions of an RGBA image in place."""

    def __init__(self, config: RedactionConfig):
        """Initialize redaction engine with configuration.

        Args:
            config: Redaction configuration parameters
        """
        self.config = config
        self._validate_config()

    def _validate_config(self) -> None:
        """Validate redaction configuration parameters."""
        for name in ('text_method', 'face_method'):
            value = getattr(self.config, name)
            try:
                RedactionMethod(value)
            except ValueError:
                raise ValueError(f"Invalid redaction method '{value}' for {name}")

        if self.config.pixelate_block_size < 2:
            raise ValueError("Pixelate block size must be at least 2")

    @property
    def text_method(self) -> RedactionMethod:
        return RedactionMethod(self.config.text_method)

    @property
    def face_method(self) -> RedactionMethod:
        return RedactionMethod(self.config.face_method)

    def redact_text_region(self, image: np.ndarray, rect: RedactionRect) -> None:
        """Redact a text region with the configured text method."""
        self.apply(image, rect, self.text_method, alpha=self.config.text_alpha)

    def redact_face_region(self, image: np.ndarray, rect: RedactionRect) -> None:
        """Redact a face region with the configured face method."""
        self.apply(image, rect, self.face_method, alpha=self.config.face_alpha)

    def apply(
        self,
        image: np.ndarray,
        rect: RedactionRect,
        method: RedactionMethod,
        alpha: Optional[int] = None
    ) -> None:
        """Apply a redaction method to one rectangle, mutating `image`.

        Args:
            image: RGBA image buffer (H x W x 4, uint8)
            rect: Clamped rectangle, inclusive on all edges
            method: Redaction method to apply
            alpha: Overlay alpha for the solid method (defaults to text alpha)
        """
        width, height = validate_image(image)
        if rect.max_x >= width or rect.max_y >= height:
            raise ValueError(f"Rectangle {rect.to_dict()} exceeds {width}x{height} image")

        if method == RedactionMethod.SOLID:
            self._apply_solid_color(image, rect, self.config.text_alpha if alpha is None else alpha)
        elif method == RedactionMethod.PIXELATE:
            self._apply_pixelation(image, rect)
        else:
            raise ValueError(f"Unsupported redaction method: {method}")

    def _apply_solid_color(self, image: np.ndarray, rect: RedactionRect, alpha: int) -> None:
        """Overwrite every pixel of the rectangle with the overlay color."""
        r, g, b = self.config.solid_color
        image[rect.min_y:rect.max_y + 1, rect.min_x:rect.max_x + 1] = (r, g, b, alpha)

    def _apply_pixelation(self, image: np.ndarray, rect: RedactionRect) -> None:
        """Replace each block of the rectangle with its average color.

        Blocks start at the rectangle's top-left corner; blocks on the far
        edges are clipped to the rectangle and averaged over the pixels they
        actually cover. Means are truncated to integers.
        """
        block_size = self.config.pixelate_block_size

        for block_y in range(rect.min_y, rect.max_y + 1, block_size):
            end_y = min(block_y + block_size - 1, rect.max_y)
            for block_x in range(rect.min_x, rect.max_x + 1, block_size):
                end_x = min(block_x + block_size - 1, rect.max_x)

                block = image[block_y:end_y + 1, block_x:end_x + 1]
                pixel_count = block.shape[0] * block.shape[1]
                if pixel_count == 0:
                    continue

                sums = block.reshape(-1, 4).sum(axis=0, dtype=np.uint64)
                block[:, :] = (sums // pixel_count).astype(np.uint8)
