"""Image file decode/encode using OpenCV, normalized to RGBA buffers."""

import logging
from pathlib import Path
import cv2
import numpy as np

logger = logging.getLogger(__name__)

# Formats that cannot store an alpha channel
_OPAQUE_SUFFIXES = {'.jpg', '.jpeg', '.bmp'}


class ImageReadError(ValueError):
    """Raised when an input image cannot be read or decoded."""


def read_image_bytes(path: Path) -> bytes:
    """Read raw image bytes for the detection service."""
    try:
        return Path(path).read_bytes()
    except OSError as e:
        raise ImageReadError(f"Failed to read image file {path}: {e}") from e


def decode_image(data: bytes) -> np.ndarray:
    """Decode encoded image bytes into an RGBA uint8 array."""
    buffer = np.frombuffer(data, dtype=np.uint8)
    image = cv2.imdecode(buffer, cv2.IMREAD_UNCHANGED)
    if image is None:
        raise ImageReadError("Failed to decode image data")
    return to_rgba(image)


def to_rgba(image: np.ndarray) -> np.ndarray:
    """Convert a grayscale, BGR or BGRA OpenCV image to RGBA uint8."""
    if image.dtype != np.uint8:
        # 16-bit PNG/TIFF
        image = cv2.convertScaleAbs(image, alpha=255.0 / 65535.0)

    if image.ndim == 2:
        return cv2.cvtColor(image, cv2.COLOR_GRAY2RGBA)
    if image.shape[2] == 3:
        return cv2.cvtColor(image, cv2.COLOR_BGR2RGBA)
    if image.shape[2] == 4:
        return cv2.cvtColor(image, cv2.COLOR_BGRA2RGBA)
    raise ImageReadError(f"Unsupported channel count: {image.shape[2]}")


def load_image(path: Path) -> np.ndarray:
    """Load an image file as an RGBA uint8 array."""
    path = Path(path)
    if not path.is_file():
        raise ImageReadError(f"Input file does not exist: {path}")
    return decode_image(read_image_bytes(path))


def save_image(path: Path, image: np.ndarray) -> Path:
    """Write an RGBA array to `path`; alpha is dropped for opaque formats."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)

    if path.suffix.lower() in _OPAQUE_SUFFIXES:
        encoded = cv2.cvtColor(image, cv2.COLOR_RGBA2BGR)
    else:
        encoded = cv2.cvtColor(image, cv2.COLOR_RGBA2BGRA)

    if not cv2.imwrite(str(path), encoded):
        raise IOError(f"Failed to save output image: {path}")

    logger.info(f"Saved processed image to: {path}")
    return path
