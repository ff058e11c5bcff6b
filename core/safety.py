"""
Reeded -- Safety & Parameter Guards
Centralized preflight checks run before any pixel work.
Rejects out-of-range parameters, malformed bitmaps, and oversized inputs.
"""

import math
import os
import numbers
from pathlib import Path

import numpy as np

# --- Configurable Limits ---
MAX_FILE_MB = 100          # Maximum input file size
MAX_PIXELS = 64_000_000    # Maximum decoded image area (W x H)
MAX_BLUR_SIGMA = 256       # Effective Gaussian sigma ceiling (pixels)
ALLOWED_EXTENSIONS = {".png", ".jpg", ".jpeg", ".bmp", ".tiff", ".tif", ".webp", ".gif"}


class SafetyError(Exception):
    """Raised when a preflight check on an input file fails."""
    pass


class InvalidParameter(ValueError):
    """Raised when a numeric parameter or bitmap is out of range.

    This is a precondition violation: it is always raised before any
    pixel work begins, so no partial output ever exists.
    """

    def __init__(self, name: str, value, message: str):
        super().__init__(f"Invalid {name}={value!r}: {message}")
        self.name = name
        self.value = value


def _as_finite(name: str, value) -> float:
    if isinstance(value, bool) or not isinstance(value, numbers.Real):
        raise InvalidParameter(name, value, "must be a real number")
    value = float(value)
    if not math.isfinite(value):
        raise InvalidParameter(name, value, "NaN/Inf not allowed")
    return value


def validate_non_negative(name: str, value) -> float:
    """Return value as float, or raise InvalidParameter if it is < 0."""
    value = _as_finite(name, value)
    if value < 0:
        raise InvalidParameter(name, value, "must be >= 0")
    return value


def validate_positive(name: str, value) -> float:
    """Return value as float, or raise InvalidParameter if it is <= 0."""
    value = _as_finite(name, value)
    if value <= 0:
        raise InvalidParameter(name, value, "must be > 0")
    return value


def validate_blur_params(radius) -> float:
    return validate_non_negative("blur_radius", radius)


def validate_distortion_params(reed_width, amplitude, lighting_intensity) -> tuple[float, float, float]:
    """Check the distortion stage parameters, in argument order."""
    return (
        validate_positive("reed_width", reed_width),
        validate_non_negative("amplitude", amplitude),
        validate_non_negative("lighting_intensity", lighting_intensity),
    )


def validate_bitmap(bitmap) -> np.ndarray:
    """Check that bitmap is an (H, W, 3|4) uint8 array with at least one pixel.

    Raises:
        InvalidParameter: If the array has the wrong type, shape or dtype.
    """
    if not isinstance(bitmap, np.ndarray):
        raise InvalidParameter("bitmap", type(bitmap).__name__, "must be a numpy array")
    if bitmap.ndim != 3 or bitmap.shape[2] not in (3, 4):
        raise InvalidParameter("bitmap", bitmap.shape, "must have shape (H, W, 3) or (H, W, 4)")
    if bitmap.dtype != np.uint8:
        raise InvalidParameter("bitmap", str(bitmap.dtype), "must be uint8")
    h, w = bitmap.shape[:2]
    if h == 0 or w == 0:
        raise InvalidParameter("bitmap", bitmap.shape, "must not be empty")
    if h * w > MAX_PIXELS:
        raise InvalidParameter("bitmap", bitmap.shape, f"exceeds {MAX_PIXELS} pixel limit")
    return bitmap


def validate_dimensions(width: int, height: int) -> None:
    """Check decoded image dimensions against MAX_PIXELS.

    Raises:
        SafetyError: If the image is empty or too large to process.
    """
    if width <= 0 or height <= 0:
        raise SafetyError(f"Image has no pixels ({width}x{height})")
    if width * height > MAX_PIXELS:
        raise SafetyError(
            f"Image is {width}x{height} ({width * height / 1e6:.1f}MP), "
            f"exceeds {MAX_PIXELS / 1e6:.0f}MP limit. Downscale it first."
        )


def preflight(input_path: str) -> dict:
    """Run all safety checks before loading an image file.

    Args:
        input_path: Path to the input file.

    Returns:
        dict with file metadata (path, size_mb, extension).

    Raises:
        SafetyError: If any check fails.
        FileNotFoundError: If input doesn't exist.
    """
    input_path = str(input_path)
    real_path = os.path.realpath(input_path)

    # 1. File exists
    if not os.path.isfile(real_path):
        raise FileNotFoundError(f"Input file not found: {input_path}")

    # 2. File size check
    size_bytes = os.path.getsize(real_path)
    size_mb = size_bytes / (1024 * 1024)
    if size_mb > MAX_FILE_MB:
        raise SafetyError(
            f"Input file is {size_mb:.0f}MB, exceeds {MAX_FILE_MB}MB limit."
        )

    # 3. File extension check
    ext = Path(real_path).suffix.lower()
    if ext not in ALLOWED_EXTENSIONS:
        raise SafetyError(
            f"File type '{ext}' not allowed. "
            f"Supported: {', '.join(sorted(ALLOWED_EXTENSIONS))}"
        )

    return {
        "path": real_path,
        "size_mb": size_mb,
        "extension": ext,
    }
