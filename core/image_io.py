"""
Reeded -- Image I/O
Decodes image files into RGBA bitmaps (H, W, 4) uint8 and encodes them back.
"""

import time
from io import BytesIO
from pathlib import Path

import numpy as np
from PIL import Image, ImageOps, UnidentifiedImageError

from core.safety import SafetyError, preflight, validate_bitmap, validate_dimensions

# Export formats: name -> (Pillow format, file extension, mime type, keeps alpha)
EXPORT_FORMATS = {
    "png": ("PNG", "png", "image/png", True),
    "jpeg": ("JPEG", "jpg", "image/jpeg", False),
    "webp": ("WEBP", "webp", "image/webp", True),
}

_SUFFIX_FORMATS = {".png": "png", ".jpg": "jpeg", ".jpeg": "jpeg", ".webp": "webp"}


def _to_bitmap(img: Image.Image) -> np.ndarray:
    img = ImageOps.exif_transpose(img)
    validate_dimensions(*img.size)
    return np.array(img.convert("RGBA"))


def decode_bitmap(data: bytes) -> np.ndarray:
    """Decode encoded image bytes into an (H, W, 4) uint8 RGBA array.

    Raises:
        SafetyError: If the bytes are not a decodable image or it is too large.
    """
    try:
        with Image.open(BytesIO(data)) as img:
            img.load()
            return _to_bitmap(img)
    except (UnidentifiedImageError, OSError) as e:
        raise SafetyError(f"Could not decode image: {e}") from e


def load_bitmap(path: str) -> np.ndarray:
    """Load an image file as an (H, W, 4) uint8 RGBA array (preflight checked)."""
    info = preflight(path)
    try:
        with Image.open(info["path"]) as img:
            img.load()
            return _to_bitmap(img)
    except (UnidentifiedImageError, OSError) as e:
        raise SafetyError(f"Could not decode image {path}: {e}") from e


def format_for_path(path: str) -> str:
    """Export format name implied by a file suffix.

    Raises:
        ValueError: If the suffix is not an export format's.
    """
    suffix = Path(path).suffix.lower()
    if suffix not in _SUFFIX_FORMATS:
        raise ValueError(
            f"Unsupported output suffix '{suffix}' for {path}. "
            f"Use one of: {', '.join(_SUFFIX_FORMATS)}"
        )
    return _SUFFIX_FORMATS[suffix]


def encode_bitmap(bitmap: np.ndarray, fmt: str = "png", quality: int = 92) -> bytes:
    """Encode a bitmap to image bytes. JPEG drops the alpha channel."""
    if fmt not in EXPORT_FORMATS:
        raise ValueError(f"Unknown export format: {fmt}. Available: {', '.join(EXPORT_FORMATS)}")
    validate_bitmap(bitmap)
    pil_format, _, _, keeps_alpha = EXPORT_FORMATS[fmt]
    img = Image.fromarray(bitmap)
    if not keeps_alpha:
        img = img.convert("RGB")

    buf = BytesIO()
    if pil_format == "PNG":
        img.save(buf, format=pil_format)
    else:
        img.save(buf, format=pil_format, quality=int(quality))
    return buf.getvalue()


def save_bitmap(bitmap: np.ndarray, output_path: str, fmt: str | None = None,
                quality: int = 92) -> Path:
    """Save a bitmap to disk. Format defaults to the one implied by the suffix."""
    output_path = Path(output_path)
    output_path.parent.mkdir(parents=True, exist_ok=True)
    output_path.write_bytes(encode_bitmap(bitmap, fmt or format_for_path(str(output_path)), quality))
    return output_path


def export_filename(fmt: str = "png") -> str:
    """Download name for an export: glass-effect-<unix ms>.<ext>."""
    ext = EXPORT_FORMATS[fmt][1] if fmt in EXPORT_FORMATS else "png"
    return f"glass-effect-{int(time.time() * 1000)}.{ext}"


def mime_type(fmt: str) -> str:
    return EXPORT_FORMATS[fmt][2]
