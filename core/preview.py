"""
Reeded -- Preview System
Scales full-resolution results to fit a viewport and encodes them for display.
The full-resolution bitmap is kept for export; previews are throwaway.
"""

import base64
from io import BytesIO

import numpy as np
from PIL import Image

from core.safety import validate_bitmap

MAX_PREVIEW_DIMENSION = 1280
CHECKER_TILE = 8


def fit_to_viewport(image_w: int, image_h: int, view_w: int, view_h: int) -> tuple[int, int]:
    """Largest size with the image's aspect ratio that fits the viewport.

    If the viewport is relatively wider than the image, height is bound to
    the viewport height; otherwise width is bound to the viewport width.
    Fractional sizes are truncated, never below 1px.
    """
    if min(image_w, image_h, view_w, view_h) <= 0:
        raise ValueError(f"Sizes must be positive: image {image_w}x{image_h}, viewport {view_w}x{view_h}")
    view_ratio = view_w / view_h
    image_ratio = image_w / image_h
    if view_ratio > image_ratio:
        draw_h = view_h
        draw_w = draw_h * image_ratio
    else:
        draw_w = view_w
        draw_h = draw_w / image_ratio
    return max(1, int(draw_w)), max(1, int(draw_h))


def render_preview(bitmap: np.ndarray, view_w: int, view_h: int) -> np.ndarray:
    """Resize a bitmap to fit the viewport (LANCZOS). Returns a new array."""
    validate_bitmap(bitmap)
    h, w = bitmap.shape[:2]
    draw_w, draw_h = fit_to_viewport(w, h, view_w, view_h)
    if (draw_w, draw_h) == (w, h):
        return bitmap.copy()
    img = Image.fromarray(bitmap).resize((draw_w, draw_h), Image.LANCZOS)
    return np.array(img)


def composite_on_checkerboard(frame: np.ndarray) -> np.ndarray:
    """Flatten an RGBA frame over a light checkerboard. RGB frames pass through."""
    if frame.shape[2] != 4:
        return frame
    h, w = frame.shape[:2]
    rows = np.arange(h) // CHECKER_TILE
    cols = np.arange(w) // CHECKER_TILE
    pattern = ((rows[:, None] + cols[None, :]) % 2).astype(np.uint8)
    checker = np.where(pattern[:, :, None], np.uint8(255), np.uint8(200))
    alpha = frame[:, :, 3:4].astype(np.float32) / 255.0
    rgb = frame[:, :, :3].astype(np.float32)
    composited = rgb * alpha + checker.astype(np.float32) * (1 - alpha)
    return np.clip(composited, 0, 255).astype(np.uint8)


def bitmap_to_data_url(frame: np.ndarray) -> str:
    """Convert a bitmap to a base64 PNG data URL for an img tag.
    Alpha is composited onto a checkerboard. Large frames are downscaled."""
    validate_bitmap(frame)
    img = Image.fromarray(composite_on_checkerboard(frame))
    w, h = img.size
    if max(w, h) > MAX_PREVIEW_DIMENSION:
        ratio = MAX_PREVIEW_DIMENSION / max(w, h)
        img = img.resize((max(1, int(w * ratio)), max(1, int(h * ratio))), Image.LANCZOS)

    buf = BytesIO()
    img.save(buf, format="PNG", optimize=True)
    b64 = base64.b64encode(buf.getvalue()).decode()
    return f"data:image/png;base64,{b64}"
