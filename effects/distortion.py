"""
Reeded -- Distortion + Lighting Stage
Vertical reeded-glass displacement with cosine highlight/shadow shading.
"""

from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass

import numpy as np

from core.safety import validate_bitmap, validate_distortion_params


@dataclass(frozen=True)
class ColumnProfile:
    """Per-column displacement and shading, shared by every row.

    Both arrays are float32 with one entry per column.
    """
    displacement: np.ndarray
    shading: np.ndarray

    @property
    def width(self) -> int:
        return int(self.displacement.shape[0])

    def source_columns(self) -> np.ndarray:
        """Column each output column samples from, rounded half up and edge-clamped."""
        x = np.arange(self.width, dtype=np.float64)
        src_x = np.floor(x + self.displacement.astype(np.float64) + 0.5)
        return np.clip(src_x, 0, self.width - 1).astype(np.intp)


def column_profile(width: int, reed_width: float, amplitude: float,
                   lighting_intensity: float) -> ColumnProfile:
    """Pre-calculate displacement and shading for each vertical column.

    angle = 2*pi*x / reed_width
    displacement(x) = amplitude * sin(angle)
    shading(x) = lighting_intensity * cos(angle)
    """
    reed_width, amplitude, lighting_intensity = validate_distortion_params(
        reed_width, amplitude, lighting_intensity
    )
    angle = 2.0 * np.pi * np.arange(width, dtype=np.float64) / reed_width
    # Cosine simulates light hitting a curved surface: bright crest, dark trough
    return ColumnProfile(
        displacement=(amplitude * np.sin(angle)).astype(np.float32),
        shading=(lighting_intensity * np.cos(angle)).astype(np.float32),
    )


def _remap_rows(src: np.ndarray, dst: np.ndarray, src_x: np.ndarray, shading: np.ndarray) -> None:
    """Fill dst from the same rows of src using the column profile."""
    sampled = src[:, src_x]
    # Channels are rounded half-to-even, then saturated (never wrapped)
    lit = sampled[:, :, :3].astype(np.float64) + shading[np.newaxis, :, np.newaxis]
    dst[:, :, :3] = np.clip(np.rint(lit), 0, 255).astype(np.uint8)
    if src.shape[2] == 4:
        dst[:, :, 3] = sampled[:, :, 3]


def distort_and_light(frame: np.ndarray, reed_width: float = 40.0,
                      amplitude: float = 10.0, lighting_intensity: float = 20.0,
                      workers: int = 1) -> np.ndarray:
    """Apply a vertical reeded glass distortion and a 3D lighting effect.

    Each output pixel (x, y) copies the source pixel at
    (clamp(round(x + displacement(x))), y) and adds shading(x) to its RGB
    channels. Alpha is copied from the sampled pixel untouched.

    Args:
        frame: (H, W, 4) or (H, W, 3) uint8 array.
        reed_width: Width of each reed, i.e. the wave period in pixels (> 0).
        amplitude: Maximum horizontal pixel shift (>= 0).
        lighting_intensity: Maximum highlight/shadow brightness delta (>= 0).
        workers: Row blocks processed in parallel. 1 = single pass.

    Returns:
        New array with the same shape and dtype.

    Raises:
        InvalidParameter: If any parameter is out of range.
    """
    reed_width, amplitude, lighting_intensity = validate_distortion_params(
        reed_width, amplitude, lighting_intensity
    )
    validate_bitmap(frame)

    if amplitude == 0 and lighting_intensity == 0:
        return frame.copy()

    h, w = frame.shape[:2]
    profile = column_profile(w, reed_width, amplitude, lighting_intensity)
    src_x = profile.source_columns()
    shading = profile.shading.astype(np.float64)
    result = np.empty_like(frame)

    workers = max(1, min(int(workers), h))
    if workers == 1:
        _remap_rows(frame, result, src_x, shading)
        return result

    bounds = np.linspace(0, h, workers + 1).astype(int)
    with ThreadPoolExecutor(max_workers=workers) as executor:
        futures = [
            executor.submit(_remap_rows, frame[y0:y1], result[y0:y1], src_x, shading)
            for y0, y1 in zip(bounds[:-1], bounds[1:])
        ]
        for future in futures:
            future.result()
    return result
