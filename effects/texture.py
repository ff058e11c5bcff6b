"""
Reeded -- Blur Stage
Isotropic Gaussian pre-pass with edge padding.
"""

import math

import cv2
import numpy as np

from core.safety import MAX_BLUR_SIGMA, validate_bitmap, validate_blur_params


def edge_padding(radius: float) -> int:
    """Padding (whole pixels) added on every side before blurring: 2 * radius, rounded up."""
    return int(math.ceil(2.0 * radius))


def effective_sigma(radius: float, height: int, width: int) -> float:
    """Gaussian sigma actually used for a blur radius on an H x W frame.

    Beyond the frame's largest dimension the replicated-edge blur is already
    saturated, so the radius is clamped there and at MAX_BLUR_SIGMA.
    """
    return min(float(radius), float(max(height, width)), float(MAX_BLUR_SIGMA))


def blur(frame: np.ndarray, radius: float = 0.0) -> np.ndarray:
    """Gaussian blur with replicated-edge padding.

    The frame is embedded in a canvas padded by ``2 * radius`` pixels on
    every side, filled with copies of the nearest edge pixels, so the kernel
    never samples transparent/black fill near the border. The padded canvas
    is blurred and the original W x H window is cropped back out.

    Very large radii are clamped (see ``effective_sigma``); any finite
    radius >= 0 is accepted.

    Args:
        frame: (H, W, 4) or (H, W, 3) uint8 array.
        radius: Gaussian standard deviation in pixels (>= 0, fractional ok).

    Returns:
        New array with the same shape. radius=0 returns an exact copy.

    Raises:
        InvalidParameter: If radius is negative or not finite.
    """
    radius = validate_blur_params(radius)
    validate_bitmap(frame)

    if radius == 0:
        return frame.copy()

    h, w = frame.shape[:2]
    sigma = effective_sigma(radius, h, w)
    # Replicated border continues past the canvas, wider padding adds nothing
    pad = min(edge_padding(sigma), max(h, w))
    # Session sources are read-only; hand OpenCV a writable buffer
    src = np.ascontiguousarray(frame) if frame.flags.writeable else frame.copy()
    padded = cv2.copyMakeBorder(src, pad, pad, pad, pad, cv2.BORDER_REPLICATE)
    # ksize (0, 0): OpenCV derives the kernel size from sigma
    blurred = cv2.GaussianBlur(
        padded, (0, 0), sigmaX=sigma, sigmaY=sigma, borderType=cv2.BORDER_REPLICATE
    )
    return np.ascontiguousarray(blurred[pad:pad + h, pad:pad + w])
