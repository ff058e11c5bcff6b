"""
Conftest: shared fixtures for all Reeded test modules.

1. Synthetic bitmaps (gradients, noise, transparent), no image files needed
2. Encoded image bytes for I/O and HTTP tests
3. Isolated user presets directory per test
"""

import os
import sys
from io import BytesIO

import numpy as np
import pytest
from PIL import Image

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))


def _make_test_bitmap(width=64, height=48, alpha=255):
    """Generate a synthetic RGBA bitmap (gradient, not blank)."""
    bitmap = np.zeros((height, width, 4), dtype=np.uint8)
    bitmap[:, :, 0] = np.linspace(0, 255, width, dtype=np.uint8)  # R gradient
    bitmap[:, :, 1] = 128  # constant G
    bitmap[:, :, 2] = np.linspace(255, 0, width, dtype=np.uint8)  # B inverse
    bitmap[:, :, 3] = alpha
    return bitmap


def _encode_png(bitmap):
    buf = BytesIO()
    Image.fromarray(bitmap).save(buf, format="PNG")
    return buf.getvalue()


@pytest.fixture
def gradient_bitmap():
    return _make_test_bitmap()


@pytest.fixture
def noise_bitmap():
    """Random RGBA with random alpha."""
    rng = np.random.RandomState(555)
    return rng.randint(0, 256, (40, 60, 4), dtype=np.uint8)


@pytest.fixture
def four_pixel_bitmap():
    """W=4, H=1 grey ramp, fully opaque."""
    return np.array([[[10, 10, 10, 255], [20, 20, 20, 255],
                      [30, 30, 30, 255], [40, 40, 40, 255]]], dtype=np.uint8)


@pytest.fixture
def png_bytes():
    return _encode_png(_make_test_bitmap(80, 60))


@pytest.fixture
def png_file(tmp_path):
    path = tmp_path / "source.png"
    path.write_bytes(_encode_png(_make_test_bitmap(80, 60)))
    return path


@pytest.fixture(autouse=True)
def _isolated_presets_dir(tmp_path, monkeypatch):
    """Point user presets at a per-test directory."""
    presets_dir = tmp_path / "presets"
    monkeypatch.setenv("REEDED_PRESETS_DIR", str(presets_dir))
    return presets_dir
