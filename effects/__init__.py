"""
Reeded -- Effects Registry
Registers the two pipeline stages and composes them.
Every effect is a function: (frame: np.ndarray, **params) -> np.ndarray
"""

import inspect
import logging

import numpy as np

from core.safety import (
    InvalidParameter,
    validate_bitmap,
    validate_blur_params,
    validate_distortion_params,
)
from effects.texture import blur
from effects.distortion import distort_and_light, column_profile, ColumnProfile

logger = logging.getLogger(__name__)

# Master registry: name -> (function, default_params, ranges, description)
EFFECTS = {
    "blur": {
        "fn": blur,
        "category": "prepass",
        "params": {"radius": 0.0},
        "param_ranges": {"radius": {"min": 0.0, "max": 20.0, "step": 0.5}},
        "description": "Gaussian blur with edge padding (0 = off)",
    },
    "reeded": {
        "fn": distort_and_light,
        "category": "glass",
        "params": {"reed_width": 40, "amplitude": 10, "lighting_intensity": 20},
        "param_ranges": {
            "reed_width": {"min": 2, "max": 200, "step": 1},
            "amplitude": {"min": 0, "max": 100, "step": 1},
            "lighting_intensity": {"min": 0, "max": 100, "step": 1},
        },
        "description": "Reeded glass: periodic horizontal displacement + cosine lighting",
    },
}

CATEGORIES = {
    "prepass": "PRE-PASS",
    "glass": "GLASS",
}

# Flat pipeline parameter names -> (effect, effect param)
PIPELINE_PARAMS = {
    "blur_radius": ("blur", "radius"),
    "reed_width": ("reeded", "reed_width"),
    "amplitude": ("reeded", "amplitude"),
    "lighting_intensity": ("reeded", "lighting_intensity"),
}


def get_effect(name: str):
    """Get an effect by name. Returns (fn, default_params).

    Raises ValueError if effect doesn't exist.
    """
    if name not in EFFECTS:
        available = ", ".join(sorted(EFFECTS.keys()))
        raise ValueError(f"Unknown effect: {name}. Available: {available}")
    entry = EFFECTS[name]
    return entry["fn"], entry["params"].copy()


def list_effects() -> list[dict]:
    """List all available effects with descriptions and param ranges."""
    return [
        {
            "name": name,
            "description": entry["description"],
            "params": dict(entry["params"]),
            "param_ranges": entry.get("param_ranges", {}),
            "category": entry.get("category", "other"),
        }
        for name, entry in EFFECTS.items()
    ]


def default_params() -> dict:
    """Flat pipeline defaults: blur_radius, reed_width, amplitude, lighting_intensity."""
    return {
        key: EFFECTS[effect]["params"][param]
        for key, (effect, param) in PIPELINE_PARAMS.items()
    }


def resolve_params(**overrides) -> dict:
    """Merge overrides onto defaults and validate every value.

    None values are ignored so optional CLI/HTTP fields fall back to defaults.

    Raises:
        InvalidParameter: On an unknown key or an out-of-range value.
    """
    unknown = sorted(set(overrides) - set(PIPELINE_PARAMS))
    if unknown:
        raise InvalidParameter(unknown[0], overrides[unknown[0]],
                               f"unknown parameter (expected one of {', '.join(PIPELINE_PARAMS)})")
    merged = default_params()
    merged.update({k: v for k, v in overrides.items() if v is not None})
    validate_blur_params(merged["blur_radius"])
    validate_distortion_params(merged["reed_width"], merged["amplitude"], merged["lighting_intensity"])
    return merged


def apply_effect(frame: np.ndarray, effect_name: str, **params) -> np.ndarray:
    """Apply a single named effect with params merged onto its defaults."""
    fn, defaults = get_effect(effect_name)
    accepted = set(inspect.signature(fn).parameters) - {"frame"}
    unknown = sorted(set(params) - accepted)
    if unknown:
        raise InvalidParameter(unknown[0], params[unknown[0]],
                               f"not a parameter of '{effect_name}'")
    return fn(frame, **{**defaults, **params})


def run_pipeline(source: np.ndarray, blur_radius: float = 0.0, reed_width: float = 40.0,
                 amplitude: float = 10.0, lighting_intensity: float = 20.0,
                 workers: int = 1) -> np.ndarray:
    """Blur, then distort and light. Returns a new bitmap; source is never modified.

    All parameters are validated before any pixel work, so an invalid value
    never yields partially processed output.

    Raises:
        InvalidParameter: If any parameter or the bitmap is invalid.
    """
    blur_radius = validate_blur_params(blur_radius)
    reed_width, amplitude, lighting_intensity = validate_distortion_params(
        reed_width, amplitude, lighting_intensity
    )
    validate_bitmap(source)

    h, w = source.shape[:2]
    logger.debug("pipeline %dx%d blur=%s reed=%s amp=%s light=%s",
                 w, h, blur_radius, reed_width, amplitude, lighting_intensity)

    frame = blur(source, blur_radius)
    return distort_and_light(frame, reed_width, amplitude, lighting_intensity, workers=workers)


__all__ = [
    "EFFECTS",
    "CATEGORIES",
    "PIPELINE_PARAMS",
    "ColumnProfile",
    "apply_effect",
    "blur",
    "column_profile",
    "default_params",
    "distort_and_light",
    "get_effect",
    "list_effects",
    "resolve_params",
    "run_pipeline",
]
