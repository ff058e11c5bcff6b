"""
Reeded -- Built-in Presets
Named glass styles: each preset is a full set of pipeline parameters.

Categories:
    Fluted   -- Narrow reeds, tight ripples (bathroom doors, shower screens)
    Ribbed   -- Wide reeds, slow bends (architectural glazing)
    Frosted  -- Heavy blur under the reeds, shapes only
    Subtle   -- Gentle touches that keep the photo readable

User presets are stored as one JSON file per preset in a presets directory
(REEDED_PRESETS_DIR, default ~/.reeded/presets).
"""

import json
import logging
import os
import re
from pathlib import Path

from effects import resolve_params

logger = logging.getLogger(__name__)

BUILT_IN_PRESETS = [
    {
        "name": "Fluted Shower",
        "description": "Narrow reeds with strong displacement. The frosted-door look where "
                       "everything behind the glass becomes vertical ribbons.",
        "category": "Fluted",
        "params": {"blur_radius": 1.5, "reed_width": 14, "amplitude": 9, "lighting_intensity": 25},
        "tags": ["bathroom", "door", "ribbons", "narrow"],
    },
    {
        "name": "Cocktail Bar",
        "description": "Fine fluting with bright crests. Warm lights smear into a soft "
                       "vertical shimmer.",
        "category": "Fluted",
        "params": {"blur_radius": 0.5, "reed_width": 8, "amplitude": 4, "lighting_intensity": 35},
        "tags": ["shimmer", "lights", "fine", "sparkle"],
    },
    {
        "name": "Wide Rib",
        "description": "Broad reeds that bend the image slowly from side to side. Reads as "
                       "thick architectural glass.",
        "category": "Ribbed",
        "params": {"blur_radius": 0, "reed_width": 90, "amplitude": 22, "lighting_intensity": 18},
        "tags": ["architecture", "wide", "bend", "facade"],
    },
    {
        "name": "Glass Block",
        "description": "Very wide reeds with deep shading. Each column reads as its own "
                       "rounded pane.",
        "category": "Ribbed",
        "params": {"blur_radius": 2, "reed_width": 140, "amplitude": 40, "lighting_intensity": 45},
        "tags": ["block", "deep", "panes", "retro"],
    },
    {
        "name": "Frosted Reed",
        "description": "Heavy blur under medium reeds. Faces and text disappear, colors and "
                       "silhouettes remain.",
        "category": "Frosted",
        "params": {"blur_radius": 8, "reed_width": 30, "amplitude": 12, "lighting_intensity": 22},
        "tags": ["privacy", "frosted", "soft", "abstract"],
    },
    {
        "name": "Clear Ripple",
        "description": "No blur, light displacement, barely-there lighting. The photo stays "
                       "legible behind a hint of glass.",
        "category": "Subtle",
        "params": {"blur_radius": 0, "reed_width": 40, "amplitude": 3, "lighting_intensity": 6},
        "tags": ["clear", "gentle", "legible", "light"],
    },
    {
        "name": "Lighting Only",
        "description": "Shading without displacement. Vertical highlight bands over an "
                       "undistorted image.",
        "category": "Subtle",
        "params": {"blur_radius": 0, "reed_width": 50, "amplitude": 0, "lighting_intensity": 30},
        "tags": ["bands", "stripes", "highlight"],
    },
]


def default_presets_dir() -> Path:
    """User presets directory: $REEDED_PRESETS_DIR or ~/.reeded/presets."""
    env = os.environ.get("REEDED_PRESETS_DIR")
    return Path(env) if env else Path.home() / ".reeded" / "presets"


def _preset_id(name: str) -> str:
    """Sanitize a preset name for use as a filename."""
    return re.sub(r'[^a-zA-Z0-9_-]', '_', name.strip().lower())


def get_preset(name: str, presets_dir: Path | None = None) -> dict | None:
    """Look up a preset by name (case-insensitive), built-ins first, then user presets."""
    name_lower = name.strip().lower()
    for preset in BUILT_IN_PRESETS:
        if preset["name"].lower() == name_lower:
            return preset
    for preset in load_user_presets(presets_dir):
        if preset["name"].lower() == name_lower or preset["id"] == _preset_id(name):
            return preset
    return None


def get_presets_by_category(category: str) -> list[dict]:
    """Get all built-in presets in a category."""
    return [p for p in BUILT_IN_PRESETS if p["category"].lower() == category.lower()]


def list_preset_names() -> list[str]:
    """Return all built-in preset names."""
    return [p["name"] for p in BUILT_IN_PRESETS]


def list_presets(presets_dir: Path | None = None) -> list[dict]:
    """Built-in presets followed by user-saved ones."""
    result = [{**p, "source": "built-in", "editable": False} for p in BUILT_IN_PRESETS]
    result.extend(load_user_presets(presets_dir))
    return result


def load_user_presets(presets_dir: Path | None = None) -> list[dict]:
    """Read every *.json preset in the directory. Unreadable files are skipped."""
    presets_dir = Path(presets_dir) if presets_dir else default_presets_dir()
    if not presets_dir.is_dir():
        return []
    result = []
    for f in sorted(presets_dir.glob("*.json")):
        try:
            data = json.loads(f.read_text())
            if not isinstance(data, dict):
                raise ValueError("preset file must hold a JSON object")
            if not isinstance(data.get("name"), str) or not data["name"].strip():
                raise ValueError("preset has no name")
            data["params"] = resolve_params(**data.get("params", {}))
        except (OSError, ValueError, TypeError) as e:
            logger.warning("Skipping unreadable preset %s: %s", f, e)
            continue
        data["source"] = "user"
        data["editable"] = True
        data["id"] = f.stem
        result.append(data)
    return result


def save_user_preset(name: str, params: dict, presets_dir: Path | None = None,
                     description: str = "", tags: list[str] | None = None) -> Path:
    """Validate params and write them as a user preset. Returns the file path.

    Raises:
        ValueError: If the name is empty after sanitizing.
        InvalidParameter: If any param is unknown or out of range.
    """
    preset_id = _preset_id(name)
    if not preset_id.strip("_"):
        raise ValueError(f"Invalid preset name: {name!r}")
    resolved = resolve_params(**params)
    presets_dir = Path(presets_dir) if presets_dir else default_presets_dir()
    presets_dir.mkdir(parents=True, exist_ok=True)
    filepath = presets_dir / f"{preset_id}.json"
    data = {
        "name": name.strip(),
        "description": description,
        "category": "User",
        "params": resolved,
        "tags": tags or [],
    }
    filepath.write_text(json.dumps(data, indent=2))
    return filepath


def delete_user_preset(preset_id: str, presets_dir: Path | None = None) -> None:
    """Delete a user preset by id.

    Raises:
        ValueError: If the id is malformed.
        FileNotFoundError: If no such preset exists.
    """
    if not re.match(r'^[a-zA-Z0-9_-]+$', preset_id):
        raise ValueError(f"Invalid preset id: {preset_id!r}")
    presets_dir = Path(presets_dir) if presets_dir else default_presets_dir()
    filepath = presets_dir / f"{preset_id}.json"
    if not filepath.exists():
        raise FileNotFoundError(f"Preset not found: {preset_id}")
    filepath.unlink()
