"""
Reeded -- Request & Export Settings Models

Pydantic models for the HTTP layer. Field bounds mirror the contract
ranges of the pipeline; the pipeline re-validates every value anyway.
"""

from __future__ import annotations

from enum import Enum

from pydantic import BaseModel, Field


class ExportFormat(str, Enum):
    """Encoded output format."""
    PNG = "png"    # Lossless, keeps alpha (default download)
    JPEG = "jpeg"  # Lossy, alpha dropped
    WEBP = "webp"  # Lossy, keeps alpha


class GlassParams(BaseModel):
    """Pipeline parameters. Omitted fields fall back to the session's current values."""
    blur_radius: float | None = Field(default=None, ge=0)
    reed_width: float | None = Field(default=None, gt=0)
    amplitude: float | None = Field(default=None, ge=0)
    lighting_intensity: float | None = Field(default=None, ge=0)
    preset: str | None = Field(default=None, max_length=100)

    def overrides(self) -> dict:
        """Explicitly set pipeline values (preset excluded)."""
        return self.model_dump(exclude_none=True, exclude={"preset"})


class PreviewRequest(GlassParams):
    viewport_width: int = Field(default=960, ge=1, le=8192)
    viewport_height: int = Field(default=640, ge=1, le=8192)


class ExportSettings(GlassParams):
    format: ExportFormat = ExportFormat.PNG
    quality: int = Field(default=92, ge=1, le=100)


class PresetSave(BaseModel):
    name: str = Field(min_length=1, max_length=100)
    description: str = Field(default="", max_length=500)
    params: dict
