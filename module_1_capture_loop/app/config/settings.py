"""Configuration utilities for the Module 1 capture loop."""
from __future__ import annotations

from typing import List

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class AppSettings(BaseSettings):
    """Capture loop configuration sourced from environment variables or defaults."""

    relay_url: str = Field(default="http://localhost:5000/detect", description="Classification relay endpoint.")
    camera_index: int = Field(default=0, ge=0)
    frame_width: int = Field(default=640, gt=0)
    frame_height: int = Field(default=480, gt=0)
    capture_interval_seconds: float = Field(default=3.0, gt=0.0)
    request_timeout_seconds: float = Field(default=10.0, gt=0.0)
    jpeg_quality: int = Field(default=90, ge=1, le=100)
    upload_filename: str = Field(default="webcam-capture.jpg")
    max_inflight_requests: int = Field(default=4, ge=1, description="Worker threads issuing relay requests.")
    display: bool = Field(default=True, description="Render the OpenCV viewer window when true.")
    window_name: str = Field(default="Real-Time Object Detection")
    log_format: str = Field(default="text")
    overlay_color_bgr: List[int] = Field(default_factory=lambda: [0, 0, 255])
    overlay_thickness: int = Field(default=3, ge=1)
    overlay_inset: int = Field(default=5, ge=0)
    overlay_font_scale: float = Field(default=0.6, gt=0.0)
    label_origin: List[int] = Field(default_factory=lambda: [10, 25])
    label_line_height: int = Field(default=25, gt=0)
    panel_width: int = Field(default=260, ge=120)

    model_config = SettingsConfigDict(env_prefix="CAPTURE_", case_sensitive=False)

    @field_validator("overlay_color_bgr")
    @classmethod
    def _check_color(cls, value: List[int]) -> List[int]:
        if len(value) != 3 or any(channel < 0 or channel > 255 for channel in value):
            raise ValueError("overlay_color_bgr must hold three channels in 0..255")
        return value

    @field_validator("label_origin")
    @classmethod
    def _check_origin(cls, value: List[int]) -> List[int]:
        if len(value) != 2:
            raise ValueError("label_origin must be [x, y]")
        return value


def load_settings(**overrides: object) -> AppSettings:
    """Return application settings, applying optional overrides."""

    return AppSettings(**overrides)
