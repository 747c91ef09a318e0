"""Environment-based configuration for WingScan."""

from __future__ import annotations

from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from WINGSCAN_* environment variables."""

    model_config = SettingsConfigDict(
        env_prefix="WINGSCAN_",
        case_sensitive=False,
        protected_namespaces=(),
    )

    # ML device
    device: Literal["cpu", "cuda", "openvino"] = "cpu"

    # Classifier selection
    model_version: int = Field(default=2, ge=1)
    model_alpha: float = Field(default=1.0, gt=0.0)
    models_dir: str = "models"
    top_k: int = Field(default=3, ge=1)

    # ONNX Runtime threading
    intra_op_threads: int = Field(default=0, ge=0)
    inter_op_threads: int = Field(default=1, ge=1)

    # Input limits
    max_file_size: int = Field(default=10 * 1024 * 1024, ge=1)

    # Inference timeout in seconds (0 = wait forever)
    inference_timeout: float = Field(default=30.0, ge=0.0)

    # History
    history_capacity: int = Field(default=5, ge=1)
    history_time_format: str = "%H:%M"

    # Camera capture
    camera_index: int = Field(default=0, ge=0)
    camera_width: int | None = Field(default=None, ge=1)
    camera_height: int | None = Field(default=None, ge=1)
    jpeg_quality: int = Field(default=92, ge=1, le=100)


def get_settings() -> Settings:
    """Create and return application settings."""
    return Settings()
