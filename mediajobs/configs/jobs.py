"""
Job processing configuration settings.

Storage locations, upload limits and transformation runner selection.

Dependencies: pydantic, pydantic_settings
System role: Configuration for the job lifecycle and runners
"""

from pydantic import Field
from pydantic_settings import SettingsConfigDict

from mediajobs.configs.base import BaseSettings


class JobSettings(BaseSettings):
    """Job lifecycle, storage and runner configuration."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_prefix="JOBS_",
        case_sensitive=False,
        extra="ignore",
    )

    upload_dir: str = Field(default="./data/uploads", description="Directory for uploaded inputs")
    output_dir: str = Field(default="./data/processed", description="Directory for produced outputs")

    max_upload_bytes: int = Field(
        default=1024 * 1024 * 1024,
        description="Maximum accepted upload size in bytes (1GB)",
    )
    allowed_upload_types: list[str] = Field(
        default=["video/"],
        description="Accepted content-type prefixes for uploads (the runners transcode video only)",
    )

    runner_backend: str = Field(
        default="simulated",
        description="Transformation runner: 'simulated' (CPU-bound busy work) or 'ffmpeg'",
    )
    simulated_duration_seconds: float = Field(
        default=30.0,
        description="Wall time the simulated runner spends per job",
    )
    progress_interval_seconds: float = Field(
        default=2.0,
        description="Approximate interval between progress reports",
    )
    ffmpeg_binary: str = Field(default="ffmpeg", description="ffmpeg executable")
    ffprobe_binary: str = Field(default="ffprobe", description="ffprobe executable")

    fail_interrupted_on_startup: bool = Field(
        default=True,
        description="Mark jobs left pending/processing by a previous process as failed",
    )
