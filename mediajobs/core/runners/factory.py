"""
Runner selection.

Dependencies: mediajobs.configs, mediajobs.core.runners
System role: Builds the configured transformation runner
"""

from mediajobs.boundary.storage import LocalFileStorage
from mediajobs.configs.jobs import JobSettings
from mediajobs.core.runners.base import TransformationRunner
from mediajobs.core.runners.ffmpeg import FfmpegTransformationRunner
from mediajobs.core.runners.simulated import SimulatedTransformationRunner


def build_runner(settings: JobSettings, storage: LocalFileStorage) -> TransformationRunner:
    """
    Create the runner named by settings.runner_backend.

    Raises:
        ValueError: If the backend name is unknown
    """
    backend = settings.runner_backend.lower()
    if backend == "simulated":
        return SimulatedTransformationRunner(
            storage,
            duration_seconds=settings.simulated_duration_seconds,
            progress_interval_seconds=settings.progress_interval_seconds,
        )
    if backend == "ffmpeg":
        return FfmpegTransformationRunner(
            storage,
            ffmpeg_binary=settings.ffmpeg_binary,
            ffprobe_binary=settings.ffprobe_binary,
        )
    raise ValueError(f"Unknown runner backend: {settings.runner_backend}")
