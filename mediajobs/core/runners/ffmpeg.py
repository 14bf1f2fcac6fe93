"""
ffmpeg-backed transformation runner.

Transcodes the uploaded input with settings derived from the job options
and turns ffmpeg's machine-readable `-progress` stream into percentages.

Progress output (one key=value per line, blocks end with progress=...):
    out_time_us=1234567
    progress=continue

Dependencies: asyncio subprocesses, mediajobs.boundary.storage
System role: Production transformation runner
"""

import asyncio
import logging
from collections import deque
from typing import Any

from mediajobs.boundary.storage import LocalFileStorage
from mediajobs.core.exceptions import RunnerFailure
from mediajobs.core.runners.base import ProgressReporter, TransformationRunner

logger = logging.getLogger(__name__)

RESOLUTION_SIZES = {
    "480p": "854x480",
    "720p": "1280x720",
    "1080p": "1920x1080",
    "4k": "3840x2160",
}

VIDEO_CODECS = {
    "h264": "libx264",
    "h265": "libx265",
}

QUALITY_PRESETS = {
    "slow": ["-preset", "veryslow", "-crf", "15", "-bf", "16", "-refs", "16", "-threads", "1"],
    "medium": ["-preset", "slower", "-crf", "18", "-bf", "8", "-refs", "8", "-threads", "2"],
    "fast": ["-preset", "slow", "-crf", "23", "-threads", "4"],
}

BASE_FILTERS = [
    "scale=iw:ih:flags=lanczos",
    "unsharp=5:5:1.0:5:5:0.0",
    "eq=contrast=1.1:brightness=0.05:saturation=1.1",
]

STDERR_TAIL_LINES = 20


def build_ffmpeg_args(
    ffmpeg_binary: str,
    input_path: str,
    output_path: str,
    options: dict[str, Any],
) -> list[str]:
    """
    Build the ffmpeg command line for a job.

    Args:
        ffmpeg_binary: ffmpeg executable
        input_path: Source media path
        output_path: Destination path
        options: resolution / quality / codec snapshot

    Returns:
        list[str]: Arguments suitable for create_subprocess_exec
    """
    codec = options.get("codec", "h264")
    quality = options.get("quality", "medium")
    resolution = options.get("resolution", "720p")

    args = [
        ffmpeg_binary,
        "-hide_banner",
        "-y",
        "-i", input_path,
        "-c:v", VIDEO_CODECS.get(codec, "libx264"),
        "-c:a", "aac",
        "-b:a", "128k",
        *QUALITY_PRESETS.get(quality, QUALITY_PRESETS["medium"]),
    ]

    size = RESOLUTION_SIZES.get(resolution)
    if size:
        args += ["-s", size]

    filters = list(BASE_FILTERS)
    if quality == "slow":
        filters.append("hqdn3d=4:3:6:4.5")
    args += ["-vf", ",".join(filters)]

    args += ["-progress", "pipe:1", "-nostats", output_path]
    return args


def parse_progress_line(line: str, duration_seconds: float | None) -> int | None:
    """
    Convert one `-progress` line into a percentage.

    Returns:
        int percentage for out_time lines when the duration is known, else None
    """
    key, _, value = line.strip().partition("=")
    if key not in ("out_time_us", "out_time_ms") or not duration_seconds:
        return None
    try:
        position = int(value) / 1_000_000
    except ValueError:
        return None
    return max(0, min(100, int(position / duration_seconds * 100)))


class FfmpegTransformationRunner(TransformationRunner):
    """Runner that shells out to ffmpeg."""

    def __init__(
        self,
        storage: LocalFileStorage,
        ffmpeg_binary: str = "ffmpeg",
        ffprobe_binary: str = "ffprobe",
    ) -> None:
        super().__init__(storage.allocate_output)
        self.storage = storage
        self.ffmpeg_binary = ffmpeg_binary
        self.ffprobe_binary = ffprobe_binary

    async def probe_duration(self, input_path: str) -> float | None:
        """Media duration in seconds via ffprobe, or None if unknown."""
        try:
            process = await asyncio.create_subprocess_exec(
                self.ffprobe_binary,
                "-v", "error",
                "-show_entries", "format=duration",
                "-of", "default=noprint_wrappers=1:nokey=1",
                input_path,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.DEVNULL,
            )
        except FileNotFoundError:
            logger.warning("ffprobe not available", extra={"binary": self.ffprobe_binary})
            return None
        stdout, _ = await process.communicate()
        if process.returncode != 0:
            return None
        try:
            duration = float(stdout.decode().strip())
        except ValueError:
            return None
        return duration if duration > 0 else None

    async def execute(
        self,
        input_reference: str | None,
        options: dict[str, Any],
        output_reference: str,
        report_progress: ProgressReporter,
    ) -> str:
        if not input_reference:
            raise RunnerFailure("Job has no input to transcode")
        input_path = self.storage.input_path(input_reference)
        if not input_path.is_file():
            raise RunnerFailure(f"Input not found: {input_reference}")
        output_path = self.storage.output_path(output_reference)

        duration = await self.probe_duration(str(input_path))
        args = build_ffmpeg_args(self.ffmpeg_binary, str(input_path), str(output_path), options)
        logger.info("Starting ffmpeg", extra={"command": " ".join(args)})

        try:
            process = await asyncio.create_subprocess_exec(
                *args,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except FileNotFoundError as e:
            raise RunnerFailure(f"ffmpeg not available: {self.ffmpeg_binary}") from e

        stderr_tail: deque[str] = deque(maxlen=STDERR_TAIL_LINES)

        async def drain_stderr() -> None:
            assert process.stderr is not None
            async for raw in process.stderr:
                stderr_tail.append(raw.decode(errors="replace").rstrip())

        stderr_task = asyncio.create_task(drain_stderr())
        try:
            assert process.stdout is not None
            async for raw in process.stdout:
                percent = parse_progress_line(raw.decode(errors="replace"), duration)
                if percent is not None:
                    await report_progress(percent)
            returncode = await process.wait()
            await stderr_task
        finally:
            # Cancellation or a failing progress reporter must not orphan ffmpeg
            if process.returncode is None:
                logger.warning("Killing ffmpeg", extra={"pid": process.pid})
                process.kill()
                await process.wait()
            if not stderr_task.done():
                stderr_task.cancel()

        if returncode != 0:
            tail = "\n".join(stderr_tail)
            raise RunnerFailure(
                f"ffmpeg exited with code {returncode}: {tail[-500:]}",
                exit_code=returncode,
            )
        return output_reference
