"""
Local file storage for uploaded inputs and produced outputs.

References handed to the rest of the system are plain file names relative
to the managed upload/output directories. Resolution refuses anything that
would escape those directories, and deletes only ever touch managed files.

Dependencies: pathlib, shutil (stdlib)
System role: Artifact storage behind job input/output references
"""

import logging
import shutil
import uuid
from pathlib import Path
from typing import BinaryIO

from mediajobs.core.exceptions import StorageError, ValidationError

logger = logging.getLogger(__name__)

COPY_CHUNK_SIZE = 1024 * 1024


class LocalFileStorage:
    """Manages job input and output files on the local filesystem."""

    def __init__(self, upload_dir: str | Path, output_dir: str | Path) -> None:
        """
        Initialize storage and create both directories.

        Args:
            upload_dir: Directory holding uploaded inputs
            output_dir: Directory holding produced outputs
        """
        self.upload_dir = Path(upload_dir).resolve()
        self.output_dir = Path(output_dir).resolve()
        self.upload_dir.mkdir(parents=True, exist_ok=True)
        self.output_dir.mkdir(parents=True, exist_ok=True)

    @staticmethod
    def _resolve(base: Path, reference: str) -> Path:
        if not reference:
            raise StorageError("Empty storage reference")
        candidate = (base / reference).resolve()
        if candidate.parent != base:
            raise StorageError(
                "Reference escapes managed directory",
                {"reference": reference},
            )
        return candidate

    def input_path(self, reference: str) -> Path:
        """Resolve an input reference to its path."""
        return self._resolve(self.upload_dir, reference)

    def output_path(self, reference: str) -> Path:
        """Resolve an output reference to its path."""
        return self._resolve(self.output_dir, reference)

    def save_upload(
        self,
        filename: str,
        stream: BinaryIO,
        max_bytes: int | None = None,
    ) -> str:
        """
        Persist an uploaded file under a unique name.

        Args:
            filename: Client-supplied file name (only its base name is kept)
            stream: Readable binary stream positioned at the start
            max_bytes: Optional size limit

        Returns:
            str: Input reference for the stored file

        Raises:
            ValidationError: If the upload exceeds max_bytes
        """
        safe_name = Path(filename or "upload.bin").name
        reference = f"{uuid.uuid4()}-{safe_name}"
        target = self.input_path(reference)

        written = 0
        with open(target, "wb") as out:
            while True:
                chunk = stream.read(COPY_CHUNK_SIZE)
                if not chunk:
                    break
                written += len(chunk)
                if max_bytes is not None and written > max_bytes:
                    out.close()
                    target.unlink(missing_ok=True)
                    raise ValidationError(
                        f"File too large. Maximum size: {max_bytes // (1024 * 1024)}MB",
                        field="file",
                    )
                out.write(chunk)

        logger.info(
            "Upload stored",
            extra={"input_reference": reference, "size": written},
        )
        return reference

    def allocate_output(self, suffix: str = ".mp4") -> str:
        """
        Reserve a fresh output reference (no file is created).

        Returns:
            str: Output reference unique to one run
        """
        return f"processed_{uuid.uuid4().hex}{suffix}"

    def output_exists(self, reference: str) -> bool:
        try:
            return self.output_path(reference).is_file()
        except StorageError:
            return False

    def _discard(self, base: Path, reference: str | None) -> bool:
        if not reference:
            return False
        try:
            path = self._resolve(base, reference)
        except StorageError:
            # Not a managed file (e.g. an external input locator)
            return False
        try:
            if path.is_dir():
                shutil.rmtree(path)
                return True
            path.unlink()
            return True
        except FileNotFoundError:
            return False
        except OSError as e:
            logger.warning(
                "Failed to discard artifact",
                extra={"reference": reference, "error": str(e)},
            )
            return False

    def discard_output(self, reference: str | None) -> bool:
        """Best-effort delete of an output artifact; True if a file was removed."""
        return self._discard(self.output_dir, reference)

    def discard_input(self, reference: str | None) -> bool:
        """Best-effort delete of a stored upload; True if a file was removed."""
        return self._discard(self.upload_dir, reference)
