"""Local filesystem storage for job inputs and outputs."""

from mediajobs.boundary.storage.local_storage import LocalFileStorage

__all__ = ["LocalFileStorage"]
