"""
Core business logic module.

Contains the exception hierarchy, listing query value types and the
transformation runners.
"""

from mediajobs.core.exceptions import (
    InvalidTransitionError,
    JobNotFoundError,
    JobNotReadyError,
    MediaJobsError,
    RunnerFailure,
    StorageError,
    ValidationError,
)

__all__ = [
    "InvalidTransitionError",
    "JobNotFoundError",
    "JobNotReadyError",
    "MediaJobsError",
    "RunnerFailure",
    "StorageError",
    "ValidationError",
]
