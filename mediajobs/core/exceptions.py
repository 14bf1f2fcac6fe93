"""
Exception hierarchy for the media job service.

Provides layered exception structure for domain-specific errors.
All exceptions include context for observability and debugging.

Dependencies: None (pure domain layer)
System role: Centralized exception handling across the application
"""

from typing import Any


class MediaJobsError(Exception):
    """Base exception for all media job service errors."""

    def __init__(self, message: str, details: dict[str, Any] | None = None) -> None:
        """
        Initialize base exception with message and optional context.

        Args:
            message: Human-readable error message
            details: Optional dictionary of additional context for debugging
        """
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def __str__(self) -> str:
        """Return string representation including details."""
        if self.details:
            return f"{self.message} | Details: {self.details}"
        return self.message


class ValidationError(MediaJobsError):
    """Raised when input validation fails."""

    def __init__(
        self,
        message: str,
        field: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        """
        Initialize validation error.

        Args:
            message: Error message
            field: Field name that failed validation
            details: Additional context
        """
        details = details or {}
        if field:
            details["field"] = field
        self.field = field
        super().__init__(message, details)


class InvalidTransitionError(ValidationError):
    """Raised when an update would break the job state machine."""

    def __init__(self, job_id: Any, current: str, requested: str) -> None:
        super().__init__(
            f"Cannot move job from '{current}' to '{requested}'",
            field="status",
            details={"job_id": str(job_id), "current": current, "requested": requested},
        )


class JobNotFoundError(MediaJobsError):
    """
    Raised when a job is absent or not visible to the requester.

    The two cases are indistinguishable, so callers cannot tell whether
    another owner's job exists.
    """

    def __init__(self, job_id: Any, details: dict[str, Any] | None = None) -> None:
        details = details or {}
        details["job_id"] = str(job_id)
        self.job_id = job_id
        super().__init__("Job not found", details)


class JobNotReadyError(MediaJobsError):
    """Raised when output is requested before the job completed."""

    def __init__(self, job_id: Any, status: str) -> None:
        self.job_id = job_id
        self.status = status
        super().__init__(
            "Output not ready for download",
            {"job_id": str(job_id), "status": status},
        )


class RunnerFailure(MediaJobsError):
    """
    Raised inside a transformation runner when the work fails.

    Never propagated to the submitter; the message is recorded on the job.
    """

    def __init__(
        self,
        message: str,
        exit_code: int | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        details = details or {}
        if exit_code is not None:
            details["exit_code"] = exit_code
        super().__init__(message, details)


class StorageError(MediaJobsError):
    """Raised when a storage reference cannot be resolved or written."""

    pass
