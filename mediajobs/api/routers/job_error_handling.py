"""
Job error handling utilities.

Provides a decorator for consistent error handling across job API
endpoints: domain exceptions become HTTPExceptions with a stable status
code, everything unexpected is logged and surfaced as 500.
"""

import functools
import logging
from typing import Any, Callable, TypeVar

from fastapi import HTTPException, status
from pydantic import ValidationError as PydanticValidationError

from mediajobs.core.exceptions import (
    JobNotFoundError,
    JobNotReadyError,
    StorageError,
    ValidationError,
)

logger = logging.getLogger(__name__)

# Type for the decorated function
F = TypeVar("F", bound=Callable[..., Any])


def describe_validation_errors(exc: PydanticValidationError) -> str:
    """Flatten pydantic errors into one readable message."""
    parts = []
    for error in exc.errors():
        location = ".".join(str(item) for item in error.get("loc", ()))
        parts.append(f"{location}: {error.get('msg')}" if location else str(error.get("msg")))
    return "; ".join(parts) or "Invalid request"


def handle_job_errors(func: F) -> F:
    """
    Decorator to handle job-related errors and transform them into HTTPExceptions.

    This centralizes:
    - Logging of errors with context (job_id)
    - Mapping specific exceptions to HTTP status codes
    - Ensuring uniform {"detail": ...} error bodies
    """
    @functools.wraps(func)
    async def wrapper(*args: Any, **kwargs: Any) -> Any:
        try:
            return await func(*args, **kwargs)

        except HTTPException:
            raise

        except JobNotFoundError as e:
            logger.info("Job not found", extra={"job_id": str(e.job_id)})
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=e.message)

        except JobNotReadyError as e:
            logger.info(
                "Output requested before completion",
                extra={"job_id": str(e.job_id), "status": e.status},
            )
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=e.message)

        except ValidationError as e:
            logger.warning("Invalid job request", extra={"error": e.message, "field": e.field})
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=e.message)

        except PydanticValidationError as e:
            detail = describe_validation_errors(e)
            logger.warning("Request body validation error", extra={"error": detail})
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=detail)

        except StorageError as e:
            logger.warning("Storage reference rejected", extra={"error": e.message})
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Output file not found")

        except Exception as e:
            logger.exception("Unexpected failure in job operation", extra={"error": str(e)})
            raise HTTPException(
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                detail="An internal error occurred during job operation",
            )

    return wrapper  # type: ignore
