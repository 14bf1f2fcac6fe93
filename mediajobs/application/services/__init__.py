"""Service orchestrators."""

from .job_lifecycle import JobLifecycleManager
from .job_query_service import JobQueryService

__all__ = [
    "JobLifecycleManager",
    "JobQueryService",
]
