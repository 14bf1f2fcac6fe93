"""
Dependency injection container.

Factory functions for FastAPI dependencies.

Dependencies: mediajobs.configs, mediajobs.application, mediajobs.boundary
System role: DI container for service injection
"""

from functools import lru_cache

from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession

from mediajobs.application.services import JobLifecycleManager, JobQueryService
from mediajobs.boundary.db import get_async_db, get_async_session_factory
from mediajobs.boundary.storage import LocalFileStorage
from mediajobs.configs import Settings, get_settings
from mediajobs.core.runners import TransformationRunner, build_runner


class ServiceCache:
    """Container for cached service instances."""

    def __init__(self):
        self._storage = None
        self._runner = None
        self._lifecycle_manager = None

    @property
    def storage(self) -> LocalFileStorage:
        """Get cached file storage."""
        if self._storage is None:
            settings = get_settings()
            self._storage = LocalFileStorage(
                upload_dir=settings.jobs.upload_dir,
                output_dir=settings.jobs.output_dir,
            )
        return self._storage

    @property
    def runner(self) -> TransformationRunner:
        """Get cached transformation runner."""
        if self._runner is None:
            self._runner = build_runner(get_settings().jobs, self.storage)
        return self._runner

    @property
    def lifecycle_manager(self) -> JobLifecycleManager:
        """Get cached lifecycle manager (one per process)."""
        if self._lifecycle_manager is None:
            self._lifecycle_manager = JobLifecycleManager(
                session_factory=get_async_session_factory(),
                runner=self.runner,
                storage=self.storage,
            )
        return self._lifecycle_manager

    def clear(self) -> None:
        """Clear all cached instances."""
        self._storage = None
        self._runner = None
        self._lifecycle_manager = None


# Global service cache
_service_cache = ServiceCache()


def get_service_cache() -> ServiceCache:
    """Get service cache singleton."""
    return _service_cache


@lru_cache
def get_settings_dependency() -> Settings:
    """Get settings singleton."""
    return get_settings()


def get_storage() -> LocalFileStorage:
    """
    Get file storage for uploads and outputs.

    Returns:
        LocalFileStorage: Process-wide storage instance
    """
    return get_service_cache().storage


def get_lifecycle_manager() -> JobLifecycleManager:
    """
    Get the job lifecycle manager.

    Returns:
        JobLifecycleManager: Process-wide manager owning all dispatches
    """
    return get_service_cache().lifecycle_manager


def get_job_query_service(db: AsyncSession = Depends(get_async_db)) -> JobQueryService:
    """
    Get job query service instance.

    Args:
        db: Async database session (injected via Depends)

    Returns:
        JobQueryService: Listing service bound to the request session
    """
    return JobQueryService(db=db)
