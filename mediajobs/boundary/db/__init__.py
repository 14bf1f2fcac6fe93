"""
Database boundary layer: ORM models, CRUD operations, and connection management.

Exports:
  - Base, UUIDMixin, TimestampMixin: Model building blocks
  - get_async_engine(), get_async_session_factory(), get_async_db(): Async connection management
  - JobModel, JobStatus: Job entity and state enum
  - job_crud: Job repository singleton

Dependencies: sqlalchemy, mediajobs.configs
System role: Database adapter providing persistent storage for jobs
"""

from mediajobs.boundary.db.base import Base, TimestampMixin, UUIDMixin
from mediajobs.boundary.db.connection import (
    get_async_db,
    get_async_engine,
    get_async_session_factory,
)
from mediajobs.boundary.db.models.job_model import JobModel, JobStatus
from mediajobs.boundary.db.CRUD import BaseCRUD, JobCRUD, job_crud

__all__ = [
    # Base classes
    "Base",
    "TimestampMixin",
    "UUIDMixin",
    # Connection
    "get_async_db",
    "get_async_engine",
    "get_async_session_factory",
    # Models
    "JobModel",
    "JobStatus",
    # CRUD
    "BaseCRUD",
    "JobCRUD",
    "job_crud",
]
