"""
Database models package.

Exports:
  - JobModel, JobStatus: Job ORM model and status enum

Dependencies: sqlalchemy, mediajobs.boundary.db.base
System role: Database model definitions for domain entities
"""

from mediajobs.boundary.db.models.job_model import JobModel, JobStatus

__all__ = [
    "JobModel",
    "JobStatus",
]
