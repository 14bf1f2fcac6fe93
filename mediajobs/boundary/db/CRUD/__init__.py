"""
CRUD operations for database models.

Exports base CRUD class and model-specific CRUD implementations
with pre-instantiated singletons for direct use.

Usage:
    from mediajobs.boundary.db.CRUD import job_crud

    job = await job_crud.get_for_requester(db, job_id, principal.requester_scope)
"""

from mediajobs.boundary.db.CRUD.base_crud import BaseCRUD
from mediajobs.boundary.db.CRUD.job_crud import JobCRUD, job_crud

__all__ = [
    "BaseCRUD",
    "JobCRUD",
    "job_crud",
]
