"""
Job query engine.

Builds owner-scoped, filtered, sorted and paginated job listings. Raw query
parameters are normalised here (unknown sort fields and directions fall
back, page numbers and sizes are clamped) before reaching the repository.

Dependencies: sqlalchemy, mediajobs.boundary.db.CRUD, mediajobs.core.job_query
System role: Listing orchestration
"""

import logging

from sqlalchemy.ext.asyncio import AsyncSession

from mediajobs.boundary.db.CRUD.job_crud import job_crud
from mediajobs.boundary.db.models.job_model import JobModel, JobStatus
from mediajobs.core.exceptions import ValidationError
from mediajobs.core.job_query import (
    FILTERABLE_OPTION_FIELDS,
    JobFilters,
    JobPage,
    JobSort,
    PageRequest,
)
from mediajobs.models.principal import Principal

logger = logging.getLogger(__name__)


class JobQueryService:
    """
    Job listing service.

    Non-admin requesters are always restricted to their own jobs, whatever
    filters they send.
    """

    def __init__(self, db: AsyncSession) -> None:
        """
        Initialize job query service.

        Args:
            db: AsyncSession for database operations
        """
        self.db = db

    @staticmethod
    def build_filters(
        principal: Principal,
        status: str | None = None,
        title: str | None = None,
        option_fields: dict[str, str | None] | None = None,
    ) -> JobFilters:
        """
        Normalise raw listing filters.

        Raises:
            ValidationError: If status is not a known job status
        """
        status_value = None
        if status:
            try:
                status_value = JobStatus(status.lower()).value
            except ValueError as e:
                allowed = ", ".join(s.value for s in JobStatus)
                raise ValidationError(
                    f"Invalid status filter. Allowed values: {allowed}",
                    field="status",
                ) from e

        options = {
            name: value
            for name, value in (option_fields or {}).items()
            if name in FILTERABLE_OPTION_FIELDS and value
        }
        return JobFilters(
            owner_id=principal.requester_scope,
            status=status_value,
            title_contains=title.strip() if title and title.strip() else None,
            option_fields=options,
        )

    async def list_jobs(
        self,
        principal: Principal,
        page: int | None = None,
        limit: int | None = None,
        sort: str | None = None,
        order: str | None = None,
        status: str | None = None,
        title: str | None = None,
        option_fields: dict[str, str | None] | None = None,
    ) -> tuple[JobPage[JobModel], JobFilters, JobSort]:
        """
        List jobs visible to the principal.

        Args:
            principal: Requesting principal
            page: Page number (clamped to >= 1)
            limit: Page size (clamped to [1, 100])
            sort: Sort field; unknown fields fall back to created_at
            order: asc/desc; anything else falls back to desc
            status: Exact status filter
            title: Case-insensitive title substring
            option_fields: Exact matches on resolution/quality/codec

        Returns:
            tuple: (page of jobs, applied filters, applied sort)

        Raises:
            ValidationError: If status is not a known job status
        """
        filters = self.build_filters(principal, status, title, option_fields)
        job_sort = JobSort.parse(sort, order)
        page_request = PageRequest.clamp(page, limit)

        items, total = await job_crud.list_jobs(self.db, filters, job_sort, page_request)
        logger.debug(
            "Jobs listed",
            extra={
                "principal_id": principal.id,
                "total": total,
                "page": page_request.number,
                "sort": job_sort.field,
            },
        )
        return JobPage(items=items, total_count=total, page=page_request), filters, job_sort
