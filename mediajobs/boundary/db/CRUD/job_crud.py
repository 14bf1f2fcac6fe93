"""
Job CRUD operations.

Typed access layer over the jobs table: ownership-scoped reads and deletes,
filtered/sorted/paginated listing, partial updates, and the guarded state
transitions used by the lifecycle manager. Every transition is a single
conditional UPDATE, so a row can never be moved out of a terminal state and
progress can never regress, whatever order concurrent writers arrive in.

Dependencies: sqlalchemy, mediajobs.boundary.db.models
System role: Job persistence operations (job repository)
"""

from typing import Any, Sequence
from uuid import UUID

from sqlalchemy import case, delete, func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from mediajobs.boundary.db.base import utcnow
from mediajobs.boundary.db.CRUD.base_crud import BaseCRUD
from mediajobs.boundary.db.models.job_model import JobModel, JobStatus
from mediajobs.core.exceptions import ValidationError
from mediajobs.core.job_query import (
    FILTERABLE_OPTION_FIELDS,
    JobFilters,
    JobSort,
    PageRequest,
    SortDirection,
)

IMMUTABLE_FIELDS = frozenset(
    {"id", "owner_id", "input_reference", "options", "created_at"}
)

ACTIVE_STATUSES = (JobStatus.PENDING, JobStatus.PROCESSING)

MAX_RUNNING_PROGRESS = 99


class JobCRUD(BaseCRUD[JobModel]):
    """
    CRUD operations for JobModel.

    Extends BaseCRUD with owner scoping, listing queries and state
    transitions. Methods that target a single row return None (never raise)
    when no row matched, so callers can treat a concurrently deleted job as
    a no-op.
    """

    def __init__(self) -> None:
        """Initialize JobCRUD with JobModel."""
        super().__init__(JobModel)

    async def create_job(
        self,
        session: AsyncSession,
        owner_id: str,
        title: str,
        description: str | None = None,
        input_reference: str | None = None,
        options: dict[str, Any] | None = None,
    ) -> JobModel:
        """
        Create a pending job.

        Args:
            session: Async database session
            owner_id: Requesting principal id
            title: Job title (required, non-blank)
            description: Optional free text
            input_reference: Locator of the submitted input
            options: Transformation options snapshot

        Returns:
            JobModel: New row with status=PENDING and progress=0

        Raises:
            ValidationError: If title is empty or blank
        """
        if not title or not title.strip():
            raise ValidationError("Job title is required", field="title")

        return await self.create(
            session,
            owner_id=owner_id,
            title=title.strip(),
            description=description,
            input_reference=input_reference,
            options=dict(options or {}),
            status=JobStatus.PENDING,
            progress=0,
            cpu_time=0.0,
        )

    async def get_for_requester(
        self,
        session: AsyncSession,
        job_id: UUID,
        requester_owner_id: str | None,
    ) -> JobModel | None:
        """
        Retrieve a job visible to the requester.

        Args:
            session: Async database session
            job_id: Job UUID
            requester_owner_id: Owner scope; None means administrative (all rows)

        Returns:
            JobModel if found and visible, None otherwise
        """
        stmt = select(JobModel).where(JobModel.id == job_id)
        if requester_owner_id is not None:
            stmt = stmt.where(JobModel.owner_id == requester_owner_id)
        result = await session.execute(stmt)
        return result.scalar_one_or_none()

    async def list_jobs(
        self,
        session: AsyncSession,
        filters: JobFilters,
        sort: JobSort,
        page: PageRequest,
    ) -> tuple[Sequence[JobModel], int]:
        """
        List jobs matching filters, sorted and paginated.

        Title matching is a case-insensitive substring match.

        Args:
            session: Async database session
            filters: Owner/status/title/option filters
            sort: Sort field (allow-listed) and direction
            page: Page number and size

        Returns:
            tuple: (items on the requested page, total matching rows)
        """
        conditions = []
        if filters.owner_id is not None:
            conditions.append(JobModel.owner_id == filters.owner_id)
        if filters.status:
            conditions.append(JobModel.status == filters.status)
        if filters.title_contains:
            conditions.append(JobModel.title.icontains(filters.title_contains, autoescape=True))
        for name, value in filters.option_fields.items():
            if name in FILTERABLE_OPTION_FIELDS and value:
                conditions.append(JobModel.options[name].as_string() == value)

        total = await self.count(session, *conditions)

        sort_column = getattr(JobModel, sort.field)
        order = sort_column.asc() if sort.direction is SortDirection.ASC else sort_column.desc()

        stmt = (
            select(JobModel)
            .where(*conditions)
            .order_by(order, JobModel.id.asc())
            .offset(page.offset)
            .limit(page.size)
        )
        result = await session.execute(stmt)
        return result.scalars().all(), total

    async def update_fields(
        self,
        session: AsyncSession,
        job_id: UUID,
        **fields: Any,
    ) -> JobModel | None:
        """
        Apply only the supplied fields to a job.

        Args:
            session: Async database session
            job_id: Job UUID
            **fields: Mutable columns to set

        Returns:
            Updated JobModel if found, None otherwise

        Raises:
            ValidationError: If an immutable field is supplied
        """
        immutable = IMMUTABLE_FIELDS.intersection(fields)
        if immutable:
            raise ValidationError(
                f"Fields cannot be modified: {', '.join(sorted(immutable))}",
                field=sorted(immutable)[0],
            )
        if not fields:
            return await self.get_by_id(session, job_id)
        return await self.update_by_id(session, job_id, **fields)

    async def delete_for_requester(
        self,
        session: AsyncSession,
        job_id: UUID,
        requester_owner_id: str | None,
    ) -> JobModel | None:
        """
        Delete a job visible to the requester.

        Args:
            session: Async database session
            job_id: Job UUID
            requester_owner_id: Owner scope; None means administrative

        Returns:
            The deleted row (detached) if one matched, None otherwise
        """
        stmt = delete(JobModel).where(JobModel.id == job_id)
        if requester_owner_id is not None:
            stmt = stmt.where(JobModel.owner_id == requester_owner_id)
        stmt = stmt.returning(JobModel)
        result = await session.execute(stmt)
        return result.scalar_one_or_none()

    async def mark_processing(
        self,
        session: AsyncSession,
        job_id: UUID,
    ) -> JobModel | None:
        """
        Move a PENDING job to PROCESSING and stamp started_at.

        Returns:
            Updated JobModel, or None if the job is gone or not pending
        """
        stmt = (
            update(JobModel)
            .where(JobModel.id == job_id, JobModel.status == JobStatus.PENDING)
            .values(status=JobStatus.PROCESSING, started_at=utcnow())
            .returning(JobModel)
        )
        result = await session.execute(stmt)
        return result.scalar_one_or_none()

    async def advance_progress(
        self,
        session: AsyncSession,
        job_id: UUID,
        progress: int,
        cpu_time: float | None = None,
    ) -> JobModel | None:
        """
        Raise progress of a PROCESSING job.

        The stored value becomes max(current, min(progress, 99)), computed
        inside the UPDATE so a late or out-of-order report cannot regress it.

        Returns:
            Updated JobModel, or None if the job is gone or not processing
        """
        target = max(0, min(int(progress), MAX_RUNNING_PROGRESS))
        values: dict[str, Any] = {
            "progress": case(
                (JobModel.progress > target, JobModel.progress),
                else_=target,
            )
        }
        if cpu_time is not None:
            values["cpu_time"] = cpu_time
        stmt = (
            update(JobModel)
            .where(JobModel.id == job_id, JobModel.status == JobStatus.PROCESSING)
            .values(**values)
            .returning(JobModel)
        )
        result = await session.execute(stmt)
        return result.scalar_one_or_none()

    async def mark_completed(
        self,
        session: AsyncSession,
        job_id: UUID,
        output_reference: str,
        cpu_time: float | None = None,
    ) -> JobModel | None:
        """
        Move a non-terminal job to COMPLETED with its output.

        Returns:
            Updated JobModel, or None if the job is gone or already terminal
        """
        now = utcnow()
        values: dict[str, Any] = {
            "status": JobStatus.COMPLETED,
            "progress": 100,
            "output_reference": output_reference,
            "error": None,
            "completed_at": now,
            "started_at": func.coalesce(JobModel.started_at, now),
        }
        if cpu_time is not None:
            values["cpu_time"] = cpu_time
        stmt = (
            update(JobModel)
            .where(JobModel.id == job_id, JobModel.status.in_(ACTIVE_STATUSES))
            .values(**values)
            .returning(JobModel)
        )
        result = await session.execute(stmt)
        return result.scalar_one_or_none()

    async def mark_failed(
        self,
        session: AsyncSession,
        job_id: UUID,
        error: str,
        cpu_time: float | None = None,
    ) -> JobModel | None:
        """
        Move a non-terminal job to FAILED with an error message.

        Returns:
            Updated JobModel, or None if the job is gone or already terminal
        """
        now = utcnow()
        values: dict[str, Any] = {
            "status": JobStatus.FAILED,
            "error": error or "Unknown error",
            "output_reference": None,
            "completed_at": now,
            "started_at": func.coalesce(JobModel.started_at, now),
        }
        if cpu_time is not None:
            values["cpu_time"] = cpu_time
        stmt = (
            update(JobModel)
            .where(JobModel.id == job_id, JobModel.status.in_(ACTIVE_STATUSES))
            .values(**values)
            .returning(JobModel)
        )
        result = await session.execute(stmt)
        return result.scalar_one_or_none()

    async def get_active(self, session: AsyncSession) -> Sequence[JobModel]:
        """
        Retrieve jobs still PENDING or PROCESSING.

        Returns:
            Sequence of non-terminal JobModels
        """
        stmt = select(JobModel).where(JobModel.status.in_(ACTIVE_STATUSES))
        result = await session.execute(stmt)
        return result.scalars().all()


job_crud = JobCRUD()
