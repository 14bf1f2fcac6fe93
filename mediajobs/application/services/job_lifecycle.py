"""
Job lifecycle manager.

Creates job records, dispatches the transformation runner without blocking
the caller, and persists the runner's progress and outcome. All writes for
one job id go through a per-id asyncio lock, and every transition is a
conditional UPDATE, so a late progress report can never overwrite a
terminal state.

Each write opens its own session from the session factory, the same way the
document background task does, because dispatches outlive the request that
created them.

Dependencies: sqlalchemy, mediajobs.boundary, mediajobs.core.runners
System role: Job state machine and asynchronous dispatch owner
"""

import asyncio
import logging
import time
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Awaitable, Callable
from uuid import UUID

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from mediajobs.boundary.db.base import utcnow
from mediajobs.boundary.db.CRUD.job_crud import MAX_RUNNING_PROGRESS, job_crud
from mediajobs.boundary.db.models.job_model import JobModel, JobStatus
from mediajobs.boundary.storage import LocalFileStorage
from mediajobs.core.exceptions import (
    InvalidTransitionError,
    JobNotFoundError,
    JobNotReadyError,
    ValidationError,
)
from mediajobs.core.runners.base import RunHandle, TransformationRunner
from mediajobs.models.principal import Principal
from mediajobs.observability.log_utils import log_exception_with_context

logger = logging.getLogger(__name__)

INTERRUPTED_ERROR = "Interrupted by service restart"

EXTERNAL_UPDATE_FIELDS = frozenset(
    {"status", "progress", "error", "cpu_time", "output_reference"}
)

JobWrite = Callable[..., Awaitable[JobModel | None]]


class KeyedLocks:
    """asyncio locks per job id, dropped once nobody holds or waits on them."""

    def __init__(self) -> None:
        self._entries: dict[UUID, list[Any]] = {}

    @asynccontextmanager
    async def hold(self, key: UUID) -> AsyncIterator[None]:
        entry = self._entries.setdefault(key, [asyncio.Lock(), 0])
        entry[1] += 1
        try:
            async with entry[0]:
                yield
        finally:
            entry[1] -= 1
            if entry[1] == 0:
                del self._entries[key]

    def __contains__(self, key: UUID) -> bool:
        return key in self._entries

    def __len__(self) -> int:
        return len(self._entries)


def plan_external_update(job: JobModel, fields: dict[str, Any]) -> dict[str, Any]:
    """
    Turn a partial external update into the column values to write.

    Enforces the state machine: terminal jobs only accept cpu_time,
    pending jobs can only move to processing, processing cannot go back to
    pending, completion needs an output reference and failure needs an
    error. Progress is clamped to [current, 99] while processing and
    forced to 100 on completion.

    Args:
        job: Current row
        fields: Supplied fields (None values are ignored)

    Returns:
        dict: Column values for JobCRUD.update_fields

    Raises:
        ValidationError: Unknown field or missing terminal data
        InvalidTransitionError: Transition not allowed from the current state
    """
    supplied = {key: value for key, value in fields.items() if value is not None}
    unknown = set(supplied) - EXTERNAL_UPDATE_FIELDS
    if unknown:
        raise ValidationError(
            f"Fields cannot be modified: {', '.join(sorted(unknown))}",
            field=sorted(unknown)[0],
        )

    current = job.status
    try:
        requested = JobStatus(supplied.get("status", current))
    except ValueError as e:
        raise ValidationError(f"Invalid status: {supplied['status']}", field="status") from e

    values: dict[str, Any] = {}
    if "cpu_time" in supplied:
        cpu_time = float(supplied["cpu_time"])
        if cpu_time < 0:
            raise ValidationError("cpu_time must be non-negative", field="cpu_time")
        values["cpu_time"] = cpu_time

    if current.is_terminal:
        if set(supplied) - {"cpu_time", "status"} or requested is not current:
            raise InvalidTransitionError(job.id, current.value, requested.value)
        return values

    if current is JobStatus.PROCESSING and requested is JobStatus.PENDING:
        raise InvalidTransitionError(job.id, current.value, requested.value)
    if current is JobStatus.PENDING and requested.is_terminal:
        raise InvalidTransitionError(job.id, current.value, requested.value)

    if "error" in supplied and requested is not JobStatus.FAILED:
        raise ValidationError("error can only be set on failed jobs", field="error")
    if "output_reference" in supplied and requested is not JobStatus.COMPLETED:
        raise ValidationError(
            "output_reference can only be set on completed jobs",
            field="output_reference",
        )

    now = utcnow()
    started_at = job.started_at or now

    if requested is JobStatus.PENDING:
        if "progress" in supplied:
            raise ValidationError("progress can only be reported while processing", field="progress")
        return values

    if requested is JobStatus.PROCESSING:
        values["status"] = JobStatus.PROCESSING
        values["started_at"] = started_at
        if "progress" in supplied:
            target = min(int(supplied["progress"]), MAX_RUNNING_PROGRESS)
            values["progress"] = max(job.progress, target)
        return values

    if requested is JobStatus.COMPLETED:
        output_reference = supplied.get("output_reference")
        if not output_reference:
            raise ValidationError(
                "output_reference is required to complete a job",
                field="output_reference",
            )
        values.update(
            status=JobStatus.COMPLETED,
            progress=100,
            output_reference=output_reference,
            error=None,
            started_at=started_at,
            completed_at=now,
        )
        return values

    error = supplied.get("error")
    if not error or not str(error).strip():
        raise ValidationError("error is required to fail a job", field="error")
    values.update(
        status=JobStatus.FAILED,
        error=error,
        output_reference=None,
        started_at=started_at,
        completed_at=now,
    )
    return values


class JobLifecycleManager:
    """
    Orchestrates job creation, dispatch and state transitions.

    One instance lives for the whole process. It owns the per-id locks, the
    in-flight runner handles (one per job id) and the dispatch tasks.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        runner: TransformationRunner,
        storage: LocalFileStorage,
    ) -> None:
        """
        Initialize the lifecycle manager.

        Args:
            session_factory: Factory for short-lived sessions (one per write)
            runner: Transformation runner invoked for each job
            storage: Artifact storage used for best-effort cleanup
        """
        self.session_factory = session_factory
        self.runner = runner
        self.storage = storage
        self._locks = KeyedLocks()
        self._handles: dict[UUID, RunHandle] = {}
        self._tasks: set[asyncio.Task] = set()
        self._closing = False

    @property
    def in_flight(self) -> int:
        """Number of dispatches not yet finished."""
        return len(self._tasks)

    async def submit(
        self,
        owner_id: str,
        title: str | None,
        description: str | None = None,
        input_reference: str | None = None,
        options: dict[str, Any] | None = None,
    ) -> JobModel:
        """
        Create a pending job and schedule its dispatch.

        Returns as soon as the pending row is committed; the dispatch task
        has been scheduled but not awaited.

        Args:
            owner_id: Submitting principal id
            title: Required job title
            description: Optional free text
            input_reference: Locator of the submitted input
            options: Transformation options snapshot

        Returns:
            JobModel: Snapshot with status=PENDING, progress=0

        Raises:
            ValidationError: If title is empty (no row is created)
        """
        async with self.session_factory() as session:
            job = await job_crud.create_job(
                session,
                owner_id=owner_id,
                title=title or "",
                description=description,
                input_reference=input_reference,
                options=options,
            )
            await session.commit()

        logger.info(
            "Job submitted",
            extra={"job_id": str(job.id), "owner_id": owner_id, "options": job.options},
        )

        task = asyncio.create_task(
            self._dispatch(job.id, job.input_reference, dict(job.options)),
            name=f"dispatch:{job.id}",
        )
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return job

    async def get_status(self, job_id: UUID, principal: Principal) -> JobModel:
        """
        Ownership-checked read.

        Raises:
            JobNotFoundError: If absent or owned by someone else
        """
        async with self.session_factory() as session:
            job = await job_crud.get_for_requester(session, job_id, principal.requester_scope)
        if job is None:
            raise JobNotFoundError(job_id)
        return job

    async def remove(self, job_id: UUID, principal: Principal) -> JobModel:
        """
        Ownership-checked delete that releases the job's artifacts.

        An in-flight dispatch is not cancelled; its later writes find no row
        and are discarded.

        Returns:
            JobModel: The deleted row

        Raises:
            JobNotFoundError: If absent or owned by someone else
        """
        async with self._locks.hold(job_id):
            async with self.session_factory() as session:
                job = await job_crud.delete_for_requester(
                    session, job_id, principal.requester_scope
                )
                await session.commit()

        if job is None:
            raise JobNotFoundError(job_id)

        logger.info(
            "Job deleted",
            extra={
                "job_id": str(job_id),
                "status": job.status.value,
                "in_flight": job_id in self._handles,
            },
        )
        self.storage.discard_output(job.output_reference)
        self.storage.discard_input(job.input_reference)
        return job

    async def fetch_output(self, job_id: UUID, principal: Principal) -> str:
        """
        Output reference of a completed job.

        Raises:
            JobNotFoundError: If absent or owned by someone else
            JobNotReadyError: If the job has not completed
        """
        job = await self.get_status(job_id, principal)
        if job.status is not JobStatus.COMPLETED or not job.output_reference:
            raise JobNotReadyError(job_id, job.status.value)
        return job.output_reference

    async def apply_external_update(self, job_id: UUID, fields: dict[str, Any]) -> JobModel:
        """
        Apply a runner-side update (PUT /jobs/{id}) under the job's lock.

        Args:
            job_id: Job UUID
            fields: Subset of status, progress, error, cpu_time, output_reference

        Returns:
            JobModel: Updated row

        Raises:
            JobNotFoundError: If no row matched
            ValidationError: If the update breaks the state machine
        """
        async with self._locks.hold(job_id):
            async with self.session_factory() as session:
                job = await job_crud.get_by_id(session, job_id)
                if job is None:
                    raise JobNotFoundError(job_id)
                was_terminal = job.status.is_terminal
                values = plan_external_update(job, fields)
                updated = await job_crud.update_fields(session, job_id, **values)
                await session.commit()

        if updated is None:
            raise JobNotFoundError(job_id)

        logger.info(
            "Job updated externally",
            extra={"job_id": str(job_id), "fields": sorted(values), "status": updated.status.value},
        )
        if updated.status.is_terminal and not was_terminal and job_id not in self._handles:
            self.storage.discard_input(updated.input_reference)
        return updated

    async def recover_interrupted(self) -> int:
        """
        Fail jobs left pending/processing by a previous process.

        Returns:
            int: Number of jobs marked failed
        """
        recovered = 0
        async with self.session_factory() as session:
            for job in await job_crud.get_active(session):
                if job.id in self._locks or job.id in self._handles:
                    continue
                if await job_crud.mark_failed(session, job.id, INTERRUPTED_ERROR):
                    recovered += 1
                    self.storage.discard_input(job.input_reference)
            await session.commit()

        if recovered:
            logger.warning("Interrupted jobs marked failed", extra={"count": recovered})
        return recovered

    async def shutdown(self) -> None:
        """Cancel in-flight runs best-effort and wait for dispatches to finish."""
        self._closing = True
        for handle in list(self._handles.values()):
            handle.cancel()
        if self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)
        logger.info("Lifecycle manager stopped")

    async def _write(self, operation: JobWrite, job_id: UUID, *args: Any, **kwargs: Any) -> JobModel | None:
        """Run one repository write in its own committed session."""
        async with self.session_factory() as session:
            job = await operation(session, job_id, *args, **kwargs)
            await session.commit()
            return job

    async def _dispatch(
        self,
        job_id: UUID,
        input_reference: str | None,
        options: dict[str, Any],
    ) -> None:
        started = time.monotonic()
        extra = {"job_id": str(job_id)}

        def elapsed() -> float:
            return round(time.monotonic() - started, 3)

        handle: RunHandle | None = None

        async def persist(operation: JobWrite, *args: Any, **kwargs: Any) -> tuple[bool, JobModel | None]:
            # (False, None) when the store failed; the error is logged, never retried
            try:
                async with self._locks.hold(job_id):
                    return True, await self._write(operation, job_id, *args, **kwargs)
            except SQLAlchemyError as e:
                log_exception_with_context(
                    logger, "Persisting runner callback failed, dispatch stopped", e, job_id=str(job_id)
                )
                return False, None

        async def on_progress(percent: int) -> None:
            stored, job = await persist(job_crud.advance_progress, percent, cpu_time=elapsed())
            if not stored:
                if handle is not None:
                    handle.cancel()
                return
            if job is None:
                logger.info("Progress discarded, job gone or not processing", extra=extra)

        async def on_done(output_reference: str) -> None:
            stored, job = await persist(
                job_crud.mark_completed, output_reference, cpu_time=elapsed()
            )
            if not stored:
                self.storage.discard_output(output_reference)
                return
            if job is None:
                logger.warning("Completion discarded, job gone or already terminal", extra=extra)
                self.storage.discard_output(output_reference)
            else:
                logger.info(
                    "Job completed",
                    extra={**extra, "output_reference": output_reference, "cpu_time": job.cpu_time},
                )
            self.storage.discard_input(input_reference)

        async def on_error(message: str) -> None:
            stored, job = await persist(job_crud.mark_failed, message, cpu_time=elapsed())
            if handle is not None:
                self.storage.discard_output(handle.output_reference)
            if not stored:
                return
            if job is None:
                logger.warning("Failure discarded, job gone or already terminal", extra=extra)
            else:
                logger.info("Job failed", extra={**extra, "error": message})
            self.storage.discard_input(input_reference)

        try:
            async with self._locks.hold(job_id):
                job = await self._write(job_crud.mark_processing, job_id)
            if job is None:
                logger.info("Dispatch skipped, job no longer pending", extra=extra)
                return
            if self._closing:
                logger.info("Dispatch skipped, shutting down", extra=extra)
                return

            logger.info("Job processing", extra=extra)
            try:
                handle = self.runner.run(input_reference, options, on_progress, on_done, on_error)
            except Exception as e:
                log_exception_with_context(logger, "Runner failed to start", e, job_id=str(job_id))
                await on_error(str(e) or type(e).__name__)
                return

            self._handles[job_id] = handle
            await handle.wait()
        except Exception as e:
            log_exception_with_context(logger, "Dispatch terminated", e, job_id=str(job_id))
            if handle is not None:
                handle.cancel()
        finally:
            self._handles.pop(job_id, None)
