"""
Test suite for JobLifecycleManager.

Drives a controllable runner stub against a temp-file SQLite database to
verify asynchronous dispatch, progress monotonicity, terminal exclusivity,
ownership masking, deletion while processing and the external update path.

System role: Verification of the job state machine and dispatch
"""

import asyncio
import io

import pytest
import pytest_asyncio
from sqlalchemy.exc import OperationalError

from mediajobs.application.services.job_lifecycle import (
    INTERRUPTED_ERROR,
    JobLifecycleManager,
)
from mediajobs.boundary.db.CRUD.job_crud import job_crud
from mediajobs.boundary.db.models.job_model import JobStatus
from mediajobs.core.exceptions import (
    InvalidTransitionError,
    JobNotFoundError,
    JobNotReadyError,
    ValidationError,
)

WAIT_TIMEOUT = 5


@pytest_asyncio.fixture
async def manager(session_factory, controlled_runner, storage):
    """Lifecycle manager wired to the controlled runner; shut down on teardown."""
    lifecycle = JobLifecycleManager(session_factory, controlled_runner, storage)
    yield lifecycle
    await lifecycle.shutdown()


async def submit_and_start(manager, runner, owner, **kwargs):
    job = await manager.submit(owner.id, kwargs.pop("title", "t1"), **kwargs)
    await asyncio.wait_for(runner.started.wait(), timeout=WAIT_TIMEOUT)
    return job


class SwitchableSessionFactory:
    """Session factory that can be switched to fail like an unreachable database."""

    def __init__(self, factory) -> None:
        self._factory = factory
        self.broken = False

    def __call__(self):
        if self.broken:
            raise OperationalError("UPDATE jobs", {}, Exception("database is locked"))
        return self._factory()


async def wait_for_dispatches(manager) -> None:
    for _ in range(500):
        if manager.in_flight == 0:
            return
        await asyncio.sleep(0.01)
    raise AssertionError("dispatch did not finish")


class TestSubmit:
    """Test suite for submit() and the dispatch it schedules."""

    @pytest.mark.asyncio
    async def test_submit_returns_pending_before_runner_finishes(
        self, manager, controlled_runner, owner
    ) -> None:
        """Test submit returns a pending snapshot while the runner is still waiting."""
        # Act
        job = await manager.submit(owner.id, "t1", options={"quality": "slow"})

        # Assert
        assert job.status == JobStatus.PENDING
        assert job.progress == 0
        assert job.owner_id == owner.id
        assert job.output_reference is None
        assert manager.in_flight == 1

        await asyncio.wait_for(controlled_runner.started.wait(), timeout=WAIT_TIMEOUT)
        assert controlled_runner.calls[0]["options"] == {"quality": "slow"}
        assert not controlled_runner.handles[0].done

    @pytest.mark.asyncio
    async def test_progress_then_success_scenario(
        self, manager, controlled_runner, owner
    ) -> None:
        """Test pending -> processing(40) -> completed(out1) as seen by polling."""
        # Arrange
        job = await manager.submit(owner.id, "t1", options={"quality": "slow"})
        assert (job.status, job.progress) == (JobStatus.PENDING, 0)
        await asyncio.wait_for(controlled_runner.started.wait(), timeout=WAIT_TIMEOUT)

        # Act
        await controlled_runner.emit_progress(40)
        polled = await manager.get_status(job.id, owner)

        # Assert
        assert polled.status == JobStatus.PROCESSING
        assert polled.progress == 40
        assert polled.started_at is not None
        assert polled.completed_at is None

        # Act
        await controlled_runner.complete("out1")
        polled = await manager.get_status(job.id, owner)

        # Assert
        assert polled.status == JobStatus.COMPLETED
        assert polled.progress == 100
        assert polled.output_reference == "out1"
        assert polled.error is None
        assert polled.completed_at is not None
        assert polled.cpu_time >= 0

    @pytest.mark.asyncio
    async def test_empty_title_raises_and_creates_nothing(
        self, manager, controlled_runner, owner, session_factory
    ) -> None:
        """Test blank titles are rejected before any row or dispatch exists."""
        # Act & Assert
        with pytest.raises(ValidationError) as exc_info:
            await manager.submit(owner.id, "   ")

        assert exc_info.value.field == "title"
        assert manager.in_flight == 0
        assert controlled_runner.calls == []
        async with session_factory() as session:
            assert await job_crud.count(session) == 0

    @pytest.mark.asyncio
    async def test_success_discards_stored_input(
        self, manager, controlled_runner, owner, storage
    ) -> None:
        """Test uploaded input is released once the job completes."""
        # Arrange
        input_reference = storage.save_upload("clip.mp4", io.BytesIO(b"frames"))
        await submit_and_start(manager, controlled_runner, owner, input_reference=input_reference)

        # Act
        await controlled_runner.complete()

        # Assert
        assert not storage.input_path(input_reference).exists()


class TestProgress:
    """Test suite for progress persistence."""

    @pytest.mark.asyncio
    async def test_progress_never_regresses(self, manager, controlled_runner, owner) -> None:
        """Test lower progress values never overwrite higher ones."""
        # Arrange
        job = await submit_and_start(manager, controlled_runner, owner)
        seen = []

        # Act
        for percent in (10, 35, 20, 35, 60):
            await controlled_runner.emit_progress(percent)
            seen.append((await manager.get_status(job.id, owner)).progress)

        # Assert
        assert seen == [10, 35, 35, 35, 60]
        assert seen == sorted(seen)

    @pytest.mark.asyncio
    async def test_progress_capped_below_100_until_completion(
        self, manager, controlled_runner, owner
    ) -> None:
        """Test a 100% progress report does not complete the job."""
        # Arrange
        job = await submit_and_start(manager, controlled_runner, owner)

        # Act
        await controlled_runner.emit_progress(100)
        polled = await manager.get_status(job.id, owner)

        # Assert
        assert polled.status == JobStatus.PROCESSING
        assert polled.progress == 99
        assert polled.output_reference is None


class TestFailure:
    """Test suite for runner failures."""

    @pytest.mark.asyncio
    async def test_failure_records_error_and_discards_partial_output(
        self, manager, controlled_runner, owner, storage
    ) -> None:
        """Test failed jobs carry the error, no output, and lose the partial artifact."""
        # Arrange
        job = await submit_and_start(manager, controlled_runner, owner)
        partial = controlled_runner.calls[0]["output_reference"]
        storage.output_path(partial).write_bytes(b"partial")
        await controlled_runner.emit_progress(30)

        # Act
        await controlled_runner.fail("encoder crashed")
        polled = await manager.get_status(job.id, owner)

        # Assert
        assert polled.status == JobStatus.FAILED
        assert polled.error == "encoder crashed"
        assert polled.output_reference is None
        assert polled.progress == 30
        assert polled.completed_at is not None
        assert not storage.output_exists(partial)

    @pytest.mark.asyncio
    async def test_terminal_state_cannot_be_left(
        self, manager, controlled_runner, owner
    ) -> None:
        """Test external updates cannot move a failed job anywhere else."""
        # Arrange
        job = await submit_and_start(manager, controlled_runner, owner)
        await controlled_runner.fail("boom")

        # Act & Assert
        with pytest.raises(InvalidTransitionError):
            await manager.apply_external_update(job.id, {"status": "completed", "output_reference": "x"})

        polled = await manager.get_status(job.id, owner)
        assert polled.status == JobStatus.FAILED
        assert polled.output_reference is None


class TestVisibility:
    """Test suite for ownership-scoped reads, deletes and downloads."""

    @pytest.mark.asyncio
    async def test_other_owner_gets_not_found(
        self, manager, controlled_runner, owner, other_user, admin
    ) -> None:
        """Test cross-owner reads look exactly like missing jobs; admins see all."""
        # Arrange
        job = await submit_and_start(manager, controlled_runner, owner)

        # Act & Assert
        with pytest.raises(JobNotFoundError):
            await manager.get_status(job.id, other_user)
        with pytest.raises(JobNotFoundError):
            await manager.remove(job.id, other_user)

        assert (await manager.get_status(job.id, admin)).id == job.id
        assert (await manager.get_status(job.id, owner)).id == job.id

    @pytest.mark.asyncio
    async def test_fetch_output_requires_completion(
        self, manager, controlled_runner, owner
    ) -> None:
        """Test output is only handed out for completed jobs."""
        # Arrange
        job = await submit_and_start(manager, controlled_runner, owner)

        # Act & Assert
        with pytest.raises(JobNotReadyError):
            await manager.fetch_output(job.id, owner)

        await controlled_runner.complete("result.mp4")
        assert await manager.fetch_output(job.id, owner) == "result.mp4"


class TestRemove:
    """Test suite for remove()."""

    @pytest.mark.asyncio
    async def test_delete_mid_processing_is_not_resurrected(
        self, manager, controlled_runner, owner, storage
    ) -> None:
        """Test callbacks for a deleted job are discarded without errors."""
        # Arrange
        job = await submit_and_start(manager, controlled_runner, owner)
        await controlled_runner.emit_progress(10)
        output_reference = controlled_runner.calls[0]["output_reference"]
        storage.output_path(output_reference).write_bytes(b"late output")

        # Act
        deleted = await manager.remove(job.id, owner)
        await controlled_runner.emit_progress(50)
        await controlled_runner.complete()

        # Assert
        assert deleted.id == job.id
        with pytest.raises(JobNotFoundError):
            await manager.get_status(job.id, owner)
        assert not storage.output_exists(output_reference)
        assert controlled_runner.handles[0].task.exception() is None

    @pytest.mark.asyncio
    async def test_remove_completed_job_releases_output(
        self, manager, controlled_runner, owner, storage
    ) -> None:
        """Test deleting a completed job removes its output file."""
        # Arrange
        job = await submit_and_start(manager, controlled_runner, owner)
        output_reference = controlled_runner.calls[0]["output_reference"]
        storage.output_path(output_reference).write_bytes(b"video")
        await controlled_runner.complete()

        # Act
        await manager.remove(job.id, owner)

        # Assert
        assert not storage.output_exists(output_reference)


class TestExternalUpdate:
    """Test suite for apply_external_update()."""

    @pytest.mark.asyncio
    async def test_progress_update_is_clamped(self, manager, controlled_runner, owner) -> None:
        """Test external progress follows the same clamping as runner progress."""
        # Arrange
        job = await submit_and_start(manager, controlled_runner, owner)
        await controlled_runner.emit_progress(50)

        # Act
        lower = await manager.apply_external_update(job.id, {"progress": 20})
        capped = await manager.apply_external_update(job.id, {"status": "processing", "progress": 100})

        # Assert
        assert lower.progress == 50
        assert capped.progress == 99
        assert capped.status == JobStatus.PROCESSING

    @pytest.mark.asyncio
    async def test_completion_requires_output_reference(
        self, manager, controlled_runner, owner
    ) -> None:
        """Test completing without an output is rejected."""
        # Arrange
        job = await submit_and_start(manager, controlled_runner, owner)

        # Act & Assert
        with pytest.raises(ValidationError) as exc_info:
            await manager.apply_external_update(job.id, {"status": "completed"})
        assert exc_info.value.field == "output_reference"

    @pytest.mark.asyncio
    async def test_external_completion_wins_over_late_runner_result(
        self, manager, controlled_runner, owner
    ) -> None:
        """Test the runner's later completion is a no-op once the job is terminal."""
        # Arrange
        job = await submit_and_start(manager, controlled_runner, owner)

        # Act
        updated = await manager.apply_external_update(
            job.id, {"status": "completed", "output_reference": "external.mp4", "cpu_time": 12.5}
        )
        await controlled_runner.complete("runner.mp4")
        polled = await manager.get_status(job.id, owner)

        # Assert
        assert updated.status == JobStatus.COMPLETED
        assert polled.output_reference == "external.mp4"
        assert polled.progress == 100
        assert polled.cpu_time == 12.5

    @pytest.mark.asyncio
    async def test_pending_job_cannot_jump_to_terminal(
        self, manager, session_factory
    ) -> None:
        """Test a pending job must pass through processing before finishing."""
        # Arrange
        async with session_factory() as session:
            job = await job_crud.create_job(session, owner_id="u", title="queued")
            await session.commit()

        # Act & Assert
        with pytest.raises(InvalidTransitionError):
            await manager.apply_external_update(
                job.id, {"status": "completed", "output_reference": "x.mp4"}
            )
        with pytest.raises(InvalidTransitionError):
            await manager.apply_external_update(job.id, {"status": "failed", "error": "boom"})

        async with session_factory() as session:
            assert (await job_crud.get_by_id(session, job.id)).status == JobStatus.PENDING

    @pytest.mark.asyncio
    async def test_missing_job_raises_not_found(self, manager, job_id) -> None:
        """Test updates for unknown ids raise JobNotFoundError."""
        with pytest.raises(JobNotFoundError):
            await manager.apply_external_update(job_id, {"progress": 10})


class TestRecoveryAndShutdown:
    """Test suite for recover_interrupted() and shutdown()."""

    @pytest.mark.asyncio
    async def test_recover_interrupted_fails_active_jobs(
        self, session_factory, controlled_runner, storage
    ) -> None:
        """Test rows left active by a previous process are marked failed."""
        # Arrange
        async with session_factory() as session:
            pending = await job_crud.create_job(session, owner_id="u", title="a")
            running = await job_crud.create_job(session, owner_id="u", title="b")
            await job_crud.mark_processing(session, running.id)
            done = await job_crud.create_job(session, owner_id="u", title="c")
            await job_crud.mark_completed(session, done.id, "out.mp4")
            await session.commit()
        lifecycle = JobLifecycleManager(session_factory, controlled_runner, storage)

        # Act
        recovered = await lifecycle.recover_interrupted()

        # Assert
        assert recovered == 2
        async with session_factory() as session:
            for job_id in (pending.id, running.id):
                job = await job_crud.get_by_id(session, job_id)
                assert job.status == JobStatus.FAILED
                assert job.error == INTERRUPTED_ERROR
            assert (await job_crud.get_by_id(session, done.id)).status == JobStatus.COMPLETED

    @pytest.mark.asyncio
    async def test_shutdown_cancels_in_flight_runs(
        self, manager, controlled_runner, owner
    ) -> None:
        """Test shutdown stops runs without retracting persisted state."""
        # Arrange
        job = await submit_and_start(manager, controlled_runner, owner)
        await controlled_runner.emit_progress(25)

        # Act
        await manager.shutdown()

        # Assert
        assert manager.in_flight == 0
        assert controlled_runner.handles[0].task.cancelled()
        polled = await manager.get_status(job.id, owner)
        assert polled.status == JobStatus.PROCESSING
        assert polled.progress == 25


class TestCallbackPersistenceFailure:
    """Test suite for store errors raised while persisting runner callbacks."""

    @pytest.fixture
    def flaky(self, session_factory):
        return SwitchableSessionFactory(session_factory)

    @pytest_asyncio.fixture
    async def flaky_manager(self, flaky, controlled_runner, storage):
        lifecycle = JobLifecycleManager(flaky, controlled_runner, storage)
        yield lifecycle
        await lifecycle.shutdown()

    @pytest.mark.asyncio
    async def test_progress_write_failure_stops_dispatch(
        self, flaky, flaky_manager, controlled_runner, owner, session_factory, caplog
    ) -> None:
        """Test the run is stopped and the store error is logged, not recorded as the job error."""
        # Arrange
        job = await submit_and_start(flaky_manager, controlled_runner, owner)
        await controlled_runner.emit_progress(20)
        flaky.broken = True

        # Act
        await controlled_runner.emit_progress(50)
        await controlled_runner.handles[0].wait()
        await wait_for_dispatches(flaky_manager)

        # Assert
        assert controlled_runner.handles[0].task.cancelled()
        async with session_factory() as session:
            stored = await job_crud.get_by_id(session, job.id)
        assert stored.status == JobStatus.PROCESSING
        assert stored.progress == 20
        assert stored.error is None
        assert any(
            record.getMessage() == "Persisting runner callback failed, dispatch stopped"
            and record.job_id == str(job.id)
            for record in caplog.records
        )

    @pytest.mark.asyncio
    async def test_completion_write_failure_discards_output(
        self, flaky, flaky_manager, controlled_runner, owner, session_factory, storage
    ) -> None:
        """Test an unrecorded completion releases its output and leaves the row untouched."""
        # Arrange
        job = await submit_and_start(flaky_manager, controlled_runner, owner)
        output_reference = controlled_runner.calls[0]["output_reference"]
        storage.output_path(output_reference).write_bytes(b"video")
        flaky.broken = True

        # Act
        await controlled_runner.complete()
        await wait_for_dispatches(flaky_manager)

        # Assert
        assert controlled_runner.handles[0].task.exception() is None
        assert not storage.output_exists(output_reference)
        async with session_factory() as session:
            stored = await job_crud.get_by_id(session, job.id)
        assert stored.status == JobStatus.PROCESSING
        assert stored.output_reference is None
        assert stored.error is None
