"""
Shared test fixtures and configuration for entire test suite.

Provides: temp-file SQLite database, storage, a controllable runner stub,
principals and session mocks
Dependencies: pytest, pytest-asyncio, sqlalchemy
System role: Test infrastructure and fixture management
"""

import asyncio
import uuid
from pathlib import Path
from typing import Any
from unittest.mock import AsyncMock

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from mediajobs.boundary.db.create_tables import create_all_tables, drop_all_tables
from mediajobs.boundary.storage import LocalFileStorage
from mediajobs.core.runners.base import ProgressReporter, RunHandle, TransformationRunner
from mediajobs.models.principal import Principal


class ControlledRunner(TransformationRunner):
    """
    Runner whose progress and outcome are driven by the test.

    Each execute() call waits for the test to push progress values or an
    outcome through the job's control queue.
    """

    output_suffix = ".out"

    def __init__(self, storage: LocalFileStorage) -> None:
        super().__init__(storage.allocate_output)
        self.started = asyncio.Event()
        self.calls: list[dict[str, Any]] = []
        self.handles: list[RunHandle] = []
        self._controls: asyncio.Queue = asyncio.Queue()
        self._processed = asyncio.Event()

    def run(self, *args: Any, **kwargs: Any) -> RunHandle:
        handle = super().run(*args, **kwargs)
        self.handles.append(handle)
        return handle

    async def execute(
        self,
        input_reference: str | None,
        options: dict[str, Any],
        output_reference: str,
        report_progress: ProgressReporter,
    ) -> str:
        self.calls.append(
            {"input_reference": input_reference, "options": options, "output_reference": output_reference}
        )
        self.started.set()
        while True:
            kind, value = await self._controls.get()
            try:
                if kind == "progress":
                    await report_progress(value)
                elif kind == "done":
                    return value or output_reference
                else:
                    raise RuntimeError(value)
            finally:
                self._processed.set()

    async def _push(self, kind: str, value: Any) -> None:
        self._processed.clear()
        await self._controls.put((kind, value))
        await self._processed.wait()
        if kind != "progress":
            # Terminal callbacks run after execute returns
            await self.handles[-1].wait()

    async def emit_progress(self, percent: int) -> None:
        await self._push("progress", percent)

    async def complete(self, output_reference: str | None = None) -> None:
        await self._push("done", output_reference)

    async def fail(self, message: str) -> None:
        await self._push("error", message)


@pytest_asyncio.fixture
async def db_engine(tmp_path: Path):
    """
    Create a temp-file SQLite async engine with all tables.

    A file database (not :memory:) lets concurrent sessions see each
    other's commits.
    """
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'jobs.db'}")
    await create_all_tables(engine)

    yield engine

    await drop_all_tables(engine)
    await engine.dispose()


@pytest.fixture
def session_factory(db_engine) -> async_sessionmaker:
    """Session factory bound to the test engine."""
    return async_sessionmaker(db_engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture
async def test_async_db(session_factory):
    """
    Create a test database session.

    Yields:
        AsyncSession: Test database session with rollback on teardown
    """
    async with session_factory() as session:
        yield session
        await session.rollback()


@pytest.fixture
def storage(tmp_path: Path) -> LocalFileStorage:
    """File storage rooted in the test's temp directory."""
    return LocalFileStorage(tmp_path / "uploads", tmp_path / "processed")


@pytest.fixture
def controlled_runner(storage: LocalFileStorage) -> ControlledRunner:
    return ControlledRunner(storage)


@pytest.fixture
def owner() -> Principal:
    return Principal(id="user-1", role="user")


@pytest.fixture
def other_user() -> Principal:
    return Principal(id="user-2", role="user")


@pytest.fixture
def admin() -> Principal:
    return Principal(id="runner-service", role="admin")


@pytest.fixture
def mock_session() -> AsyncMock:
    """Provide mock async database session."""
    session = AsyncMock(spec=AsyncSession)
    session.commit = AsyncMock()
    session.rollback = AsyncMock()
    return session


@pytest.fixture
def job_id() -> uuid.UUID:
    """Generate a test job ID."""
    return uuid.uuid4()
