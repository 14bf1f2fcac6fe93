"""
Job ORM model.

One row per submitted media-processing job. Tracks the job's state machine,
progress, input/output locators and timing so clients can poll status
without holding a connection open.

Dependencies: sqlalchemy, mediajobs.boundary.db.base
System role: Persisted job state (sole owner of job rows)
"""

import enum
from datetime import datetime

from sqlalchemy import JSON, DateTime, Enum, Float, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from mediajobs.boundary.db.base import Base, TimestampMixin, UUIDMixin


class JobStatus(str, enum.Enum):
    """
    Job execution states.

    PENDING: Record created, dispatch not started yet
    PROCESSING: Transformation runner is working on the job
    COMPLETED: Runner succeeded; output_reference is set (terminal)
    FAILED: Runner failed; error is set (terminal)
    """

    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (JobStatus.COMPLETED, JobStatus.FAILED)


class JobModel(Base, UUIDMixin, TimestampMixin):
    """
    Job ORM model.

    Attributes:
        id: UUID primary key (auto-generated, immutable)
        owner_id: Principal that submitted the job (immutable, indexed)
        title: Required free-text title
        description: Optional free text
        input_reference: Locator of the submitted input, set at creation
        output_reference: Locator of the produced output; only when COMPLETED
        options: JSON snapshot of transformation options (immutable)
        status: Current state (indexed)
        progress: Percentage 0-100; 100 only when COMPLETED
        error: Failure message; only when FAILED
        cpu_time: Elapsed processing time in seconds (informational)
        created_at: Creation timestamp (UTC, indexed)
        started_at: First transition out of PENDING
        completed_at: Transition into COMPLETED or FAILED

    Workflow:
        1. Lifecycle manager creates the row with status=PENDING, progress=0
        2. Dispatch marks PROCESSING and sets started_at
        3. Runner progress updates raise progress (capped at 99)
        4. Runner outcome sets COMPLETED (+output, progress=100) or FAILED (+error)
    """

    __tablename__ = "jobs"

    owner_id: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
        index=True,
        doc="Requesting principal id",
    )

    title: Mapped[str] = mapped_column(String(255), nullable=False)

    description: Mapped[str | None] = mapped_column(Text, nullable=True)

    input_reference: Mapped[str | None] = mapped_column(
        String(1024),
        nullable=True,
        doc="Opaque locator of the submitted input",
    )

    output_reference: Mapped[str | None] = mapped_column(
        String(1024),
        nullable=True,
        doc="Opaque locator of the produced output",
    )

    options: Mapped[dict] = mapped_column(
        JSON,
        nullable=False,
        default=dict,
        doc="Transformation options snapshot",
    )

    status: Mapped[JobStatus] = mapped_column(
        Enum(JobStatus, native_enum=False, values_callable=lambda e: [m.value for m in e]),
        nullable=False,
        default=JobStatus.PENDING,
        index=True,
    )

    progress: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        default=0,
        doc="Progress percentage (0-100)",
    )

    error: Mapped[str | None] = mapped_column(Text, nullable=True)

    cpu_time: Mapped[float] = mapped_column(
        Float,
        nullable=False,
        default=0.0,
        doc="Elapsed processing seconds",
    )

    started_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )

    completed_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )

    def __repr__(self) -> str:
        return f"<JobModel id={self.id} status={self.status} progress={self.progress}>"
