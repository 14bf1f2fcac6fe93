"""
Job domain models and schemas.

Request/response schemas for job submission, status polling, listing and
the runner callback path.

Dependencies: pydantic
System role: Job API contracts
"""

import uuid
from datetime import datetime
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field

from mediajobs.boundary.db.models.job_model import JobStatus


class TranscodeOptions(BaseModel):
    """Transformation options snapshot stored with each job."""

    model_config = ConfigDict(extra="forbid")

    resolution: Literal["480p", "720p", "1080p", "4k"] = "720p"
    quality: Literal["slow", "medium", "fast"] = "medium"
    codec: Literal["h264", "h265"] = "h264"


class CreateJobRequest(BaseModel):
    """JSON body for POST /jobs."""

    model_config = ConfigDict(extra="forbid")

    title: str | None = Field(default=None, description="Job title (required)")
    description: str | None = None
    options: TranscodeOptions = Field(default_factory=TranscodeOptions)


class UpdateJobRequest(BaseModel):
    """Body for PUT /jobs/{id}; only supplied fields are applied."""

    model_config = ConfigDict(extra="forbid")

    status: JobStatus | None = None
    progress: int | None = Field(default=None, ge=0, le=100)
    error: str | None = None
    cpu_time: float | None = Field(default=None, ge=0)
    output_reference: str | None = None


class JobResponse(BaseModel):
    """Job detail as returned to clients."""

    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    owner_id: str
    title: str
    description: str | None = None
    input_reference: str | None = None
    output_reference: str | None = None
    options: dict[str, Any] = Field(default_factory=dict)
    status: JobStatus
    progress: int
    error: str | None = None
    cpu_time: float = 0.0
    created_at: datetime
    updated_at: datetime
    started_at: datetime | None = None
    completed_at: datetime | None = None


class PaginationInfo(BaseModel):
    current_page: int
    per_page: int
    total_items: int
    total_pages: int
    has_next_page: bool
    has_prev_page: bool
    next_page: int | None = None
    prev_page: int | None = None


class SortingInfo(BaseModel):
    field: str
    order: Literal["asc", "desc"]


class JobListResponse(BaseModel):
    """Response schema for GET /jobs."""

    items: list[JobResponse]
    pagination: PaginationInfo
    filters_applied: dict[str, Any]
    sorting: SortingInfo


class DeleteJobResponse(BaseModel):
    message: str = "Job deleted successfully"
    id: uuid.UUID
