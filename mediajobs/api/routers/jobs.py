"""
Job API endpoints.

Routes:
    POST   /jobs                 submit (JSON body or multipart upload)
    GET    /jobs                 paginated, filtered, sorted listing
    GET    /jobs/{id}            status polling
    PUT    /jobs/{id}            runner-side update (admin only)
    DELETE /jobs/{id}            delete job and its artifacts
    GET    /jobs/{id}/download   stream the produced output

Every route is scoped by the requesting principal; another owner's job is
reported as not found.

Dependencies: fastapi, mediajobs.application.services, mediajobs.models
System role: Job HTTP API
"""

import json
import logging
import time
from typing import Any
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query, Request, Response, status
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import FileResponse
from starlette.datastructures import UploadFile

from mediajobs.api.deps import (
    get_current_principal,
    get_job_query_service,
    get_lifecycle_manager,
    get_settings_dependency,
    get_storage,
    require_admin,
)
from mediajobs.api.routers.job_error_handling import handle_job_errors
from mediajobs.application.services import JobLifecycleManager, JobQueryService
from mediajobs.boundary.storage import LocalFileStorage
from mediajobs.configs import Settings
from mediajobs.core.exceptions import ValidationError
from mediajobs.core.job_query import DEFAULT_PAGE_SIZE, DEFAULT_SORT_FIELD
from mediajobs.models.common import ErrorResponse
from mediajobs.models.job import (
    CreateJobRequest,
    DeleteJobResponse,
    JobListResponse,
    JobResponse,
    PaginationInfo,
    SortingInfo,
    TranscodeOptions,
    UpdateJobRequest,
)
from mediajobs.models.principal import Principal

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/jobs",
    tags=["jobs"],
    responses={
        400: {"model": ErrorResponse},
        401: {"model": ErrorResponse},
        404: {"model": ErrorResponse},
    },
)

OPTION_FORM_FIELDS = ("resolution", "quality", "codec")


def placeholder_input_reference() -> str:
    """Input reference recorded for JSON submissions that carry no upload."""
    return f"input_{int(time.time() * 1000)}.mp4"


async def _read_json_submission(request: Request) -> dict[str, Any]:
    try:
        body = await request.json()
    except (json.JSONDecodeError, UnicodeDecodeError) as e:
        raise ValidationError("Request body must be valid JSON") from e
    if not isinstance(body, dict):
        raise ValidationError("Request body must be a JSON object")

    payload = CreateJobRequest.model_validate(body)
    return {
        "title": payload.title,
        "description": payload.description,
        "options": payload.options.model_dump(),
        "input_reference": placeholder_input_reference(),
    }


async def _read_multipart_submission(
    request: Request,
    storage: LocalFileStorage,
    settings: Settings,
) -> dict[str, Any]:
    form = await request.form()
    upload = form.get("file")
    if not isinstance(upload, UploadFile) or not upload.filename:
        raise ValidationError("No video file uploaded", field="file")

    content_type = (upload.content_type or "").lower()
    if not any(content_type.startswith(prefix) for prefix in settings.jobs.allowed_upload_types):
        logger.warning(
            "Upload rejected: invalid content type",
            extra={"upload_filename": upload.filename, "content_type": content_type},
        )
        raise ValidationError(
            "Invalid file type. Only video files are allowed.",
            field="file",
        )

    options = TranscodeOptions.model_validate(
        {name: form.get(name) for name in OPTION_FORM_FIELDS if form.get(name)}
    )

    title = form.get("title")
    if title is None:
        title = f"Video Processing: {upload.filename}"

    input_reference = await run_in_threadpool(
        storage.save_upload,
        upload.filename,
        upload.file,
        settings.jobs.max_upload_bytes,
    )
    return {
        "title": str(title),
        "description": form.get("description") or None,
        "options": options.model_dump(),
        "input_reference": input_reference,
    }


@router.post("", response_model=JobResponse, status_code=status.HTTP_201_CREATED)
@handle_job_errors
async def create_job(
    request: Request,
    principal: Principal = Depends(get_current_principal),
    manager: JobLifecycleManager = Depends(get_lifecycle_manager),
    storage: LocalFileStorage = Depends(get_storage),
    settings: Settings = Depends(get_settings_dependency),
) -> JobResponse:
    """
    Submit a job (non-blocking).

    Accepts either application/json ({title, description?, options?}) or
    multipart/form-data with a `file` upload plus optional title,
    description, resolution, quality and codec fields. Returns as soon as
    the pending record exists; poll GET /jobs/{id} for progress.

    Raises:
        HTTPException(400): Invalid body, missing title, bad upload
    """
    content_type = request.headers.get("content-type", "")
    if content_type.startswith("multipart/form-data"):
        submission = await _read_multipart_submission(request, storage, settings)
    else:
        submission = await _read_json_submission(request)

    try:
        job = await manager.submit(owner_id=principal.id, **submission)
    except ValidationError:
        storage.discard_input(submission["input_reference"])
        raise

    return JobResponse.model_validate(job)


@router.get("", response_model=JobListResponse)
@handle_job_errors
async def list_jobs(
    response: Response,
    page: int = Query(1, description="Page number (clamped to >= 1)"),
    limit: int = Query(DEFAULT_PAGE_SIZE, description="Page size (clamped to 1-100)"),
    sort: str = Query(DEFAULT_SORT_FIELD, description="Sort field"),
    order: str = Query("desc", description="asc or desc"),
    status_filter: str | None = Query(None, alias="status"),
    title: str | None = Query(None, description="Case-insensitive title substring"),
    resolution: str | None = Query(None),
    quality: str | None = Query(None),
    codec: str | None = Query(None),
    principal: Principal = Depends(get_current_principal),
    query_service: JobQueryService = Depends(get_job_query_service),
) -> JobListResponse:
    """
    List the principal's jobs (all jobs for admins).

    Sets X-Total-Count and X-Total-Pages headers. Pages past the end return
    an empty item list.
    """
    job_page, filters, job_sort = await query_service.list_jobs(
        principal,
        page=page,
        limit=limit,
        sort=sort,
        order=order,
        status=status_filter,
        title=title,
        option_fields={"resolution": resolution, "quality": quality, "codec": codec},
    )

    response.headers["X-Total-Count"] = str(job_page.total_count)
    response.headers["X-Total-Pages"] = str(job_page.total_pages)

    current = job_page.page.number
    return JobListResponse(
        items=[JobResponse.model_validate(job) for job in job_page.items],
        pagination=PaginationInfo(
            current_page=current,
            per_page=job_page.page.size,
            total_items=job_page.total_count,
            total_pages=job_page.total_pages,
            has_next_page=job_page.has_next,
            has_prev_page=job_page.has_prev,
            next_page=current + 1 if job_page.has_next else None,
            prev_page=current - 1 if job_page.has_prev else None,
        ),
        filters_applied=filters.applied(),
        sorting=SortingInfo(field=job_sort.field, order=job_sort.direction.value),
    )


@router.get("/{job_id}", response_model=JobResponse)
@handle_job_errors
async def get_job(
    job_id: UUID,
    principal: Principal = Depends(get_current_principal),
    manager: JobLifecycleManager = Depends(get_lifecycle_manager),
) -> JobResponse:
    """
    Get job status and progress for polling.

    Raises:
        HTTPException(404): Job absent or owned by someone else
    """
    job = await manager.get_status(job_id, principal)
    return JobResponse.model_validate(job)


@router.put("/{job_id}", response_model=JobResponse)
@handle_job_errors
async def update_job(
    job_id: UUID,
    payload: UpdateJobRequest,
    principal: Principal = Depends(require_admin),
    manager: JobLifecycleManager = Depends(get_lifecycle_manager),
) -> JobResponse:
    """
    Apply a runner-side status update.

    Restricted to administrative principals (the runner's service identity).

    Raises:
        HTTPException(400): Update breaks the job state machine
        HTTPException(404): No matching job
    """
    job = await manager.apply_external_update(job_id, payload.model_dump(exclude_unset=True))
    logger.info("Job updated by principal", extra={"job_id": str(job_id), "principal_id": principal.id})
    return JobResponse.model_validate(job)


@router.delete("/{job_id}", response_model=DeleteJobResponse)
@handle_job_errors
async def delete_job(
    job_id: UUID,
    principal: Principal = Depends(get_current_principal),
    manager: JobLifecycleManager = Depends(get_lifecycle_manager),
) -> DeleteJobResponse:
    """
    Delete a job and release its output.

    Permitted while the job is processing; the in-flight run finishes and
    its results are discarded.

    Raises:
        HTTPException(404): Job absent or owned by someone else
    """
    job = await manager.remove(job_id, principal)
    return DeleteJobResponse(id=job.id)


@router.get("/{job_id}/download")
@handle_job_errors
async def download_output(
    job_id: UUID,
    principal: Principal = Depends(get_current_principal),
    manager: JobLifecycleManager = Depends(get_lifecycle_manager),
    storage: LocalFileStorage = Depends(get_storage),
) -> FileResponse:
    """
    Stream the output of a completed job as an attachment.

    Raises:
        HTTPException(400): Job not completed yet
        HTTPException(404): Job or output file missing
    """
    output_reference = await manager.fetch_output(job_id, principal)
    if not storage.output_exists(output_reference):
        logger.warning(
            "Output file missing",
            extra={"job_id": str(job_id), "output_reference": output_reference},
        )
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Output file not found")

    return FileResponse(
        path=storage.output_path(output_reference),
        filename=output_reference,
    )
