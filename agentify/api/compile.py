"""
Compile endpoints.

POST /compile           - normalize, build locally or dispatch to CI
GET  /compile/status    - one status observation of a remote job
POST /compile/status    - bounded server-side wait for a remote job
"""
import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query

from agentify.api.deps import (
    get_config,
    get_dispatcher,
    get_orchestrator,
    get_tracker,
    require_remote,
)
from agentify.core.artifact_resolver import validate_job_id
from agentify.core.compile_service import CompilationOrchestrator
from agentify.core.config import CompilerConfig
from agentify.core.dispatcher import RemoteBuildDispatcher
from agentify.core.errors import DispatchError, InvalidIdentifierError
from agentify.core.tracker import JobStatusTracker
from agentify.schemas.compile import (
    CompileRequest,
    CompileResponse,
    JobStatus,
    StatusResponse,
    WaitRequest,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/compile", tags=["compile"])


@router.post(
    "",
    response_model=CompileResponse,
    response_model_by_alias=True,
    response_model_exclude_none=True,
)
async def compile_agent(
    request: CompileRequest,
    orchestrator: CompilationOrchestrator = Depends(get_orchestrator),
) -> CompileResponse:
    """
    Compile an agent configuration.

    Tries the local toolchain first and falls back to GitHub Actions. A
    remote build answers immediately with a jobId to poll.
    """
    return await orchestrator.compile(request)


@router.get(
    "/status",
    response_model=StatusResponse,
    response_model_by_alias=True,
    response_model_exclude_none=True,
)
async def get_compile_status(
    job_id: Optional[str] = Query(None, alias="jobId", max_length=128),
    dispatcher: Optional[RemoteBuildDispatcher] = Depends(get_dispatcher),
) -> StatusResponse:
    """Current status of a remote compilation job."""
    if not job_id:
        raise InvalidIdentifierError("Missing jobId parameter")
    validate_job_id(job_id)
    dispatcher = require_remote(dispatcher)

    try:
        job = await dispatcher.get_status(job_id)
    except DispatchError as e:
        logger.error(f"status_check_failed job_id={job_id}")
        raise DispatchError(f"Status check failed: {e.message}") from e

    return StatusResponse(
        success=True,
        status=job.status,
        download_url=job.download_url,
        error=job.error_message,
        logs=job.logs,
    )


@router.post(
    "/status",
    response_model=StatusResponse,
    response_model_by_alias=True,
    response_model_exclude_none=True,
)
async def wait_compile_status(
    request: WaitRequest,
    config: CompilerConfig = Depends(get_config),
    tracker: Optional[JobStatusTracker] = Depends(get_tracker),
) -> StatusResponse:
    """
    Wait for a remote job to finish.

    Blocks for at most timeoutMs (capped by COMPILE_WAIT_TIMEOUT_MS). A
    timeout is reported as a failed status, not an HTTP error.
    """
    validate_job_id(request.job_id)
    tracker = require_remote(tracker)
    timeout_ms = config.wait_timeout_ms
    if request.timeout_ms is not None:
        timeout_ms = min(request.timeout_ms, config.wait_timeout_ms)

    job = await tracker.wait_for_completion(request.job_id, timeout_ms=timeout_ms)
    completed = job.status == JobStatus.COMPLETED
    return StatusResponse(
        success=completed,
        status=job.status,
        download_url=job.download_url,
        error=job.error_message,
        logs=job.logs,
        message="Compilation completed successfully" if completed else "Compilation failed or timed out",
    )
