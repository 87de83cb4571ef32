"""FastAPI routes for render jobs."""

from functools import lru_cache

from fastapi import APIRouter, Depends, status
from fastapi.responses import JSONResponse

from app.core.config import settings
from app.core.logging_config import get_logger
from app.models.schemas import JobStatus, RenderRequest, StatusResponse, SubmitResponse
from app.services.job_orchestrator import NOT_FOUND, JobOrchestrator

router = APIRouter(prefix="/renders", tags=["renders"])


@lru_cache(maxsize=1)
def get_orchestrator() -> JobOrchestrator:
    """Process-wide orchestrator (overridden in tests)."""
    return JobOrchestrator(settings, get_logger("app.orchestrator"))


def _not_found(job_id: str) -> JSONResponse:
    return JSONResponse(
        status_code=status.HTTP_404_NOT_FOUND,
        content={"job_id": job_id, "status": NOT_FOUND},
    )


@router.post("", response_model=SubmitResponse, status_code=status.HTTP_202_ACCEPTED)
def submit_render(request: RenderRequest, orchestrator: JobOrchestrator = Depends(get_orchestrator)) -> SubmitResponse:
    """Queue a render. Returns the job id immediately."""
    job_id = orchestrator.submit(request)
    return SubmitResponse(job_id=job_id, status=JobStatus.PENDING)


@router.get("/{job_id}/status", response_model=StatusResponse)
def get_status(job_id: str, orchestrator: JobOrchestrator = Depends(get_orchestrator)):
    """pending | done | error, or 404 with status not_found."""
    job_status = orchestrator.status(job_id)
    if job_status == NOT_FOUND:
        return _not_found(job_id)
    return StatusResponse(job_id=job_id, status=job_status)


@router.get("/{job_id}/result")
def get_result(job_id: str, orchestrator: JobOrchestrator = Depends(get_orchestrator)):
    """Asset URLs when done, the error message when failed, 202 while pending."""
    job = orchestrator.result(job_id)
    if job is None:
        return _not_found(job_id)
    if job.status == JobStatus.DONE:
        return {"job_id": job_id, "status": job.status.value, "result": job.result.model_dump(mode="json")}
    if job.status == JobStatus.ERROR:
        return {"job_id": job_id, "status": job.status.value, "error": job.error}
    return JSONResponse(
        status_code=status.HTTP_202_ACCEPTED,
        content={"job_id": job_id, "status": job.status.value},
    )
