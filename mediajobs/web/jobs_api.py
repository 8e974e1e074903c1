"""
Job record endpoints: lookup, listing, administrative updates, deletion,
cancellation and the polling status payload.
"""

import logging
from typing import Any, Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel

from mediajobs.core.constants import JobStatus, JobType, ProgressStage, DEFAULT_LIST_LIMIT
from mediajobs.core.diagnostics import get_diagnostics
from mediajobs.web.state import AppServices, get_services

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["jobs"])


class JobUpdateRequest(BaseModel):
    id: Optional[str] = None
    status: Optional[str] = None
    progress: Optional[int] = None
    result: Optional[Any] = None
    error: Optional[str] = None


@router.get("/jobs")
def get_jobs(id: Optional[str] = None, type: Optional[str] = None,
             status: Optional[str] = None, limit: int = DEFAULT_LIST_LIMIT,
             services: AppServices = Depends(get_services)):
    """Fetch one job by id, or list jobs newest first."""
    if id:
        return services.controller.get_job(id).to_dict()

    # Unknown filter values are ignored rather than rejected
    job_type = type if type in JobType.ALL else None
    job_status = status if status in JobStatus.ALL else None
    jobs = services.controller.list_jobs(job_type, job_status, limit)
    return [job.to_dict() for job in jobs]


@router.put("/jobs")
def put_job(body: JobUpdateRequest, services: AppServices = Depends(get_services)):
    if not body.id:
        raise HTTPException(status_code=400, detail="Job ID is required")
    if not body.status:
        raise HTTPException(status_code=400, detail="Job status is required")

    try:
        job = services.controller.update_status(
            body.id, body.status, progress=body.progress,
            result=body.result, error=body.error)
    except (TypeError, ValueError) as e:
        raise HTTPException(status_code=400, detail=f"Invalid result payload: {e}")
    return job.to_dict()


@router.delete("/jobs")
def delete_job(id: Optional[str] = None, services: AppServices = Depends(get_services)):
    if not id:
        raise HTTPException(status_code=400, detail="Job ID is required")
    if services.runner.is_running(id):
        services.runner.cancel(id)
    services.controller.delete_job(id)
    services.tracker.forget(id)
    return {"success": True, "message": f"Job {id} deleted"}


@router.post("/jobs/cancel")
def cancel_job(id: Optional[str] = None, services: AppServices = Depends(get_services)):
    if not id:
        raise HTTPException(status_code=400, detail="Job ID is required")
    return services.runner.cancel(id).to_dict()


@router.get("/job-status")
def job_status(id: Optional[str] = None, services: AppServices = Depends(get_services)):
    """Polling payload; read-only."""
    if not id:
        raise HTTPException(status_code=400, detail="No job ID provided")

    job = services.controller.get_job(id)
    payload = {
        "id": job.id,
        "status": job.status,
        "job_type": job.type,
        "progress": job.progress or 0,
        "message": job.status_message,
        "created_at": job.created_at,
        "updated_at": job.updated_at,
        "error": job.error,
        "result": job.to_dict()['result'],
        "stage": None,
        "estimated_time_remaining": None,
    }
    if job.status == JobStatus.COMPLETED:
        payload["stage"] = ProgressStage.COMPLETE
        payload["estimated_time_remaining"] = 0
    elif job.status == JobStatus.FAILED:
        payload["stage"] = ProgressStage.ERROR
        payload["estimated_time_remaining"] = 0
    else:
        snap = services.tracker.get(id)
        if snap is not None:
            payload["stage"] = snap.stage
            payload["estimated_time_remaining"] = snap.estimated_time_remaining
    return payload


@router.get("/health")
def health(services: AppServices = Depends(get_services)):
    return {"status": "ok", **get_diagnostics(services.config)}
