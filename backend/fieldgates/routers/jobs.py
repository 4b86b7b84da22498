from fastapi import APIRouter, Depends, HTTPException

from fieldgates.dependencies import Actor, get_actor, get_workflow, load_visible_job, require_admin
from fieldgates.routers.serializers import gate_to_response, job_to_response
from fieldgates.schemas.job import (
    ExceptionFrequencyResponse,
    JobAssign,
    JobCreate,
    JobDetailResponse,
    JobListResponse,
    JobResponse,
)
from fieldgates.services.gate_service import GateWorkflow

router = APIRouter(
    prefix="/jobs",
    tags=["jobs"],
)


@router.post("", response_model=JobResponse, status_code=201)
async def create_job(
    req: JobCreate,
    actor: Actor = Depends(require_admin),
    workflow: GateWorkflow = Depends(get_workflow),
):
    job = workflow.create_job(req.title, req.address, req.lead_tech_id)
    return job_to_response(job)


@router.get("", response_model=JobListResponse)
async def list_jobs(
    status: str | None = None,
    actor: Actor = Depends(get_actor),
    workflow: GateWorkflow = Depends(get_workflow),
):
    jobs = workflow.store.list_jobs(None if actor.is_admin else actor.user_id)
    if status:
        jobs = [j for j in jobs if j.status == status]
    return JobListResponse(jobs=[job_to_response(j) for j in jobs], total=len(jobs))


@router.get("/{job_id}", response_model=JobDetailResponse)
async def get_job(
    job_id: str,
    actor: Actor = Depends(get_actor),
    workflow: GateWorkflow = Depends(get_workflow),
):
    job = load_visible_job(job_id, actor, workflow)
    gates = workflow.store.list_gates(job.id)
    return JobDetailResponse(
        **job_to_response(job).model_dump(),
        gates=[gate_to_response(g) for g in gates],
    )


@router.put("/{job_id}/assign", response_model=JobResponse)
async def assign_job(
    job_id: str,
    req: JobAssign,
    actor: Actor = Depends(require_admin),
    workflow: GateWorkflow = Depends(get_workflow),
):
    if not req.lead_tech_id.strip():
        raise HTTPException(status_code=400, detail="lead_tech_id is required")
    job = workflow.assign_job(job_id, req.lead_tech_id.strip())
    return job_to_response(job)


@router.get("/{job_id}/exception-frequency", response_model=ExceptionFrequencyResponse)
async def exception_frequency(
    job_id: str,
    actor: Actor = Depends(get_actor),
    workflow: GateWorkflow = Depends(get_workflow),
):
    load_visible_job(job_id, actor, workflow)
    result = workflow.check_exception_frequency(job_id)
    return ExceptionFrequencyResponse(
        job_id=job_id,
        exception_count=result.exception_count,
        needs_review=result.needs_review,
        threshold=workflow.monitor.threshold,
    )
