from fastapi import APIRouter, Depends

from fieldgates.dependencies import get_workflow, require_admin
from fieldgates.schemas.photo import FlaggedJob, MissingArtifact
from fieldgates.services.gate_service import GateWorkflow

router = APIRouter(
    prefix="/monitoring",
    tags=["monitoring"],
    dependencies=[Depends(require_admin)],
)


@router.get("/exceptions", response_model=list[FlaggedJob])
async def flagged_jobs(workflow: GateWorkflow = Depends(get_workflow)):
    """Jobs whose exception count is above the review threshold."""
    return [
        FlaggedJob(
            job_id=job.id,
            job_title=job.title,
            lead_tech_id=job.lead_tech_id,
            exception_count=count,
        )
        for job, count in workflow.flagged_jobs()
    ]


@router.get("/gates/missing", response_model=list[MissingArtifact])
async def missing_artifacts(
    job_id: str | None = None,
    workflow: GateWorkflow = Depends(get_workflow),
):
    """Completed Arrival/Photos gates that have no photo and no exception."""
    return [
        MissingArtifact(
            job_id=job.id,
            job_title=job.title,
            gate_id=gate.id,
            stage_name=gate.stage_name,
            completed_at=gate.completed_at,
            completed_by=gate.completed_by,
        )
        for gate, job in workflow.find_missing_artifacts(job_id)
    ]
