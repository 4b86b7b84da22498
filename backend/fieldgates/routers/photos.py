from fastapi import APIRouter, Depends, HTTPException
from fastapi.responses import FileResponse

from fieldgates.dependencies import Actor, get_actor, get_workflow, load_visible_job
from fieldgates.routers.serializers import photo_to_response
from fieldgates.schemas.photo import PhotoResponse
from fieldgates.services.gate_service import GateWorkflow

router = APIRouter(
    prefix="/jobs/{job_id}/photos",
    tags=["photos"],
)


@router.get("", response_model=list[PhotoResponse])
async def list_photos(
    job_id: str,
    gate_id: str | None = None,
    actor: Actor = Depends(get_actor),
    workflow: GateWorkflow = Depends(get_workflow),
):
    load_visible_job(job_id, actor, workflow)
    return [photo_to_response(p) for p in workflow.store.list_photos(job_id, gate_id)]


@router.get("/{photo_id}/verify")
async def verify_photo(
    job_id: str,
    photo_id: str,
    actor: Actor = Depends(get_actor),
    workflow: GateWorkflow = Depends(get_workflow),
):
    """Re-hash the stored blob and compare against the recorded SHA-256."""
    load_visible_job(job_id, actor, workflow)
    photo = workflow.store.get_photo(job_id, photo_id)
    full_path = workflow.storage.full_path(photo.storage_path)
    if not full_path.exists():
        raise HTTPException(status_code=404, detail="Photo file missing from storage")

    actual_hash = workflow.storage.digest(photo.storage_path)
    return {
        "verified": actual_hash == photo.file_hash,
        "storage_path": photo.storage_path,
        "stored_hash": photo.file_hash,
        "actual_hash": actual_hash,
    }


@router.get("/{photo_id}/download")
async def download_photo(
    job_id: str,
    photo_id: str,
    actor: Actor = Depends(get_actor),
    workflow: GateWorkflow = Depends(get_workflow),
):
    load_visible_job(job_id, actor, workflow)
    photo = workflow.store.get_photo(job_id, photo_id)
    full_path = workflow.storage.full_path(photo.storage_path)
    if not full_path.exists():
        raise HTTPException(status_code=404, detail="Photo file missing from storage")
    return FileResponse(
        path=str(full_path),
        filename=full_path.name,
        media_type=photo.mime_type or "application/octet-stream",
    )
