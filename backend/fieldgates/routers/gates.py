import json

from fastapi import APIRouter, Depends, File, Form, HTTPException, UploadFile

from fieldgates.config import settings
from fieldgates.core.exceptions import ValidationFailedError
from fieldgates.dependencies import Actor, get_actor, get_workflow, load_visible_job
from fieldgates.routers.serializers import gate_to_response, photo_to_response
from fieldgates.schemas.gate import (
    CompletionResponse,
    ExceptionCreate,
    GateDetailResponse,
    GateResponse,
    MetadataUpdate,
    MoistureReadingCreate,
    ValidationResult,
)
from fieldgates.schemas.metadata import parse_stage_metadata
from fieldgates.schemas.photo import PhotoResponse
from fieldgates.services.gate_service import GateWorkflow
from fieldgates.services.gate_state import is_terminal
from fieldgates.services.photo_service import PhotoUpload
from fieldgates.services.requirements import check_required_fields, stage_requirements

router = APIRouter(
    prefix="/gates",
    tags=["gates"],
)


async def _read_upload(file: UploadFile) -> bytes:
    max_bytes = settings.max_upload_bytes
    size = 0
    chunks: list[bytes] = []
    while True:
        chunk = await file.read(1024 * 1024)
        if not chunk:
            break
        size += len(chunk)
        if size > max_bytes:
            raise HTTPException(
                status_code=413,
                detail=f"File too large. Please use a smaller image (max {max_bytes // (1024 * 1024)}MB).",
            )
        chunks.append(chunk)
    content = b"".join(chunks)
    if not content:
        raise HTTPException(status_code=400, detail="Empty file")
    return content


def _parse_json_field(raw: str | None, name: str):
    if raw is None or raw == "":
        return None
    try:
        return json.loads(raw)
    except json.JSONDecodeError:
        raise HTTPException(status_code=400, detail=f"{name} must be valid JSON")


def _load_gate(gate_id: str, actor: Actor, workflow: GateWorkflow):
    gate = workflow.store.get_gate(gate_id)
    load_visible_job(gate.job_id, actor, workflow)
    return gate


@router.get("/{gate_id}", response_model=GateDetailResponse)
async def get_gate(
    gate_id: str,
    actor: Actor = Depends(get_actor),
    workflow: GateWorkflow = Depends(get_workflow),
):
    gate = _load_gate(gate_id, actor, workflow)
    photos = workflow.store.list_photos(gate.job_id, gate.id)
    return GateDetailResponse(
        **gate_to_response(gate).model_dump(),
        requirements=stage_requirements(gate.stage_name),
        photo_count=len(photos),
    )


@router.get("/{gate_id}/validation", response_model=ValidationResult)
async def validate_gate(
    gate_id: str,
    actor: Actor = Depends(get_actor),
    workflow: GateWorkflow = Depends(get_workflow),
):
    """Read-only pre-check for the completion button; safe to poll."""
    gate = _load_gate(gate_id, actor, workflow)
    return workflow.validate_gate(gate.id, gate.job_id)


@router.put("/{gate_id}/metadata", response_model=GateResponse)
async def save_metadata(
    gate_id: str,
    req: MetadataUpdate,
    actor: Actor = Depends(get_actor),
    workflow: GateWorkflow = Depends(get_workflow),
):
    gate = workflow.save_gate_metadata(gate_id, actor.user_id, req.metadata)
    return gate_to_response(gate)


@router.post("/{gate_id}/readings", response_model=GateResponse, status_code=201)
async def add_reading(
    gate_id: str,
    req: MoistureReadingCreate,
    actor: Actor = Depends(get_actor),
    workflow: GateWorkflow = Depends(get_workflow),
):
    gate = workflow.add_moisture_reading(gate_id, actor.user_id, req.model_dump(exclude_none=True))
    return gate_to_response(gate)


@router.post("/{gate_id}/complete", response_model=CompletionResponse)
async def complete_gate(
    gate_id: str,
    metadata: str | None = Form(None),
    photo_metadata: str | None = Form(None),
    photos: list[UploadFile] = File(default=[]),
    actor: Actor = Depends(get_actor),
    workflow: GateWorkflow = Depends(get_workflow),
):
    """Complete a gate, optionally submitting its final metadata and photos.

    ``photo_metadata`` is a JSON list aligned with ``photos``; each entry may
    carry ``room``, ``type`` and ``isPpe``.
    """
    raw_meta = _parse_json_field(metadata, "metadata")
    if raw_meta is not None and not isinstance(raw_meta, dict):
        raise HTTPException(status_code=400, detail="metadata must be a JSON object")
    per_photo = _parse_json_field(photo_metadata, "photo_metadata") or []
    if not isinstance(per_photo, list) or len(per_photo) > len(photos):
        raise HTTPException(status_code=400, detail="photo_metadata must be a list matching photos")

    gate = workflow.store.get_gate(gate_id)
    job = workflow.store.get_job(gate.job_id)
    if not is_terminal(gate) and job.lead_tech_id == actor.user_id:
        meta = parse_stage_metadata(gate.stage_name, raw_meta if raw_meta is not None else gate.gate_metadata)
        missing = check_required_fields(meta, bool(gate.requires_exception))
        if missing:
            raise ValidationFailedError(missing)

    uploads = []
    for index, file in enumerate(photos):
        extra = per_photo[index] if index < len(per_photo) else {}
        if not isinstance(extra, dict):
            raise HTTPException(status_code=400, detail="photo_metadata entries must be JSON objects")
        extra = dict(extra)
        is_ppe = bool(extra.pop("isPpe", False))
        uploads.append(PhotoUpload(
            filename=file.filename or f"photo_{index}.jpg",
            content=await _read_upload(file),
            content_type=file.content_type,
            metadata=extra,
            is_ppe=is_ppe,
        ))

    result = workflow.complete_gate(gate_id, actor.user_id, raw_meta, uploads)
    return CompletionResponse(gate=gate_to_response(result.gate), warnings=result.warnings)


@router.post("/{gate_id}/exception", response_model=GateResponse)
async def log_exception(
    gate_id: str,
    req: ExceptionCreate,
    actor: Actor = Depends(get_actor),
    workflow: GateWorkflow = Depends(get_workflow),
):
    gate = workflow.log_exception(gate_id, actor.user_id, req.reason)
    return gate_to_response(gate)


@router.post("/{gate_id}/photos", response_model=PhotoResponse, status_code=201)
async def capture_photo(
    gate_id: str,
    file: UploadFile = File(...),
    room: str | None = Form(None),
    photo_type: str | None = Form(None),
    is_ppe: bool = Form(False),
    actor: Actor = Depends(get_actor),
    workflow: GateWorkflow = Depends(get_workflow),
):
    meta = {}
    if room:
        meta["room"] = room
    if photo_type:
        meta["type"] = photo_type
    upload = PhotoUpload(
        filename=file.filename or "photo.jpg",
        content=await _read_upload(file),
        content_type=file.content_type,
        metadata=meta,
        is_ppe=is_ppe or (photo_type or "").strip().upper() == "PPE",
    )
    photo = workflow.capture_photo(gate_id, actor.user_id, upload)
    return photo_to_response(photo)
