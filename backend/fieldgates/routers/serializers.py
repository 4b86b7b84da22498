from fieldgates.models.gate import Gate
from fieldgates.models.job import Job
from fieldgates.models.photo import Photo
from fieldgates.schemas.gate import GateResponse
from fieldgates.schemas.job import JobResponse
from fieldgates.schemas.photo import PhotoResponse
from fieldgates.services.gate_state import TERMINAL_STATUSES


def gate_to_response(gate: Gate) -> GateResponse:
    return GateResponse(
        id=gate.id,
        job_id=gate.job_id,
        stage_name=gate.stage_name,
        status=gate.status,
        metadata=gate.gate_metadata or {},
        requires_exception=bool(gate.requires_exception),
        exception_reason=gate.exception_reason,
        completed_at=gate.completed_at,
        completed_by=gate.completed_by,
        created_at=gate.created_at,
        updated_at=gate.updated_at,
    )


def job_to_response(job: Job) -> JobResponse:
    return JobResponse(
        id=job.id,
        title=job.title,
        address=job.address,
        status=job.status,
        lead_tech_id=job.lead_tech_id,
        created_at=job.created_at,
        updated_at=job.updated_at,
        gates_resolved=sum(1 for g in job.gates if g.status in TERMINAL_STATUSES),
        gates_total=len(job.gates),
    )


def photo_to_response(photo: Photo) -> PhotoResponse:
    return PhotoResponse(
        id=photo.id,
        job_id=photo.job_id,
        gate_id=photo.gate_id,
        storage_path=photo.storage_path,
        metadata=photo.photo_metadata or {},
        is_ppe=bool(photo.is_ppe),
        taken_by=photo.taken_by,
        file_hash=photo.file_hash,
        file_size_bytes=photo.file_size_bytes,
        mime_type=photo.mime_type,
        created_at=photo.created_at,
    )
