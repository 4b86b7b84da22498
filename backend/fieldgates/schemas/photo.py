from pydantic import BaseModel


class PhotoResponse(BaseModel):
    id: str
    job_id: str
    gate_id: str | None
    storage_path: str
    metadata: dict = {}
    is_ppe: bool
    taken_by: str | None
    file_hash: str | None
    file_size_bytes: int | None
    mime_type: str | None
    created_at: str


class MissingArtifact(BaseModel):
    job_id: str
    job_title: str
    gate_id: str
    stage_name: str
    completed_at: str | None
    completed_by: str | None


class FlaggedJob(BaseModel):
    job_id: str
    job_title: str
    lead_tech_id: str | None
    exception_count: int
