from pydantic import BaseModel

from fieldgates.schemas.gate import GateResponse


class JobCreate(BaseModel):
    title: str
    address: str | None = None
    lead_tech_id: str | None = None


class JobAssign(BaseModel):
    lead_tech_id: str


class JobResponse(BaseModel):
    id: str
    title: str
    address: str | None
    status: str
    lead_tech_id: str | None
    created_at: str
    updated_at: str
    gates_resolved: int = 0
    gates_total: int = 0


class JobDetailResponse(JobResponse):
    gates: list[GateResponse] = []


class JobListResponse(BaseModel):
    jobs: list[JobResponse]
    total: int


class ExceptionFrequencyResponse(BaseModel):
    job_id: str
    exception_count: int
    needs_review: bool
    threshold: int
