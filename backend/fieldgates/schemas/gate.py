from pydantic import BaseModel


class ValidationResult(BaseModel):
    is_valid: bool = True
    errors: list[str] = []
    warnings: list[str] = []

    def merge(self, other: "ValidationResult") -> "ValidationResult":
        errors = self.errors + other.errors
        return ValidationResult(
            is_valid=not errors and self.is_valid and other.is_valid,
            errors=errors,
            warnings=self.warnings + other.warnings,
        )


class GateResponse(BaseModel):
    id: str
    job_id: str
    stage_name: str
    status: str
    metadata: dict = {}
    requires_exception: bool
    exception_reason: str | None
    completed_at: str | None
    completed_by: str | None
    created_at: str
    updated_at: str


class GateDetailResponse(GateResponse):
    requirements: list[str] = []
    photo_count: int = 0


class CompletionResponse(BaseModel):
    gate: GateResponse
    warnings: list[str] = []


class MetadataUpdate(BaseModel):
    metadata: dict


class ExceptionCreate(BaseModel):
    reason: str


class MoistureReadingCreate(BaseModel):
    room: str
    location: str | None = None
    material: str | None = None
    value: float
    goal: float | None = None
