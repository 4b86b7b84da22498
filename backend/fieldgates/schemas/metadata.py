"""
Per-stage gate metadata.

Each stage stores a JSON object whose shape depends on ``stage_name``. The
models below are the variants of that union; ``STAGE_METADATA_MODELS`` picks
the variant for a stage. Keys are camelCase on the wire (the mobile and web
clients write them that way) and unknown keys are kept, so a payload survives
autosave and completion unchanged.
"""

from pydantic import BaseModel, ConfigDict, Field, model_validator
from pydantic.alias_generators import to_camel


class StageMetadata(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="allow",
    )

    def to_json(self) -> dict:
        return self.model_dump(by_alias=True, exclude_unset=True)


class ArrivalMetadata(StageMetadata):
    pass


class PhotosMetadata(StageMetadata):
    pass


class AffectedArea(StageMetadata):
    room: str | None = None
    damage_type: str | None = None


class IntakeMetadata(StageMetadata):
    customer_name: str | None = None
    customer_phone: str | None = None
    loss_type: str | None = None
    affected_areas: list[AffectedArea] = Field(default_factory=list)
    customer_signature: str | None = None

    @model_validator(mode="before")
    @classmethod
    def _migrate_single_damage_type(cls, data):
        # Older clients stored one damageType for the whole job.
        if not isinstance(data, dict):
            return data
        areas = data.get("affectedAreas", data.get("affected_areas"))
        legacy = data.get("damageType", data.get("damage_type"))
        if not areas and legacy:
            data = {k: v for k, v in data.items() if k not in ("damageType", "damage_type")}
            data["affectedAreas"] = [{"room": "Other", "damageType": legacy}]
        return data


class MoistureReading(StageMetadata):
    id: str | None = None
    room: str | None = None
    location: str | None = None
    material: str | None = None
    value: float | None = None
    goal: float | None = None
    timestamp: str | None = None


class MoistureEquipmentMetadata(StageMetadata):
    readings: list[MoistureReading] = Field(default_factory=list)
    equipment: list[str] = Field(default_factory=list)
    equipment_photos: list[str] = Field(default_factory=list)


class ScopeMetadata(StageMetadata):
    rooms: list[str] = Field(default_factory=list)
    damage_types: dict[str, str] = Field(default_factory=dict)
    measurements: str | None = None
    notes: str | None = None


class SignOffsMetadata(StageMetadata):
    signature: str | None = None
    claim_number: str | None = None
    customer_pay: bool = False
    next_steps: str | None = None


class DepartureMetadata(StageMetadata):
    equipment_status: str | None = None
    notes: str | None = None
    job_status: str | None = None


STAGE_METADATA_MODELS: dict[str, type[StageMetadata]] = {
    "Arrival": ArrivalMetadata,
    "Intake": IntakeMetadata,
    "Photos": PhotosMetadata,
    "Moisture/Equipment": MoistureEquipmentMetadata,
    "Scope": ScopeMetadata,
    "Sign-offs": SignOffsMetadata,
    "Departure": DepartureMetadata,
}


def parse_stage_metadata(stage_name: str, data: dict | None) -> StageMetadata:
    """Validate raw metadata against the stage's model.

    Unknown stages fall back to the permissive base model. Raises pydantic's
    ``ValidationError`` when a known field has the wrong type.
    """
    model = STAGE_METADATA_MODELS.get(stage_name, StageMetadata)
    return model.model_validate(data or {})
