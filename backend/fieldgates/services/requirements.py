"""
Required-field checks the clients run before asking for a completion.

These are not part of the engine's authoritative validation: the orchestrator
re-runs only the stage validators. The HTTP layer calls
``check_required_fields`` so a stale client form gets the same answer the
screens would have given. A gate that already carries an exception skips
them.
"""

from fieldgates.schemas.metadata import (
    DepartureMetadata,
    IntakeMetadata,
    MoistureEquipmentMetadata,
    ScopeMetadata,
    SignOffsMetadata,
    StageMetadata,
)

STAGE_REQUIREMENTS = {
    "Arrival": ["Arrival photo (proof of on-site presence)"],
    "Intake": [
        "Customer name or phone",
        "Loss type",
        "At least one affected area with a damage type",
    ],
    "Photos": [
        "Minimum 3 photos per documented room",
        "Wide room shot",
        "Close-up of damage",
        "Context/equipment photo",
    ],
    "Moisture/Equipment": ["At least one equipment selection"],
    "Scope": [
        "At least one room",
        "Every scoped room documented in Photos",
        'Measurements or "Visual estimate only"',
    ],
    "Sign-offs": [
        "Customer signature, claim number, or customer-pay flag",
        "Next steps",
    ],
    "Departure": ["Equipment status", "Job status"],
}


def stage_requirements(stage_name: str) -> list[str]:
    return list(STAGE_REQUIREMENTS.get(stage_name, []))


def _blank(value: str | None) -> bool:
    return not (value or "").strip()


def _intake(meta: IntakeMetadata) -> list[str]:
    missing = []
    if _blank(meta.customer_name) and _blank(meta.customer_phone):
        missing.append("Customer name or phone is required.")
    if _blank(meta.loss_type):
        missing.append("Loss type is required.")
    if not meta.affected_areas:
        missing.append("At least one affected area is required.")
    elif any(_blank(area.damage_type) for area in meta.affected_areas):
        missing.append("Every affected area needs a damage type.")
    return missing


def _moisture(meta: MoistureEquipmentMetadata) -> list[str]:
    if not meta.equipment:
        return ["At least one piece of equipment must be selected."]
    return []


def _scope(meta: ScopeMetadata) -> list[str]:
    if not meta.rooms:
        return ["At least one room must be selected."]
    return []


def _sign_offs(meta: SignOffsMetadata) -> list[str]:
    missing = []
    if _blank(meta.signature) and _blank(meta.claim_number) and not meta.customer_pay:
        missing.append("A customer signature, claim number, or customer-pay selection is required.")
    if _blank(meta.next_steps):
        missing.append("Next steps must be selected.")
    return missing


def _departure(meta: DepartureMetadata) -> list[str]:
    missing = []
    if _blank(meta.equipment_status):
        missing.append("Equipment status is required.")
    if _blank(meta.job_status):
        missing.append("Job status is required.")
    return missing


_CHECKS = {
    IntakeMetadata: _intake,
    MoistureEquipmentMetadata: _moisture,
    ScopeMetadata: _scope,
    SignOffsMetadata: _sign_offs,
    DepartureMetadata: _departure,
}


def check_required_fields(metadata: StageMetadata, requires_exception: bool = False) -> list[str]:
    """Missing-field messages for a stage payload; empty when complete."""
    if requires_exception:
        return []
    check = _CHECKS.get(type(metadata))
    return check(metadata) if check else []
