"""
Checks that compare two gates of the same job.

Both checks are read-only and independent. ``check_cross_gate`` runs the one
that applies to the stage being completed and returns the merged result.
"""

from datetime import datetime

from fieldgates.models.gate import Gate
from fieldgates.models.photo import Photo
from fieldgates.schemas.gate import ValidationResult
from fieldgates.schemas.metadata import ScopeMetadata, StageMetadata
from fieldgates.services.gate_state import Stage, parse_timestamp
from fieldgates.services.validators import documented_rooms


def check_room_consistency(scope: ScopeMetadata, photos: list[Photo]) -> ValidationResult:
    """Every scoped room must be a documented Photos room."""
    documented = documented_rooms(photos)
    documented_set = set(documented)
    errors = [
        f"Room {room} listed in Scope has no photos. Document it in the Photos gate "
        f"(wide shot, close-up, context) or remove it from the scope."
        for room in scope.rooms if room.strip() not in documented_set
    ]
    scoped = {room.strip() for room in scope.rooms}
    unscoped = [room for room in documented if room not in scoped]
    warnings = []
    if unscoped:
        warnings.append(f"Rooms photographed but not in scope: {', '.join(unscoped)}.")
    return ValidationResult(is_valid=not errors, errors=errors, warnings=warnings)


def check_timestamp_order(arrival: Gate | None, departure_at: datetime) -> ValidationResult:
    """Departure must be strictly later than a completed Arrival."""
    if arrival is None or not arrival.completed_at:
        return ValidationResult()
    arrived_at = parse_timestamp(arrival.completed_at)
    if departure_at <= arrived_at:
        return ValidationResult(is_valid=False, errors=[
            f"Departure must be after arrival (arrived {arrived_at.isoformat()}). "
            f"Gates were closed out of timestamp order."
        ])
    return ValidationResult()


def check_cross_gate(gate: Gate, metadata: StageMetadata, gates: list[Gate],
                     photos: list[Photo], now: datetime) -> ValidationResult:
    result = ValidationResult()
    if gate.stage_name == Stage.SCOPE.value and isinstance(metadata, ScopeMetadata):
        result = result.merge(check_room_consistency(metadata, photos))
    if gate.stage_name == Stage.DEPARTURE.value:
        arrival = next((g for g in gates if g.stage_name == Stage.ARRIVAL.value), None)
        result = result.merge(check_timestamp_order(arrival, now))
    return result
