"""
Stage validators.

Every validator is a pure function of (gate, job, photos) and returns a
``ValidationResult``. Errors block completion, warnings never do.
``validator_for`` picks the implementation for a stage name; stages without
rules (and any stage name we don't know) get ``PermissiveValidator``.

``metadata`` is the parsed stage payload. When a caller submits metadata with
a completion it has not been persisted yet, so validators read it from the
argument rather than from ``gate.gate_metadata``.
"""

from collections import OrderedDict

from fieldgates.models.gate import Gate
from fieldgates.models.job import Job
from fieldgates.models.photo import Photo
from fieldgates.schemas.gate import ValidationResult
from fieldgates.schemas.metadata import ScopeMetadata, StageMetadata, parse_stage_metadata

MIN_PHOTOS_PER_ROOM = 3

WIDE_SHOT = "Wide room shot"
CLOSE_UP = "Close-up of damage"
CONTEXT = "Context/equipment photo"
REQUIRED_PHOTO_TYPES = (WIDE_SHOT, CLOSE_UP, CONTEXT)

# Labels the capture screens have used for the same three shots.
PHOTO_TYPE_ALIASES = {
    "wide room shot": WIDE_SHOT,
    "wide shot": WIDE_SHOT,
    "wide": WIDE_SHOT,
    "close-up of damage": CLOSE_UP,
    "close-up damage": CLOSE_UP,
    "close-up": CLOSE_UP,
    "closeup": CLOSE_UP,
    "context/equipment photo": CONTEXT,
    "context/equipment": CONTEXT,
    "context": CONTEXT,
    "equipment": CONTEXT,
}


def photo_meta(photo: Photo) -> dict:
    meta = photo.photo_metadata
    return meta if isinstance(meta, dict) else {}


def canonical_photo_type(label: str | None) -> str | None:
    if not label:
        return None
    return PHOTO_TYPE_ALIASES.get(label.strip().lower())


def group_photos_by_room(photos: list[Photo]) -> "OrderedDict[str, list[Photo]]":
    """Photos keyed by ``metadata.room`` in first-seen order; roomless photos are dropped."""
    rooms: OrderedDict[str, list[Photo]] = OrderedDict()
    for photo in photos:
        room = photo_meta(photo).get("room")
        if isinstance(room, str) and room.strip():
            rooms.setdefault(room.strip(), []).append(photo)
    return rooms


def missing_photo_types(photos: list[Photo]) -> list[str]:
    present = {canonical_photo_type(photo_meta(p).get("type")) for p in photos}
    return [t for t in REQUIRED_PHOTO_TYPES if t not in present]


def is_room_documented(photos: list[Photo]) -> bool:
    return len(photos) >= MIN_PHOTOS_PER_ROOM and not missing_photo_types(photos)


def documented_rooms(photos: list[Photo]) -> list[str]:
    """Rooms holding at least three photos that cover every required shot type."""
    return [room for room, room_photos in group_photos_by_room(photos).items()
            if is_room_documented(room_photos)]


class StageValidator:
    stage_name: str | None = None

    def validate(self, gate: Gate, job: Job, photos: list[Photo],
                 metadata: StageMetadata | None = None) -> ValidationResult:
        raise NotImplementedError

    def _metadata(self, gate: Gate, metadata: StageMetadata | None) -> StageMetadata:
        if metadata is not None:
            return metadata
        return parse_stage_metadata(gate.stage_name, gate.gate_metadata)


class PermissiveValidator(StageValidator):
    """No requirements. Used for stages checked caller-side and for unknown stages."""

    def validate(self, gate, job, photos, metadata=None):
        return ValidationResult()


class ArrivalValidator(StageValidator):
    stage_name = "Arrival"

    def validate(self, gate, job, photos, metadata=None):
        gate_photos = [p for p in photos if p.gate_id == gate.id]
        errors = []
        if not gate_photos and not gate.requires_exception:
            errors.append("Arrival photo is required. Take a photo or log an exception.")
        return ValidationResult(is_valid=not errors, errors=errors)


class PhotosValidator(StageValidator):
    """At least one room documented with the three required shot types.

    Rooms that are started but unfinished are reported one by one so the
    technician knows what to add. They block completion only while no room is
    documented yet; after that they are reminders.
    """

    stage_name = "Photos"

    def validate(self, gate, job, photos, metadata=None):
        by_room = group_photos_by_room(photos)
        room_messages = []
        documented = 0
        for room, room_photos in by_room.items():
            if len(room_photos) < MIN_PHOTOS_PER_ROOM:
                room_messages.append(
                    f"{room}: Minimum {MIN_PHOTOS_PER_ROOM} photos required "
                    f"(currently {len(room_photos)}). Need: wide shot, close-up, context."
                )
                continue
            missing = missing_photo_types(room_photos)
            if missing:
                room_messages.append(f"{room}: Missing required photo types: {', '.join(missing)}.")
            else:
                documented += 1

        satisfied = documented > 0 or bool(gate.requires_exception)
        errors: list[str] = []
        warnings: list[str] = []
        if satisfied:
            warnings.extend(room_messages)
        else:
            errors.extend(room_messages)
            if not by_room:
                errors.append(
                    "At least one room must be documented with photos, or an exception must be logged."
                )

        if not any(p.is_ppe for p in photos):
            warnings.append(
                "No PPE photos found. Consider adding PPE documentation if required for this job type."
            )
        return ValidationResult(is_valid=not errors, errors=errors, warnings=warnings)


class ScopeValidator(StageValidator):
    stage_name = "Scope"

    def validate(self, gate, job, photos, metadata=None):
        meta = self._metadata(gate, metadata)
        rooms = meta.rooms if isinstance(meta, ScopeMetadata) else []
        errors = []
        warnings = []
        if not rooms and not gate.requires_exception:
            errors.append("At least one room must be listed in the scope, or an exception must be logged.")
        if rooms:
            if not (meta.measurements or "").strip():
                warnings.append('No measurements recorded. Enter measurements or "Visual estimate only".')
            if not (meta.notes or "").strip():
                warnings.append("No scope notes recorded.")
        return ValidationResult(is_valid=not errors, errors=errors, warnings=warnings)


_PERMISSIVE = PermissiveValidator()

STAGE_VALIDATORS: dict[str, StageValidator] = {
    v.stage_name: v for v in (ArrivalValidator(), PhotosValidator(), ScopeValidator())
}


def validator_for(stage_name: str) -> StageValidator:
    return STAGE_VALIDATORS.get(stage_name, _PERMISSIVE)


def validate_stage(gate: Gate, job: Job, photos: list[Photo],
                   metadata: StageMetadata | None = None) -> ValidationResult:
    return validator_for(gate.stage_name).validate(gate, job, photos, metadata)
