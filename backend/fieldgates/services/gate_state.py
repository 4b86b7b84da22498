"""
Gate lifecycle state machine.

    pending --start--> in_progress
    pending | in_progress --complete--> complete
    pending | in_progress --skip--> skipped

``complete`` and ``skipped`` are terminal. Nothing here touches the database;
the store applies the patches these helpers build.
"""

from datetime import datetime, timezone
from enum import Enum

from fieldgates.core.exceptions import GateAlreadyResolvedError, InvalidExceptionReasonError
from fieldgates.models.gate import Gate


class GateStatus(str, Enum):
    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETE = "complete"
    SKIPPED = "skipped"


class Stage(str, Enum):
    ARRIVAL = "Arrival"
    INTAKE = "Intake"
    PHOTOS = "Photos"
    MOISTURE_EQUIPMENT = "Moisture/Equipment"
    SCOPE = "Scope"
    SIGN_OFFS = "Sign-offs"
    DEPARTURE = "Departure"


STAGE_ORDER = [
    Stage.ARRIVAL,
    Stage.INTAKE,
    Stage.PHOTOS,
    Stage.MOISTURE_EQUIPMENT,
    Stage.SCOPE,
    Stage.SIGN_OFFS,
    Stage.DEPARTURE,
]

TERMINAL_STATUSES = {GateStatus.COMPLETE.value, GateStatus.SKIPPED.value}
OPEN_STATUSES = {GateStatus.PENDING.value, GateStatus.IN_PROGRESS.value}

GATE_TRANSITIONS = {
    "start": {"from": [GateStatus.PENDING.value], "to": GateStatus.IN_PROGRESS.value},
    "complete": {
        "from": [GateStatus.PENDING.value, GateStatus.IN_PROGRESS.value],
        "to": GateStatus.COMPLETE.value,
    },
    "skip": {
        "from": [GateStatus.PENDING.value, GateStatus.IN_PROGRESS.value],
        "to": GateStatus.SKIPPED.value,
    },
}


def stage_position(stage_name: str) -> int:
    """Index of a stage in the fixed sequence; unknown stages sort last."""
    for index, stage in enumerate(STAGE_ORDER):
        if stage.value == stage_name:
            return index
    return len(STAGE_ORDER)


def is_terminal(gate: Gate) -> bool:
    return gate.status in TERMINAL_STATUSES


def validate_transition(gate: Gate, action: str) -> dict:
    """Check whether ``action`` is allowed from the gate's current status."""
    rule = GATE_TRANSITIONS.get(action)
    if not rule:
        return {"valid": False, "from": gate.status, "to": None,
                "reason": f"Unknown action: {action}"}

    if gate.status not in rule["from"]:
        return {"valid": False, "from": gate.status, "to": rule["to"],
                "reason": f"Cannot '{action}' from status '{gate.status}'"}

    return {"valid": True, "from": gate.status, "to": rule["to"], "reason": None}


def ensure_open(gate: Gate) -> None:
    if is_terminal(gate):
        raise GateAlreadyResolvedError(gate.id, gate.stage_name, gate.status)


def completion_patch(actor_id: str, now: str) -> dict:
    return {
        "status": GATE_TRANSITIONS["complete"]["to"],
        "completed_at": now,
        "completed_by": actor_id,
    }


def skip_patch(actor_id: str, reason: str | None, now: str) -> dict:
    cleaned = (reason or "").strip()
    if not cleaned:
        raise InvalidExceptionReasonError()
    return {
        "status": GATE_TRANSITIONS["skip"]["to"],
        "requires_exception": True,
        "exception_reason": cleaned,
        "completed_at": now,
        "completed_by": actor_id,
    }


def start_patch() -> dict:
    return {"status": GATE_TRANSITIONS["start"]["to"]}


def parse_timestamp(value: str) -> datetime:
    parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def format_timestamp(value: datetime) -> str:
    return value.astimezone(timezone.utc).strftime("%Y-%m-%dT%H:%M:%S.%fZ")


def utcnow() -> datetime:
    return datetime.now(timezone.utc)
