import pytest

from fieldgates.core.exceptions import GateAlreadyResolvedError, InvalidExceptionReasonError
from fieldgates.models.gate import Gate
from fieldgates.services.gate_state import (
    STAGE_ORDER,
    ensure_open,
    skip_patch,
    stage_position,
    validate_transition,
)


def _gate(status):
    return Gate(id="g1", job_id="j1", stage_name="Photos", status=status)


class TestTransitions:
    @pytest.mark.parametrize("status", ["pending", "in_progress"])
    def test_open_gates_can_resolve(self, status):
        assert validate_transition(_gate(status), "complete")["to"] == "complete"
        assert validate_transition(_gate(status), "skip")["valid"]

    @pytest.mark.parametrize("status", ["complete", "skipped"])
    @pytest.mark.parametrize("action", ["start", "complete", "skip"])
    def test_terminal_gates_never_move(self, status, action):
        result = validate_transition(_gate(status), action)
        assert not result["valid"]
        assert result["from"] == status

    def test_start_only_from_pending(self):
        assert validate_transition(_gate("pending"), "start")["valid"]
        assert not validate_transition(_gate("in_progress"), "start")["valid"]

    def test_unknown_action(self):
        assert validate_transition(_gate("pending"), "reopen")["reason"] == "Unknown action: reopen"

    def test_ensure_open_raises_for_terminal(self):
        ensure_open(_gate("in_progress"))
        with pytest.raises(GateAlreadyResolvedError) as info:
            ensure_open(_gate("skipped"))
        assert str(info.value) == "Photos gate is already skipped."


class TestSkipPatch:
    def test_reason_is_trimmed(self):
        patch = skip_patch("tech-1", "  Customer refused entry  ", "2026-03-02T09:00:00.000000Z")
        assert patch == {
            "status": "skipped",
            "requires_exception": True,
            "exception_reason": "Customer refused entry",
            "completed_at": "2026-03-02T09:00:00.000000Z",
            "completed_by": "tech-1",
        }

    @pytest.mark.parametrize("reason", [None, "", "   "])
    def test_blank_reason_rejected(self, reason):
        with pytest.raises(InvalidExceptionReasonError):
            skip_patch("tech-1", reason, "2026-03-02T09:00:00.000000Z")


def test_stage_order():
    assert [s.value for s in STAGE_ORDER] == [
        "Arrival", "Intake", "Photos", "Moisture/Equipment", "Scope", "Sign-offs", "Departure",
    ]
    assert stage_position("Scope") == 4
    assert stage_position("Something new") == 7
