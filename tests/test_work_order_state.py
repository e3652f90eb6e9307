"""Pure lifecycle rules, no database involved."""

import pytest

from autoshop.exceptions import IllegalTransitionError, ResourceUnavailableError
from autoshop.schemas import ActualCosts, QualityControlData
from autoshop.services import work_order_state as state
from autoshop.services.work_order_state import transition


def kinds(result):
    return [effect.kind for effect in result.effects]


def qc(**kwargs):
    defaults = {"test_drive_ok": True, "visual_inspection_ok": True, "completed_by": "Lead Tech"}
    defaults.update(kwargs)
    return QualityControlData(**defaults)


class TestStart:
    def test_pending_starts(self):
        result = transition("pending", "start", {"technician_id": 4, "current_technician_id": 4})

        assert result.new_status == "in_progress"
        assert state.SET_ACTUAL_START in kinds(result)
        assert state.ASSIGN_TECHNICIAN not in kinds(result)
        assert result.notes() == ["Work started by technician 4"]

    def test_start_reassigns_a_different_technician(self):
        result = transition("pending", "start", {"technician_id": 9, "current_technician_id": 4})

        assert state.Effect(state.ASSIGN_TECHNICIAN, 9) in result.effects

    def test_on_hold_without_parts_is_blocked(self):
        with pytest.raises(ResourceUnavailableError, match="parts still not available"):
            transition("on_hold", "start", {"technician_id": 1, "parts_available": False})

    def test_on_hold_with_parts_starts(self):
        result = transition("on_hold", "start", {"technician_id": 1, "parts_available": True})

        assert result.new_status == "in_progress"

    @pytest.mark.parametrize("status", ["in_progress", "completed", "cancelled"])
    def test_start_from_other_statuses_fails(self, status):
        with pytest.raises(IllegalTransitionError) as exc_info:
            transition(status, "start", {"technician_id": 1})

        assert exc_info.value.current_status == status
        assert exc_info.value.operation == "start"


class TestProgress:
    def test_partial_progress_keeps_status(self):
        result = transition("in_progress", "progress", {"percent": 25, "note": "pads off"})

        assert result.new_status == "in_progress"
        assert result.notes() == ["Progress updated to 25% - pads off"]

    @pytest.mark.parametrize("percent", [100, 150])
    def test_full_progress_completes(self, percent):
        result = transition("in_progress", "progress", {"percent": percent})

        assert result.new_status == "completed"
        assert state.Effect(state.SET_PROGRESS, 100) in result.effects
        assert state.SET_ACTUAL_COMPLETION in kinds(result)
        assert result.notes() == ["Progress updated to 100%", "Work completed"]

    def test_negative_progress_is_clamped(self):
        result = transition("in_progress", "progress", {"percent": -5})

        assert state.Effect(state.SET_PROGRESS, 0) in result.effects

    def test_progress_requires_in_progress(self):
        with pytest.raises(IllegalTransitionError, match="work order is not in progress"):
            transition("pending", "progress", {"percent": 10})


class TestComplete:
    def test_quality_control_note_is_structured(self):
        result = transition(
            "in_progress", "complete", {"qc": qc(visual_inspection_ok=False, notes="scratch")}
        )

        assert result.new_status == "completed"
        assert result.notes() == [
            "Quality Control Completed:\n"
            "- Test Drive: Passed\n"
            "- Visual Inspection: Failed\n"
            "- QC Notes: scratch\n"
            "- Completed by: Lead Tech"
        ]

    def test_missing_qc_notes_default(self):
        result = transition("in_progress", "complete", {"qc": qc()})

        assert "- QC Notes: No issues found" in result.notes()[0]

    def test_actual_costs_are_carried(self):
        costs = ActualCosts(parts="80.00", labor="120.00", total="200.00")

        result = transition("in_progress", "complete", {"qc": qc(actual_costs=costs)})

        assert state.Effect(state.SET_ACTUAL_COSTS, costs) in result.effects

    def test_complete_requires_in_progress(self):
        with pytest.raises(IllegalTransitionError):
            transition("on_hold", "complete", {"qc": qc()})


class TestSetStatus:
    @pytest.mark.parametrize(
        "current,target",
        [
            ("pending", "on_hold"),
            ("pending", "cancelled"),
            ("on_hold", "pending"),
            ("on_hold", "cancelled"),
            ("in_progress", "cancelled"),
        ],
    )
    def test_allowed_moves(self, current, target):
        assert transition(current, "set_status", {"new_status": target}).new_status == target

    @pytest.mark.parametrize(
        "current,target",
        [
            ("completed", "pending"),
            ("cancelled", "in_progress"),
            ("on_hold", "in_progress"),
            ("pending", "completed"),
        ],
    )
    def test_disallowed_moves(self, current, target):
        with pytest.raises(IllegalTransitionError):
            transition(current, "set_status", {"new_status": target})

    def test_entering_completed_forces_full_progress(self):
        result = transition("in_progress", "set_status", {"new_status": "completed"})

        assert state.Effect(state.SET_PROGRESS, 100) in result.effects
        assert state.SET_ACTUAL_COMPLETION in kinds(result)

    def test_entering_in_progress_stamps_start(self):
        result = transition("pending", "set_status", {"new_status": "in_progress"})

        assert state.SET_ACTUAL_START in kinds(result)

    def test_same_status_only_appends_note(self):
        result = transition("pending", "set_status", {"new_status": "pending", "note": "called"})

        assert not result.status_changed
        assert result.notes() == ["called"]

    def test_unknown_status_is_rejected(self):
        with pytest.raises(IllegalTransitionError):
            transition("pending", "set_status", {"new_status": "archived"})


class TestPartsRecheck:
    def test_on_hold_resumes_when_parts_arrive(self):
        result = transition("on_hold", "parts_recheck", {"all_available": True})

        assert result.new_status == "pending"
        assert result.notes() == ["Parts now available - status updated to pending"]

    def test_auto_resume_off_keeps_hold(self):
        result = transition(
            "on_hold", "parts_recheck", {"all_available": True, "auto_resume": False}
        )

        assert result.new_status == "on_hold"
        assert result.effects == ()

    @pytest.mark.parametrize("status", ["pending", "in_progress", "completed"])
    def test_recheck_outside_hold_is_diagnostic(self, status):
        assert transition(status, "parts_recheck", {"all_available": True}).new_status == status


def test_unknown_event_is_rejected():
    with pytest.raises(IllegalTransitionError):
        transition("pending", "teleport")
