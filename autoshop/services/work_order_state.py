"""
Work order lifecycle rules

Statuses: pending → in_progress → completed; pending ⇄ on_hold;
any non-terminal status → cancelled. completed and cancelled are terminal.

transition() is a pure function of (current status, event, payload). It
returns the new status plus the effects the caller must apply to the record;
it never touches the database or inventory. Anything that needs I/O (the
parts re-check before starting an on_hold order) is resolved by the caller
and passed in through the payload.

Events:
    start          payload: technician_id, current_technician_id, parts_available
    progress       payload: percent, note
    complete       payload: qc (QualityControlData)
    set_status     payload: new_status, note
    parts_recheck  payload: all_available, auto_resume

The one compound rule: a progress event at 100% or more completes the work
order in the same transition (progress = 100, completion date, completion note).
"""

from dataclasses import dataclass
from typing import Any, Optional

from ..exceptions import IllegalTransitionError, ResourceUnavailableError

PENDING = "pending"
IN_PROGRESS = "in_progress"
COMPLETED = "completed"
CANCELLED = "cancelled"
ON_HOLD = "on_hold"

# Moves allowed through the generic status update
STATUS_MOVES = {
    PENDING: (IN_PROGRESS, ON_HOLD, CANCELLED),
    ON_HOLD: (PENDING, CANCELLED),
    IN_PROGRESS: (COMPLETED, CANCELLED),
    COMPLETED: (),
    CANCELLED: (),
}

# Effect kinds
SET_ACTUAL_START = "set_actual_start"
SET_ACTUAL_COMPLETION = "set_actual_completion"
SET_PROGRESS = "set_progress"
APPEND_NOTE = "append_note"
ASSIGN_TECHNICIAN = "assign_technician"
SET_ACTUAL_COSTS = "set_actual_costs"


@dataclass(frozen=True)
class Effect:
    kind: str
    value: Any = None


@dataclass(frozen=True)
class Transition:
    previous_status: str
    new_status: str
    effects: tuple = ()

    @property
    def status_changed(self) -> bool:
        return self.previous_status != self.new_status

    def notes(self) -> list[str]:
        return [e.value for e in self.effects if e.kind == APPEND_NOTE]


def clamp_progress(percent: int) -> int:
    return max(0, min(100, int(percent)))


def quality_control_note(qc) -> str:
    return (
        "Quality Control Completed:\n"
        f"- Test Drive: {'Passed' if qc.test_drive_ok else 'Failed'}\n"
        f"- Visual Inspection: {'Passed' if qc.visual_inspection_ok else 'Failed'}\n"
        f"- QC Notes: {qc.notes or 'No issues found'}\n"
        f"- Completed by: {qc.completed_by}"
    )


def _completion_effects(note: Optional[str]) -> tuple:
    effects = [Effect(SET_PROGRESS, 100), Effect(SET_ACTUAL_COMPLETION)]
    if note:
        effects.append(Effect(APPEND_NOTE, note))
    return tuple(effects)


def _start(status: str, payload: dict) -> Transition:
    if status not in (PENDING, ON_HOLD):
        raise IllegalTransitionError(
            status, "start", reason="work order must be pending or on hold to start"
        )
    if status == ON_HOLD and not payload.get("parts_available"):
        raise ResourceUnavailableError(
            payload.get("availability"), "Cannot start work - parts still not available"
        )

    technician_id = payload.get("technician_id")
    effects = [
        Effect(SET_ACTUAL_START),
        Effect(APPEND_NOTE, f"Work started by technician {technician_id}"),
    ]
    if technician_id is not None and technician_id != payload.get("current_technician_id"):
        effects.append(Effect(ASSIGN_TECHNICIAN, technician_id))
    return Transition(status, IN_PROGRESS, tuple(effects))


def _progress(status: str, payload: dict) -> Transition:
    if status != IN_PROGRESS:
        raise IllegalTransitionError(
            status, "update_progress", reason="work order is not in progress"
        )
    percent = clamp_progress(payload["percent"])
    note = payload.get("note")
    progress_note = f"Progress updated to {percent}%" + (f" - {note}" if note else "")
    effects = (Effect(SET_PROGRESS, percent), Effect(APPEND_NOTE, progress_note))

    if percent >= 100:
        return Transition(status, COMPLETED, effects + _completion_effects("Work completed"))
    return Transition(status, IN_PROGRESS, effects)


def _complete(status: str, payload: dict) -> Transition:
    if status != IN_PROGRESS:
        raise IllegalTransitionError(status, "complete", reason="work order is not in progress")
    qc = payload["qc"]
    effects = _completion_effects(quality_control_note(qc))
    if qc.actual_costs is not None:
        effects += (Effect(SET_ACTUAL_COSTS, qc.actual_costs),)
    return Transition(status, COMPLETED, effects)


def _set_status(status: str, payload: dict) -> Transition:
    new_status = payload["new_status"]
    note = payload.get("note")
    if new_status not in STATUS_MOVES:
        raise IllegalTransitionError(status, "update_status", reason=f"unknown status {new_status}")
    if new_status == status:
        return Transition(status, status, (Effect(APPEND_NOTE, note),) if note else ())
    if new_status not in STATUS_MOVES[status]:
        raise IllegalTransitionError(
            status, "update_status", reason=f"cannot move work order from {status} to {new_status}"
        )

    if new_status == IN_PROGRESS:
        effects = (Effect(SET_ACTUAL_START),)
    elif new_status == COMPLETED:
        effects = _completion_effects(None)
    else:
        effects = ()
    if note:
        effects += (Effect(APPEND_NOTE, note),)
    return Transition(status, new_status, effects)


def _parts_recheck(status: str, payload: dict) -> Transition:
    if status == ON_HOLD and payload.get("all_available") and payload.get("auto_resume", True):
        return Transition(
            status,
            PENDING,
            (Effect(APPEND_NOTE, "Parts now available - status updated to pending"),),
        )
    return Transition(status, status)


_HANDLERS = {
    "start": _start,
    "progress": _progress,
    "complete": _complete,
    "set_status": _set_status,
    "parts_recheck": _parts_recheck,
}


def transition(status: str, event: str, payload: Optional[dict] = None) -> Transition:
    """Apply one lifecycle event to a status; raises on an illegal move"""
    handler = _HANDLERS.get(event)
    if handler is None:
        raise IllegalTransitionError(status, event, reason=f"unknown event {event}")
    return handler(status, payload or {})
