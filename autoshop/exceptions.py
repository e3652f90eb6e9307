"""
Domain errors raised by the work-order and communication engine.

Everything derives from ValueError so callers that already translate
ValueError into a client error keep doing so.
"""

from typing import Any, Optional


class AutoshopError(ValueError):
    """Base class for engine failures"""


class NotFoundError(AutoshopError):
    def __init__(self, entity: str, entity_id: Any):
        self.entity = entity
        self.entity_id = entity_id
        super().__init__(f"{entity} not found: {entity_id}")


class IllegalTransitionError(AutoshopError):
    """A lifecycle operation was invoked from an incompatible status"""

    def __init__(self, current_status: str, operation: str, reason: Optional[str] = None):
        self.current_status = current_status
        self.operation = operation
        message = reason or f"cannot {operation} a work order that is {current_status}"
        super().__init__(f"{message} (status={current_status}, operation={operation})")


class ResourceUnavailableError(AutoshopError):
    """The parts gate blocked a transition"""

    def __init__(self, availability=None, message: str = "parts still not available"):
        self.availability = availability
        super().__init__(message)


class ChannelDeliveryError(AutoshopError):
    """A single delivery channel failed to send"""

    def __init__(self, channel: str, message: str):
        self.channel = channel
        super().__init__(message)


class InputValidationError(AutoshopError):
    pass


class ConcurrentUpdateError(AutoshopError):
    """Optimistic lock lost: the record changed between read and write"""

    def __init__(self, entity: str, entity_id: Any):
        self.entity = entity
        self.entity_id = entity_id
        super().__init__(f"{entity} {entity_id} was modified concurrently; retry the operation")


class PreconditionFailedError(AutoshopError):
    pass


class AppointmentNotApprovedError(PreconditionFailedError):
    def __init__(self, appointment_id: Any, approval_status: str):
        self.appointment_id = appointment_id
        self.approval_status = approval_status
        super().__init__(
            f"Appointment {appointment_id} must be approved before creating a work order "
            f"(approval status: {approval_status})"
        )


class WorkOrderAlreadyExistsError(PreconditionFailedError):
    def __init__(self, appointment_id: Any, work_order_number: Optional[str] = None):
        self.appointment_id = appointment_id
        self.work_order_number = work_order_number
        suffix = f" ({work_order_number})" if work_order_number else ""
        super().__init__(
            f"A work order has already been created from appointment {appointment_id}{suffix}"
        )


class MissingServiceTypeError(PreconditionFailedError):
    def __init__(self, appointment_id: Any):
        self.appointment_id = appointment_id
        super().__init__(
            f"Appointment {appointment_id} must have a valid service type to create a work order"
        )
