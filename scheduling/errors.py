"""
Error kinds raised by the scheduling core.

Every error carries a ``message`` suitable for showing to the user as is.
"""
from typing import Any, List, Optional, Sequence


class SchedulingError(Exception):
    """Base class for all scheduling errors"""
    code = 'scheduling_error'

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


# Validation

class ValidationError(SchedulingError):
    code = 'validation_error'


class MissingField(ValidationError):
    code = 'missing_field'

    def __init__(self, fields: Sequence[str]):
        self.fields = list(fields)
        super().__init__(f"Required fields are missing: {', '.join(self.fields)}")


class InvalidTimeRange(ValidationError):
    code = 'invalid_time_range'

    def __init__(self, message: str = "End time must be after start time"):
        super().__init__(message)


# Temporal policy

class PolicyViolation(SchedulingError):
    """A temporal window rule rejected the action"""
    code = 'policy_violation'

    def __init__(self, reason: str, contact: Optional[str] = None):
        self.reason = reason
        self.contact = contact
        message = reason
        if contact:
            message = f"{reason} Please contact {contact}."
        super().__init__(message)


class Weekend(PolicyViolation):
    code = 'weekend'


class NoonCutoff(PolicyViolation):
    code = 'noon_cutoff'


class AdvanceWindowExceeded(PolicyViolation):
    code = 'advance_window_exceeded'


class ModificationWindowExpired(PolicyViolation):
    code = 'modification_window_expired'


class NoonLocked(PolicyViolation):
    code = 'noon_locked'


# Conflicts

class ConflictDetected(SchedulingError):
    code = 'conflict'

    def __init__(self, message: str, booking: Any):
        super().__init__(message)
        self.booking = booking


class RoomConflict(ConflictDetected):
    code = 'room_conflict'

    def __init__(self, booking: Any):
        super().__init__(
            f"Room conflict: {booking.procedure} is already booked at this time.",
            booking
        )


class AnesthesiologistConflict(ConflictDetected):
    code = 'anesthesiologist_conflict'

    def __init__(self, booking: Any):
        super().__init__(
            f"Anesthesiologist conflict: {booking.anesthesiologist} is already "
            f"assigned to {booking.procedure}.",
            booking
        )


# State machines

class InvalidTransition(SchedulingError):
    code = 'invalid_transition'

    def __init__(self, current: Any, target: Any, detail: str = ''):
        self.current = current
        self.target = target
        message = f"Cannot change status from '{_value(current)}' to '{_value(target)}'"
        if detail:
            message = f"{message}: {detail}"
        super().__init__(message)


class PermissionDenied(SchedulingError):
    code = 'permission_denied'


class BookingNotFound(SchedulingError):
    code = 'not_found'

    def __init__(self, entity_id: str, entity: str = 'Booking'):
        self.entity_id = entity_id
        super().__init__(f"{entity} #{entity_id} not found")


class ConfirmationRequired(SchedulingError):
    """Emergency insertion displaces cases and has to be confirmed first"""
    code = 'confirmation_required'

    def __init__(self, plan: Any):
        self.plan = plan
        super().__init__(
            f"Emergency insertion will bump {len(plan.bump_set)} case(s); confirmation required"
        )


# Persistence

class PersistenceFailure(SchedulingError):
    code = 'persistence_failure'


class PartialBumpFailure(PersistenceFailure):
    """
    A displacement write failed part way through a non-batch bump.

    Bookings already displaced stay displaced; nothing is rolled back.
    """
    code = 'partial_bump_failure'

    def __init__(self, displaced_ids: List[str], failed_id: str):
        self.displaced_ids = list(displaced_ids)
        self.failed_id = failed_id
        super().__init__(
            f"Bump failed at booking #{failed_id}; "
            f"{len(self.displaced_ids)} booking(s) were already rescheduled"
        )


def _value(item: Any) -> Any:
    return getattr(item, 'value', item)
