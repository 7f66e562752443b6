"""
Booking status state machine.

Each operation validates its guard and returns a new Booking. On a failed
guard InvalidTransition is raised and the original value is left untouched.
"""
import dataclasses
from datetime import datetime
from typing import Any, Dict, Iterable, Optional

from database.models import (
    Booking, BookingStatus, User, Approval, Denial, TERMINAL_STATUSES
)
from scheduling.conflicts import ensure_no_conflicts
from scheduling.errors import InvalidTransition, InvalidTimeRange, ValidationError

# Documented transitions; guards are checked by the functions below
TRANSITIONS = {
    BookingStatus.PENDING: frozenset({
        BookingStatus.APPROVED, BookingStatus.DENIED, BookingStatus.RESCHEDULED,
    }),
    BookingStatus.APPROVED: frozenset({
        BookingStatus.ONGOING, BookingStatus.CANCELLED, BookingStatus.RESCHEDULED,
    }),
    BookingStatus.ONGOING: frozenset({
        BookingStatus.COMPLETED, BookingStatus.CANCELLED,
    }),
}

EDITABLE_FIELDS = frozenset({
    'room_id', 'date', 'start_time', 'end_time',
    'surgeon', 'anesthesiologist', 'scrub_nurse', 'circulating_nurse',
    'special_equipment', 'estimated_duration_minutes', 'ward', 'notes',
})

# Changing any of these re-runs conflict detection
SLOT_FIELDS = frozenset({'room_id', 'date', 'start_time', 'end_time'})


def can_transition(current: BookingStatus, target: BookingStatus) -> bool:
    return target in TRANSITIONS.get(current, frozenset())


def is_terminal(booking: Booking) -> bool:
    return booking.status in TERMINAL_STATUSES


def _require(booking: Booking, target: BookingStatus):
    if not can_transition(booking.status, target):
        raise InvalidTransition(booking.status, target)


def _require_admin(booking: Booking, target: BookingStatus, actor: Optional[User]):
    if actor is None or not actor.is_admin:
        raise InvalidTransition(booking.status, target, "administrator required")


def append_note(notes: str, note: str) -> str:
    if not notes:
        return note
    return f"{notes}\n{note}"


def approve(booking: Booking, actor: User, now: datetime) -> Booking:
    """pending -> approved, administrators only"""
    target = BookingStatus.APPROVED
    _require(booking, target)
    _require_admin(booking, target, actor)
    return dataclasses.replace(
        booking,
        status=target,
        approval=Approval(approved_by=actor.id, approved_at=now),
        updated_at=now
    )


def deny(booking: Booking, actor: User, reason: str, now: datetime) -> Booking:
    """pending -> denied, administrators only, with a reason"""
    target = BookingStatus.DENIED
    _require(booking, target)
    _require_admin(booking, target, actor)
    if not reason or not reason.strip():
        raise InvalidTransition(booking.status, target, "a denial reason is required")
    return dataclasses.replace(
        booking,
        status=target,
        denial=Denial(reason=reason.strip(), denied_by=actor.id, denied_at=now),
        updated_at=now
    )


def start(booking: Booking, now: datetime) -> Booking:
    """approved -> ongoing (room set to ongoing)"""
    _require(booking, BookingStatus.ONGOING)
    return dataclasses.replace(booking, status=BookingStatus.ONGOING, started_at=now, updated_at=now)


def complete(booking: Booking, now: datetime,
             actual_duration_minutes: Optional[int] = None) -> Booking:
    """ongoing -> completed (room set to ended)"""
    _require(booking, BookingStatus.COMPLETED)
    return dataclasses.replace(
        booking,
        status=BookingStatus.COMPLETED,
        actual_duration_minutes=actual_duration_minutes,
        updated_at=now
    )


def cancel(booking: Booking, now: datetime, note: str = '') -> Booking:
    """approved/ongoing -> cancelled"""
    _require(booking, BookingStatus.CANCELLED)
    notes = append_note(booking.notes, note) if note else booking.notes
    return dataclasses.replace(booking, status=BookingStatus.CANCELLED, notes=notes, updated_at=now)


def reschedule(booking: Booking, note: str, now: datetime) -> Booking:
    """pending/approved -> rescheduled, used when an emergency bumps the case"""
    _require(booking, BookingStatus.RESCHEDULED)
    return dataclasses.replace(
        booking,
        status=BookingStatus.RESCHEDULED,
        notes=append_note(booking.notes, note),
        updated_at=now
    )


def edit(booking: Booking, changes: Dict[str, Any], actor: User,
         existing: Iterable[Booking], now: datetime) -> Booking:
    """
    Content edit by an administrator on a non-terminal booking.

    Changes to room, date or time are checked against ``existing`` for
    conflicts before the edited value is returned.
    """
    if is_terminal(booking):
        raise InvalidTransition(booking.status, booking.status, "booking can no longer be edited")
    _require_admin(booking, booking.status, actor)

    unknown = set(changes) - EDITABLE_FIELDS
    if unknown:
        raise ValidationError(f"Fields cannot be edited: {', '.join(sorted(unknown))}")

    edited = dataclasses.replace(booking, updated_at=now, **changes)
    if edited.start_time >= edited.end_time:
        raise InvalidTimeRange()

    if SLOT_FIELDS & set(changes):
        ensure_no_conflicts(edited, existing)

    return edited


def diff(before: Booking, after: Booking, fields: Iterable[str]) -> Dict[str, Dict[str, Any]]:
    """Old/new values of the given fields that differ, for audit records"""
    old_values: Dict[str, Any] = {}
    new_values: Dict[str, Any] = {}
    for name in fields:
        old, new = getattr(before, name), getattr(after, name)
        if old != new:
            old_values[name] = _plain(old)
            new_values[name] = _plain(new)
    return {'old': old_values, 'new': new_values}


def _plain(value: Any) -> Any:
    if hasattr(value, 'isoformat'):
        return value.isoformat()
    return getattr(value, 'value', value)
