"""
Emergency insertion and bump planning.

Planning is pure: it picks the cases an emergency displaces and builds their
rescheduled versions. Writing them is left to the service.
"""
from dataclasses import dataclass, field
from datetime import datetime
from typing import Iterable, List

from database.models import Booking, BookingStatus
from scheduling import status as booking_status
from scheduling.conflicts import bookings_overlap
from scheduling.errors import RoomConflict

# Cases in these states are never bumped
NOT_BUMPABLE = frozenset({
    BookingStatus.CANCELLED,
    BookingStatus.DENIED,
    BookingStatus.COMPLETED,
    BookingStatus.RESCHEDULED,
})


@dataclass
class EmergencyPlan:
    """Emergency case plus the cases it will displace, ordered by start time"""
    emergency: Booking
    bump_set: List[Booking] = field(default_factory=list)

    @property
    def requires_confirmation(self) -> bool:
        return bool(self.bump_set)

    @property
    def bumped_ids(self) -> List[str]:
        return [booking.id for booking in self.bump_set]


def compute_bump_set(emergency: Booking, bookings: Iterable[Booking]) -> List[Booking]:
    """
    Cases in the same room and day that start at or after the emergency, or
    overlap it. The result is sorted by start time.
    """
    bump_set = []
    for booking in bookings:
        if booking.id is not None and booking.id == emergency.id:
            continue
        if booking.room_id != emergency.room_id or booking.date != emergency.date:
            continue
        if booking.status in NOT_BUMPABLE:
            continue
        if booking.start_time >= emergency.start_time or bookings_overlap(booking, emergency):
            bump_set.append(booking)

    bump_set.sort(key=lambda b: (b.start_time, b.id or ''))
    return bump_set


def plan_emergency(emergency: Booking, bookings: Iterable[Booking]) -> EmergencyPlan:
    """Phase one: compute the bump set without touching anything"""
    bookings = list(bookings)
    bump_set = compute_bump_set(emergency, bookings)

    # A case already in progress cannot be displaced
    for booking in bump_set:
        if booking.status == BookingStatus.ONGOING:
            raise RoomConflict(booking)

    # A finished case keeps its slot
    for booking in bookings:
        if (booking.status == BookingStatus.COMPLETED
                and booking.id != emergency.id
                and booking.room_id == emergency.room_id
                and bookings_overlap(booking, emergency)):
            raise RoomConflict(booking)

    return EmergencyPlan(emergency=emergency, bump_set=bump_set)


def bump_note(emergency: Booking) -> str:
    reason = emergency.emergency_reason or 'Not specified'
    return (
        f"Bumped by emergency case: {emergency.procedure} "
        f"({emergency.patient_name}). Reason: {reason}"
    )


def displaced_versions(plan: EmergencyPlan, now: datetime) -> List[Booking]:
    """Rescheduled copies of every case in the bump set"""
    note = bump_note(plan.emergency)
    return [booking_status.reschedule(booking, note, now) for booking in plan.bump_set]


def same_bump_set(first: EmergencyPlan, second: EmergencyPlan) -> bool:
    return ([(b.id, b.status) for b in first.bump_set]
            == [(b.id, b.status) for b in second.bump_set])
