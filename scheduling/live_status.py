"""
Room live-status state machine and its cascade onto bookings
"""
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Dict, Iterable, List, Optional

from database.models import Booking, BookingStatus, RoomLiveStatus, RoomStatus
from scheduling import status as booking_status
from scheduling.errors import InvalidTransition

# Destinations worth a notification; idle and in_transit are low-signal
NOTIFY_STATUSES = frozenset({RoomStatus.ONGOING, RoomStatus.ENDED, RoomStatus.DEFERRED})


@dataclass
class RoomStatusChange:
    """Result of planning a room status change"""
    room_id: str
    previous: RoomStatus
    status: RoomStatus
    current_booking_id: Optional[str] = None
    booking_updates: List[Booking] = field(default_factory=list)
    cancelled: Optional[Booking] = None

    @property
    def should_notify(self) -> bool:
        return self.status in NOTIFY_STATUSES


@dataclass
class RoomBoardEntry:
    """One room on the live board"""
    room_id: str
    status: RoomStatus
    featured: Optional[Booking]
    queue: List[Booking]


def todays_bookings(room_id: str, bookings: Iterable[Booking], today: date) -> List[Booking]:
    """Active bookings for the room today, ordered by start time"""
    result = [
        b for b in bookings
        if b.room_id == room_id and b.date == today and b.is_active
    ]
    result.sort(key=lambda b: (b.start_time, b.id or ''))
    return result


def next_queued_booking(room_id: str, bookings: Iterable[Booking],
                        today: date) -> Optional[Booking]:
    """Earliest approved booking for the room today"""
    for booking in todays_bookings(room_id, bookings, today):
        if booking.status == BookingStatus.APPROVED:
            return booking
    return None


def ongoing_booking(room_id: str, bookings: Iterable[Booking],
                    today: date) -> Optional[Booking]:
    for booking in todays_bookings(room_id, bookings, today):
        if booking.status == BookingStatus.ONGOING:
            return booking
    return None


def fallback_status(room_id: str, bookings: Iterable[Booking], today: date) -> RoomStatus:
    """Status derived from today's bookings when the room has no explicit record"""
    room_bookings = todays_bookings(room_id, bookings, today)
    if any(b.status == BookingStatus.ONGOING for b in room_bookings):
        return RoomStatus.ONGOING
    if room_bookings and all(b.status == BookingStatus.COMPLETED for b in room_bookings):
        return RoomStatus.ENDED
    return RoomStatus.IDLE


def current_status(room_id: str, live_statuses: Dict[str, RoomLiveStatus],
                   bookings: Iterable[Booking], today: date) -> RoomStatus:
    record = live_statuses.get(room_id)
    if record is not None:
        return record.status
    return fallback_status(room_id, bookings, today)


def plan_room_status_change(room_id: str, previous: RoomStatus, target: RoomStatus,
                            bookings: Iterable[Booking], today: date,
                            now: datetime) -> RoomStatusChange:
    """
    Work out the booking updates implied by moving a room to a new status.

    Nothing is written here; the caller persists the returned change.
    """
    target = RoomStatus(target)
    if target == previous:
        raise InvalidTransition(previous, target, "room is already in this status")

    bookings = list(bookings)
    change = RoomStatusChange(room_id=room_id, previous=previous, status=target)

    if target == RoomStatus.ONGOING:
        queued = next_queued_booking(room_id, bookings, today)
        if queued is not None:
            change.booking_updates.append(booking_status.start(queued, now))
            change.current_booking_id = queued.id

    elif target == RoomStatus.IN_TRANSIT:
        queued = next_queued_booking(room_id, bookings, today)
        if queued is not None:
            change.current_booking_id = queued.id

    elif target == RoomStatus.ENDED:
        ongoing = ongoing_booking(room_id, bookings, today)
        if ongoing is not None:
            change.booking_updates.append(
                booking_status.complete(ongoing, now, _elapsed_minutes(ongoing, now))
            )

    elif target == RoomStatus.DEFERRED:
        ongoing = ongoing_booking(room_id, bookings, today)
        if ongoing is not None:
            cancelled = booking_status.cancel(ongoing, now, note="Deferred from the live board")
            change.booking_updates.append(cancelled)
            change.cancelled = cancelled

    return change


def _elapsed_minutes(booking: Booking, now: datetime) -> Optional[int]:
    """Minutes since the case was started, if the start was recorded today"""
    started = booking.started_at
    if started is None or started.date() != now.date() or started > now:
        return None
    return int((now - started).total_seconds() // 60)


def featured_case(room_id: str, status: RoomStatus, current_booking_id: Optional[str],
                  bookings: Iterable[Booking], today: date) -> Optional[Booking]:
    """Booking shown prominently for the room on the live board"""
    bookings = list(bookings)

    if status == RoomStatus.ONGOING:
        return (ongoing_booking(room_id, bookings, today)
                or next_queued_booking(room_id, bookings, today))

    if status == RoomStatus.IN_TRANSIT:
        for booking in bookings:
            if current_booking_id is not None and booking.id == current_booking_id:
                return booking
        return None

    if status in (RoomStatus.IDLE, RoomStatus.ENDED):
        return next_queued_booking(room_id, bookings, today)

    return None
