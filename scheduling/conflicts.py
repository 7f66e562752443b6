"""
Room and anesthesiologist conflict detection.

Ranges are half-open: a case ending at 10:00 and one starting at 10:00 do not
overlap. Each check stops at the first match in the given collection.
"""
from datetime import time
from typing import Iterable, Optional

from database.models import Booking
from scheduling.errors import RoomConflict, AnesthesiologistConflict


def ranges_overlap(start1: time, end1: time, start2: time, end2: time) -> bool:
    """Half-open overlap test"""
    return max(start1, start2) < min(end1, end2)


def bookings_overlap(first: Booking, second: Booking) -> bool:
    return (first.date == second.date
            and ranges_overlap(first.start_time, first.end_time,
                               second.start_time, second.end_time))


def _same_booking(candidate: Booking, existing: Booking) -> bool:
    return candidate.id is not None and existing.id == candidate.id


def find_room_conflict(candidate: Booking, bookings: Iterable[Booking]) -> Optional[Booking]:
    """First active booking in the same room overlapping the candidate"""
    for existing in bookings:
        if _same_booking(candidate, existing):
            continue
        if existing.room_id != candidate.room_id:
            continue
        if not existing.is_active:
            continue
        if bookings_overlap(candidate, existing):
            return existing
    return None


def find_anesthesiologist_conflict(candidate: Booking,
                                   bookings: Iterable[Booking]) -> Optional[Booking]:
    """First active booking assigned to the same anesthesiologist at an overlapping time"""
    name = candidate.anesthesiologist.strip()
    if not name:
        return None

    for existing in bookings:
        if _same_booking(candidate, existing):
            continue
        if existing.anesthesiologist.strip() != name:
            continue
        if not existing.is_active:
            continue
        if bookings_overlap(candidate, existing):
            return existing
    return None


def ensure_no_conflicts(candidate: Booking, bookings: Iterable[Booking]):
    """Raise RoomConflict or AnesthesiologistConflict for the first clash found"""
    bookings = list(bookings)

    room_conflict = find_room_conflict(candidate, bookings)
    if room_conflict is not None:
        raise RoomConflict(room_conflict)

    anesthesiologist_conflict = find_anesthesiologist_conflict(candidate, bookings)
    if anesthesiologist_conflict is not None:
        raise AnesthesiologistConflict(anesthesiologist_conflict)
