"""
Application state owned by the caller and the optimistic write pattern
"""
import dataclasses
import logging
import uuid
from contextlib import asynccontextmanager
from datetime import date
from typing import Any, Dict, List, Optional

from database.models import Booking, ChangeRequest, Room, RoomLiveStatus
from scheduling.errors import BookingNotFound, PersistenceFailure
from scheduling.ports import PersistencePort
from scheduling.priority import PriorityLookup

logger = logging.getLogger(__name__)


def new_id() -> str:
    """Client-side identifier for new records"""
    return uuid.uuid4().hex


def booking_changes(before: Booking, after: Booking) -> Dict[str, Any]:
    """Fields that differ between two versions of a booking"""
    changes = {}
    for item in dataclasses.fields(Booking):
        if item.name == 'id':
            continue
        new_value = getattr(after, item.name)
        if getattr(before, item.name) != new_value:
            changes[item.name] = new_value
    return changes


@dataclasses.dataclass
class _Snapshot:
    bookings: Dict[str, Booking]
    rooms: Dict[str, Room]
    live_statuses: Dict[str, RoomLiveStatus]
    change_requests: Dict[str, ChangeRequest]
    priorities: PriorityLookup


class ScheduleState:
    """In-memory view of bookings, rooms and live statuses"""

    def __init__(self):
        self.bookings: Dict[str, Booking] = {}
        self.rooms: Dict[str, Room] = {}
        self.live_statuses: Dict[str, RoomLiveStatus] = {}
        self.change_requests: Dict[str, ChangeRequest] = {}
        self.priorities = PriorityLookup()

    def get_booking(self, booking_id: str) -> Booking:
        booking = self.bookings.get(booking_id)
        if booking is None:
            raise BookingNotFound(booking_id)
        return booking

    def get_room(self, room_id: str) -> Room:
        room = self.rooms.get(room_id)
        if room is None:
            raise BookingNotFound(room_id, entity='Room')
        return room

    def get_change_request(self, request_id: str) -> ChangeRequest:
        request = self.change_requests.get(request_id)
        if request is None:
            raise BookingNotFound(request_id, entity='Change request')
        return request

    def put_booking(self, booking: Booking):
        self.bookings[booking.id] = booking

    def bookings_for(self, room_id: Optional[str] = None,
                     day: Optional[date] = None) -> List[Booking]:
        """Bookings filtered by room and day, ordered by date and start time"""
        result = [
            b for b in self.bookings.values()
            if (room_id is None or b.room_id == room_id) and (day is None or b.date == day)
        ]
        result.sort(key=lambda b: (b.date, b.start_time, b.id or ''))
        return result

    def snapshot(self) -> _Snapshot:
        # Booking values are replaced rather than mutated, so shallow copies suffice
        return _Snapshot(
            bookings=dict(self.bookings),
            rooms=dict(self.rooms),
            live_statuses=dict(self.live_statuses),
            change_requests=dict(self.change_requests),
            priorities=self.priorities,
        )

    def restore(self, snapshot: _Snapshot):
        self.bookings = snapshot.bookings
        self.rooms = snapshot.rooms
        self.live_statuses = snapshot.live_statuses
        self.change_requests = snapshot.change_requests
        self.priorities = snapshot.priorities

    async def load(self, persistence: PersistencePort):
        """Replace local state with the system of record"""
        rooms = await persistence.list_rooms()
        bookings = await persistence.list_bookings()
        live_statuses = await persistence.list_room_live_statuses()
        change_requests = await persistence.list_change_requests()
        schedule = await persistence.get_priority_schedule()

        self.rooms = {room.id: room for room in rooms}
        self.bookings = {booking.id: booking for booking in bookings}
        self.live_statuses = dict(live_statuses)
        self.change_requests = {request.id: request for request in change_requests}
        self.priorities = PriorityLookup(schedule)
        logger.info(f"State loaded: {len(self.rooms)} rooms, {len(self.bookings)} bookings")

    @asynccontextmanager
    async def optimistic(self, persistence: PersistencePort):
        """
        Apply local changes first and write them inside the block.

        If the block raises, local state goes back to the snapshot taken on
        entry. After a PersistenceFailure the state is also reloaded from the
        system of record before the error is re-raised.
        """
        snapshot = self.snapshot()
        try:
            yield self
        except PersistenceFailure:
            self.restore(snapshot)
            try:
                await self.load(persistence)
            except PersistenceFailure as e:
                logger.error(f"Reload after failed write also failed: {e}", exc_info=True)
            raise
        except Exception:
            self.restore(snapshot)
            raise
