"""
Persistence port backed by the SQLite repositories.

Repository calls are blocking, so each one runs in a worker thread.
"""
import asyncio
import logging
import sqlite3
from datetime import date
from typing import Any, Dict, List, Optional, Tuple

from database.models import Booking, ChangeRequest, Room, RoomLiveStatus, RoomStatus
from database.repository import (
    BookingRepository, ChangeRequestRepository, LiveStatusRepository,
    PriorityRepository, RoomRepository
)
from scheduling.errors import PersistenceFailure

logger = logging.getLogger(__name__)


async def _run(func, *args):
    try:
        return await asyncio.to_thread(func, *args)
    except sqlite3.Error as e:
        logger.error(f"Database error in {func.__qualname__}: {e}")
        raise PersistenceFailure(f"Could not save changes: {e}") from e


class SqlitePersistence:
    """System of record on SQLite, with all-or-nothing batch booking updates"""

    async def create_booking(self, booking: Booking) -> Booking:
        return await _run(BookingRepository.create_booking, booking)

    async def update_booking(self, booking_id: str, changes: Dict[str, Any]) -> None:
        updated = await _run(BookingRepository.update_booking, booking_id, changes)
        if not updated:
            raise PersistenceFailure(f"Booking #{booking_id} no longer exists")

    async def update_bookings(self, changes: Dict[str, Dict[str, Any]]) -> None:
        await _run(BookingRepository.update_bookings, changes)

    async def list_bookings(self, room_id: Optional[str] = None,
                            day: Optional[date] = None) -> List[Booking]:
        return await _run(BookingRepository.get_bookings, room_id, day)

    async def list_rooms(self) -> List[Room]:
        return await _run(RoomRepository.get_all_rooms)

    async def upsert_room_live_status(self, room_id: str, status: RoomStatus,
                                      booking_id: Optional[str] = None) -> None:
        await _run(LiveStatusRepository.upsert, room_id, status, booking_id)

    async def list_room_live_statuses(self) -> Dict[str, RoomLiveStatus]:
        return await _run(LiveStatusRepository.get_all)

    async def create_change_request(self, request: ChangeRequest) -> ChangeRequest:
        return await _run(ChangeRequestRepository.create, request)

    async def update_change_request(self, request_id: str, changes: Dict[str, Any]) -> None:
        updated = await _run(ChangeRequestRepository.update, request_id, changes)
        if not updated:
            raise PersistenceFailure(f"Change request #{request_id} no longer exists")

    async def list_change_requests(self) -> List[ChangeRequest]:
        return await _run(ChangeRequestRepository.get_all)

    async def get_priority_schedule(self) -> Dict[Tuple[str, str], str]:
        return await _run(PriorityRepository.get_schedule)

    async def set_priority_cell(self, department_id: str, weekday: str,
                                label: Optional[str]) -> None:
        await _run(PriorityRepository.set_cell, department_id, weekday, label)
