"""
Contracts of the collaborators the scheduling core talks to
"""
import enum
from dataclasses import dataclass
from datetime import date
from typing import Any, Dict, List, Optional, Protocol, Tuple

from database.models import (
    Booking, ChangeRequest, Room, RoomLiveStatus, RoomStatus, UserRole, ADMIN_ROLES
)


class NotificationKind(str, enum.Enum):
    NEW_REQUEST = 'new_request'
    APPROVAL = 'approval'
    DENIAL = 'denial'
    BOOKING_EDITED = 'booking_edited'
    EMERGENCY_ALERT = 'emergency_alert'
    BOOKING_BUMPED = 'booking_bumped'
    BOOKING_CONFIRMATION = 'booking_confirmation'
    BOOKING_CANCELLED = 'booking_cancelled'
    DELEGATED_BOOKING = 'delegated_booking'
    ROOM_STATUS_CHANGED = 'room_status_changed'
    CHANGE_REQUEST_SUBMITTED = 'change_request_submitted'
    CHANGE_REQUEST_APPROVED = 'change_request_approved'
    CHANGE_REQUEST_DENIED = 'change_request_denied'
    REMINDER_24H = 'reminder_24h'
    REMINDER_2H = 'reminder_2h'
    PURGE_WARNING = 'purge_warning'


@dataclass(frozen=True)
class Audience:
    """Who should receive a notification; the parts are combined"""
    user_ids: Tuple[str, ...] = ()
    departments: Tuple[str, ...] = ()
    roles: Tuple[UserRole, ...] = ()
    all_active: bool = False

    @classmethod
    def admins(cls) -> 'Audience':
        return cls(roles=tuple(sorted(ADMIN_ROLES, key=lambda r: r.value)))

    @classmethod
    def admins_and_nurses(cls) -> 'Audience':
        return cls(roles=cls.admins().roles + (UserRole.NURSE,))

    @classmethod
    def everyone(cls) -> 'Audience':
        return cls(all_active=True)

    @classmethod
    def creator_and_department(cls, booking: Booking) -> 'Audience':
        return cls(user_ids=_ids(booking.created_by), departments=(booking.department_id,))

    def including(self, other: 'Audience') -> 'Audience':
        """Union of two audiences"""
        return Audience(
            user_ids=_merge(self.user_ids, other.user_ids),
            departments=_merge(self.departments, other.departments),
            roles=_merge(self.roles, other.roles),
            all_active=self.all_active or other.all_active,
        )


def _ids(*values: Optional[str]) -> Tuple[str, ...]:
    return tuple(v for v in values if v)


def _merge(first: Tuple, second: Tuple) -> Tuple:
    result = list(first)
    for item in second:
        if item not in result:
            result.append(item)
    return tuple(result)


class PersistencePort(Protocol):
    """
    System of record. Every call may raise PersistenceFailure.

    An implementation may also offer
    ``async update_bookings(changes: Dict[str, Dict[str, Any]])`` to write
    several booking updates all-or-nothing; emergency bumps use it when present.
    """

    async def create_booking(self, booking: Booking) -> Booking: ...

    async def update_booking(self, booking_id: str, changes: Dict[str, Any]) -> None: ...

    async def list_bookings(self, room_id: Optional[str] = None,
                            day: Optional[date] = None) -> List[Booking]: ...

    async def list_rooms(self) -> List[Room]: ...

    async def upsert_room_live_status(self, room_id: str, status: RoomStatus,
                                      booking_id: Optional[str] = None) -> None: ...

    async def list_room_live_statuses(self) -> Dict[str, RoomLiveStatus]: ...

    async def create_change_request(self, request: ChangeRequest) -> ChangeRequest: ...

    async def update_change_request(self, request_id: str, changes: Dict[str, Any]) -> None: ...

    async def list_change_requests(self) -> List[ChangeRequest]: ...

    async def get_priority_schedule(self) -> Dict[Tuple[str, str], str]: ...

    async def set_priority_cell(self, department_id: str, weekday: str,
                                label: Optional[str]) -> None: ...


class NotificationPort(Protocol):
    async def notify(self, kind: NotificationKind, audience: Audience,
                     payload: Dict[str, Any]) -> None: ...


class AuditPort(Protocol):
    async def record(self, actor_id: str, action: str, entity_type: str,
                     entity_id: Optional[str] = None,
                     old_values: Optional[Dict[str, Any]] = None,
                     new_values: Optional[Dict[str, Any]] = None) -> None: ...
