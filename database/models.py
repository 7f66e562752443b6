"""
Data models for operating-room scheduling
"""
import enum
from dataclasses import dataclass, field
from datetime import date, datetime, time
from typing import Any, Dict, List, Optional

from scheduling.errors import ValidationError


class BookingStatus(str, enum.Enum):
    PENDING = 'pending'
    APPROVED = 'approved'
    DENIED = 'denied'
    CANCELLED = 'cancelled'
    RESCHEDULED = 'rescheduled'
    ONGOING = 'ongoing'
    COMPLETED = 'completed'


# No further workflow from these states
TERMINAL_STATUSES = frozenset({
    BookingStatus.DENIED,
    BookingStatus.CANCELLED,
    BookingStatus.COMPLETED,
    BookingStatus.RESCHEDULED,
})

# Bookings in these states no longer hold their slot
INACTIVE_STATUSES = frozenset({
    BookingStatus.CANCELLED,
    BookingStatus.DENIED,
    BookingStatus.RESCHEDULED,
})


class RoomStatus(str, enum.Enum):
    IDLE = 'idle'
    IN_TRANSIT = 'in_transit'
    ONGOING = 'ongoing'
    ENDED = 'ended'
    DEFERRED = 'deferred'


class UserRole(str, enum.Enum):
    SUPER_ADMIN = 'super_admin'
    ANESTHESIOLOGY_ADMIN = 'anesthesiology_admin'
    DEPARTMENT_USER = 'department_user'
    NURSE = 'nurse'
    VIEWER = 'viewer'


ADMIN_ROLES = frozenset({UserRole.SUPER_ADMIN, UserRole.ANESTHESIOLOGY_ADMIN})


class ChangeRequestStatus(str, enum.Enum):
    PENDING = 'pending'
    APPROVED = 'approved'
    DENIED = 'denied'


DEPARTMENTS = {
    'GS': 'General Surgery',
    'OBGYNE': 'OB-GYNE',
    'ORTHO': 'Orthopedics',
    'OPHTHA': 'Ophthalmology',
    'ENT': 'ENT',
    'PEDIA': 'Pediatrics',
    'URO': 'Urology',
    'TCVS': 'TCVS',
    'NEURO': 'Neurosurgery',
    'PLASTICS': 'Plastics',
    'PSYCH': 'Psychiatry',
    'DENTAL': 'Dental',
    'GI': 'GI',
    'RADIO': 'Radiology',
    'PULMO': 'Pulmonology',
    'CARDIAC': 'Cardiac',
    'ONCO': 'Oncology',
}


@dataclass
class User:
    """System user"""
    id: str
    full_name: str
    role: UserRole
    department_id: Optional[str] = None
    telegram_id: Optional[int] = None
    is_active: bool = True

    @property
    def is_admin(self) -> bool:
        return self.role in ADMIN_ROLES


@dataclass
class Room:
    """Operating room"""
    id: str
    name: str
    number: int = 0
    designation: str = ''
    is_active: bool = True
    buffer_time_minutes: int = 30


@dataclass(frozen=True)
class Emergency:
    """Emergency insertion data"""
    reason: str


@dataclass(frozen=True)
class Approval:
    approved_by: str
    approved_at: datetime


@dataclass(frozen=True)
class Denial:
    reason: str
    denied_by: str
    denied_at: datetime


@dataclass
class Booking:
    """
    A request for (or a confirmed occupation of) one room for one procedure.

    Values are not mutated in place: state transitions return a new copy
    built with dataclasses.replace.
    """
    id: Optional[str]
    room_id: str
    department_id: str
    date: date
    start_time: time
    end_time: time
    patient_name: str
    procedure: str
    surgeon: str
    created_by: str
    patient_age: Optional[int] = None
    patient_sex: Optional[str] = None
    patient_category: str = ''
    ward: str = ''
    anesthesiologist: str = ''
    scrub_nurse: str = ''
    circulating_nurse: str = ''
    special_equipment: List[str] = field(default_factory=list)
    estimated_duration_minutes: Optional[int] = None
    actual_duration_minutes: Optional[int] = None
    started_at: Optional[datetime] = None
    status: BookingStatus = BookingStatus.PENDING
    emergency: Optional[Emergency] = None
    approval: Optional[Approval] = None
    denial: Optional[Denial] = None
    notes: str = ''
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    def __post_init__(self):
        self.status = BookingStatus(self.status)
        if self.denial is not None and self.status != BookingStatus.DENIED:
            raise ValidationError("Denial details are only valid for a denied booking")
        if self.denial is not None and self.emergency is not None:
            raise ValidationError("An emergency case cannot carry a denial")

    @property
    def is_emergency(self) -> bool:
        return self.emergency is not None

    @property
    def emergency_reason(self) -> Optional[str]:
        return self.emergency.reason if self.emergency else None

    @property
    def denial_reason(self) -> Optional[str]:
        return self.denial.reason if self.denial else None

    @property
    def approved_by(self) -> Optional[str]:
        return self.approval.approved_by if self.approval else None

    @property
    def is_active(self) -> bool:
        """Whether the booking still holds its slot"""
        return self.status not in INACTIVE_STATUSES

    @property
    def starts_at(self) -> datetime:
        return datetime.combine(self.date, self.start_time)

    @property
    def ends_at(self) -> datetime:
        return datetime.combine(self.date, self.end_time)

    @property
    def duration_minutes(self) -> int:
        """Scheduled duration in minutes"""
        delta = self.ends_at - self.starts_at
        return int(delta.total_seconds() // 60)


@dataclass
class RoomLiveStatus:
    """Current real-time state of a room"""
    room_id: str
    status: RoomStatus
    current_booking_id: Optional[str] = None
    updated_at: Optional[datetime] = None


@dataclass
class ChangeRequest:
    """Request to move an existing booking to a new date/time"""
    id: Optional[str]
    booking_id: str
    department_id: str
    new_date: date
    new_start_time: time
    new_end_time: time
    reason: str
    requested_by: str
    additional_info: str = ''
    status: ChangeRequestStatus = ChangeRequestStatus.PENDING
    reviewed_by: Optional[str] = None
    review_note: str = ''
    created_at: Optional[datetime] = None


@dataclass
class AuditRecord:
    id: Optional[int]
    actor_id: str
    action: str
    entity_type: str
    entity_id: Optional[str]
    old_values: Optional[Dict[str, Any]]
    new_values: Optional[Dict[str, Any]]
    created_at: datetime


@dataclass
class NotificationRecord:
    id: Optional[int]
    user_id: str
    kind: str
    title: str
    message: str
    related_booking_id: Optional[str]
    created_at: datetime
    is_read: bool = False
