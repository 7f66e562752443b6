"""
Repositories over the SQLite tables
"""
import json
import sqlite3
from datetime import date, datetime, time
from typing import Any, Dict, Iterable, List, Optional, Tuple
from database.database import get_db
from database.models import (
    AuditRecord, Approval, Booking, BookingStatus, ChangeRequest, ChangeRequestStatus,
    Denial, Emergency, INACTIVE_STATUSES, NotificationRecord, Room, RoomLiveStatus,
    RoomStatus, User, UserRole
)
from config import settings


class SlotTaken(sqlite3.IntegrityError):
    """Another active booking already holds the room at this time"""


def _to_db(value: Any) -> Any:
    """Convert a Python value into something sqlite3 stores as is"""
    if isinstance(value, (datetime, date, time)):
        return value.isoformat()
    if isinstance(value, (list, dict)):
        return json.dumps(value)
    if isinstance(value, bool):
        return int(value)
    return getattr(value, 'value', value)


def _datetime(value: Optional[str]) -> Optional[datetime]:
    return datetime.fromisoformat(value) if value else None


def _booking_columns(changes: Dict[str, Any]) -> Dict[str, Any]:
    """Map Booking field values onto table columns"""
    columns = {}
    for name, value in changes.items():
        if name == 'emergency':
            columns['is_emergency'] = 1 if value else 0
            columns['emergency_reason'] = value.reason if value else None
        elif name == 'approval':
            columns['approved_by'] = value.approved_by if value else None
            columns['approved_at'] = _to_db(value.approved_at) if value else None
        elif name == 'denial':
            columns['denial_reason'] = value.reason if value else None
            columns['denied_by'] = value.denied_by if value else None
            columns['denied_at'] = _to_db(value.denied_at) if value else None
        else:
            columns[name] = _to_db(value)
    return columns


class BookingRepository:
    """Bookings"""

    _BOOKING_FIELDS = (
        'room_id', 'department_id', 'date', 'start_time', 'end_time',
        'patient_name', 'patient_age', 'patient_sex', 'patient_category', 'ward',
        'procedure', 'surgeon', 'anesthesiologist', 'scrub_nurse', 'circulating_nurse',
        'special_equipment', 'estimated_duration_minutes', 'actual_duration_minutes',
        'started_at', 'status', 'emergency', 'approval', 'denial', 'notes', 'created_by',
        'created_at', 'updated_at',
    )

    @staticmethod
    def create_booking(booking: Booking) -> Booking:
        """Insert a booking; the id is assigned by the caller"""
        values = {name: getattr(booking, name) for name in BookingRepository._BOOKING_FIELDS}
        columns = {'id': booking.id}
        columns.update(_booking_columns(values))

        with get_db() as conn:
            cursor = conn.cursor()
            placeholders = ', '.join('?' for _ in columns)
            cursor.execute(
                f"INSERT INTO bookings ({', '.join(columns)}) VALUES ({placeholders})",
                list(columns.values())
            )
            BookingRepository._check_slot(cursor, booking.id)
        return booking

    @staticmethod
    def update_booking(booking_id: str, changes: Dict[str, Any]) -> bool:
        with get_db() as conn:
            return BookingRepository._apply_update(conn.cursor(), booking_id, changes)

    @staticmethod
    def update_bookings(changes: Dict[str, Dict[str, Any]]):
        """Several updates in one transaction: all are written or none"""
        with get_db() as conn:
            cursor = conn.cursor()
            for booking_id, booking_changes in changes.items():
                if not BookingRepository._apply_update(cursor, booking_id, booking_changes):
                    raise sqlite3.IntegrityError(f"Booking {booking_id} does not exist")

    @staticmethod
    def _apply_update(cursor: sqlite3.Cursor, booking_id: str, changes: Dict[str, Any]) -> bool:
        columns = _booking_columns(changes)
        if not columns:
            return True
        assignments = ', '.join(f"{name} = ?" for name in columns)
        cursor.execute(
            f"UPDATE bookings SET {assignments} WHERE id = ?",
            list(columns.values()) + [booking_id]
        )
        if cursor.rowcount == 0:
            return False
        BookingRepository._check_slot(cursor, booking_id)
        return True

    @staticmethod
    def _check_slot(cursor: sqlite3.Cursor, booking_id: str):
        """Reject the write if it leaves two active bookings overlapping in one room"""
        if not settings.ENFORCE_SLOT_UNIQUENESS:
            return

        cursor.execute("SELECT * FROM bookings WHERE id = ?", (booking_id,))
        row = cursor.fetchone()
        inactive = [status.value for status in INACTIVE_STATUSES]
        if row is None or row['status'] in inactive:
            return

        placeholders = ', '.join('?' for _ in inactive)
        cursor.execute(f"""
            SELECT id FROM bookings
            WHERE room_id = ? AND date = ? AND id != ?
            AND status NOT IN ({placeholders})
            AND start_time < ? AND end_time > ?
        """, [row['room_id'], row['date'], booking_id] + inactive
                       + [row['end_time'], row['start_time']])
        clash = cursor.fetchone()
        if clash is not None:
            raise SlotTaken(f"Room {row['room_id']} is already booked by {clash['id']}")

    @staticmethod
    def get_booking_by_id(booking_id: str) -> Optional[Booking]:
        with get_db() as conn:
            cursor = conn.cursor()
            cursor.execute("SELECT * FROM bookings WHERE id = ?", (booking_id,))
            row = cursor.fetchone()
            return BookingRepository._row_to_booking(row) if row else None

    @staticmethod
    def get_bookings(room_id: Optional[str] = None, day: Optional[date] = None) -> List[Booking]:
        """Bookings, optionally for one room and/or one day"""
        query = "SELECT * FROM bookings WHERE 1 = 1"
        params: List[Any] = []
        if room_id is not None:
            query += " AND room_id = ?"
            params.append(room_id)
        if day is not None:
            query += " AND date = ?"
            params.append(day.isoformat())
        query += " ORDER BY date, start_time"

        with get_db() as conn:
            cursor = conn.cursor()
            cursor.execute(query, params)
            rows = cursor.fetchall()
            return [BookingRepository._row_to_booking(row) for row in rows]

    @staticmethod
    def _row_to_booking(row) -> Booking:
        """Convert a table row into a Booking"""
        emergency = None
        if row['is_emergency']:
            emergency = Emergency(reason=row['emergency_reason'] or '')
        approval = None
        if row['approved_by']:
            approval = Approval(approved_by=row['approved_by'], approved_at=_datetime(row['approved_at']))
        denial = None
        if row['denial_reason'] is not None:
            denial = Denial(
                reason=row['denial_reason'],
                denied_by=row['denied_by'],
                denied_at=_datetime(row['denied_at'])
            )

        return Booking(
            id=row['id'],
            room_id=row['room_id'],
            department_id=row['department_id'],
            date=date.fromisoformat(row['date']),
            start_time=time.fromisoformat(row['start_time']),
            end_time=time.fromisoformat(row['end_time']),
            patient_name=row['patient_name'],
            procedure=row['procedure'],
            surgeon=row['surgeon'],
            created_by=row['created_by'],
            patient_age=row['patient_age'],
            patient_sex=row['patient_sex'],
            patient_category=row['patient_category'] or '',
            ward=row['ward'] or '',
            anesthesiologist=row['anesthesiologist'] or '',
            scrub_nurse=row['scrub_nurse'] or '',
            circulating_nurse=row['circulating_nurse'] or '',
            special_equipment=json.loads(row['special_equipment'] or '[]'),
            estimated_duration_minutes=row['estimated_duration_minutes'],
            actual_duration_minutes=row['actual_duration_minutes'],
            started_at=_datetime(row['started_at']),
            status=BookingStatus(row['status']),
            emergency=emergency,
            approval=approval,
            denial=denial,
            notes=row['notes'] or '',
            created_at=_datetime(row['created_at']),
            updated_at=_datetime(row['updated_at'])
        )


class RoomRepository:
    """Operating rooms"""

    @staticmethod
    def get_all_rooms() -> List[Room]:
        with get_db() as conn:
            cursor = conn.cursor()
            cursor.execute("SELECT * FROM rooms ORDER BY number")
            return [RoomRepository._row_to_room(row) for row in cursor.fetchall()]

    @staticmethod
    def get_room_by_id(room_id: str) -> Optional[Room]:
        with get_db() as conn:
            cursor = conn.cursor()
            cursor.execute("SELECT * FROM rooms WHERE id = ?", (room_id,))
            row = cursor.fetchone()
            return RoomRepository._row_to_room(row) if row else None

    @staticmethod
    def _row_to_room(row) -> Room:
        return Room(
            id=row['id'],
            name=row['name'],
            number=row['number'],
            designation=row['designation'] or '',
            is_active=bool(row['is_active']),
            buffer_time_minutes=row['buffer_time_minutes']
        )


class LiveStatusRepository:
    """Live status of each room"""

    @staticmethod
    def upsert(room_id: str, status: RoomStatus, booking_id: Optional[str] = None):
        with get_db() as conn:
            cursor = conn.cursor()
            cursor.execute("""
                INSERT INTO room_live_status (room_id, status, current_booking_id, updated_at)
                VALUES (?, ?, ?, ?)
                ON CONFLICT(room_id) DO UPDATE SET
                    status = excluded.status,
                    current_booking_id = excluded.current_booking_id,
                    updated_at = excluded.updated_at
            """, (room_id, _to_db(status), booking_id, datetime.now().isoformat()))

    @staticmethod
    def get_all() -> Dict[str, RoomLiveStatus]:
        with get_db() as conn:
            cursor = conn.cursor()
            cursor.execute("SELECT * FROM room_live_status")
            return {
                row['room_id']: RoomLiveStatus(
                    room_id=row['room_id'],
                    status=RoomStatus(row['status']),
                    current_booking_id=row['current_booking_id'],
                    updated_at=_datetime(row['updated_at'])
                )
                for row in cursor.fetchall()
            }


class ChangeRequestRepository:
    """Schedule change requests"""

    @staticmethod
    def create(request: ChangeRequest) -> ChangeRequest:
        with get_db() as conn:
            cursor = conn.cursor()
            cursor.execute("""
                INSERT INTO change_requests
                (id, booking_id, department_id, new_date, new_start_time, new_end_time,
                 reason, additional_info, requested_by, status, reviewed_by, review_note, created_at)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """, (
                request.id,
                request.booking_id,
                request.department_id,
                _to_db(request.new_date),
                _to_db(request.new_start_time),
                _to_db(request.new_end_time),
                request.reason,
                request.additional_info,
                request.requested_by,
                _to_db(request.status),
                request.reviewed_by,
                request.review_note,
                _to_db(request.created_at)
            ))
        return request

    @staticmethod
    def update(request_id: str, changes: Dict[str, Any]) -> bool:
        if not changes:
            return True
        assignments = ', '.join(f"{name} = ?" for name in changes)
        with get_db() as conn:
            cursor = conn.cursor()
            cursor.execute(
                f"UPDATE change_requests SET {assignments} WHERE id = ?",
                [_to_db(value) for value in changes.values()] + [request_id]
            )
            return cursor.rowcount > 0

    @staticmethod
    def get_all() -> List[ChangeRequest]:
        with get_db() as conn:
            cursor = conn.cursor()
            cursor.execute("SELECT * FROM change_requests ORDER BY created_at")
            return [ChangeRequest(
                id=row['id'],
                booking_id=row['booking_id'],
                department_id=row['department_id'],
                new_date=date.fromisoformat(row['new_date']),
                new_start_time=time.fromisoformat(row['new_start_time']),
                new_end_time=time.fromisoformat(row['new_end_time']),
                reason=row['reason'],
                requested_by=row['requested_by'],
                additional_info=row['additional_info'] or '',
                status=ChangeRequestStatus(row['status']),
                reviewed_by=row['reviewed_by'],
                review_note=row['review_note'] or '',
                created_at=_datetime(row['created_at'])
            ) for row in cursor.fetchall()]


class PriorityRepository:
    """Department priority schedule"""

    @staticmethod
    def get_schedule() -> Dict[Tuple[str, str], str]:
        with get_db() as conn:
            cursor = conn.cursor()
            cursor.execute("SELECT * FROM priority_schedule")
            return {(row['department_id'], row['weekday']): row['label'] for row in cursor.fetchall()}

    @staticmethod
    def set_cell(department_id: str, weekday: str, label: Optional[str]):
        """Set one cell; an empty label removes it"""
        with get_db() as conn:
            cursor = conn.cursor()
            if label:
                cursor.execute("""
                    INSERT INTO priority_schedule (department_id, weekday, label) VALUES (?, ?, ?)
                    ON CONFLICT(department_id, weekday) DO UPDATE SET label = excluded.label
                """, (department_id, weekday, label))
            else:
                cursor.execute(
                    "DELETE FROM priority_schedule WHERE department_id = ? AND weekday = ?",
                    (department_id, weekday)
                )


class UserRepository:
    """Users and Telegram accounts"""

    @staticmethod
    def save_user(user: User):
        with get_db() as conn:
            cursor = conn.cursor()
            cursor.execute("""
                INSERT INTO users (id, full_name, role, department_id, telegram_id, is_active)
                VALUES (?, ?, ?, ?, ?, ?)
                ON CONFLICT(id) DO UPDATE SET
                    full_name = excluded.full_name,
                    role = excluded.role,
                    department_id = excluded.department_id,
                    telegram_id = excluded.telegram_id,
                    is_active = excluded.is_active
            """, (
                user.id, user.full_name, _to_db(user.role), user.department_id,
                user.telegram_id, int(user.is_active)
            ))

    @staticmethod
    def get_by_telegram_id(telegram_id: int) -> Optional[User]:
        with get_db() as conn:
            cursor = conn.cursor()
            cursor.execute(
                "SELECT * FROM users WHERE telegram_id = ? AND is_active = 1",
                (telegram_id,)
            )
            row = cursor.fetchone()
            return UserRepository._row_to_user(row) if row else None

    @staticmethod
    def get_recipients(user_ids: Iterable[str] = (), departments: Iterable[str] = (),
                       roles: Iterable[UserRole] = (), all_active: bool = False) -> List[User]:
        """Active users matching any of the given ids, departments or roles"""
        with get_db() as conn:
            cursor = conn.cursor()
            if all_active:
                cursor.execute("SELECT * FROM users WHERE is_active = 1 ORDER BY id")
                return [UserRepository._row_to_user(row) for row in cursor.fetchall()]

            conditions = []
            params: List[Any] = []
            for column, values in (
                ('id', list(user_ids)),
                ('department_id', list(departments)),
                ('role', [_to_db(role) for role in roles]),
            ):
                if values:
                    conditions.append(f"{column} IN ({', '.join('?' for _ in values)})")
                    params.extend(values)
            if not conditions:
                return []

            cursor.execute(
                f"SELECT * FROM users WHERE is_active = 1 AND ({' OR '.join(conditions)}) ORDER BY id",
                params
            )
            return [UserRepository._row_to_user(row) for row in cursor.fetchall()]

    @staticmethod
    def _row_to_user(row) -> User:
        return User(
            id=row['id'],
            full_name=row['full_name'],
            role=UserRole(row['role']),
            department_id=row['department_id'],
            telegram_id=row['telegram_id'],
            is_active=bool(row['is_active'])
        )


class AuditRepository:
    """Append-only audit trail"""

    @staticmethod
    def add(record: AuditRecord) -> int:
        with get_db() as conn:
            cursor = conn.cursor()
            cursor.execute("""
                INSERT INTO audit_logs
                (actor_id, action, entity_type, entity_id, old_values, new_values, created_at)
                VALUES (?, ?, ?, ?, ?, ?, ?)
            """, (
                record.actor_id,
                record.action,
                record.entity_type,
                record.entity_id,
                json.dumps(record.old_values, default=str) if record.old_values is not None else None,
                json.dumps(record.new_values, default=str) if record.new_values is not None else None,
                _to_db(record.created_at)
            ))
            return cursor.lastrowid

    @staticmethod
    def get_for_entity(entity_type: str, entity_id: str) -> List[AuditRecord]:
        with get_db() as conn:
            cursor = conn.cursor()
            cursor.execute("""
                SELECT * FROM audit_logs
                WHERE entity_type = ? AND entity_id = ?
                ORDER BY id
            """, (entity_type, entity_id))
            return [AuditRecord(
                id=row['id'],
                actor_id=row['actor_id'],
                action=row['action'],
                entity_type=row['entity_type'],
                entity_id=row['entity_id'],
                old_values=json.loads(row['old_values']) if row['old_values'] else None,
                new_values=json.loads(row['new_values']) if row['new_values'] else None,
                created_at=_datetime(row['created_at'])
            ) for row in cursor.fetchall()]


class NotificationRepository:
    """In-app notifications"""

    @staticmethod
    def add(record: NotificationRecord) -> int:
        with get_db() as conn:
            cursor = conn.cursor()
            cursor.execute("""
                INSERT INTO notifications
                (user_id, kind, title, message, related_booking_id, is_read, created_at)
                VALUES (?, ?, ?, ?, ?, ?, ?)
            """, (
                record.user_id,
                record.kind,
                record.title,
                record.message,
                record.related_booking_id,
                int(record.is_read),
                _to_db(record.created_at)
            ))
            return cursor.lastrowid

    @staticmethod
    def get_user_notifications(user_id: str, unread_only: bool = False) -> List[NotificationRecord]:
        query = "SELECT * FROM notifications WHERE user_id = ?"
        if unread_only:
            query += " AND is_read = 0"
        query += " ORDER BY id DESC"

        with get_db() as conn:
            cursor = conn.cursor()
            cursor.execute(query, (user_id,))
            return [NotificationRecord(
                id=row['id'],
                user_id=row['user_id'],
                kind=row['kind'],
                title=row['title'],
                message=row['message'],
                related_booking_id=row['related_booking_id'],
                created_at=_datetime(row['created_at']),
                is_read=bool(row['is_read'])
            ) for row in cursor.fetchall()]

    @staticmethod
    def mark_read(notification_id: int) -> bool:
        with get_db() as conn:
            cursor = conn.cursor()
            cursor.execute("UPDATE notifications SET is_read = 1 WHERE id = ?", (notification_id,))
            return cursor.rowcount > 0
