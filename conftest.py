"""
Shared fixtures: fixed clock, model factories, in-memory ports and a temp database
"""
import dataclasses
from datetime import date, datetime, time, timedelta
from typing import Any, Dict, List, Optional

import pytest

from config import settings
from database.database import init_db
from database.models import (
    Booking, ChangeRequest, Room, RoomLiveStatus, RoomStatus, User, UserRole
)
from scheduling.errors import PersistenceFailure
from scheduling.priority import DEFAULT_PRIORITY_SCHEDULE
from scheduling.service import SchedulingService

# Wednesday morning
NOW = datetime(2026, 10, 14, 9, 0)


class InMemoryPersistence:
    """Persistence port kept in dicts; writes fail on demand"""

    def __init__(self, rooms: Optional[List[Room]] = None):
        self.bookings: Dict[str, Booking] = {}
        self.rooms = {room.id: room for room in rooms or []}
        self.live_statuses: Dict[str, RoomLiveStatus] = {}
        self.change_requests: Dict[str, ChangeRequest] = {}
        self.schedule = dict(DEFAULT_PRIORITY_SCHEDULE)
        self.failing = set()
        self.failing_ids = set()
        self.calls: List[str] = []

    def _check(self, name: str, entity_id: Optional[str] = None):
        self.calls.append(name)
        if name in self.failing or (entity_id is not None and entity_id in self.failing_ids):
            raise PersistenceFailure(f"{name} failed")

    async def create_booking(self, booking):
        self._check('create_booking', booking.id)
        self.bookings[booking.id] = booking
        return booking

    async def update_booking(self, booking_id, changes):
        self._check('update_booking', booking_id)
        self.bookings[booking_id] = dataclasses.replace(self.bookings[booking_id], **changes)

    async def list_bookings(self, room_id=None, day=None):
        self._check('list_bookings')
        return [
            b for b in self.bookings.values()
            if (room_id is None or b.room_id == room_id) and (day is None or b.date == day)
        ]

    async def list_rooms(self):
        self._check('list_rooms')
        return list(self.rooms.values())

    async def upsert_room_live_status(self, room_id, status, booking_id=None):
        self._check('upsert_room_live_status', room_id)
        self.live_statuses[room_id] = RoomLiveStatus(room_id, RoomStatus(status), booking_id, NOW)

    async def list_room_live_statuses(self):
        self._check('list_room_live_statuses')
        return dict(self.live_statuses)

    async def create_change_request(self, request):
        self._check('create_change_request', request.id)
        self.change_requests[request.id] = request
        return request

    async def update_change_request(self, request_id, changes):
        self._check('update_change_request', request_id)
        self.change_requests[request_id] = dataclasses.replace(self.change_requests[request_id], **changes)

    async def list_change_requests(self):
        self._check('list_change_requests')
        return list(self.change_requests.values())

    async def get_priority_schedule(self):
        self._check('get_priority_schedule')
        return dict(self.schedule)

    async def set_priority_cell(self, department_id, weekday, label):
        self._check('set_priority_cell')
        if label:
            self.schedule[(department_id, weekday)] = label
        else:
            self.schedule.pop((department_id, weekday), None)


class BatchInMemoryPersistence(InMemoryPersistence):
    """Adds the all-or-nothing batch update"""

    async def update_bookings(self, changes):
        self._check('update_bookings')
        for booking_id in changes:
            if booking_id in self.failing_ids:
                raise PersistenceFailure(f"update_bookings failed at {booking_id}")
        for booking_id, booking_changes in changes.items():
            self.bookings[booking_id] = dataclasses.replace(self.bookings[booking_id], **booking_changes)


class RecordingNotifier:
    def __init__(self):
        self.sent = []
        self.fail = False

    async def notify(self, kind, audience, payload):
        if self.fail:
            raise RuntimeError("notifier is down")
        self.sent.append((kind, audience, payload))

    def kinds(self):
        return [kind for kind, _, _ in self.sent]


class RecordingAudit:
    def __init__(self):
        self.records: List[Dict[str, Any]] = []
        self.fail = False

    async def record(self, actor_id, action, entity_type, entity_id=None,
                     old_values=None, new_values=None):
        if self.fail:
            raise RuntimeError("audit store is down")
        self.records.append({
            'actor_id': actor_id,
            'action': action,
            'entity_type': entity_type,
            'entity_id': entity_id,
            'old_values': old_values,
            'new_values': new_values,
        })

    def actions(self):
        return [record['action'] for record in self.records]


@pytest.fixture
def now():
    return NOW


@pytest.fixture
def tomorrow() -> date:
    return NOW.date() + timedelta(days=1)


@pytest.fixture
def rooms():
    return [
        Room(id='or-1', name='OR 1', number=1, designation='General Surgery Priority'),
        Room(id='or-2', name='OR 2', number=2, designation='OB-GYNE Priority'),
        Room(id='or-4', name='OR 4', number=4, designation='ENT / Ophtha Priority'),
    ]


@pytest.fixture
def admin():
    return User(id='admin-1', full_name='Dr. Admin', role=UserRole.ANESTHESIOLOGY_ADMIN,
                department_id='ANES', telegram_id=1001)


@pytest.fixture
def gs_user():
    return User(id='u-gs', full_name='Dr. Surgeon', role=UserRole.DEPARTMENT_USER,
                department_id='GS', telegram_id=2001)


@pytest.fixture
def ortho_user():
    return User(id='u-ortho', full_name='Dr. Bones', role=UserRole.DEPARTMENT_USER,
                department_id='ORTHO', telegram_id=3001)


@pytest.fixture
def nurse():
    return User(id='u-nurse', full_name='Nurse Joy', role=UserRole.NURSE, telegram_id=4001)


@pytest.fixture
def make_booking(tomorrow):
    """Factory for bookings; any field can be overridden"""
    def _make(**overrides) -> Booking:
        values = dict(
            id='b-1',
            room_id='or-1',
            department_id='GS',
            date=tomorrow,
            start_time=time(8, 0),
            end_time=time(10, 0),
            patient_name='Juan Dela Cruz',
            procedure='Appendectomy',
            surgeon='Dr. Cruz',
            created_by='u-gs',
        )
        values.update(overrides)
        return Booking(**values)
    return _make


@pytest.fixture
def persistence(rooms):
    return InMemoryPersistence(rooms)


@pytest.fixture
def batch_persistence(rooms):
    return BatchInMemoryPersistence(rooms)


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def audit():
    return RecordingAudit()


@pytest.fixture
def make_service(notifier, audit):
    """Service over the given persistence, with the clock fixed at NOW"""
    def _make(persistence_port) -> SchedulingService:
        service = SchedulingService(persistence_port, notifier, audit, clock=lambda: NOW)
        service.state.rooms = dict(persistence_port.rooms)
        return service
    return _make


@pytest.fixture
def service(make_service, persistence):
    return make_service(persistence)


@pytest.fixture
def seed():
    """Put bookings into both the system of record and the service state"""
    def _seed(target: SchedulingService, *bookings: Booking):
        for booking in bookings:
            target.persistence.bookings[booking.id] = booking
            target.state.put_booking(booking)
    return _seed


@pytest.fixture
def db(tmp_path, monkeypatch):
    """Fresh SQLite database in a temp directory"""
    monkeypatch.setattr(settings, 'DB_PATH', str(tmp_path / 'data' / 'test.db'))
    init_db()
    return settings.DB_PATH
