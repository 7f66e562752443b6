"""
Scheduling service: the actions invoked by the presentation layer.

Every action validates first, then writes through the persistence port
inside ScheduleState.optimistic, then emits notifications and audit
records. Notification and audit failures are logged and never reach the
caller.
"""
import dataclasses
import logging
from datetime import date, datetime, time, timedelta
from typing import Any, Callable, Dict, List, Optional, Set

from config import settings
from database.models import (
    Approval, Booking, BookingStatus, ChangeRequest, ChangeRequestStatus,
    RoomLiveStatus, RoomStatus, User
)
from scheduling import emergency as emergency_engine
from scheduling import live_status
from scheduling import status as booking_status
from scheduling.conflicts import ensure_no_conflicts
from scheduling.errors import (
    ConfirmationRequired, InvalidTimeRange, InvalidTransition, MissingField,
    PartialBumpFailure, PermissionDenied, PersistenceFailure, ValidationError
)
from scheduling.ports import (
    Audience, AuditPort, NotificationKind, NotificationPort, PersistencePort
)
from scheduling.state import ScheduleState, booking_changes, new_id
from scheduling.time_policy import ensure_modification_allowed, ensure_submission_allowed
from scheduling.validation import validate_booking, validate_emergency
from utils.time_utils import weekday_name

logger = logging.getLogger(__name__)


def booking_payload(booking: Booking) -> Dict[str, Any]:
    """Notification payload describing a booking"""
    return {
        'booking_id': booking.id,
        'room_id': booking.room_id,
        'department_id': booking.department_id,
        'date': booking.date.isoformat(),
        'start_time': booking.start_time.strftime('%H:%M'),
        'end_time': booking.end_time.strftime('%H:%M'),
        'patient_name': booking.patient_name,
        'procedure': booking.procedure,
        'status': booking.status.value,
    }


def booking_summary(booking: Booking) -> Dict[str, Any]:
    """Values stored with booking audit records"""
    summary = booking_payload(booking)
    summary.pop('booking_id')
    if booking.is_emergency:
        summary['emergency_reason'] = booking.emergency_reason
    return summary


class SchedulingService:
    """Entry point for booking, emergency and live-status actions"""

    def __init__(self, persistence: PersistencePort, notifier: NotificationPort,
                 audit: AuditPort, state: Optional[ScheduleState] = None,
                 clock: Optional[Callable[[], datetime]] = None):
        self.persistence = persistence
        self.notifier = notifier
        self.audit = audit
        self.state = state if state is not None else ScheduleState()
        self.clock = clock or datetime.now
        self._sent_reminders: Set[str] = set()
        self._sent_purge_warnings: Set[str] = set()

    async def load(self):
        await self.state.load(self.persistence)

    # ── Emission ──

    async def _notify(self, kind: NotificationKind, audience: Audience, payload: Dict[str, Any]):
        try:
            await self.notifier.notify(kind, audience, payload)
        except Exception as e:
            logger.error(f"Failed to send {kind.value} notification: {e}", exc_info=True)

    async def _audit(self, actor_id: str, action: str, entity_type: str,
                     entity_id: Optional[str] = None,
                     old_values: Optional[Dict[str, Any]] = None,
                     new_values: Optional[Dict[str, Any]] = None):
        try:
            await self.audit.record(actor_id, action, entity_type, entity_id, old_values, new_values)
        except Exception as e:
            logger.error(f"Failed to record audit '{action}' for {entity_id}: {e}", exc_info=True)

    # ── Writes ──

    async def _write_booking(self, before: Booking, after: Booking):
        changes = booking_changes(before, after)
        async with self.state.optimistic(self.persistence):
            self.state.put_booking(after)
            await self.persistence.update_booking(after.id, changes)

    async def _create_booking(self, booking: Booking) -> Booking:
        async with self.state.optimistic(self.persistence):
            self.state.put_booking(booking)
            stored = await self.persistence.create_booking(booking)
        return stored or booking

    async def _write_displacements(self, before: List[Booking], after: List[Booking]):
        """Reschedule bumped cases, all-or-nothing when the port supports batches"""
        batch = getattr(self.persistence, 'update_bookings', None)
        if batch is not None:
            changes = {new.id: booking_changes(old, new) for old, new in zip(before, after)}
            async with self.state.optimistic(self.persistence):
                for new in after:
                    self.state.put_booking(new)
                await batch(changes)
            return

        displaced_ids: List[str] = []
        for old, new in zip(before, after):
            try:
                await self._write_booking(old, new)
            except PersistenceFailure as e:
                logger.error(f"Bump stopped at booking {new.id}; already rescheduled: {displaced_ids}")
                raise PartialBumpFailure(displaced_ids, new.id) from e
            displaced_ids.append(new.id)

    # ── Elective bookings ──

    async def submit_booking(self, draft: Booking, actor: User) -> Booking:
        """Submit an elective case; it enters the approval queue as pending"""
        now = self.clock()
        if draft.is_emergency:
            raise ValidationError("Emergency cases are inserted with plan_emergency/commit_emergency")
        if not actor.is_admin and draft.department_id != actor.department_id:
            raise PermissionDenied("You can only book for your own department")

        booking = dataclasses.replace(
            draft,
            id=draft.id or new_id(),
            created_by=draft.created_by or actor.id,
            status=BookingStatus.PENDING,
            approval=None,
            denial=None,
            created_at=now,
            updated_at=now
        )
        validate_booking(booking)
        ensure_submission_allowed(booking.date, actor, now)
        ensure_no_conflicts(booking, self.state.bookings.values())

        booking = await self._create_booking(booking)
        logger.info(f"Booking {booking.id} submitted by {actor.id} for room {booking.room_id} on {booking.date}")

        payload = booking_payload(booking)
        await self._notify(NotificationKind.NEW_REQUEST, Audience.admins(), payload)
        await self._notify(
            NotificationKind.BOOKING_CONFIRMATION, Audience(user_ids=(booking.created_by,)), payload
        )
        if actor.is_admin and actor.department_id != booking.department_id:
            await self._notify(
                NotificationKind.DELEGATED_BOOKING,
                Audience(departments=(booking.department_id,)),
                dict(payload, actor_name=actor.full_name)
            )
        await self._audit(actor.id, 'booking.create', 'booking', booking.id, None, booking_summary(booking))
        return booking

    async def approve_booking(self, booking_id: str, actor: User) -> Booking:
        booking = self.state.get_booking(booking_id)
        approved = booking_status.approve(booking, actor, self.clock())
        await self._write_booking(booking, approved)
        logger.info(f"Booking {booking_id} approved by {actor.id}")

        await self._notify(
            NotificationKind.APPROVAL,
            Audience.creator_and_department(approved),
            dict(booking_payload(approved), actor_name=actor.full_name)
        )
        await self._audit(
            actor.id, 'booking.approve', 'booking', booking_id,
            {'status': booking.status.value}, {'status': approved.status.value}
        )
        return approved

    async def deny_booking(self, booking_id: str, actor: User, reason: str) -> Booking:
        booking = self.state.get_booking(booking_id)
        denied = booking_status.deny(booking, actor, reason, self.clock())
        await self._write_booking(booking, denied)
        logger.info(f"Booking {booking_id} denied by {actor.id}")

        await self._notify(
            NotificationKind.DENIAL,
            Audience.creator_and_department(denied),
            dict(booking_payload(denied), actor_name=actor.full_name, reason=denied.denial_reason)
        )
        await self._audit(
            actor.id, 'booking.deny', 'booking', booking_id,
            {'status': booking.status.value},
            {'status': denied.status.value, 'denial_reason': denied.denial_reason}
        )
        return denied

    async def cancel_booking(self, booking_id: str, actor: User, reason: str = '') -> Booking:
        """Explicit cancellation by an administrator, the creator or the owning department"""
        booking = self.state.get_booking(booking_id)
        owns = actor.id == booking.created_by or (
            actor.department_id is not None and actor.department_id == booking.department_id
        )
        if not actor.is_admin and not owns:
            raise PermissionDenied("Only administrators or the owning department can cancel this booking")

        note = f"Cancelled by {actor.full_name}" + (f": {reason}" if reason else '')
        cancelled = booking_status.cancel(booking, self.clock(), note=note)
        await self._write_booking(booking, cancelled)
        logger.info(f"Booking {booking_id} cancelled by {actor.id}")

        await self._notify_cancelled(cancelled, actor)
        await self._audit(
            actor.id, 'booking.cancel', 'booking', booking_id,
            {'status': booking.status.value}, {'status': cancelled.status.value}
        )
        return cancelled

    async def _notify_cancelled(self, booking: Booking, actor: User):
        await self._notify(
            NotificationKind.BOOKING_CANCELLED,
            Audience.creator_and_department(booking).including(Audience.admins()),
            dict(booking_payload(booking), actor_name=actor.full_name)
        )

    async def edit_booking(self, booking_id: str, changes: Dict[str, Any], actor: User) -> Booking:
        """Administrator content edit; slot changes are re-checked for conflicts"""
        booking = self.state.get_booking(booking_id)
        edited = booking_status.edit(booking, changes, actor, self.state.bookings.values(), self.clock())
        await self._write_booking(booking, edited)
        logger.info(f"Booking {booking_id} edited by {actor.id}: {sorted(changes)}")

        await self._notify(
            NotificationKind.BOOKING_EDITED,
            Audience.creator_and_department(edited),
            dict(booking_payload(edited), actor_name=actor.full_name)
        )
        values = booking_status.diff(booking, edited, changes.keys())
        await self._audit(actor.id, 'booking.update', 'booking', booking_id, values['old'], values['new'])
        return edited

    # ── Emergency insertion ──

    async def plan_emergency(self, draft: Booking, actor: User) -> emergency_engine.EmergencyPlan:
        """Phase one: validate the emergency case and preview the cases it bumps"""
        if not actor.is_admin:
            raise PermissionDenied("Only administrators can insert emergency cases")

        now = self.clock()
        emergency = dataclasses.replace(
            draft,
            id=draft.id or new_id(),
            created_by=draft.created_by or actor.id,
            status=BookingStatus.APPROVED,
            approval=Approval(approved_by=actor.id, approved_at=now),
            denial=None,
            created_at=now,
            updated_at=now
        )
        validate_emergency(emergency)
        return emergency_engine.plan_emergency(emergency, self.state.bookings.values())

    async def commit_emergency(self, plan: emergency_engine.EmergencyPlan, actor: User,
                               confirmed: bool = False) -> Booking:
        """
        Phase two: bump the planned cases and create the emergency booking.

        The bump set is recomputed first. If it differs from the previewed one,
        or bumping was not confirmed, ConfirmationRequired carries the fresh plan.
        """
        if not actor.is_admin:
            raise PermissionDenied("Only administrators can insert emergency cases")

        current = emergency_engine.plan_emergency(plan.emergency, self.state.bookings.values())
        if not emergency_engine.same_bump_set(plan, current):
            raise ConfirmationRequired(current)
        if current.requires_confirmation and not confirmed:
            raise ConfirmationRequired(current)

        now = self.clock()
        displaced = emergency_engine.displaced_versions(current, now)
        await self._write_displacements(current.bump_set, displaced)

        for old, new in zip(current.bump_set, displaced):
            await self._audit(
                actor.id, 'booking.bump', 'booking', new.id,
                {'status': old.status.value}, {'status': new.status.value, 'notes': new.notes}
            )

        emergency = await self._create_booking(dataclasses.replace(current.emergency, updated_at=now))
        logger.warning(
            f"Emergency case {emergency.id} inserted into room {emergency.room_id} on {emergency.date}; "
            f"bumped: {current.bumped_ids}"
        )

        payload = dict(
            booking_payload(emergency),
            actor_name=actor.full_name,
            reason=emergency.emergency_reason
        )
        await self._notify(NotificationKind.EMERGENCY_ALERT, Audience.everyone(), payload)
        for bumped in displaced:
            await self._notify(
                NotificationKind.BOOKING_BUMPED,
                Audience.creator_and_department(bumped).including(Audience.admins()),
                dict(
                    booking_payload(bumped),
                    emergency_procedure=emergency.procedure,
                    emergency_patient=emergency.patient_name
                )
            )
        await self._audit(
            actor.id, 'booking.emergency_insert', 'booking', emergency.id, None,
            dict(booking_summary(emergency), bumped_booking_ids=current.bumped_ids)
        )
        return emergency

    # ── Room live status ──

    def room_status(self, room_id: str, today: Optional[date] = None) -> RoomStatus:
        today = today or self.clock().date()
        return live_status.current_status(
            room_id, self.state.live_statuses, self.state.bookings.values(), today
        )

    async def change_room_status(self, room_id: str, target: RoomStatus,
                                 actor: User) -> live_status.RoomStatusChange:
        """Move a room to a new live status and cascade onto its bookings"""
        if not actor.is_admin:
            raise PermissionDenied("Only administrators can change room status")

        room = self.state.get_room(room_id)
        now = self.clock()
        today = now.date()
        previous = self.room_status(room_id, today)
        change = live_status.plan_room_status_change(
            room_id, previous, RoomStatus(target), self.state.bookings.values(), today, now
        )

        writes = [(self.state.bookings[b.id], b) for b in change.booking_updates]
        async with self.state.optimistic(self.persistence):
            for old, new in writes:
                self.state.put_booking(new)
                await self.persistence.update_booking(new.id, booking_changes(old, new))
            self.state.live_statuses[room_id] = RoomLiveStatus(
                room_id=room_id,
                status=change.status,
                current_booking_id=change.current_booking_id,
                updated_at=now
            )
            await self.persistence.upsert_room_live_status(
                room_id, change.status, change.current_booking_id
            )
        logger.info(f"Room {room.name}: {previous.value} -> {change.status.value} by {actor.id}")

        for old, new in writes:
            await self._audit(
                actor.id, 'booking.status_change', 'booking', new.id,
                {'status': old.status.value}, {'status': new.status.value}
            )
        if change.cancelled is not None:
            await self._notify_cancelled(change.cancelled, actor)
        if change.should_notify:
            await self._notify(
                NotificationKind.ROOM_STATUS_CHANGED,
                Audience.admins_and_nurses(),
                {
                    'room_id': room_id,
                    'room_name': room.name,
                    'previous': previous.value,
                    'status': change.status.value,
                    'booking_id': change.current_booking_id,
                    'actor_name': actor.full_name,
                }
            )
        await self._audit(
            actor.id, 'room.status_change', 'or_room', room_id,
            {'status': previous.value, 'room_name': room.name},
            {'status': change.status.value}
        )
        return change

    def room_board(self, today: Optional[date] = None) -> List[live_status.RoomBoardEntry]:
        """Live board: every active room with its status, featured case and queue"""
        today = today or self.clock().date()
        bookings = list(self.state.bookings.values())
        entries = []
        rooms = sorted(self.state.rooms.values(), key=lambda r: (r.number, r.name))
        for room in rooms:
            if not room.is_active:
                continue
            status = live_status.current_status(room.id, self.state.live_statuses, bookings, today)
            record = self.state.live_statuses.get(room.id)
            featured = live_status.featured_case(
                room.id, status, record.current_booking_id if record else None, bookings, today
            )
            entries.append(live_status.RoomBoardEntry(
                room_id=room.id,
                status=status,
                featured=featured,
                queue=live_status.todays_bookings(room.id, bookings, today),
            ))
        return entries

    # ── Schedule change requests ──

    async def submit_change_request(self, booking_id: str, new_date: date, new_start: time,
                                    new_end: time, reason: str, actor: User,
                                    additional_info: str = '') -> ChangeRequest:
        """Ask administrators to move a booking to a new slot"""
        booking = self.state.get_booking(booking_id)
        if not actor.is_admin and actor.department_id != booking.department_id:
            raise PermissionDenied("Only the owning department can request a schedule change")
        if booking_status.is_terminal(booking) or booking.status == BookingStatus.ONGOING:
            raise InvalidTransition(booking.status, booking.status, "booking can no longer be changed")
        if not reason or not reason.strip():
            raise MissingField(['reason'])
        if new_start >= new_end:
            raise InvalidTimeRange()

        now = self.clock()
        ensure_modification_allowed(booking, actor, now)

        request = ChangeRequest(
            id=new_id(),
            booking_id=booking.id,
            department_id=booking.department_id,
            new_date=new_date,
            new_start_time=new_start,
            new_end_time=new_end,
            reason=reason.strip(),
            requested_by=actor.id,
            additional_info=additional_info,
            created_at=now
        )
        async with self.state.optimistic(self.persistence):
            self.state.change_requests[request.id] = request
            await self.persistence.create_change_request(request)

        await self._notify(
            NotificationKind.CHANGE_REQUEST_SUBMITTED,
            Audience.admins(),
            dict(
                booking_payload(booking),
                actor_name=actor.full_name,
                reason=request.reason,
                new_date=new_date.isoformat(),
                new_start_time=new_start.strftime('%H:%M')
            )
        )
        await self._audit(
            actor.id, 'change_request.submit', 'booking', booking.id, None,
            {
                'request_id': request.id,
                'new_date': new_date.isoformat(),
                'new_start_time': new_start.strftime('%H:%M'),
                'new_end_time': new_end.strftime('%H:%M'),
                'reason': request.reason,
            }
        )
        return request

    async def review_change_request(self, request_id: str, approve: bool, actor: User,
                                    note: str = '') -> ChangeRequest:
        """Approve (moving the booking) or deny a pending change request"""
        if not actor.is_admin:
            raise PermissionDenied("Only administrators can review change requests")

        request = self.state.get_change_request(request_id)
        target = ChangeRequestStatus.APPROVED if approve else ChangeRequestStatus.DENIED
        if request.status != ChangeRequestStatus.PENDING:
            raise InvalidTransition(request.status, target)
        if not approve and not note.strip():
            raise MissingField(['review_note'])

        now = self.clock()
        booking = self.state.get_booking(request.booking_id)
        moved = None
        if approve:
            moved = booking_status.edit(
                booking,
                {
                    'date': request.new_date,
                    'start_time': request.new_start_time,
                    'end_time': request.new_end_time,
                },
                actor, self.state.bookings.values(), now
            )

        reviewed = dataclasses.replace(request, status=target, reviewed_by=actor.id, review_note=note)
        async with self.state.optimistic(self.persistence):
            if moved is not None:
                self.state.put_booking(moved)
                await self.persistence.update_booking(moved.id, booking_changes(booking, moved))
            self.state.change_requests[request.id] = reviewed
            await self.persistence.update_change_request(
                request.id,
                {'status': target, 'reviewed_by': actor.id, 'review_note': note}
            )

        kind = (NotificationKind.CHANGE_REQUEST_APPROVED if approve
                else NotificationKind.CHANGE_REQUEST_DENIED)
        target_booking = moved or booking
        await self._notify(
            kind,
            Audience(user_ids=(request.requested_by,), departments=(booking.department_id,)),
            dict(booking_payload(target_booking), actor_name=actor.full_name, reason=note)
        )
        await self._audit(
            actor.id, f"change_request.{target.value}", 'booking', booking.id,
            {'request_id': request.id}, {'decision': target.value, 'reason': note}
        )
        return reviewed

    # ── Priority schedule ──

    def get_priority(self, department_id: str, weekday) -> Optional[str]:
        return self.state.priorities.get_priority(department_id, weekday)

    async def update_priority(self, department_id: str, weekday, label: Optional[str], actor: User):
        if not actor.is_admin:
            raise PermissionDenied("Only administrators can edit the priority schedule")

        day = weekday_name(weekday)
        previous = self.state.priorities.get_priority(department_id, day)
        async with self.state.optimistic(self.persistence):
            self.state.priorities = self.state.priorities.with_cell(department_id, day, label)
            await self.persistence.set_priority_cell(department_id, day, label or None)

        await self._audit(
            actor.id, 'priority_schedule.update', 'or_priority_schedule', None,
            {'department_id': department_id, 'weekday': day, 'label': previous},
            {'department_id': department_id, 'weekday': day, 'label': label or None}
        )

    # ── Periodic notifications ──

    async def send_reminders(self) -> int:
        """24-hour and 2-hour reminders for approved cases; each is sent once"""
        now = self.clock()
        sent = 0
        for booking in list(self.state.bookings.values()):
            if booking.status != BookingStatus.APPROVED:
                continue
            hours_until = (booking.starts_at - now).total_seconds() / 3600
            if hours_until < 0:
                continue

            if 23 < hours_until <= 24 and f"24h-{booking.id}" not in self._sent_reminders:
                await self._notify(
                    NotificationKind.REMINDER_24H,
                    Audience.creator_and_department(booking),
                    booking_payload(booking)
                )
                self._sent_reminders.add(f"24h-{booking.id}")
                sent += 1

            if 1 < hours_until <= 2 and f"2h-{booking.id}" not in self._sent_reminders:
                await self._notify(
                    NotificationKind.REMINDER_2H,
                    Audience.creator_and_department(booking).including(Audience.admins_and_nurses()),
                    booking_payload(booking)
                )
                self._sent_reminders.add(f"2h-{booking.id}")
                sent += 1
        return sent

    async def send_purge_warnings(self) -> int:
        """Warn administrators about finished cases nearing the retention limit"""
        now = self.clock()
        retention = timedelta(days=settings.RETENTION_DAYS)
        warning_window = timedelta(hours=settings.PURGE_WARNING_HOURS)
        sent = 0
        for booking in list(self.state.bookings.values()):
            if booking.status not in (BookingStatus.COMPLETED, BookingStatus.CANCELLED):
                continue
            if booking.updated_at is None or booking.id in self._sent_purge_warnings:
                continue

            until_purge = booking.updated_at + retention - now
            if timedelta(0) < until_purge <= warning_window:
                await self._notify(
                    NotificationKind.PURGE_WARNING,
                    Audience.admins(),
                    dict(booking_payload(booking), hours_left=round(until_purge.total_seconds() / 3600))
                )
                self._sent_purge_warnings.add(booking.id)
                sent += 1
        return sent
