"""
Booking status transitions and administrator edits
"""
from datetime import time, timedelta

import pytest

from database.models import BookingStatus, Denial
from scheduling import status as booking_status
from scheduling.errors import InvalidTimeRange, InvalidTransition, RoomConflict, ValidationError


class TestTransitions:

    def test_approve_sets_approval_and_leaves_original(self, make_booking, admin, now):
        booking = make_booking()
        approved = booking_status.approve(booking, admin, now)

        assert approved.status == BookingStatus.APPROVED
        assert approved.approved_by == admin.id
        assert approved.approval.approved_at == now
        assert booking.status == BookingStatus.PENDING
        assert booking.approval is None

    def test_only_admins_approve(self, make_booking, gs_user, now):
        with pytest.raises(InvalidTransition):
            booking_status.approve(make_booking(), gs_user, now)

    def test_approve_twice_is_rejected(self, make_booking, admin, now):
        approved = booking_status.approve(make_booking(), admin, now)
        with pytest.raises(InvalidTransition):
            booking_status.approve(approved, admin, now)

    def test_deny_records_reason(self, make_booking, admin, now):
        denied = booking_status.deny(make_booking(), admin, '  Surgeon unavailable ', now)
        assert denied.status == BookingStatus.DENIED
        assert denied.denial_reason == 'Surgeon unavailable'
        assert denied.denial.denied_by == admin.id

    def test_deny_requires_reason(self, make_booking, admin, now):
        with pytest.raises(InvalidTransition):
            booking_status.deny(make_booking(), admin, '   ', now)

    def test_start_and_complete(self, make_booking, now):
        ongoing = booking_status.start(make_booking(status=BookingStatus.APPROVED), now)
        assert ongoing.status == BookingStatus.ONGOING
        assert ongoing.started_at == now

        completed = booking_status.complete(ongoing, now + timedelta(hours=2), 120)
        assert completed.status == BookingStatus.COMPLETED
        assert completed.actual_duration_minutes == 120

    def test_pending_cannot_start(self, make_booking, now):
        with pytest.raises(InvalidTransition):
            booking_status.start(make_booking(), now)

    def test_cancel_from_approved_appends_note(self, make_booking, now):
        booking = make_booking(status=BookingStatus.APPROVED, notes='Bring C-arm')
        cancelled = booking_status.cancel(booking, now, note='Patient not fit')
        assert cancelled.status == BookingStatus.CANCELLED
        assert cancelled.notes == 'Bring C-arm\nPatient not fit'

    @pytest.mark.parametrize('status', [BookingStatus.PENDING, BookingStatus.COMPLETED])
    def test_cancel_is_rejected_outside_approved_or_ongoing(self, make_booking, now, status):
        with pytest.raises(InvalidTransition):
            booking_status.cancel(make_booking(status=status), now)

    def test_reschedule_from_pending_and_approved(self, make_booking, now):
        for status in (BookingStatus.PENDING, BookingStatus.APPROVED):
            rescheduled = booking_status.reschedule(make_booking(status=status), 'Bumped', now)
            assert rescheduled.status == BookingStatus.RESCHEDULED
            assert rescheduled.notes == 'Bumped'

    def test_terminal_states_have_no_transitions(self):
        for status in (BookingStatus.DENIED, BookingStatus.CANCELLED,
                       BookingStatus.COMPLETED, BookingStatus.RESCHEDULED):
            assert all(not booking_status.can_transition(status, target) for target in BookingStatus)

    def test_denial_requires_denied_status(self, make_booking, now):
        with pytest.raises(ValidationError):
            make_booking(status=BookingStatus.APPROVED, denial=Denial('x', 'admin-1', now))


class TestEdit:

    def test_admin_edits_content(self, make_booking, admin, now):
        booking = make_booking(status=BookingStatus.APPROVED)
        edited = booking_status.edit(booking, {'surgeon': 'Dr. Ong'}, admin, [booking], now)
        assert edited.surgeon == 'Dr. Ong'
        assert edited.status == BookingStatus.APPROVED
        assert edited.updated_at == now

    def test_non_admin_cannot_edit(self, make_booking, gs_user, now):
        booking = make_booking()
        with pytest.raises(InvalidTransition):
            booking_status.edit(booking, {'surgeon': 'Dr. Ong'}, gs_user, [booking], now)

    def test_terminal_booking_cannot_be_edited(self, make_booking, admin, now):
        booking = make_booking(status=BookingStatus.COMPLETED)
        with pytest.raises(InvalidTransition):
            booking_status.edit(booking, {'notes': 'late'}, admin, [booking], now)

    def test_unknown_fields_are_rejected(self, make_booking, admin, now):
        booking = make_booking()
        with pytest.raises(ValidationError):
            booking_status.edit(booking, {'status': 'approved'}, admin, [booking], now)

    def test_inverted_time_range_is_rejected(self, make_booking, admin, now):
        booking = make_booking()
        with pytest.raises(InvalidTimeRange):
            booking_status.edit(booking, {'end_time': time(7, 0)}, admin, [booking], now)

    def test_moving_into_an_occupied_slot_conflicts(self, make_booking, admin, now):
        booking = make_booking(id='b-1')
        other = make_booking(id='b-2', start_time=time(11), end_time=time(12))
        with pytest.raises(RoomConflict):
            booking_status.edit(
                booking, {'start_time': time(10), 'end_time': time(11, 30)}, admin, [booking, other], now
            )

    def test_diff_reports_changed_fields(self, make_booking, admin, now):
        booking = make_booking()
        edited = booking_status.edit(
            booking, {'surgeon': 'Dr. Ong', 'start_time': time(8, 30), 'ward': ''}, admin, [booking], now
        )
        values = booking_status.diff(booking, edited, ['surgeon', 'start_time', 'ward'])
        assert values['old'] == {'surgeon': 'Dr. Cruz', 'start_time': '08:00:00'}
        assert values['new'] == {'surgeon': 'Dr. Ong', 'start_time': '08:30:00'}
