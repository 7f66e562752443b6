"""
Emergency bump planning
"""
from datetime import time

import pytest

from database.models import BookingStatus, Emergency
from scheduling import emergency as emergency_engine
from scheduling.errors import RoomConflict


@pytest.fixture
def emergency_case(make_booking):
    return make_booking(
        id='em-1', start_time=time(9, 0), end_time=time(10, 30),
        procedure='Exploratory laparotomy', patient_name='Maria Santos',
        emergency=Emergency('Ruptured appendix'), created_by='admin-1'
    )


@pytest.fixture
def day_bookings(make_booking):
    return [
        make_booking(id='b-c', start_time=time(13), end_time=time(14), status=BookingStatus.APPROVED),
        make_booking(id='b-a', start_time=time(8), end_time=time(10), status=BookingStatus.APPROVED),
        make_booking(id='b-b', start_time=time(10), end_time=time(12)),
        make_booking(id='b-early', start_time=time(7), end_time=time(8, 30)),
        make_booking(id='b-other-room', room_id='or-2', start_time=time(9), end_time=time(11)),
        make_booking(id='b-cancelled', start_time=time(11), end_time=time(12),
                     status=BookingStatus.CANCELLED),
    ]


def test_bump_set_covers_overlapping_and_later_cases(emergency_case, day_bookings):
    bump_set = emergency_engine.compute_bump_set(emergency_case, day_bookings)
    assert [b.id for b in bump_set] == ['b-a', 'b-b', 'b-c']


def test_earlier_case_without_overlap_is_kept(emergency_case, make_booking):
    earlier = make_booking(id='b-early', start_time=time(7), end_time=time(9))
    assert emergency_engine.compute_bump_set(emergency_case, [earlier]) == []


def test_finished_cases_are_not_bumped(emergency_case, make_booking):
    done = make_booking(id='b-done', start_time=time(9), end_time=time(10),
                        status=BookingStatus.COMPLETED)
    assert emergency_engine.compute_bump_set(emergency_case, [done]) == []


def test_plan_requires_confirmation_only_when_bumping(emergency_case, day_bookings):
    plan = emergency_engine.plan_emergency(emergency_case, day_bookings)
    assert plan.requires_confirmation
    assert plan.bumped_ids == ['b-a', 'b-b', 'b-c']

    empty_plan = emergency_engine.plan_emergency(emergency_case, [])
    assert not empty_plan.requires_confirmation


def test_ongoing_case_blocks_the_emergency(emergency_case, make_booking):
    ongoing = make_booking(id='b-live', start_time=time(8), end_time=time(9, 30),
                           status=BookingStatus.ONGOING)
    with pytest.raises(RoomConflict):
        emergency_engine.plan_emergency(emergency_case, [ongoing])


def test_displaced_versions_are_rescheduled_with_note(emergency_case, day_bookings, now):
    plan = emergency_engine.plan_emergency(emergency_case, day_bookings)
    displaced = emergency_engine.displaced_versions(plan, now)

    assert [b.id for b in displaced] == plan.bumped_ids
    assert all(b.status == BookingStatus.RESCHEDULED for b in displaced)
    assert displaced[0].notes == (
        "Bumped by emergency case: Exploratory laparotomy (Maria Santos). "
        "Reason: Ruptured appendix"
    )
    assert all(b.status != BookingStatus.RESCHEDULED for b in plan.bump_set)


def test_same_bump_set_compares_ids_and_status(emergency_case, day_bookings, make_booking):
    first = emergency_engine.plan_emergency(emergency_case, day_bookings)
    second = emergency_engine.plan_emergency(emergency_case, list(reversed(day_bookings)))
    assert emergency_engine.same_bump_set(first, second)

    extra = make_booking(id='b-late', start_time=time(15), end_time=time(16))
    third = emergency_engine.plan_emergency(emergency_case, day_bookings + [extra])
    assert not emergency_engine.same_bump_set(first, third)


def test_completed_case_in_the_way_blocks_the_emergency(emergency_case, make_booking):
    done = make_booking(id='b-done', start_time=time(8), end_time=time(10),
                        status=BookingStatus.COMPLETED)
    later = make_booking(id='b-later', start_time=time(10, 30), end_time=time(11),
                         status=BookingStatus.APPROVED)
    with pytest.raises(RoomConflict) as exc_info:
        emergency_engine.plan_emergency(emergency_case, [later, done])
    assert exc_info.value.booking.id == 'b-done'


def test_completed_case_before_the_emergency_is_fine(emergency_case, make_booking):
    done = make_booking(id='b-done', start_time=time(7), end_time=time(9),
                        status=BookingStatus.COMPLETED)
    plan = emergency_engine.plan_emergency(emergency_case, [done])
    assert plan.bump_set == []
