"""
Department priority schedule lookups
"""
from datetime import date

import pytest

from database.models import Room
from scheduling.priority import PriorityLookup, designation_departments
from utils.time_utils import weekday_name


def test_lookup_by_name_index_and_date():
    lookup = PriorityLookup()
    assert lookup.get_priority('GS', 'Monday') == 'Dr. Littaua, Dr. Taplac'
    assert lookup.get_priority('URO', 4) == 'PRIORITY NON-OPEN (ENDOSCOPY)'
    assert lookup.get_priority('ORTHO', date(2026, 10, 13)) == 'PRIORITY'
    assert lookup.get_priority('ORTHO', 'Wednesday') is None


def test_priorities_for_day_follow_department_order():
    infos = PriorityLookup().priorities_for_day('Wednesday')
    assert [info.department_id for info in infos] == ['GS', 'URO', 'TCVS', 'NEURO', 'PLASTICS']
    assert infos[0].department_name == 'General Surgery'


def test_room_priorities_come_from_designation():
    room = Room(id='or-4', name='OR 4', number=4, designation='ENT / Ophtha Priority')
    infos = PriorityLookup().room_priorities(room, 'Tuesday')
    assert [info.department_id for info in infos] == ['ENT', 'OPHTHA']


def test_designation_without_keyword_has_no_departments():
    assert designation_departments('Multi-specialty') == []


def test_with_cell_returns_a_copy():
    lookup = PriorityLookup()
    updated = lookup.with_cell('ENT', 'Monday', 'PRIORITY')
    assert updated.get_priority('ENT', 'Monday') == 'PRIORITY'
    assert lookup.get_priority('ENT', 'Monday') is None

    cleared = updated.with_cell('GS', 'Monday', '')
    assert cleared.get_priority('GS', 'Monday') is None
    assert ('GS', 'Monday') in updated.as_dict()


def test_custom_schedule_replaces_defaults():
    lookup = PriorityLookup({('PEDIA', 'Friday'): 'PRIORITY'})
    assert lookup.get_priority('PEDIA', 'Friday') == 'PRIORITY'
    assert lookup.get_priority('GS', 'Monday') is None


def test_unknown_weekday_name_is_rejected():
    with pytest.raises(ValueError):
        weekday_name('Someday')
