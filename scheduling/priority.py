"""
OR priority schedule: which department has priority on which weekday.

Display and planning only. Conflict detection and emergency bumping never
consult it.
"""
from dataclasses import dataclass
from datetime import date
from typing import Dict, List, Optional, Tuple, Union

from database.models import DEPARTMENTS, Room
from utils.time_utils import weekday_name

Weekday = Union[date, int, str]

DEFAULT_PRIORITY_SCHEDULE: Dict[Tuple[str, str], str] = {
    ('GS', 'Monday'): 'Dr. Littaua, Dr. Taplac',
    ('GS', 'Tuesday'): 'Dr. Ocampo',
    ('GS', 'Wednesday'): 'Dr. Cruz, Dr. Ong',
    ('GS', 'Thursday'): 'Dr. Bartolome, Dr. Andres, Dr. RM Santos',
    ('GS', 'Friday'): 'Dr. Yabut, Dr. Guerrero',
    ('URO', 'Monday'): 'PRIORITY',
    ('URO', 'Wednesday'): 'PRIORITY OPEN',
    ('URO', 'Friday'): 'PRIORITY NON-OPEN (ENDOSCOPY)',
    ('ORTHO', 'Monday'): 'PRIORITY',
    ('ORTHO', 'Tuesday'): 'PRIORITY',
    ('ORTHO', 'Friday'): 'PRIORITY',
    ('TCVS', 'Wednesday'): 'PRIORITY',
    ('NEURO', 'Wednesday'): 'PRIORITY',
    ('NEURO', 'Friday'): 'PRIORITY',
    ('PLASTICS', 'Wednesday'): 'PRIORITY',
    ('PLASTICS', 'Friday'): 'PRIORITY',
    ('PEDIA', 'Monday'): 'PRIORITY',
    ('OBGYNE', 'Tuesday'): 'PRIORITY',
    ('OBGYNE', 'Thursday'): 'PRIORITY',
    ('OPHTHA', 'Tuesday'): 'PRIORITY',
    ('OPHTHA', 'Thursday'): 'PRIORITY',
    ('ENT', 'Tuesday'): 'PRIORITY',
    ('ENT', 'Thursday'): 'PRIORITY',
}

# Keywords in a room designation and the departments they point to
DESIGNATION_DEPARTMENTS = {
    'General Surgery': ['GS'],
    'OB-GYNE': ['OBGYNE'],
    'Orthopedics': ['ORTHO'],
    'ENT': ['ENT'],
    'Ophtha': ['OPHTHA'],
    'Cardiac': ['CARDIAC', 'TCVS'],
    'Neurosurgery': ['NEURO'],
    'Pediatrics': ['PEDIA'],
    'Urology': ['URO'],
    'Plastics': ['PLASTICS'],
}


@dataclass
class PriorityInfo:
    department_id: str
    department_name: str
    label: str


def designation_departments(designation: str) -> List[str]:
    """Departments matching a room designation"""
    result = []
    lowered = designation.lower()
    for keyword, department_ids in DESIGNATION_DEPARTMENTS.items():
        if keyword.lower() in lowered:
            result.extend(department_ids)
    return result


class PriorityLookup:
    """Read-only view over a (department, weekday) -> label schedule"""

    def __init__(self, schedule: Optional[Dict[Tuple[str, str], str]] = None):
        self._schedule = dict(DEFAULT_PRIORITY_SCHEDULE if schedule is None else schedule)

    def get_priority(self, department_id: str, weekday: Weekday) -> Optional[str]:
        return self._schedule.get((department_id, weekday_name(weekday)))

    def priorities_for_day(self, weekday: Weekday) -> List[PriorityInfo]:
        """All department priorities for a weekday, in department order"""
        day = weekday_name(weekday)
        return [
            PriorityInfo(department_id, name, self._schedule[(department_id, day)])
            for department_id, name in DEPARTMENTS.items()
            if (department_id, day) in self._schedule
        ]

    def room_priorities(self, room: Room, weekday: Weekday) -> List[PriorityInfo]:
        """Priorities that apply to a room through its designation"""
        day = weekday_name(weekday)
        result = []
        for department_id in designation_departments(room.designation):
            label = self._schedule.get((department_id, day))
            if label:
                result.append(PriorityInfo(department_id, DEPARTMENTS.get(department_id, department_id), label))
        return result

    def with_cell(self, department_id: str, weekday: Weekday, label: Optional[str]) -> 'PriorityLookup':
        """Copy of the lookup with one cell set, or cleared when label is empty"""
        schedule = dict(self._schedule)
        key = (department_id, weekday_name(weekday))
        if label:
            schedule[key] = label
        else:
            schedule.pop(key, None)
        return PriorityLookup(schedule)

    def as_dict(self) -> Dict[Tuple[str, str], str]:
        return dict(self._schedule)
