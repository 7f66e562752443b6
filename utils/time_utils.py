"""
Date and time helpers
"""
from datetime import date, datetime, time, timedelta
from typing import Union

WEEKDAY_NAMES = ['Monday', 'Tuesday', 'Wednesday', 'Thursday', 'Friday', 'Saturday', 'Sunday']


def parse_time(value: Union[str, time]) -> time:
    """Parse HH:MM into a time"""
    if isinstance(value, time):
        return value
    return datetime.strptime(value.strip(), "%H:%M").time()


def days_between(start: date, end: date) -> int:
    return (end - start).days


def weekday_name(value: Union[date, int, str]) -> str:
    """
    Weekday name for a date, a 0-based index (Monday = 0) or a name
    """
    if isinstance(value, date):
        return WEEKDAY_NAMES[value.weekday()]
    if isinstance(value, int):
        return WEEKDAY_NAMES[value % 7]
    name = value.strip().capitalize()
    if name not in WEEKDAY_NAMES:
        raise ValueError(f"Unknown weekday: {value}")
    return name


def format_time(value: time) -> str:
    """12-hour format, e.g. 1:30 PM"""
    hour = value.hour % 12 or 12
    suffix = 'PM' if value.hour >= 12 else 'AM'
    return f"{hour}:{value.minute:02d} {suffix}"


def format_date(value: date) -> str:
    """Format a date with relative labels for today and tomorrow"""
    weekday = WEEKDAY_NAMES[value.weekday()][:3]
    today = datetime.now().date()
    if value == today:
        return f"Today ({weekday})"
    elif value == today + timedelta(days=1):
        return f"Tomorrow ({weekday})"
    else:
        return f"{value.strftime('%b %d, %Y')} ({weekday})"
