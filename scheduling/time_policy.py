"""
Temporal window policy for elective submissions and booking modifications
"""
from datetime import date, datetime, timedelta
from typing import Optional

from config import settings
from database.models import Booking, BookingStatus, User
from scheduling.errors import (
    PolicyViolation, Weekend, NoonCutoff, AdvanceWindowExceeded,
    ModificationWindowExpired, NoonLocked
)
from utils.time_utils import days_between, format_time


def check_submission_window(target: date, now: datetime) -> Optional[PolicyViolation]:
    """
    Check whether an elective case may be submitted for the target date.

    Rules are evaluated in a fixed order (weekend, same-day noon cutoff,
    advance window) and only the first violation is returned.
    """
    contact = settings.ANESTHESIOLOGY_CONTACT
    today = now.date()

    if target.weekday() in settings.WEEKEND_DAYS:
        return Weekend(
            "Elective cases cannot be booked on weekends.",
            contact
        )

    if target == today and now.time() >= settings.NOON_CUTOFF:
        return NoonCutoff(
            f"Same-day requests close at {format_time(settings.NOON_CUTOFF)}.",
            contact
        )

    if days_between(today, target) > settings.MAX_ADVANCE_DAYS:
        return AdvanceWindowExceeded(
            f"Bookings can be made at most {settings.MAX_ADVANCE_DAYS} days in advance.",
            contact
        )

    return None


def ensure_submission_allowed(target: date, actor: User, now: datetime,
                              is_emergency: bool = False):
    """Raise the submission violation, if any. Emergencies and administrators are exempt."""
    if is_emergency or actor.is_admin:
        return
    violation = check_submission_window(target, now)
    if violation is not None:
        raise violation


def check_modification_window(booking: Booking, actor: User,
                              now: datetime) -> Optional[PolicyViolation]:
    """Check whether an existing booking may still be modified"""
    contact = settings.ANESTHESIOLOGY_CONTACT
    window = timedelta(hours=settings.MODIFICATION_WINDOW_HOURS)

    if booking.starts_at - now < window:
        return ModificationWindowExpired(
            f"Changes can only be made at least {settings.MODIFICATION_WINDOW_HOURS} "
            f"hours before the scheduled time.",
            contact
        )

    # Noon lock: approved cases for tomorrow freeze at noon today
    owns_booking = actor.department_id is not None and actor.department_id == booking.department_id
    if (not actor.is_admin
            and not owns_booking
            and booking.status == BookingStatus.APPROVED
            and booking.date == now.date() + timedelta(days=1)
            and now.time() >= settings.NOON_LOCK):
        return NoonLocked(
            f"Approved cases for tomorrow are locked after {format_time(settings.NOON_LOCK)} today.",
            contact
        )

    return None


def ensure_modification_allowed(booking: Booking, actor: User, now: datetime):
    violation = check_modification_window(booking, actor, now)
    if violation is not None:
        raise violation
