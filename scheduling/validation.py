"""
Field validation for booking submissions
"""
from typing import List

from config import settings
from database.models import Booking
from scheduling.errors import MissingField, InvalidTimeRange, ValidationError

REQUIRED_FIELDS = (
    'room_id', 'department_id', 'date', 'start_time', 'end_time',
    'patient_name', 'procedure', 'surgeon', 'created_by',
)


def requires_anesthesiologist(patient_category: str) -> bool:
    """CP categories need an anesthesiologist assigned at submission"""
    return bool(patient_category) and patient_category.upper().startswith(settings.CP_CATEGORY_PREFIX)


def validate_booking(booking: Booking):
    """Reject a booking with missing fields or an empty time range"""
    missing: List[str] = []
    for name in REQUIRED_FIELDS:
        value = getattr(booking, name)
        if value is None or (isinstance(value, str) and not value.strip()):
            missing.append(name)

    if requires_anesthesiologist(booking.patient_category) and not booking.anesthesiologist.strip():
        missing.append('anesthesiologist')

    if missing:
        raise MissingField(missing)

    if booking.start_time >= booking.end_time:
        raise InvalidTimeRange()


def validate_emergency(booking: Booking):
    validate_booking(booking)
    if booking.emergency is None or not booking.emergency.reason.strip():
        raise MissingField(['emergency_reason'])
    if booking.denial is not None:
        raise ValidationError("An emergency case cannot carry a denial")
