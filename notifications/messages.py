"""
Notification texts
"""
from typing import Any, Dict, Tuple

from database.models import DEPARTMENTS
from scheduling.ports import NotificationKind
from utils.time_utils import format_time, parse_time

ROOM_STATUS_LABELS = {
    'idle': 'Idle',
    'in_transit': 'Patient in transit',
    'ongoing': 'Surgery ongoing',
    'ended': 'Surgery ended',
    'deferred': 'Case deferred',
}

TEMPLATES: Dict[NotificationKind, Tuple[str, str]] = {
    NotificationKind.NEW_REQUEST: (
        "New Booking Request",
        "{department_name}: {procedure} for {patient_name} on {date} ({start} - {end})"
    ),
    NotificationKind.APPROVAL: (
        "Booking Approved",
        'Your booking for "{procedure}" ({patient_name}) on {date} {start} '
        "has been approved by {actor_name}."
    ),
    NotificationKind.DENIAL: (
        "Booking Denied",
        'Your booking for "{procedure}" ({patient_name}) on {date} has been denied '
        "by {actor_name}. Reason: {reason}"
    ),
    NotificationKind.BOOKING_EDITED: (
        "Booking Updated",
        'Your booking "{procedure}" ({patient_name}) on {date} has been updated '
        "by {actor_name}. Please review the changes."
    ),
    NotificationKind.EMERGENCY_ALERT: (
        "🚨 Emergency Case Inserted",
        "Emergency: {procedure} for {patient_name} inserted into {date} {start} "
        "by {actor_name}. Reason: {reason}"
    ),
    NotificationKind.BOOKING_BUMPED: (
        "Booking Rescheduled: Emergency Bump",
        'Your booking "{procedure}" for {patient_name} on {date} {start} has been '
        "bumped off due to emergency case: {emergency_procedure} ({emergency_patient}). "
        "Please reschedule."
    ),
    NotificationKind.BOOKING_CONFIRMATION: (
        "Booking Request Submitted",
        'Your booking request for "{procedure}" ({patient_name}) on {date} {start} - {end} '
        "has been submitted and is pending approval."
    ),
    NotificationKind.BOOKING_CANCELLED: (
        "Booking Cancelled",
        'The booking "{procedure}" for {patient_name} on {date} {start} has been '
        "cancelled by {actor_name}."
    ),
    NotificationKind.DELEGATED_BOOKING: (
        "Booking Created on Your Behalf",
        '{actor_name} has created a booking for "{procedure}" ({patient_name}) on '
        "{date} {start} - {end} on behalf of {department_name}."
    ),
    NotificationKind.ROOM_STATUS_CHANGED: (
        "{room_name}: {status_label}",
        '{room_name} status changed to "{status_label}" by {actor_name}.'
    ),
    NotificationKind.CHANGE_REQUEST_SUBMITTED: (
        "Schedule Change Request",
        '{actor_name} ({department_name}) has requested a schedule change for '
        '"{procedure}" ({patient_name}). New date: {new_date} {new_start}. Reason: {reason}'
    ),
    NotificationKind.CHANGE_REQUEST_APPROVED: (
        "Schedule Change Approved",
        'Your change request for "{procedure}" ({patient_name}) has been approved by '
        "{actor_name}. New schedule: {date} {start}."
    ),
    NotificationKind.CHANGE_REQUEST_DENIED: (
        "Schedule Change Denied",
        'Your change request for "{procedure}" ({patient_name}) has been denied by '
        "{actor_name}. Reason: {reason}"
    ),
    NotificationKind.REMINDER_24H: (
        "Reminder: Surgery Tomorrow",
        'Reminder: "{procedure}" for {patient_name} is scheduled tomorrow at {start}. '
        "Please ensure all preparations are complete."
    ),
    NotificationKind.REMINDER_2H: (
        "Reminder: Surgery in 2 Hours",
        'Reminder: "{procedure}" for {patient_name} starts at {start} today. '
        "Final preparations should be underway."
    ),
    NotificationKind.PURGE_WARNING: (
        "Data Purge Warning",
        'Booking "{procedure}" for {patient_name} ({date}) will be purged in approximately '
        "{hours_left} hours. Download or archive if needed."
    ),
}


class _Context(dict):
    """Template values; unknown keys render as an empty string"""

    def __missing__(self, key):
        return ''


def _context(payload: Dict[str, Any]) -> _Context:
    context = _Context(payload)
    if payload.get('department_id'):
        context['department_name'] = DEPARTMENTS.get(payload['department_id'], payload['department_id'])
    for key, target in (('start_time', 'start'), ('end_time', 'end'), ('new_start_time', 'new_start')):
        if payload.get(key):
            context[target] = format_time(parse_time(payload[key]))
    if payload.get('status'):
        context['status_label'] = ROOM_STATUS_LABELS.get(payload['status'], payload['status'])
    if not payload.get('reason'):
        context['reason'] = 'Not specified'
    if not payload.get('actor_name'):
        context['actor_name'] = 'an administrator'
    return context


def render(kind: NotificationKind, payload: Dict[str, Any]) -> Tuple[str, str]:
    """Title and message text for a notification"""
    title, message = TEMPLATES[NotificationKind(kind)]
    context = _context(payload)
    return title.format_map(context), message.format_map(context)
