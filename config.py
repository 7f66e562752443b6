"""
Project configuration
"""
import os
from dataclasses import dataclass
from typing import List, Tuple
from datetime import time


def _parse_ids(raw: str) -> List[int]:
    """Parse a comma-separated list of numeric ids"""
    return [int(item.strip()) for item in raw.split(',') if item.strip()]


def _parse_bool(raw: str) -> bool:
    return raw.strip().lower() in ('1', 'true', 'yes', 'on')


@dataclass
class Settings:
    """Application settings"""
    # Telegram
    BOT_TOKEN: str = os.getenv('BOT_TOKEN', '')
    ADMIN_CHAT_IDS: List[int] = None

    # Database
    DB_PATH: str = os.getenv('DB_PATH', 'data/or_scheduler.db')

    # Submission window for elective cases
    NOON_CUTOFF: time = time(12, 0)
    MAX_ADVANCE_DAYS: int = 14
    WEEKEND_DAYS: Tuple[int, ...] = (5, 6)  # Sat, Sun

    # Modification of existing bookings
    MODIFICATION_WINDOW_HOURS: int = 24
    NOON_LOCK: time = time(12, 0)

    # Patient categories with this prefix need an anesthesiologist up front
    CP_CATEGORY_PREFIX: str = 'CP'

    # Rooms
    DEFAULT_BUFFER_MINUTES: int = 30

    # Enforce room/time uniqueness inside the storage transaction
    ENFORCE_SLOT_UNIQUENESS: bool = _parse_bool(os.getenv('ENFORCE_SLOT_UNIQUENESS', 'true'))

    # Periodic jobs
    REMINDER_INTERVAL_MINUTES: int = 5
    PURGE_CHECK_INTERVAL_MINUTES: int = 60
    RETENTION_DAYS: int = 7
    PURGE_WARNING_HOURS: int = 48

    ANESTHESIOLOGY_CONTACT: str = os.getenv(
        'ANESTHESIOLOGY_CONTACT',
        'Department of Anesthesiology, (02) 8981-8150 loc. 286'
    )

    def __post_init__(self):
        """Post-init parsing of list values"""
        if self.ADMIN_CHAT_IDS is None:
            self.ADMIN_CHAT_IDS = _parse_ids(os.getenv('ADMIN_CHAT_IDS', ''))


# Global settings instance
settings = Settings()
