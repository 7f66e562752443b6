"""
SQLite database access
"""
import sqlite3
import os
from contextlib import contextmanager
from typing import Generator
from config import settings
from scheduling.priority import DEFAULT_PRIORITY_SCHEDULE

DEFAULT_OR_ROOMS = (
    (1, 'OR 1', 'General Surgery Priority'),
    (2, 'OR 2', 'OB-GYNE Priority'),
    (3, 'OR 3', 'Orthopedics Priority'),
    (4, 'OR 4', 'ENT / Ophtha Priority'),
    (5, 'OR 5', 'Cardiac'),
    (6, 'OR 6', 'Neurosurgery Priority'),
    (7, 'OR 7', 'Pediatrics Priority'),
    (8, 'OR 8', 'Multi-specialty'),
)


def get_connection() -> sqlite3.Connection:
    """Open a database connection"""
    conn = sqlite3.Connection(settings.DB_PATH)
    conn.row_factory = sqlite3.Row
    return conn


@contextmanager
def get_db() -> Generator[sqlite3.Connection, None, None]:
    """Connection context manager: commit on success, rollback on error"""
    conn = get_connection()
    try:
        yield conn
        conn.commit()
    except Exception:
        conn.rollback()
        raise
    finally:
        conn.close()


def init_db():
    """Create tables and seed default rooms and the priority schedule"""
    db_dir = os.path.dirname(settings.DB_PATH)
    if db_dir and not os.path.exists(db_dir):
        os.makedirs(db_dir)

    with get_db() as conn:
        cursor = conn.cursor()

        cursor.execute("""
            CREATE TABLE IF NOT EXISTS rooms (
                id TEXT PRIMARY KEY,
                name TEXT NOT NULL,
                number INTEGER DEFAULT 0,
                designation TEXT DEFAULT '',
                is_active INTEGER DEFAULT 1,
                buffer_time_minutes INTEGER DEFAULT 30
            )
        """)

        cursor.execute("""
            CREATE TABLE IF NOT EXISTS users (
                id TEXT PRIMARY KEY,
                full_name TEXT NOT NULL,
                role TEXT NOT NULL,
                department_id TEXT,
                telegram_id INTEGER UNIQUE,
                is_active INTEGER DEFAULT 1
            )
        """)

        cursor.execute("""
            CREATE TABLE IF NOT EXISTS bookings (
                id TEXT PRIMARY KEY,
                room_id TEXT NOT NULL,
                department_id TEXT NOT NULL,
                date TEXT NOT NULL,
                start_time TEXT NOT NULL,
                end_time TEXT NOT NULL,
                patient_name TEXT NOT NULL,
                patient_age INTEGER,
                patient_sex TEXT,
                patient_category TEXT DEFAULT '',
                ward TEXT DEFAULT '',
                procedure TEXT NOT NULL,
                surgeon TEXT NOT NULL,
                anesthesiologist TEXT DEFAULT '',
                scrub_nurse TEXT DEFAULT '',
                circulating_nurse TEXT DEFAULT '',
                special_equipment TEXT DEFAULT '[]',
                estimated_duration_minutes INTEGER,
                actual_duration_minutes INTEGER,
                started_at TIMESTAMP,
                status TEXT DEFAULT 'pending',
                is_emergency INTEGER DEFAULT 0,
                emergency_reason TEXT,
                approved_by TEXT,
                approved_at TIMESTAMP,
                denial_reason TEXT,
                denied_by TEXT,
                denied_at TIMESTAMP,
                notes TEXT DEFAULT '',
                created_by TEXT NOT NULL,
                created_at TIMESTAMP,
                updated_at TIMESTAMP,
                FOREIGN KEY (room_id) REFERENCES rooms (id)
            )
        """)

        cursor.execute("""
            CREATE INDEX IF NOT EXISTS idx_bookings_slot
            ON bookings(room_id, date, start_time, status)
        """)
        cursor.execute("""
            CREATE INDEX IF NOT EXISTS idx_bookings_department
            ON bookings(department_id, status)
        """)

        cursor.execute("""
            CREATE TABLE IF NOT EXISTS room_live_status (
                room_id TEXT PRIMARY KEY,
                status TEXT NOT NULL DEFAULT 'idle',
                current_booking_id TEXT,
                updated_at TIMESTAMP,
                FOREIGN KEY (room_id) REFERENCES rooms (id)
            )
        """)

        cursor.execute("""
            CREATE TABLE IF NOT EXISTS change_requests (
                id TEXT PRIMARY KEY,
                booking_id TEXT NOT NULL,
                department_id TEXT NOT NULL,
                new_date TEXT NOT NULL,
                new_start_time TEXT NOT NULL,
                new_end_time TEXT NOT NULL,
                reason TEXT NOT NULL,
                additional_info TEXT DEFAULT '',
                requested_by TEXT NOT NULL,
                status TEXT DEFAULT 'pending',
                reviewed_by TEXT,
                review_note TEXT DEFAULT '',
                created_at TIMESTAMP,
                FOREIGN KEY (booking_id) REFERENCES bookings (id)
            )
        """)

        cursor.execute("""
            CREATE TABLE IF NOT EXISTS priority_schedule (
                department_id TEXT NOT NULL,
                weekday TEXT NOT NULL,
                label TEXT NOT NULL,
                PRIMARY KEY (department_id, weekday)
            )
        """)

        cursor.execute("""
            CREATE TABLE IF NOT EXISTS audit_logs (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                actor_id TEXT NOT NULL,
                action TEXT NOT NULL,
                entity_type TEXT NOT NULL,
                entity_id TEXT,
                old_values TEXT,
                new_values TEXT,
                created_at TIMESTAMP NOT NULL
            )
        """)
        cursor.execute("""
            CREATE INDEX IF NOT EXISTS idx_audit_entity
            ON audit_logs(entity_type, entity_id)
        """)

        cursor.execute("""
            CREATE TABLE IF NOT EXISTS notifications (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                user_id TEXT NOT NULL,
                kind TEXT NOT NULL,
                title TEXT NOT NULL,
                message TEXT NOT NULL,
                related_booking_id TEXT,
                is_read INTEGER DEFAULT 0,
                created_at TIMESTAMP NOT NULL
            )
        """)
        cursor.execute("""
            CREATE INDEX IF NOT EXISTS idx_notifications_user
            ON notifications(user_id, is_read)
        """)

        # Seed rooms
        cursor.execute("SELECT COUNT(*) as count FROM rooms")
        if cursor.fetchone()['count'] == 0:
            for number, name, designation in DEFAULT_OR_ROOMS:
                cursor.execute(
                    """INSERT INTO rooms (id, name, number, designation, buffer_time_minutes)
                       VALUES (?, ?, ?, ?, ?)""",
                    (f"or-{number}", name, number, designation, settings.DEFAULT_BUFFER_MINUTES)
                )

        # Seed the priority schedule
        cursor.execute("SELECT COUNT(*) as count FROM priority_schedule")
        if cursor.fetchone()['count'] == 0:
            cursor.executemany(
                "INSERT INTO priority_schedule (department_id, weekday, label) VALUES (?, ?, ?)",
                [(dept, day, label) for (dept, day), label in DEFAULT_PRIORITY_SCHEDULE.items()]
            )

        conn.commit()
