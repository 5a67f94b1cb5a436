"""
Database module for the attendance kiosk
SQLite-backed student directory and append-only attendance event store
"""

import json
import logging
import sqlite3
import threading
from contextlib import contextmanager
from datetime import date, datetime
from pathlib import Path

from facecheck.errors import StorageError
from facecheck.models import AttendanceRecord, Student, parse_timestamp
from logging_config import database_logger

logger = logging.getLogger(__name__)


class DatabaseManager:
    def __init__(self, db_path="facecheck.db"):
        self.db_path = str(db_path)
        self._listeners = []
        self._listener_lock = threading.Lock()
        Path(self.db_path).parent.mkdir(parents=True, exist_ok=True)
        self.init_database()

    @contextmanager
    def get_connection(self):
        """Open a connection; commit on success, roll back and wrap sqlite errors on failure"""
        try:
            conn = sqlite3.connect(self.db_path, timeout=10)
        except sqlite3.Error as exc:
            database_logger.log_error('connect', exc)
            raise StorageError(f"Cannot open database {self.db_path}: {exc}") from exc
        conn.row_factory = sqlite3.Row
        try:
            yield conn
            conn.commit()
        except sqlite3.Error as exc:
            conn.rollback()
            database_logger.log_error('query', exc)
            raise StorageError(str(exc)) from exc
        finally:
            conn.close()

    def init_database(self):
        """Create tables and indexes"""
        with self.get_connection() as conn:
            cursor = conn.cursor()

            cursor.execute('''
                CREATE TABLE IF NOT EXISTS students (
                    id VARCHAR(64) PRIMARY KEY,
                    name VARCHAR(100) NOT NULL,
                    nis VARCHAR(30) DEFAULT '',
                    class_name VARCHAR(50) DEFAULT '',
                    photo_url VARCHAR(200) DEFAULT '',
                    face_descriptor TEXT,
                    extra_descriptors TEXT,
                    registered_at TIMESTAMP NOT NULL
                )
            ''')

            # Records are never updated or deleted once written
            cursor.execute('''
                CREATE TABLE IF NOT EXISTS attendance (
                    id VARCHAR(64) PRIMARY KEY,
                    student_id VARCHAR(64) NOT NULL,
                    student_name VARCHAR(100) NOT NULL,
                    attendance_date DATE NOT NULL,
                    check_in_time TIMESTAMP NOT NULL,
                    method VARCHAR(10) DEFAULT 'face',
                    status VARCHAR(10) DEFAULT 'present',
                    confidence INTEGER DEFAULT 0,
                    created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
                )
            ''')

            cursor.execute('''
                CREATE INDEX IF NOT EXISTS idx_attendance_student_date
                ON attendance (student_id, attendance_date)
            ''')
            cursor.execute('''
                CREATE INDEX IF NOT EXISTS idx_attendance_date
                ON attendance (attendance_date)
            ''')

        logger.info(f"Database ready at {self.db_path}")

    # === CHANGE NOTIFICATION ===
    def add_change_listener(self, callback):
        """Register ``callback()`` to run after the student directory changes"""
        with self._listener_lock:
            self._listeners.append(callback)

    def _notify_students_changed(self):
        with self._listener_lock:
            listeners = list(self._listeners)
        for callback in listeners:
            callback()

    # === STUDENTS ===
    @staticmethod
    def _student_from_row(row):
        extra = json.loads(row['extra_descriptors']) if row['extra_descriptors'] else []
        descriptor = json.loads(row['face_descriptor']) if row['face_descriptor'] else None
        return Student(
            id=row['id'],
            name=row['name'],
            nis=row['nis'] or '',
            class_name=row['class_name'] or '',
            photo_url=row['photo_url'] or '',
            face_descriptor=descriptor,
            registered_at=parse_timestamp(row['registered_at']),
            extra_descriptors=extra,
        )

    def save_student(self, student):
        """Insert or replace a student, then notify listeners"""
        descriptor = json.dumps([float(v) for v in student.face_descriptor]) if student.face_descriptor else None
        extra = json.dumps([[float(v) for v in d] for d in student.extra_descriptors])
        with self.get_connection() as conn:
            conn.execute('''
                INSERT INTO students (
                    id, name, nis, class_name, photo_url,
                    face_descriptor, extra_descriptors, registered_at
                )
                VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                ON CONFLICT(id) DO UPDATE SET
                    name = excluded.name,
                    nis = excluded.nis,
                    class_name = excluded.class_name,
                    photo_url = excluded.photo_url,
                    face_descriptor = excluded.face_descriptor,
                    extra_descriptors = excluded.extra_descriptors
            ''', (
                student.id, student.name, student.nis, student.class_name, student.photo_url,
                descriptor, extra, student.registered_at.isoformat(),
            ))
        database_logger.log_query('UPSERT', 'students')
        logger.info(f"Saved student: {student.name} ({student.id})")
        self._notify_students_changed()
        return student

    def get_student(self, student_id):
        with self.get_connection() as conn:
            row = conn.execute('SELECT * FROM students WHERE id = ?', (student_id,)).fetchone()
        return self._student_from_row(row) if row else None

    def find_student_by_nis(self, nis):
        if not nis:
            return None
        with self.get_connection() as conn:
            row = conn.execute('SELECT * FROM students WHERE nis = ?', (nis,)).fetchone()
        return self._student_from_row(row) if row else None

    def list_students(self, class_name=None):
        query = ['SELECT * FROM students']
        params = []
        if class_name:
            query.append('WHERE class_name = ?')
            params.append(class_name)
        query.append('ORDER BY registered_at, name')
        with self.get_connection() as conn:
            rows = conn.execute(' '.join(query), params).fetchall()
        return [self._student_from_row(row) for row in rows]

    def count_students(self):
        with self.get_connection() as conn:
            return conn.execute('SELECT COUNT(*) FROM students').fetchone()[0]

    def delete_student(self, student_id):
        """Remove a student; their attendance history is kept"""
        with self.get_connection() as conn:
            cursor = conn.execute('DELETE FROM students WHERE id = ?', (student_id,))
            deleted = cursor.rowcount > 0
        if deleted:
            logger.info(f"Deleted student {student_id}")
            self._notify_students_changed()
        return deleted

    # === ATTENDANCE EVENTS ===
    @staticmethod
    def _record_from_row(row):
        return AttendanceRecord(
            id=row['id'],
            student_id=row['student_id'],
            student_name=row['student_name'],
            timestamp=parse_timestamp(row['check_in_time']),
            method=row['method'],
            status=row['status'],
            confidence=int(row['confidence'] or 0),
        )

    def append_record(self, record):
        """Append one attendance record; a repeated id is ignored"""
        with self.get_connection() as conn:
            cursor = conn.execute('''
                INSERT OR IGNORE INTO attendance (
                    id, student_id, student_name, attendance_date, check_in_time,
                    method, status, confidence
                )
                VALUES (?, ?, ?, ?, ?, ?, ?, ?)
            ''', (
                record.id, record.student_id, record.student_name,
                record.timestamp.date().isoformat(), record.timestamp.isoformat(),
                record.method, record.status, record.confidence,
            ))
            inserted = cursor.rowcount > 0
        if inserted:
            database_logger.log_query('INSERT', 'attendance')
        else:
            logger.warning(f"Attendance record {record.id} already stored, ignoring")
        return inserted

    def query_by_student_and_day(self, student_id, day):
        if isinstance(day, datetime):
            day = day.date()
        with self.get_connection() as conn:
            rows = conn.execute('''
                SELECT * FROM attendance
                WHERE student_id = ? AND attendance_date = ?
                ORDER BY check_in_time DESC, rowid DESC
            ''', (student_id, day.isoformat())).fetchall()
        return [self._record_from_row(row) for row in rows]

    def list_records(self, limit=None):
        """All records, newest first"""
        query = 'SELECT * FROM attendance ORDER BY check_in_time DESC, rowid DESC'
        params = ()
        if limit is not None:
            query += ' LIMIT ?'
            params = (int(limit),)
        with self.get_connection() as conn:
            rows = conn.execute(query, params).fetchall()
        return [self._record_from_row(row) for row in rows]

    def list_records_for_day(self, day=None):
        day = day or date.today()
        with self.get_connection() as conn:
            rows = conn.execute('''
                SELECT * FROM attendance
                WHERE attendance_date = ?
                ORDER BY check_in_time DESC, rowid DESC
            ''', (day.isoformat(),)).fetchall()
        return [self._record_from_row(row) for row in rows]

    def list_records_between(self, start_date, end_date):
        with self.get_connection() as conn:
            rows = conn.execute('''
                SELECT * FROM attendance
                WHERE attendance_date BETWEEN ? AND ?
                ORDER BY check_in_time DESC, rowid DESC
            ''', (start_date.isoformat(), end_date.isoformat())).fetchall()
        return [self._record_from_row(row) for row in rows]
