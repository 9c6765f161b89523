"""
Attendance Manager Module - Library Attendance & Mail Service

This module handles library check-in/check-out scanning. Every scan appends
a new immutable attendance event; the direction of a scan (``in`` or
``out``) is inferred from the student's latest event of the same day.

Features:
- Barcode / student ID scan processing
- Time-in / time-out direction inference
- Append-only event log with denormalized student snapshot
- Event deletion
- Session duration calculation
- Daily and filtered attendance listings
"""

from datetime import date, datetime
import logging
from typing import Callable, Dict, List, Optional, Any, Union
from dataclasses import dataclass, asdict, replace

from library_app.modules.exceptions import (
    IncompletePerson,
    InvalidInput,
    NotFound,
    PersistenceError,
)
from library_app.modules.student_manager import Person

STATUS_IN = 'in'
STATUS_OUT = 'out'

DATE_FORMAT = '%Y-%m-%d'


@dataclass(frozen=True)
class AttendanceEvent:
    """Immutable check-in/check-out record."""
    id: Optional[int]
    person_id: int
    kind: str
    timestamp: str
    date: str
    student_name: str
    course: str
    barcode: str
    student_id_number: str
    time_in: Optional[str] = None
    time_out: Optional[str] = None

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> 'AttendanceEvent':
        return cls(
            id=row['id'],
            person_id=row['student_id'],
            kind=row['status'],
            timestamp=row['timestamp'],
            date=row['scan_date'],
            student_name=row['student_name'],
            course=row['course'],
            barcode=row['barcode'] or '',
            student_id_number=row['student_id_number'],
            time_in=row.get('time_in'),
            time_out=row.get('time_out'),
        )

    @property
    def scanned_at(self) -> datetime:
        return datetime.fromisoformat(self.timestamp)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class Duration:
    """Wall-clock difference between a time-in and a time-out, in minutes."""
    total_minutes: int

    @property
    def is_negative(self) -> bool:
        return self.total_minutes < 0

    @property
    def hours(self) -> int:
        return abs(self.total_minutes) // 60

    @property
    def minutes(self) -> int:
        return abs(self.total_minutes) % 60

    def __str__(self) -> str:
        sign = '-' if self.is_negative else ''
        return f"{sign}{self.hours}h {self.minutes}m"


class _NotApplicable:
    """Returned by duration calculations when a timestamp is missing."""

    def __bool__(self):
        return False

    def __str__(self):
        return 'N/A'

    def __repr__(self):
        return 'NOT_APPLICABLE'


NOT_APPLICABLE = _NotApplicable()


def _parse_timestamp(value: Union[str, datetime, None]) -> Optional[datetime]:
    if value is None or value == '':
        return None
    if isinstance(value, datetime):
        return value
    return datetime.fromisoformat(value)


def duration_between(time_in: Union[str, datetime, None],
                     time_out: Union[str, datetime, None]) -> Union[Duration, _NotApplicable]:
    """
    Compute ``time_out - time_in`` as whole hours and remainder minutes.

    A time-out earlier than the time-in yields a negative duration; it is
    reported as such rather than clamped. Missing or unreadable timestamps
    yield NOT_APPLICABLE.
    """
    try:
        start = _parse_timestamp(time_in)
        end = _parse_timestamp(time_out)
        if start is None or end is None:
            return NOT_APPLICABLE
        seconds = (end - start).total_seconds()
    except (TypeError, ValueError):
        return NOT_APPLICABLE

    minutes = int(abs(seconds) // 60)
    return Duration(-minutes if seconds < 0 else minutes)


def session_durations(events: List['AttendanceEvent']) -> Dict[int, Union[Duration, _NotApplicable]]:
    """
    Pair every time-out with the preceding time-in of the same student and day.

    Args:
        events (List[AttendanceEvent]): Events in any order

    Returns:
        Dict[int, Duration]: Duration per time-out event ID; NOT_APPLICABLE
        when the time-out has no time-in before it
    """
    open_sessions: Dict[tuple, AttendanceEvent] = {}
    durations: Dict[int, Union[Duration, _NotApplicable]] = {}

    for event in sorted(events, key=lambda e: (e.timestamp, e.id or 0)):
        key = (event.person_id, event.date)
        if event.kind == STATUS_IN:
            open_sessions[key] = event
        elif event.kind == STATUS_OUT:
            time_in = open_sessions.pop(key, None)
            durations[event.id] = duration_between(
                (time_in.time_in or time_in.timestamp) if time_in else None,
                event.time_out or event.timestamp,
            )
    return durations


def parse_date(value: Union[str, date, datetime]) -> str:
    """
    Normalize a calendar date to ``YYYY-MM-DD``.

    Raises:
        InvalidInput: The value is not a date in that format
    """
    if isinstance(value, (date, datetime)):
        return value.strftime(DATE_FORMAT)
    try:
        return datetime.strptime(value, DATE_FORMAT).strftime(DATE_FORMAT)
    except (TypeError, ValueError):
        raise InvalidInput(f"Invalid date '{value}', expected YYYY-MM-DD") from None


class AttendanceStore:
    """
    SQLite-backed append-only store of attendance events.
    """

    def __init__(self, database_manager):
        """
        Initialize the store with database connection.

        Args:
            database_manager: Database manager instance
        """
        self.db = database_manager
        self.logger = logging.getLogger(__name__)

    def query_by_person_and_date(self, person_id: int, scan_date: Union[str, date]) -> List[AttendanceEvent]:
        """
        Get every event of one student on one calendar date.

        Args:
            person_id (int): Student database ID
            scan_date (str): Date (YYYY-MM-DD)

        Returns:
            List[AttendanceEvent]: Events in insertion order
        """
        day = parse_date(scan_date)
        rows = self.db.execute_query(
            """SELECT * FROM attendance
               WHERE student_id = ? AND (scan_date = ? OR substr(timestamp, 1, 10) = ?)
               ORDER BY id""",
            (person_id, day, day)
        )
        return [AttendanceEvent.from_row(row) for row in rows]

    def append(self, event: AttendanceEvent) -> int:
        """
        Insert a new event.

        Args:
            event (AttendanceEvent): Event without an id

        Returns:
            int: New event ID

        Raises:
            PersistenceError: The insert failed or returned no row ID
        """
        try:
            event_id = self.db.execute_update(
                """INSERT INTO attendance
                   (student_id, student_name, course, barcode, student_id_number,
                    status, timestamp, scan_date, time_in, time_out)
                   VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)""",
                (
                    event.person_id,
                    event.student_name,
                    event.course,
                    event.barcode,
                    event.student_id_number,
                    event.kind,
                    event.timestamp,
                    event.date,
                    event.time_in,
                    event.time_out,
                )
            )
        except Exception as e:
            raise PersistenceError(f'Failed to save attendance record: {str(e)}') from e

        if not event_id:
            raise PersistenceError('Failed to get confirmation of saved record')
        return event_id

    def delete(self, event_id: int) -> bool:
        """
        Hard-delete one event.

        Args:
            event_id (int): Event ID

        Returns:
            bool: True when a row was removed
        """
        try:
            affected = self.db.execute_update(
                "DELETE FROM attendance WHERE id = ?",
                (event_id,)
            )
        except Exception as e:
            raise PersistenceError(f'Failed to delete attendance record: {str(e)}') from e
        return affected > 0

    def list_for_date(self, scan_date: Union[str, date]) -> List[AttendanceEvent]:
        """Get all events of one date, newest first."""
        day = parse_date(scan_date)
        rows = self.db.execute_query(
            """SELECT * FROM attendance
               WHERE scan_date = ? OR substr(timestamp, 1, 10) = ?
               ORDER BY timestamp DESC, id DESC""",
            (day, day)
        )
        return [AttendanceEvent.from_row(row) for row in rows]

    def search(self, start_date: Optional[str] = None, end_date: Optional[str] = None,
               course: Optional[str] = None, name: Optional[str] = None) -> List[AttendanceEvent]:
        """
        Get events matching the attendance list filters.

        Args:
            start_date (str): Inclusive lower date bound
            end_date (str): Inclusive upper date bound
            course (str): Exact course
            name (str): Case-insensitive part of the student name or ID number

        Returns:
            List[AttendanceEvent]: Matching events, newest first
        """
        where_conditions = []
        params: List[Any] = []

        if start_date:
            where_conditions.append("scan_date >= ?")
            params.append(parse_date(start_date))

        if end_date:
            where_conditions.append("scan_date <= ?")
            params.append(parse_date(end_date))

        if course:
            where_conditions.append("course = ?")
            params.append(course)

        if name:
            where_conditions.append("(LOWER(student_name) LIKE ? OR LOWER(student_id_number) LIKE ?)")
            pattern = f"%{name.lower()}%"
            params.extend([pattern, pattern])

        where_clause = " AND ".join(where_conditions) if where_conditions else "1=1"

        rows = self.db.execute_query(
            f"""SELECT * FROM attendance
                WHERE {where_clause}
                ORDER BY scan_date DESC, timestamp DESC, id DESC""",
            params
        )
        return [AttendanceEvent.from_row(row) for row in rows]

    def get_courses(self) -> List[str]:
        """Get the distinct courses that appear in attendance records."""
        rows = self.db.execute_query(
            "SELECT DISTINCT course FROM attendance ORDER BY course"
        )
        return [row['course'] for row in rows]


class AttendanceManager:
    """
    Records library check-ins and check-outs from scanned codes.
    """

    def __init__(self, directory, store, clock: Callable[[], datetime] = datetime.now):
        """
        Initialize the attendance manager.

        Args:
            directory: Student directory exposing ``find_by_code``
            store: Event store exposing ``query_by_person_and_date``,
                ``append`` and ``delete``
            clock: Returns the current local time
        """
        self.directory = directory
        self.store = store
        self.clock = clock
        self.logger = logging.getLogger(__name__)

    def resolve_person(self, code: str) -> Person:
        """
        Resolve a scanned code to a student.

        Raises:
            NotFound: No student has this barcode or student ID
            DirectoryUnavailable: The directory lookup failed
        """
        person = self.directory.find_by_code(code)
        if person is None:
            raise NotFound('Student not found. Please scan a valid student barcode or ID')
        return person

    def infer_direction(self, person_id: int, as_of_date: Union[str, date]) -> str:
        """
        Suggest the direction of the next scan of a student.

        The latest event of the day is flipped; with no event the scan is a
        time-in. Lookup errors and unreadable timestamps degrade to a time-in.

        Args:
            person_id (int): Student database ID
            as_of_date (str): Date (YYYY-MM-DD)

        Returns:
            str: ``'in'`` or ``'out'``
        """
        try:
            events = self.store.query_by_person_and_date(person_id, as_of_date)
            if not events:
                return STATUS_IN
            latest = max(events, key=lambda e: (_parse_timestamp(e.timestamp), e.id or 0))
        except Exception as e:
            self.logger.error(f"Error detecting attendance status for student {person_id}: {str(e)}")
            return STATUS_IN

        return STATUS_OUT if latest.kind == STATUS_IN else STATUS_IN

    def record_scan(self, code: str) -> AttendanceEvent:
        """
        Record a check-in or check-out for a scanned code.

        Args:
            code (str): Scanned barcode or student ID

        Returns:
            AttendanceEvent: The stored event

        Raises:
            InvalidInput: Empty code
            NotFound: Unknown code
            DirectoryUnavailable: The directory lookup failed
            IncompletePerson: The student lacks name, course or student ID
            PersistenceError: The event could not be stored
        """
        clean_code = (code or '').strip()
        if not clean_code:
            raise InvalidInput('Please scan a valid barcode')

        person = self.resolve_person(clean_code)

        if not person.name or not person.course or not person.student_id:
            self.logger.error(f"Incomplete student data for record {person.id}")
            raise IncompletePerson('Student record is incomplete. Please update student information.')

        now = self.clock()
        today = now.strftime(DATE_FORMAT)
        kind = self.infer_direction(person.id, today)
        timestamp = now.isoformat()

        event = AttendanceEvent(
            id=None,
            person_id=person.id,
            kind=kind,
            timestamp=timestamp,
            date=today,
            student_name=person.name,
            course=person.course,
            barcode=person.barcode or '',
            student_id_number=person.student_id,
            time_in=timestamp if kind == STATUS_IN else None,
            time_out=timestamp if kind == STATUS_OUT else None,
        )

        try:
            event_id = self.store.append(event)
        except PersistenceError:
            raise
        except Exception as e:
            raise PersistenceError(f'Failed to save attendance record: {str(e)}') from e

        if not event_id:
            raise PersistenceError('Failed to get confirmation of saved record')

        action = 'Time-in' if kind == STATUS_IN else 'Time-out'
        self.logger.info(f"{action} recorded for {person.name} (ID: {person.student_id})")
        return replace(event, id=event_id)

    def delete_event(self, event_id: int) -> None:
        """
        Delete an attendance event.

        Raises:
            NotFound: No event has this ID
        """
        if not self.store.delete(event_id):
            raise NotFound(f'Attendance record {event_id} not found')
        self.logger.info(f"Attendance record {event_id} deleted")

    def session_duration(self, in_event: Optional[AttendanceEvent],
                         out_event: Optional[AttendanceEvent]) -> Union[Duration, _NotApplicable]:
        """
        Time spent between a time-in event and a time-out event.

        Returns:
            Duration: ``out - in``, or NOT_APPLICABLE when a timestamp is missing
        """
        time_in = (in_event.time_in or in_event.timestamp) if in_event else None
        time_out = (out_event.time_out or out_event.timestamp) if out_event else None
        return duration_between(time_in, time_out)

    def get_today_attendance(self) -> List[AttendanceEvent]:
        """Get today's events, newest first."""
        return self.store.list_for_date(self.clock().strftime(DATE_FORMAT))

    def get_today_summary(self) -> Dict[str, Any]:
        """
        Get attendance summary for today.

        Returns:
            Dict[str, Any]: Counts of scans, time-ins, time-outs, distinct
            students, and students whose latest event is a time-in
        """
        today = self.clock().strftime(DATE_FORMAT)
        events = self.store.list_for_date(today)

        latest_by_person: Dict[int, AttendanceEvent] = {}
        for event in sorted(events, key=lambda e: (e.timestamp, e.id or 0)):
            latest_by_person[event.person_id] = event

        return {
            'date': today,
            'total_scans': len(events),
            'time_ins': sum(1 for e in events if e.kind == STATUS_IN),
            'time_outs': sum(1 for e in events if e.kind == STATUS_OUT),
            'unique_students': len(latest_by_person),
            'currently_in': sum(1 for e in latest_by_person.values() if e.kind == STATUS_IN),
        }
