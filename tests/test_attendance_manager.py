from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import datetime
from typing import Optional

import pytest

from library_app.modules.attendance_manager import (
    NOT_APPLICABLE,
    AttendanceEvent,
    AttendanceManager,
    Duration,
    duration_between,
    parse_date,
    session_durations,
)
from library_app.modules.exceptions import (
    DirectoryUnavailable,
    IncompletePerson,
    InvalidInput,
    NotFound,
    PersistenceError,
)
from library_app.modules.student_manager import Person


@dataclass
class InMemoryDirectory:
    people: dict[str, Person]

    def find_by_code(self, code: str) -> Optional[Person]:
        for person in self.people.values():
            if code in (person.barcode, person.student_id):
                return person
        return None


class InMemoryEvents:
    def __init__(self):
        self.events: list[AttendanceEvent] = []
        self._id = 0

    def query_by_person_and_date(self, person_id, scan_date):
        return [e for e in self.events if e.person_id == person_id and e.date == scan_date]

    def append(self, event: AttendanceEvent) -> int:
        self._id += 1
        self.events.append(replace(event, id=self._id))
        return self._id

    def delete(self, event_id: int) -> bool:
        before = len(self.events)
        self.events = [e for e in self.events if e.id != event_id]
        return len(self.events) < before

    def list_for_date(self, scan_date):
        return sorted((e for e in self.events if e.date == scan_date),
                      key=lambda e: (e.timestamp, e.id), reverse=True)


class BrokenQueryEvents(InMemoryEvents):
    def query_by_person_and_date(self, person_id, scan_date):
        raise RuntimeError("database is locked")


class BrokenAppendEvents(InMemoryEvents):
    def append(self, event):
        raise RuntimeError("disk I/O error")


class ZeroIdEvents(InMemoryEvents):
    def append(self, event):
        return 0


class UnavailableDirectory:
    def find_by_code(self, code):
        raise DirectoryUnavailable("Database not properly configured")


def clock_at(*moments: datetime):
    return iter(moments).__next__


def _student(**overrides) -> Person:
    data = dict(id=7, student_id="025-0001", name="Ana Reyes", course="BSIT", barcode="LIB-0001")
    data.update(overrides)
    return Person(**data)


def _manager(events=None, clock=None, person=None) -> AttendanceManager:
    directory = InMemoryDirectory({"ana": person or _student()})
    return AttendanceManager(directory, events or InMemoryEvents(), clock=clock or datetime.now)


def test_first_scan_of_day_is_time_in_then_alternates():
    events = InMemoryEvents()
    svc = _manager(events, clock_at(
        datetime(2025, 9, 1, 8, 0),
        datetime(2025, 9, 1, 10, 30),
        datetime(2025, 9, 1, 13, 0),
    ))

    first = svc.record_scan("025-0001")
    second = svc.record_scan("025-0001")
    third = svc.record_scan("LIB-0001")

    assert [first.kind, second.kind, third.kind] == ["in", "out", "in"]
    assert [e.id for e in (first, second, third)] == [1, 2, 3]
    assert len(events.events) == 3
    assert first.time_in == "2025-09-01T08:00:00" and first.time_out is None
    assert second.time_out == "2025-09-01T10:30:00" and second.time_in is None
    assert str(svc.session_duration(first, second)) == "2h 30m"


def test_scan_snapshots_student_details():
    svc = _manager(clock=clock_at(datetime(2025, 9, 1, 8, 0)))

    event = svc.record_scan("  LIB-0001 ")

    assert event.person_id == 7
    assert event.student_name == "Ana Reyes"
    assert event.course == "BSIT"
    assert event.barcode == "LIB-0001"
    assert event.student_id_number == "025-0001"
    assert event.date == "2025-09-01"


def test_direction_resets_on_a_new_day():
    svc = _manager(clock=clock_at(datetime(2025, 9, 1, 23, 59), datetime(2025, 9, 2, 0, 1)))

    late = svc.record_scan("025-0001")
    next_day = svc.record_scan("025-0001")

    assert late.kind == "in"
    assert next_day.kind == "in"
    assert next_day.date == "2025-09-02"


def test_infer_direction_uses_latest_event_with_id_tiebreak():
    events = InMemoryEvents()
    base = dict(person_id=7, date="2025-09-01", student_name="Ana Reyes", course="BSIT",
                barcode="LIB-0001", student_id_number="025-0001")
    events.events = [
        AttendanceEvent(id=2, kind="out", timestamp="2025-09-01T09:00:00", **base),
        AttendanceEvent(id=5, kind="in", timestamp="2025-09-01T09:00:00", **base),
        AttendanceEvent(id=1, kind="in", timestamp="2025-09-01T08:00:00", **base),
    ]
    svc = _manager(events)

    assert svc.infer_direction(7, "2025-09-01") == "out"
    assert svc.infer_direction(7, "2025-09-02") == "in"


def test_infer_direction_degrades_to_time_in_on_lookup_error():
    svc = _manager(BrokenQueryEvents())

    assert svc.infer_direction(7, "2025-09-01") == "in"


def _stored(event_id, kind, timestamp):
    return AttendanceEvent(id=event_id, kind=kind, timestamp=timestamp, person_id=7, date="2025-09-01",
                           student_name="Ana Reyes", course="BSIT", barcode="LIB-0001",
                           student_id_number="025-0001")


def test_unreadable_stored_timestamp_degrades_to_time_in():
    events = InMemoryEvents()
    events.events = [_stored(1, "in", "9/1/2025, 8:00:00 AM")]
    events._id = 1
    svc = _manager(events, clock_at(datetime(2025, 9, 1, 9, 0)))

    assert svc.infer_direction(7, "2025-09-01") == "in"
    assert svc.record_scan("025-0001").kind == "in"
    assert len(events.events) == 2


def test_mixed_offset_timestamps_degrade_to_time_in():
    events = InMemoryEvents()
    events.events = [
        _stored(1, "in", "2025-09-01T08:00:00+08:00"),
        _stored(2, "out", "2025-09-01T09:00:00"),
    ]
    svc = _manager(events)

    assert svc.infer_direction(7, "2025-09-01") == "in"


def test_unknown_code_raises_not_found_and_records_nothing():
    events = InMemoryEvents()
    svc = _manager(events)

    with pytest.raises(NotFound):
        svc.record_scan("999-9999")
    assert events.events == []


@pytest.mark.parametrize("code", ["", "   ", None])
def test_empty_code_is_rejected(code):
    with pytest.raises(InvalidInput):
        _manager().record_scan(code)


def test_directory_failure_propagates():
    svc = AttendanceManager(UnavailableDirectory(), InMemoryEvents())

    with pytest.raises(DirectoryUnavailable):
        svc.record_scan("025-0001")


def test_incomplete_student_is_rejected():
    events = InMemoryEvents()
    svc = _manager(events, person=_student(course=""))

    with pytest.raises(IncompletePerson):
        svc.record_scan("025-0001")
    assert events.events == []


def test_store_failure_becomes_persistence_error():
    with pytest.raises(PersistenceError):
        _manager(BrokenAppendEvents()).record_scan("025-0001")


def test_missing_row_id_becomes_persistence_error():
    with pytest.raises(PersistenceError):
        _manager(ZeroIdEvents()).record_scan("025-0001")


def test_delete_event():
    events = InMemoryEvents()
    svc = _manager(events, clock_at(datetime(2025, 9, 1, 8, 0)))
    event = svc.record_scan("025-0001")

    svc.delete_event(event.id)

    assert events.events == []
    with pytest.raises(NotFound):
        svc.delete_event(event.id)


def test_today_summary_counts_students_currently_in():
    events = InMemoryEvents()
    svc = _manager(events, clock_at(
        datetime(2025, 9, 1, 8, 0),
        datetime(2025, 9, 1, 9, 0),
        datetime(2025, 9, 1, 10, 0),
        datetime(2025, 9, 1, 12, 0),
        datetime(2025, 9, 1, 12, 0),
    ))
    svc.record_scan("025-0001")
    svc.record_scan("025-0001")
    svc.record_scan("025-0001")

    summary = svc.get_today_summary()

    assert summary == {
        "date": "2025-09-01",
        "total_scans": 3,
        "time_ins": 2,
        "time_outs": 1,
        "unique_students": 1,
        "currently_in": 1,
    }
    assert [e.id for e in svc.get_today_attendance()] == [3, 2, 1]


def test_duration_formats_hours_and_minutes():
    assert str(duration_between("2025-09-01T08:00:00", "2025-09-01T09:30:00")) == "1h 30m"
    assert str(duration_between(datetime(2025, 9, 1, 8, 0), datetime(2025, 9, 1, 8, 0, 59))) == "0h 0m"


def test_negative_duration_keeps_its_sign():
    result = duration_between("2025-09-01T10:00:00", "2025-09-01T08:45:00")

    assert result == Duration(-75)
    assert result.is_negative
    assert str(result) == "-1h 15m"


def test_missing_timestamp_is_not_applicable():
    assert duration_between(None, "2025-09-01T09:30:00") is NOT_APPLICABLE
    assert duration_between("2025-09-01T09:30:00", "") is NOT_APPLICABLE
    assert not NOT_APPLICABLE
    assert str(NOT_APPLICABLE) == "N/A"
    assert _manager().session_duration(None, None) is NOT_APPLICABLE


def test_unreadable_timestamp_is_not_applicable():
    assert duration_between("9/1/2025, 8:00:00 AM", "2025-09-01T09:30:00") is NOT_APPLICABLE
    assert duration_between("2025-09-01T08:00:00+08:00", "2025-09-01T09:30:00") is NOT_APPLICABLE


def test_session_durations_pair_each_time_out_with_its_time_in():
    events = [
        _stored(3, "in", "2025-09-01T14:00:00"),
        _stored(2, "out", "2025-09-01T10:30:00"),
        _stored(1, "in", "2025-09-01T08:00:00"),
        _stored(4, "out", "2025-09-01T14:45:00"),
        _stored(5, "out", "2025-09-01T15:00:00"),
    ]

    durations = session_durations(events)

    assert set(durations) == {2, 4, 5}
    assert str(durations[2]) == "2h 30m"
    assert str(durations[4]) == "0h 45m"
    assert durations[5] is NOT_APPLICABLE


def test_parse_date_normalizes_or_rejects():
    assert parse_date("2025-09-30") == "2025-09-30"
    assert parse_date(datetime(2025, 9, 30, 17, 5)) == "2025-09-30"
    for bad in ("2025/09/30", "yesterday", "2025-13-01"):
        with pytest.raises(InvalidInput):
            parse_date(bad)
