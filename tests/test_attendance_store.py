from datetime import datetime

import pytest

from library_app.modules.attendance_manager import AttendanceManager, AttendanceStore
from library_app.modules.database_manager import DatabaseManager
from library_app.modules.exceptions import NotFound, PersistenceError
from library_app.modules.student_manager import StudentManager


@pytest.fixture
def db():
    manager = DatabaseManager(":memory:")
    yield manager
    manager.close_all_connections()


@pytest.fixture
def store(db):
    return AttendanceStore(db)


@pytest.fixture
def students(db):
    directory = StudentManager(db)
    directory.create_student({"name": "Ana Reyes", "course": "BSIT", "barcode": "LIB-0001"})
    directory.create_student({"name": "Ben Cruz", "course": "BSCS"})
    return directory


def _recorder(students, store, *moments):
    return AttendanceManager(students, store, clock=iter(moments).__next__)


def test_scans_are_appended_and_alternate(students, store):
    recorder = _recorder(students, store,
                         datetime(2025, 9, 1, 8, 0), datetime(2025, 9, 1, 9, 45), datetime(2025, 9, 1, 11, 0))

    kinds = [recorder.record_scan(code).kind for code in ("LIB-0001", "025-0001", "LIB-0001")]

    events = store.query_by_person_and_date(1, "2025-09-01")
    assert kinds == ["in", "out", "in"]
    assert [e.kind for e in events] == ["in", "out", "in"]
    assert [e.id for e in events] == [1, 2, 3]
    assert str(recorder.session_duration(events[0], events[1])) == "1h 45m"


def test_same_day_query_isolated_per_student_and_date(students, store):
    recorder = _recorder(students, store,
                         datetime(2025, 9, 1, 8, 0), datetime(2025, 9, 1, 8, 5), datetime(2025, 9, 2, 8, 0))

    recorder.record_scan("025-0001")
    ben = recorder.record_scan("025-0002")
    next_day = recorder.record_scan("025-0001")

    assert ben.kind == "in"
    assert next_day.kind == "in"
    assert len(store.query_by_person_and_date(1, "2025-09-01")) == 1
    assert len(store.query_by_person_and_date(1, "2025-09-02")) == 1


def test_delete_is_a_hard_delete(students, store):
    recorder = _recorder(students, store, datetime(2025, 9, 1, 8, 0), datetime(2025, 9, 1, 9, 0))
    event = recorder.record_scan("025-0001")

    recorder.delete_event(event.id)

    assert store.query_by_person_and_date(1, "2025-09-01") == []
    assert recorder.infer_direction(1, "2025-09-01") == "in"
    with pytest.raises(NotFound):
        recorder.delete_event(event.id)


def test_search_filters_and_orders_newest_first(students, store):
    recorder = _recorder(students, store,
                         datetime(2025, 9, 1, 8, 0), datetime(2025, 9, 2, 8, 0), datetime(2025, 9, 3, 8, 0))
    recorder.record_scan("025-0001")
    recorder.record_scan("025-0002")
    recorder.record_scan("025-0001")

    assert [e.date for e in store.search()] == ["2025-09-03", "2025-09-02", "2025-09-01"]
    assert [e.student_name for e in store.search(course="BSCS")] == ["Ben Cruz"]
    assert [e.date for e in store.search(start_date="2025-09-02", end_date="2025-09-02")] == ["2025-09-02"]
    assert len(store.search(name="ana")) == 2
    assert len(store.search(name="025-0002")) == 1
    assert store.get_courses() == ["BSCS", "BSIT"]
    assert [e.date for e in store.list_for_date("2025-09-03")] == ["2025-09-03"]


def test_append_failure_is_a_persistence_error(db, store, students, monkeypatch):
    def locked(*args, **kwargs):
        raise RuntimeError("database is locked")

    monkeypatch.setattr(db, "execute_update", locked)
    recorder = _recorder(students, store, datetime(2025, 9, 1, 8, 0))

    with pytest.raises(PersistenceError):
        recorder.record_scan("025-0001")
