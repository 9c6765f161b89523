import pandas as pd
import pytest

from library_app.modules.attendance_manager import AttendanceEvent
from library_app.modules.exceptions import InvalidInput
from library_app.modules.report_generator import COLUMNS, AttendanceReportGenerator


def _event(event_id, kind, timestamp, name="Ana Reyes", course="BSIT"):
    return AttendanceEvent(
        id=event_id, person_id=1, kind=kind, timestamp=timestamp, date=timestamp[:10],
        student_name=name, course=course, barcode="LIB-0001", student_id_number="025-0001",
    )


@pytest.fixture
def records():
    return [
        _event(1, "in", "2025-09-01T08:00:00"),
        _event(2, "out", "2025-09-01T13:15:30"),
        _event(3, "in", "2025-09-02T07:45:00"),
    ]


def test_dataframe_rows_are_newest_first_with_labels(tmp_path, records):
    df = AttendanceReportGenerator(tmp_path).build_dataframe(records)

    assert list(df.columns) == COLUMNS
    assert list(df["Date"]) == ["2025-09-02", "2025-09-01", "2025-09-01"]
    assert list(df["Status"]) == ["Checked In", "Checked Out", "Checked In"]
    assert df.iloc[1]["Time"] == "01:15:30 PM"
    assert list(df["Session Duration"]) == ["", "5h 15m", ""]


def test_csv_export(tmp_path, records):
    result = AttendanceReportGenerator(tmp_path).export(records, {"course": "BSIT"}, "csv")

    assert result["format"] == "csv"
    assert result["records"] == 3
    assert result["filename"].startswith("attendance_All_to_All_")
    exported = pd.read_csv(result["filepath"])
    assert list(exported.columns) == COLUMNS
    assert len(exported) == 3


def test_excel_export_has_header_block_and_filters(tmp_path, records):
    filters = {"start_date": "2025-09-01", "end_date": "2025-09-02", "course": "BSIT", "q": None}

    result = AttendanceReportGenerator(tmp_path, "Campus Library").export(records, filters, "excel")

    sheets = pd.read_excel(result["filepath"], sheet_name=None, header=None)
    attendance = sheets["Attendance"]
    assert attendance.iloc[0, 0] == "Campus Library - Attendance Records"
    assert attendance.iloc[1, 0] == "Date Range: 2025-09-01 to 2025-09-02"
    assert list(sheets["Applied Filters"].iloc[1:, 0]) == ["start_date", "end_date", "course"]
    assert result["filename"].endswith(".xlsx")
    assert result["size"] > 0


def test_export_rejects_unknown_format_and_empty_records(tmp_path, records):
    generator = AttendanceReportGenerator(tmp_path)

    with pytest.raises(InvalidInput):
        generator.export(records, {}, "pdf")
    with pytest.raises(InvalidInput):
        generator.export([], {}, "csv")
    with pytest.raises(InvalidInput, match="Invalid date '2025/09/30'"):
        generator.export(records, {"end_date": "2025/09/30"}, "csv")
    assert list(tmp_path.iterdir()) == []
