"""
Report Generator Module - Library Attendance & Mail Service

Exports filtered attendance records to Excel or CSV. The Excel workbook
starts with a header block describing the filters, followed by the
records, plus an "Applied Filters" sheet.
"""

import pandas as pd
from datetime import datetime
from typing import Dict, List, Any, Optional
import logging
import os

from library_app.modules.attendance_manager import (
    AttendanceEvent,
    STATUS_IN,
    STATUS_OUT,
    parse_date,
    session_durations,
)
from library_app.modules.exceptions import InvalidInput

STATUS_LABELS = {
    STATUS_IN: 'Checked In',
    STATUS_OUT: 'Checked Out',
}

COLUMNS = ['Student ID', 'Name', 'Course', 'Date', 'Time', 'Status', 'Session Duration']


class AttendanceReportGenerator:
    """
    Attendance export to spreadsheet files.
    """

    def __init__(self, output_dir: str = 'exports', system_name: str = 'Library Management System'):
        """
        Initialize the report generator.

        Args:
            output_dir (str): Directory the export files are written to
            system_name (str): Title printed above the records
        """
        self.logger = logging.getLogger(__name__)
        self.output_dir = str(output_dir)
        self.system_name = system_name
        self.supported_formats = ['excel', 'csv']

        os.makedirs(self.output_dir, exist_ok=True)

    def build_dataframe(self, records: List[AttendanceEvent]) -> pd.DataFrame:
        """
        Tabulate attendance events, newest first.

        Args:
            records (List[AttendanceEvent]): Events to export

        Returns:
            pd.DataFrame: One row per event with the export columns; time-outs
            carry the duration since the matching time-in
        """
        durations = session_durations(records)
        rows = []
        for record in sorted(records, key=lambda r: (r.date, r.timestamp), reverse=True):
            try:
                time_label = record.scanned_at.strftime('%I:%M:%S %p')
            except ValueError:
                time_label = record.timestamp
            rows.append({
                'Student ID': record.student_id_number,
                'Name': record.student_name,
                'Course': record.course,
                'Date': record.date,
                'Time': time_label,
                'Status': STATUS_LABELS.get(record.kind, record.kind),
                'Session Duration': str(durations[record.id]) if record.id in durations else '',
            })
        return pd.DataFrame(rows, columns=COLUMNS)

    def export(self, records: List[AttendanceEvent], filters: Optional[Dict[str, Any]] = None,
               output_format: str = 'excel') -> Dict[str, Any]:
        """
        Write attendance records to a file.

        Args:
            records (List[AttendanceEvent]): Events to export
            filters (Dict[str, Any]): ``start_date``, ``end_date``, ``course``, ``q``
            output_format (str): ``excel`` or ``csv``

        Returns:
            Dict[str, Any]: ``filename``, ``filepath``, ``format`` and ``size``

        Raises:
            InvalidInput: Unsupported format, malformed date filter or no records
        """
        filters = dict(filters or {})
        for key in ('start_date', 'end_date'):
            if filters.get(key):
                filters[key] = parse_date(filters[key])

        if output_format not in self.supported_formats:
            raise InvalidInput(f'Unsupported output format: {output_format}')

        if not records:
            raise InvalidInput('No attendance records to export')

        df = self.build_dataframe(records)
        start = filters.get('start_date') or 'All'
        end = filters.get('end_date') or 'All'
        stamp = datetime.now().strftime('%Y%m%d_%H%M%S')

        if output_format == 'excel':
            filename = f"attendance_{start}_to_{end}_{stamp}.xlsx"
            filepath = os.path.join(self.output_dir, filename)
            self._write_excel(df, filters, filepath)
        else:
            filename = f"attendance_{start}_to_{end}_{stamp}.csv"
            filepath = os.path.join(self.output_dir, filename)
            df.to_csv(filepath, index=False, encoding='utf-8')

        self.logger.info(f"Attendance export generated: {filename} ({len(df)} records)")

        return {
            'filename': filename,
            'filepath': filepath,
            'format': output_format,
            'size': os.path.getsize(filepath),
            'records': len(df),
        }

    def _header_lines(self, filters: Dict[str, Any], total: int) -> List[str]:
        start = filters.get('start_date') or 'All'
        end = filters.get('end_date') or 'All'
        return [
            f"{self.system_name} - Attendance Records",
            f"Date Range: {start} to {end}",
            f"Course: {filters.get('course') or 'All Courses'}",
            f"Search: {filters.get('q') or 'None'}",
            f"Total Records: {total}",
            f"Generated on: {datetime.now().strftime('%Y-%m-%d %H:%M:%S')}",
        ]

    def _write_excel(self, df: pd.DataFrame, filters: Dict[str, Any], filepath: str) -> None:
        header = self._header_lines(filters, len(df))

        with pd.ExcelWriter(filepath, engine='openpyxl') as writer:
            df.to_excel(writer, sheet_name='Attendance', index=False, startrow=len(header) + 1)

            sheet = writer.sheets['Attendance']
            for row, line in enumerate(header, start=1):
                sheet.cell(row=row, column=1, value=line)
                sheet.merge_cells(start_row=row, start_column=1, end_row=row, end_column=len(COLUMNS))

            filters_data = [{'Filter': k, 'Value': v} for k, v in filters.items() if v]
            if filters_data:
                pd.DataFrame(filters_data).to_excel(writer, sheet_name='Applied Filters', index=False)
