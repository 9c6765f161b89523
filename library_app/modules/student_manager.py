"""
Student Manager Module - Library Attendance & Mail Service

This module is the student directory of the library service. It owns
student registration and lookup, and is the person directory the
attendance recorder resolves scanned codes against.

Features:
- Student registration with sequential ID generation
- Lookup by scanned barcode or student ID
- Recipient lists for announcement email
- Student search
"""

from dataclasses import dataclass, asdict
from typing import Dict, List, Any, Optional
import logging
import re

from library_app.modules.exceptions import DirectoryUnavailable, InvalidInput


@dataclass
class Person:
    """Data structure for a registered student as seen by the scanner."""
    id: int
    student_id: str
    name: str
    course: str
    barcode: str
    year_level: Optional[str] = None
    section: Optional[str] = None
    address: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None
    created_at: Optional[str] = None

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> 'Person':
        return cls(
            id=row['id'],
            student_id=row['student_id'],
            name=row['name'],
            course=row['course'],
            barcode=row['barcode'],
            year_level=row.get('year_level'),
            section=row.get('section'),
            address=row.get('address'),
            email=row.get('email'),
            phone=row.get('phone'),
            created_at=row.get('created_at'),
        )

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


class StudentManager:
    """
    Student directory for the library service.
    Handles registration, lookups and recipient lists.
    """

    EMAIL_PATTERN = re.compile(r'^[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}$')
    STUDENT_ID_PATTERN = re.compile(r'^[A-Za-z0-9-]{3,20}$')

    def __init__(self, database_manager, id_prefix: str = '025'):
        """
        Initialize the student manager with database connection.

        Args:
            database_manager: Database manager instance
            id_prefix (str): Prefix of generated student IDs (``025-0001``)
        """
        self.db = database_manager
        self.id_prefix = id_prefix
        self.logger = logging.getLogger(__name__)

    def find_by_code(self, code: str) -> Optional[Person]:
        """
        Find the student whose barcode or student ID equals ``code`` exactly.

        Args:
            code (str): Scanned code

        Returns:
            Person: Matching student, or None when nothing matches

        Raises:
            DirectoryUnavailable: The lookup itself failed
        """
        try:
            row = self.db.execute_query(
                """SELECT * FROM students
                   WHERE barcode = ? OR student_id = ?
                   ORDER BY CASE WHEN barcode = ? THEN 0 ELSE 1 END, id
                   LIMIT 1""",
                (code, code, code),
                fetch_all=False
            )
        except Exception as e:
            self.logger.error(f"Student lookup failed for code {code}: {str(e)}")
            raise DirectoryUnavailable(
                'Database not properly configured. Please contact the administrator.'
            ) from e

        return Person.from_row(row) if row else None

    def create_student(self, student_data: Dict[str, Any]) -> Person:
        """
        Register a new student.

        Args:
            student_data (Dict[str, Any]): Student information; ``student_id``
                is generated and ``barcode`` defaults to it when omitted

        Returns:
            Person: The registered student

        Raises:
            InvalidInput: Missing or invalid fields, or a duplicate ID/barcode/email
        """
        data = {k: (v.strip() if isinstance(v, str) else v) for k, v in student_data.items()}

        for field in ('name', 'course'):
            if not data.get(field):
                raise InvalidInput(f'Missing required field: {field}')

        self._validate_student_data(data)

        if not data.get('student_id'):
            data['student_id'] = self.generate_student_id()
        if not data.get('barcode'):
            data['barcode'] = data['student_id']

        duplicate = self.db.execute_query(
            """SELECT student_id, barcode, email FROM students
               WHERE student_id = ? OR barcode = ? OR (email IS NOT NULL AND email = ?)""",
            (data['student_id'], data['barcode'], data.get('email')),
            fetch_all=False
        )
        if duplicate:
            if duplicate['student_id'] == data['student_id']:
                raise InvalidInput('Student ID already exists')
            if duplicate['barcode'] == data['barcode']:
                raise InvalidInput('Barcode already assigned to another student')
            raise InvalidInput('Email address already exists')

        new_id = self.db.execute_update(
            """INSERT INTO students (student_id, name, course, year_level, section,
                                     address, email, phone, barcode)
               VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)""",
            (
                data['student_id'],
                data['name'],
                data['course'],
                data.get('year_level'),
                data.get('section'),
                data.get('address'),
                data.get('email') or None,
                data.get('phone'),
                data['barcode'],
            )
        )

        self.logger.info(f"Student registered: {data['student_id']} (ID: {new_id})")
        return self.get_student_by_id(new_id)

    def generate_student_id(self) -> str:
        """
        Return the lowest free ``<prefix>-NNNN`` student ID.

        Returns:
            str: Generated student ID
        """
        prefix = f"{self.id_prefix}-"
        rows = self.db.execute_query(
            "SELECT student_id FROM students WHERE student_id LIKE ?",
            (f"{prefix}%",)
        )

        taken = set()
        for row in rows:
            suffix = row['student_id'][len(prefix):]
            if suffix.isdigit():
                taken.add(int(suffix))

        next_number = 1
        while next_number in taken:
            next_number += 1

        return f"{prefix}{next_number:04d}"

    def get_student_by_id(self, student_id: int) -> Optional[Person]:
        """
        Get student by database ID.

        Args:
            student_id (int): Student database ID

        Returns:
            Person: Student or None
        """
        row = self.db.execute_query(
            "SELECT * FROM students WHERE id = ?",
            (student_id,),
            fetch_all=False
        )
        return Person.from_row(row) if row else None

    def get_students_with_email(self, course: str = None) -> List[Person]:
        """
        Get students that can receive email, optionally within one course.

        Args:
            course (str): Course filter

        Returns:
            List[Person]: Students with a usable email address
        """
        params = []
        query = "SELECT * FROM students WHERE email IS NOT NULL AND email LIKE '%@%'"
        if course:
            query += " AND course = ?"
            params.append(course)
        query += " ORDER BY name"

        return [Person.from_row(row) for row in self.db.execute_query(query, params)]

    def get_student_count(self, course: str = None) -> int:
        """
        Get count of students.

        Args:
            course (str): Filter by course

        Returns:
            int: Number of students
        """
        if course:
            result = self.db.execute_query(
                "SELECT COUNT(*) as count FROM students WHERE course = ?",
                (course,),
                fetch_all=False
            )
        else:
            result = self.db.execute_query(
                "SELECT COUNT(*) as count FROM students",
                fetch_all=False
            )
        return result['count'] if result else 0

    def search_students(self, query: str, limit: int = 10) -> List[Person]:
        """
        Search students by name, student ID, or course.

        Args:
            query (str): Search query
            limit (int): Maximum number of results

        Returns:
            List[Person]: Search results, exact ID matches first
        """
        search_pattern = f"%{query}%"

        rows = self.db.execute_query(
            """SELECT * FROM students
               WHERE student_id LIKE ? OR name LIKE ? OR course LIKE ?
               ORDER BY
                   CASE WHEN student_id = ? THEN 1
                        WHEN student_id LIKE ? THEN 2
                        WHEN name LIKE ? THEN 3
                        ELSE 4 END,
                   name
               LIMIT ?""",
            (search_pattern, search_pattern, search_pattern,
             query, f"{query}%", search_pattern, limit)
        )
        return [Person.from_row(row) for row in rows]

    def _validate_student_data(self, student_data: Dict[str, Any]) -> None:
        """
        Validate student data.

        Args:
            student_data (Dict[str, Any]): Student data to validate

        Raises:
            InvalidInput: A field has an invalid format
        """
        student_id = student_data.get('student_id')
        if student_id and not self.STUDENT_ID_PATTERN.fullmatch(student_id):
            raise InvalidInput('Student ID must be 3-20 letters, digits or dashes')

        if len(student_data['name']) < 2:
            raise InvalidInput('Name must be at least 2 characters')

        email = student_data.get('email')
        if email and not self.EMAIL_PATTERN.fullmatch(email):
            raise InvalidInput('Invalid email address format')
