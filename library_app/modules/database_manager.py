"""
Database Manager Module - Library Attendance & Mail Service

This module handles all database operations for the library service.
It provides the SQLite connection management, schema creation and the
query/update helpers used by the student directory and the attendance
event store.

Features:
- SQLite database connection management
- Table schema creation
- Query and update helpers returning plain dictionaries
- Shared in-memory database for tests
"""

import sqlite3
import logging
from contextlib import contextmanager
import threading
import os
import uuid


class DatabaseManager:
    """
    Database management class for the library service.
    Handles connection management, schema creation and data manipulation
    with error logging.
    """

    def __init__(self, db_path, timeout=30.0):
        """
        Initialize the database manager with the specified database path.

        Args:
            db_path (str): Path to the SQLite database file, or ':memory:'
            timeout (float): Seconds to wait on a locked database
        """
        self.db_path = str(db_path)
        self.timeout = timeout
        self.logger = logging.getLogger(__name__)
        self._local = threading.local()
        self._memory_anchor = None

        if self.db_path == ':memory:':
            # Named shared-cache database so every thread sees the same tables;
            # the anchor connection keeps it alive.
            self._uri = f"file:library_{uuid.uuid4().hex}?mode=memory&cache=shared"
            self._memory_anchor = sqlite3.connect(self._uri, uri=True, check_same_thread=False)
        else:
            self._uri = None
            # Ensure database directory exists
            directory = os.path.dirname(self.db_path)
            if directory:
                os.makedirs(directory, exist_ok=True)

        self.initialize_database()

    @contextmanager
    def get_connection(self):
        """
        Context manager for database connections.
        Provides thread-local connections for thread safety. An in-memory
        database is shared by all threads of this manager.

        Yields:
            sqlite3.Connection: Database connection object
        """
        if not hasattr(self._local, 'connection'):
            self._local.connection = sqlite3.connect(
                self._uri or self.db_path,
                check_same_thread=False,
                timeout=self.timeout,
                uri=self._uri is not None
            )
            self._local.connection.row_factory = sqlite3.Row
            self._local.connection.execute("PRAGMA foreign_keys = ON")

        try:
            yield self._local.connection
        except Exception as e:
            self._local.connection.rollback()
            self.logger.error(f"Database operation failed: {str(e)}")
            raise

    def initialize_database(self):
        """
        Create all necessary tables and indexes.
        This method is idempotent and can be called multiple times safely.
        """
        try:
            with self.get_connection() as conn:
                cursor = conn.cursor()

                cursor.execute("""
                    CREATE TABLE IF NOT EXISTS students (
                        id INTEGER PRIMARY KEY AUTOINCREMENT,
                        student_id VARCHAR(20) UNIQUE NOT NULL,
                        name VARCHAR(150) NOT NULL,
                        course VARCHAR(100) NOT NULL,
                        year_level VARCHAR(20),
                        section VARCHAR(20),
                        address TEXT,
                        email VARCHAR(100) UNIQUE,
                        phone VARCHAR(20),
                        barcode VARCHAR(100) UNIQUE NOT NULL,
                        created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
                        updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
                    )
                """)

                # Attendance events are append-only: no uniqueness per day
                cursor.execute("""
                    CREATE TABLE IF NOT EXISTS attendance (
                        id INTEGER PRIMARY KEY AUTOINCREMENT,
                        student_id INTEGER NOT NULL,
                        student_name VARCHAR(150) NOT NULL,
                        course VARCHAR(100) NOT NULL,
                        barcode VARCHAR(100),
                        student_id_number VARCHAR(20) NOT NULL,
                        status VARCHAR(3) NOT NULL,
                        timestamp VARCHAR(32) NOT NULL,
                        scan_date DATE NOT NULL,
                        time_in VARCHAR(32),
                        time_out VARCHAR(32),
                        created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
                    )
                """)

                cursor.execute("CREATE INDEX IF NOT EXISTS idx_attendance_date ON attendance(scan_date)")
                cursor.execute("CREATE INDEX IF NOT EXISTS idx_attendance_student_date ON attendance(student_id, scan_date)")
                cursor.execute("CREATE INDEX IF NOT EXISTS idx_students_barcode ON students(barcode)")
                cursor.execute("CREATE INDEX IF NOT EXISTS idx_students_id ON students(student_id)")

                conn.commit()

                self.logger.info("Database initialized successfully")

        except Exception as e:
            self.logger.error(f"Failed to initialize database: {str(e)}")
            raise

    def execute_query(self, query, params=None, fetch_all=True):
        """
        Execute a SELECT query and return results.

        Args:
            query (str): SQL query string
            params (tuple): Query parameters
            fetch_all (bool): Whether to fetch all results or just one

        Returns:
            list or dict: Query results
        """
        try:
            with self.get_connection() as conn:
                cursor = conn.cursor()

                if params:
                    cursor.execute(query, params)
                else:
                    cursor.execute(query)

                if fetch_all:
                    return [dict(row) for row in cursor.fetchall()]
                result = cursor.fetchone()
                return dict(result) if result else None

        except Exception as e:
            self.logger.error(f"Query execution failed: {str(e)}")
            raise

    def execute_update(self, query, params=None):
        """
        Execute an INSERT, UPDATE, or DELETE query.

        Args:
            query (str): SQL query string
            params (tuple): Query parameters

        Returns:
            int: Last inserted row ID for INSERT, otherwise affected rows
        """
        try:
            with self.get_connection() as conn:
                cursor = conn.cursor()

                if params:
                    cursor.execute(query, params)
                else:
                    cursor.execute(query)

                conn.commit()

                if query.strip().upper().startswith('INSERT'):
                    return cursor.lastrowid
                return cursor.rowcount

        except Exception as e:
            self.logger.error(f"Update execution failed: {str(e)}")
            raise

    def close_all_connections(self):
        """Close the connection held by the current thread, and drop an in-memory database."""
        if hasattr(self._local, 'connection'):
            self._local.connection.close()
            del self._local.connection
        if self._memory_anchor is not None:
            self._memory_anchor.close()
            self._memory_anchor = None
