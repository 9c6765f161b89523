"""
Exceptions Module - Library Attendance & Mail Service

Error taxonomy shared by the attendance recorder, the student directory and
the bulk mailer. Callers (the HTTP layer) map each class to a distinct
response so operators can tell a bad scan from a broken system.
"""

from typing import List, Optional


class LibraryError(Exception):
    """Base class for all service errors."""

    def __init__(self, message: str = ''):
        super().__init__(message)
        self.message = message


class InvalidInput(LibraryError):
    """Caller-supplied data is malformed or empty."""


class NotFound(LibraryError):
    """A lookup by code or identifier matched nothing."""


class DirectoryUnavailable(LibraryError):
    """The student directory itself failed (missing index, locked database, timeout)."""


class PersistenceError(LibraryError):
    """The event store did not confirm a write."""


class IncompletePerson(LibraryError):
    """A resolved student lacks the fields an attendance event must snapshot."""


class TransportError(LibraryError):
    """A single SMTP delivery attempt failed."""


class DeliveryFailed(LibraryError):
    """Every recipient of a mail operation failed."""

    def __init__(self, message: str = '', failed_recipients: Optional[List[str]] = None):
        super().__init__(message)
        self.failed_recipients = list(failed_recipients or [])
