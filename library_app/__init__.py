# Library Attendance & Mail Service - App Package
"""
Main application package for the library attendance and mail service.
This package contains the Flask application factory and all its modules.
"""

__version__ = "1.0.0"
__description__ = "Library check-in/check-out scanning and batched student email"

# Import core components for easy access
from .modules.database_manager import DatabaseManager
from .modules.student_manager import StudentManager, Person
from .modules.attendance_manager import AttendanceManager, AttendanceStore, AttendanceEvent
from .modules.mail_transport import SMTPTransport, MailMessage
from .modules.notification_system import NotificationSystem, DeliveryOutcome
from .modules.report_generator import AttendanceReportGenerator
from .modules.qr_generator import IDCardGenerator
from .web import create_app

__all__ = [
    'DatabaseManager',
    'StudentManager',
    'Person',
    'AttendanceManager',
    'AttendanceStore',
    'AttendanceEvent',
    'SMTPTransport',
    'MailMessage',
    'NotificationSystem',
    'DeliveryOutcome',
    'AttendanceReportGenerator',
    'IDCardGenerator',
    'create_app',
]
