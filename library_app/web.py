"""
Web Module - Library Attendance & Mail Service

Flask application factory and JSON API routes. The routes are a thin layer
over the attendance manager, the student directory and the mailer; service
errors are mapped to HTTP status codes in one place.
"""

from datetime import datetime
import io
import logging
import re

from flask import Flask, current_app, jsonify, request, send_file
from werkzeug.exceptions import HTTPException

from config import init_config
from library_app.modules.attendance_manager import (
    AttendanceManager,
    AttendanceStore,
    STATUS_IN,
    session_durations,
)
from library_app.modules.database_manager import DatabaseManager
from library_app.modules.exceptions import (
    DeliveryFailed,
    DirectoryUnavailable,
    IncompletePerson,
    InvalidInput,
    LibraryError,
    NotFound,
    PersistenceError,
)
from library_app.modules.mail_transport import SMTPTransport
from library_app.modules.notification_system import NotificationSystem
from library_app.modules.qr_generator import IDCardGenerator
from library_app.modules.report_generator import AttendanceReportGenerator
from library_app.modules.student_manager import StudentManager

logger = logging.getLogger(__name__)

ERROR_STATUS = {
    InvalidInput: 400,
    NotFound: 404,
    IncompletePerson: 422,
    DeliveryFailed: 502,
    DirectoryUnavailable: 503,
    PersistenceError: 503,
}

_CAMEL_BOUNDARY = re.compile(r'(?<!^)(?=[A-Z])')


def snake_keys(value):
    """Recursively convert camelCase dictionary keys of a JSON payload to snake_case."""
    if isinstance(value, dict):
        return {_CAMEL_BOUNDARY.sub('_', k).lower(): snake_keys(v) for k, v in value.items()}
    if isinstance(value, list):
        return [snake_keys(v) for v in value]
    return value


def _records_with_durations(events):
    durations = session_durations(events)
    records = []
    for event in events:
        record = event.to_dict()
        record['duration'] = str(durations[event.id]) if event.id in durations else None
        records.append(record)
    return records


def _services():
    return current_app.extensions['library']


def _payload():
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        raise InvalidInput('Request body must be a JSON object')
    return data


def create_app(config_name=None, transport=None, clock=None):
    """
    Build the Flask application and its services.

    Args:
        config_name (str): Key of the ``config`` dictionary
        transport: Mail transport replacing the configured SMTP transport
        clock: Callable returning the current local time, for the recorder

    Returns:
        Flask: Configured application
    """
    app = Flask(__name__)
    config_class = init_config(app, config_name)

    db_manager = DatabaseManager(app.config['DATABASE_PATH'], timeout=app.config['DATABASE_TIMEOUT'])
    student_manager = StudentManager(db_manager, id_prefix=app.config['STUDENT_ID_PREFIX'])
    attendance_store = AttendanceStore(db_manager)
    attendance_kwargs = {'clock': clock} if clock else {}
    attendance_manager = AttendanceManager(student_manager, attendance_store, **attendance_kwargs)
    transport = transport or SMTPTransport.from_config(app.config)
    notification_system = NotificationSystem(
        transport,
        batch_size=app.config['MAIL_BATCH_SIZE'],
        system_name=app.config['SYSTEM_NAME'],
    )

    app.extensions['library'] = {
        'db': db_manager,
        'students': student_manager,
        'attendance_store': attendance_store,
        'attendance': attendance_manager,
        'transport': transport,
        'mailer': notification_system,
        'reports': AttendanceReportGenerator(app.config['EXPORTS_FOLDER'], app.config['SYSTEM_NAME']),
        'cards': IDCardGenerator(app.config['SYSTEM_NAME']),
    }

    register_error_handlers(app)
    register_routes(app)

    app.logger.info(f"Library service initialized with {config_class.__name__}")
    return app


def register_error_handlers(app):
    """Map service errors to JSON responses."""

    @app.errorhandler(LibraryError)
    def handle_library_error(e):
        status = next((code for cls, code in ERROR_STATUS.items() if isinstance(e, cls)), 500)
        body = {'success': False, 'message': e.message, 'error': type(e).__name__}
        if isinstance(e, DeliveryFailed):
            body['failedRecipients'] = e.failed_recipients
        if status >= 500:
            logger.error(f"{type(e).__name__}: {e.message}")
        else:
            logger.warning(f"{type(e).__name__}: {e.message}")
        return jsonify(body), status

    @app.errorhandler(Exception)
    def handle_unexpected_error(e):
        if isinstance(e, HTTPException):
            return jsonify({'success': False, 'message': e.description}), e.code
        logger.exception(f"Unhandled server error: {str(e)}")
        return jsonify({'success': False, 'message': 'Server error occurred'}), 500


def register_routes(app):
    """Attach the JSON API routes."""

    @app.route('/api/test')
    def api_test():
        return jsonify({'success': True, 'message': 'API server is running!'})

    @app.route('/api/attendance/scan', methods=['POST'])
    def attendance_scan():
        """Record a check-in or check-out for a scanned code."""
        data = _payload()
        code = data.get('code') or data.get('barcode') or ''

        event = _services()['attendance'].record_scan(code)

        action = 'Time-in' if event.kind == STATUS_IN else 'Time-out'
        return jsonify({
            'success': True,
            'message': f"{action} recorded for {event.student_name} (ID: {event.student_id_number})",
            'data': event.to_dict()
        }), 201

    @app.route('/api/attendance/today')
    def attendance_today():
        """Today's events and summary, with the suggested direction for ``?code=``."""
        services = _services()
        attendance = services['attendance']

        body = {
            'success': True,
            'summary': attendance.get_today_summary(),
            'records': _records_with_durations(attendance.get_today_attendance())
        }

        code = (request.args.get('code') or '').strip()
        if code:
            person = attendance.resolve_person(code)
            body['suggested'] = attendance.infer_direction(person.id, body['summary']['date'])

        return jsonify(body)

    @app.route('/api/attendance')
    def attendance_list():
        """Filtered attendance list."""
        store = _services()['attendance_store']
        records = store.search(
            start_date=request.args.get('start_date'),
            end_date=request.args.get('end_date'),
            course=request.args.get('course'),
            name=request.args.get('q'),
        )
        return jsonify({
            'success': True,
            'message': f"Found {len(records)} attendance records",
            'records': _records_with_durations(records),
            'courses': store.get_courses()
        })

    @app.route('/api/attendance/export')
    def attendance_export():
        """Download the filtered attendance list as a spreadsheet."""
        services = _services()
        filters = {
            'start_date': request.args.get('start_date'),
            'end_date': request.args.get('end_date'),
            'course': request.args.get('course'),
            'q': request.args.get('q'),
        }
        records = services['attendance_store'].search(
            start_date=filters['start_date'],
            end_date=filters['end_date'],
            course=filters['course'],
            name=filters['q'],
        )
        result = services['reports'].export(records, filters, request.args.get('format', 'excel'))
        return send_file(result['filepath'], as_attachment=True, download_name=result['filename'])

    @app.route('/api/attendance/<int:event_id>', methods=['DELETE'])
    def attendance_delete(event_id):
        """Delete one attendance event."""
        _services()['attendance'].delete_event(event_id)
        return jsonify({'success': True, 'message': f"Attendance record {event_id} deleted"})

    @app.route('/api/students', methods=['POST'])
    def student_create():
        """Register a student and send the welcome email when an address is given."""
        services = _services()
        data = snake_keys(_payload())

        student = services['students'].create_student(data)
        body = {
            'success': True,
            'message': 'Student registered successfully',
            'data': student.to_dict(),
            'emailSent': False
        }

        if student.email and current_app.config['MAIL_SEND_REGISTRATION_CONFIRMATION']:
            details = student.to_dict()
            details['registration_date'] = datetime.now().strftime('%Y-%m-%d')
            try:
                services['mailer'].send_registration_confirmation(student.email, details)
                body['emailSent'] = True
            except DeliveryFailed as e:
                logger.warning(f"Registration email not sent for {student.student_id}: {e.message}")

        return jsonify(body), 201

    @app.route('/api/students/<int:student_id>/card')
    def student_card(student_id):
        """ID card of one student as PNG."""
        services = _services()
        student = services['students'].get_student_by_id(student_id)
        if student is None:
            raise NotFound(f'Student {student_id} not found')

        png = services['cards'].card_png(student)
        return send_file(io.BytesIO(png), mimetype='image/png',
                         download_name=f"id_{student.student_id}.png")

    @app.route('/api/students/cards', methods=['POST'])
    def student_cards():
        """Printable PDF of ID cards for ``{"ids": [...]}``."""
        services = _services()
        ids = _payload().get('ids') or []
        if not isinstance(ids, list):
            raise InvalidInput('ids must be a list')

        students = []
        for student_id in ids:
            student = services['students'].get_student_by_id(student_id)
            if student is None:
                raise NotFound(f'Student {student_id} not found')
            students.append(student)

        pdf = services['cards'].render_sheet(students)
        return send_file(io.BytesIO(pdf), mimetype='application/pdf',
                         as_attachment=True, download_name='student_id_cards.pdf')

    @app.route('/api/send-announcement', methods=['POST'])
    def send_announcement():
        """Broadcast an announcement to all, selected, or a single recipient."""
        services = _services()
        data = _payload()
        subject = data.get('subject')
        message = data.get('message')
        recipient_type = data.get('recipientType')

        if not subject or not message or not recipient_type:
            raise InvalidInput('Missing required announcement data')

        mailer = services['mailer']
        addresses = mailer.resolve_recipients(recipient_type, data.get('recipients'), services['students'])
        outcome = mailer.send_announcement(
            subject, None, message, addresses, attachment_url=data.get('attachmentUrl')
        )

        body = {'success': True, **outcome.to_dict()}
        if outcome.is_partial:
            body['message'] = (f"Announcement sent to {outcome.delivered} recipients "
                               f"with {len(outcome.failed_recipients)} failures")
        else:
            body['message'] = f"Announcement sent successfully to {outcome.total} recipients"
        return jsonify(body)

    @app.route('/api/send-registration-confirmation', methods=['POST'])
    def send_registration_confirmation():
        """Send the welcome email for a registered student."""
        data = _payload()
        email = data.get('studentEmail')
        name = data.get('studentName')
        details = data.get('studentDetails')

        if not email or not name or not isinstance(details, dict):
            raise InvalidInput('Missing required registration data')

        person_details = snake_keys(details)
        person_details['name'] = name
        message_id = _services()['mailer'].send_registration_confirmation(email, person_details)

        return jsonify({
            'success': True,
            'message': 'Registration confirmation email sent successfully',
            'messageId': message_id
        })

    @app.route('/api/send-borrow-notification', methods=['POST'])
    def send_borrow_notification():
        data = snake_keys(_payload())
        if not data.get('student_email') or not data.get('books'):
            raise InvalidInput('Missing required borrow notification data')

        _services()['mailer'].send_borrow_notification(
            data['student_email'], data.get('student_name', ''), data['books'], data.get('due_date', '')
        )
        return jsonify({'success': True, 'message': 'Borrow notification sent successfully'})

    @app.route('/api/send-return-notification', methods=['POST'])
    def send_return_notification():
        data = snake_keys(_payload())
        if not data.get('student_email') or not data.get('books'):
            raise InvalidInput('Missing required return notification data')

        _services()['mailer'].send_return_notification(
            data['student_email'], data.get('student_name', ''), data['books'], data.get('fine_details')
        )
        return jsonify({'success': True, 'message': 'Return notification sent successfully'})

    @app.route('/api/send-bulk-overdue-notifications', methods=['POST'])
    def send_bulk_overdue_notifications():
        data = snake_keys(_payload())
        records = data.get('overdue_records')
        if not isinstance(records, list) or not records:
            raise InvalidInput('Missing overdue records')

        results = _services()['mailer'].send_bulk_overdue_notifications(records)
        all_sent = all(r['success'] for r in results)
        return jsonify({
            'success': all_sent,
            'message': 'All overdue notifications sent successfully' if all_sent
            else 'Some notifications failed to send',
            'results': results
        })

    @app.route('/api/test-email')
    def send_test_email():
        message_id = _services()['mailer'].send_test_email(request.args.get('to'))
        return jsonify({'success': True, 'message': 'Test email sent successfully', 'messageId': message_id})
