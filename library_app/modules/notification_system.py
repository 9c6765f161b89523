"""
Notification System Module - Library Attendance & Mail Service

This module sends the library's transactional and broadcast email. Broadcast
mail is split into fixed-size blind-carbon-copy batches; a failed batch is
recorded and the remaining batches are still attempted.

Features:
- Batched announcement delivery with partial-failure reporting
- Registration confirmation email
- Borrow, return and overdue notices
- Recipient resolution for all / selected / single targets
- Jinja2 email templates (HTML and plain text)
"""

from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional
import logging

from jinja2 import Environment

from library_app.modules.exceptions import DeliveryFailed, InvalidInput, TransportError
from library_app.modules.mail_transport import MailMessage
from library_app.modules.student_manager import StudentManager

DEFAULT_BATCH_SIZE = 50

RECIPIENT_ALL = 'all'
RECIPIENT_SELECTED = 'selected'
RECIPIENT_SINGLE = 'single'


@dataclass
class DeliveryOutcome:
    """Aggregate result of one multi-recipient send."""
    total: int
    delivered: int
    failed_recipients: List[str] = field(default_factory=list)
    message_ids: List[str] = field(default_factory=list)

    @property
    def status(self) -> str:
        return 'sent' if not self.failed_recipients else 'partial'

    @property
    def is_partial(self) -> bool:
        return bool(self.failed_recipients)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'status': self.status,
            'total': self.total,
            'delivered': self.delivered,
            'failedRecipients': list(self.failed_recipients),
        }


def chunk(recipients: List[str], size: int) -> List[List[str]]:
    """Split ``recipients`` into contiguous, order-preserving slices of at most ``size``."""
    return [recipients[i:i + size] for i in range(0, len(recipients), size)]


class NotificationSystem:
    """
    Library mailer.
    Delivers broadcast and transactional email through a mail transport.
    """

    def __init__(self, transport, batch_size: int = DEFAULT_BATCH_SIZE,
                 system_name: str = 'Library Management System'):
        """
        Initialize the mailer.

        Args:
            transport: Mail transport exposing ``send(message, to=..., bcc=...)``
            batch_size (int): Recipients per announcement batch
            system_name (str): Name used in email headings and footers
        """
        self.logger = logging.getLogger(__name__)
        self.transport = transport
        self.batch_size = batch_size
        self.system_name = system_name

        self._html = Environment(autoescape=True, trim_blocks=True, lstrip_blocks=True)
        self._text = Environment(autoescape=False, trim_blocks=True, lstrip_blocks=True)

        self.templates = {
            'announcement': (self._get_announcement_template(), self._get_announcement_text_template()),
            'registration': (self._get_registration_template(), self._get_registration_text_template()),
            'borrow': (self._get_borrow_template(), self._get_borrow_text_template()),
            'return': (self._get_return_template(), self._get_return_text_template()),
            'overdue': (self._get_overdue_template(), self._get_overdue_text_template()),
        }

    def render(self, template_name: str, **context) -> Dict[str, str]:
        """
        Render the HTML and plain-text bodies of a named template.

        Returns:
            Dict[str, str]: ``{'html': ..., 'text': ...}``
        """
        html_source, text_source = self.templates[template_name]
        context.setdefault('system_name', self.system_name)
        return {
            'html': self._html.from_string(html_source).render(**context),
            'text': self._text.from_string(text_source).render(**context).strip() + '\n',
        }

    def send_to_many(self, message: MailMessage, recipients: List[str],
                     batch_size: Optional[int] = None) -> DeliveryOutcome:
        """
        Send one message to many recipients in BCC batches.

        Args:
            message (MailMessage): Message sent identically to every batch
            recipients (List[str]): Recipient addresses
            batch_size (int): Recipients per batch

        Returns:
            DeliveryOutcome: ``sent`` or ``partial`` result

        Raises:
            InvalidInput: No recipients, or a batch size below one
            DeliveryFailed: Every batch failed
        """
        recipients = list(recipients or [])
        if not recipients:
            raise InvalidInput('No valid recipients specified')

        size = self.batch_size if batch_size is None else batch_size
        if size < 1:
            raise InvalidInput('Batch size must be at least 1')

        failed: List[str] = []
        message_ids: List[str] = []

        for number, batch in enumerate(chunk(recipients, size), start=1):
            try:
                message_ids.append(self.transport.send(message, bcc=batch))
                self.logger.info(f"Batch {number} sent successfully to {len(batch)} recipients")
            except TransportError as e:
                self.logger.error(f"Error sending batch {number}: {str(e)}")
                failed.extend(batch)

        if len(failed) == len(recipients):
            raise DeliveryFailed(f"Failed to send '{message.subject}' to any recipients", failed)

        outcome = DeliveryOutcome(
            total=len(recipients),
            delivered=len(recipients) - len(failed),
            failed_recipients=failed,
            message_ids=message_ids,
        )

        if outcome.is_partial:
            self.logger.warning(
                f"'{message.subject}' sent to {outcome.delivered} recipients with {len(failed)} failures"
            )
        else:
            self.logger.info(f"'{message.subject}' sent successfully to {outcome.total} recipients")

        return outcome

    def send_single(self, message: MailMessage, address: str) -> str:
        """
        Send a message directly to one recipient.

        Returns:
            str: Message-ID

        Raises:
            InvalidInput: Empty address
            DeliveryFailed: The transport failed
        """
        address = (address or '').strip()
        if not address:
            raise InvalidInput('Recipient email address is required')

        try:
            message_id = self.transport.send(message, to=[address])
        except TransportError as e:
            self.logger.error(f"Error sending '{message.subject}' to {address}: {str(e)}")
            raise DeliveryFailed(f"Failed to send '{message.subject}': {str(e)}", [address]) from e

        self.logger.info(f"'{message.subject}' sent to {address}: {message_id}")
        return message_id

    def resolve_recipients(self, recipient_type: str, recipients: Any = None,
                           directory=None) -> List[str]:
        """
        Turn an announcement target into a list of addresses.

        Args:
            recipient_type (str): ``all``, ``selected`` or ``single``
            recipients: Address list (``all``/``selected``) or one address (``single``)
            directory: Student directory used to expand ``all`` when no list is given

        Returns:
            List[str]: Addresses containing ``@``, in input order

        Raises:
            InvalidInput: Unknown type, mismatched recipient data, or no addresses
        """
        if recipient_type == RECIPIENT_ALL:
            if recipients:
                addresses = recipients if isinstance(recipients, list) else [recipients]
            elif directory is not None:
                addresses = [student.email for student in directory.get_students_with_email()]
            else:
                addresses = []
        elif recipient_type == RECIPIENT_SELECTED and isinstance(recipients, list):
            addresses = recipients
        elif recipient_type == RECIPIENT_SINGLE and isinstance(recipients, str):
            addresses = [recipients]
        else:
            raise InvalidInput('Invalid recipient type or recipient data')

        resolved = [a.strip() for a in addresses
                    if isinstance(a, str) and StudentManager.EMAIL_PATTERN.fullmatch(a.strip())]
        if not resolved:
            raise InvalidInput('No valid recipients specified')
        return resolved

    def send_announcement(self, subject: str, html_body: Optional[str], text_body: str,
                          recipients: List[str], attachment_url: Optional[str] = None) -> DeliveryOutcome:
        """
        Broadcast a library announcement.

        Args:
            subject (str): Email subject
            html_body (str): Announcement HTML; rendered from ``text_body`` when None
            text_body (str): Announcement plain text
            recipients (List[str]): Recipient addresses
            attachment_url (str): Optional link shown as "View Attachment"

        Returns:
            DeliveryOutcome: Aggregated result
        """
        if not subject or not (text_body or html_body):
            raise InvalidInput('Missing required announcement data')

        bodies = self.render(
            'announcement',
            html_content=html_body,
            text_content=text_body or '',
            attachment_url=attachment_url,
        )
        message = MailMessage(
            subject=subject,
            text_body=bodies['text'],
            html_body=bodies['html'],
            attachment_url=attachment_url,
        )
        return self.send_to_many(message, recipients)

    def send_registration_confirmation(self, address: str, person_details: Dict[str, Any]) -> str:
        """
        Send the welcome email for a newly registered student.

        Args:
            address (str): Student email
            person_details (Dict[str, Any]): ``name``, ``student_id``, ``course``,
                ``year_level``, optional ``section`` and ``address``, and
                ``registration_date``

        Returns:
            str: Message-ID
        """
        for key in ('name', 'student_id', 'course'):
            if not person_details.get(key):
                raise InvalidInput('Missing required registration data')

        bodies = self.render('registration', student=person_details)
        message = MailMessage(
            subject=f"Welcome to the {self.system_name}",
            text_body=bodies['text'],
            html_body=bodies['html'],
        )
        return self.send_single(message, address)

    def send_borrow_notification(self, address: str, student_name: str,
                                 books: List[Dict[str, Any]], due_date: str) -> str:
        """Confirm a checkout of one or more books."""
        bodies = self.render('borrow', student_name=student_name, books=books, due_date=due_date)
        message = MailMessage(
            subject='Library Book Borrowing Confirmation',
            text_body=bodies['text'],
            html_body=bodies['html'],
        )
        return self.send_single(message, address)

    def send_return_notification(self, address: str, student_name: str,
                                 books: List[Dict[str, Any]],
                                 fine_details: Optional[Dict[str, Any]] = None) -> str:
        """Confirm returned books, with the fine status when a fine applies."""
        bodies = self.render('return', student_name=student_name, books=books, fine=fine_details)
        message = MailMessage(
            subject='Library Book Return Confirmation',
            text_body=bodies['text'],
            html_body=bodies['html'],
        )
        return self.send_single(message, address)

    def send_bulk_overdue_notifications(self, overdue_records: Iterable[Dict[str, Any]]) -> List[Dict[str, Any]]:
        """
        Send one overdue notice per student.

        Each record holds ``student_email``, ``student_name``, ``books`` and
        ``total_fine``. Failures are reported per student, never raised.

        Returns:
            List[Dict[str, Any]]: ``student_email``, ``success`` and ``message`` per record
        """
        results = []
        for record in overdue_records:
            email = record.get('student_email')
            bodies = self.render(
                'overdue',
                student_name=record.get('student_name', ''),
                books=record.get('books', []),
                total_fine=record.get('total_fine', 0),
            )
            message = MailMessage(
                subject='Library Books Overdue Notice',
                text_body=bodies['text'],
                html_body=bodies['html'],
            )
            try:
                self.send_single(message, email)
                results.append({'student_email': email, 'success': True,
                                'message': 'Notification sent successfully'})
            except (DeliveryFailed, InvalidInput) as e:
                results.append({'student_email': email, 'success': False, 'message': e.message})

        return results

    def send_test_email(self, address: Optional[str] = None) -> str:
        """Send a short test message, to the configured sender by default."""
        message = MailMessage(
            subject='Email System Test',
            text_body='This is a test email to verify the email sending functionality is working.',
            html_body='<p>This is a test email to verify the email sending functionality is working.</p>',
            priority='normal',
        )
        return self.send_single(message, address or getattr(self.transport, 'sender', None))

    def _get_announcement_template(self) -> str:
        """Get email template for announcements."""
        return """
        <div style="font-family: Arial, sans-serif; max-width: 600px; margin: 0 auto;">
          <h2 style="color: #1976d2;">Library Announcement</h2>
          <div style="margin: 20px 0; padding: 15px; background-color: #f5f5f5; border-radius: 4px;">
            {% if html_content %}
            {{ html_content|safe }}
            {% else %}
            {% for line in text_content.splitlines() %}{{ line }}<br>{% endfor %}
            {% endif %}
          </div>
          {% if attachment_url %}
          <div style="margin: 20px 0;">
            <a href="{{ attachment_url }}" style="display: inline-block; background-color: #1976d2; color: white; padding: 10px 15px; text-decoration: none; border-radius: 4px;">
              View Attachment
            </a>
          </div>
          {% endif %}
          <p style="margin-top: 30px; color: #666; font-size: 0.9em;">
            This is an automated message from the {{ system_name }}. Please do not reply to this email.
          </p>
        </div>
        """

    def _get_announcement_text_template(self) -> str:
        return """
Library Announcement

{{ text_content }}

{% if attachment_url %}
Attachment: {{ attachment_url }}

{% endif %}
This is an automated message from the {{ system_name }}. Please do not reply to this email.
"""

    def _get_registration_template(self) -> str:
        """Get email template for registration confirmations."""
        return """
        <div style="font-family: Arial, sans-serif; max-width: 600px; margin: 0 auto;">
          <h2 style="color: #1976d2;">Welcome to the {{ system_name }}</h2>
          <p>Hello {{ student.name }},</p>
          <p>Your registration with the {{ system_name }} is now complete!</p>
          <div style="margin: 20px 0; padding: 15px; background-color: #f5f5f5; border-radius: 4px;">
            <h3 style="margin-top: 0;">Your Registration Details:</h3>
            <p><strong>Student ID:</strong> {{ student.student_id }}</p>
            <p><strong>Course:</strong> {{ student.course }}</p>
            <p><strong>Year Level:</strong> {{ student.year_level or 'N/A' }}</p>
            {% if student.section %}<p><strong>Section:</strong> {{ student.section }}</p>{% endif %}
            {% if student.address %}<p><strong>Address:</strong> {{ student.address }}</p>{% endif %}
            <p><strong>Registration Date:</strong> {{ student.registration_date }}</p>
          </div>
          <p>You can now borrow books, access resources, and use all library services.</p>
          <p>If you have any questions, please visit the library or contact the librarian.</p>
          <p style="margin-top: 30px; color: #666; font-size: 0.9em;">
            This is an automated message from the {{ system_name }}. Please do not reply to this email.
          </p>
        </div>
        """

    def _get_registration_text_template(self) -> str:
        return """
Welcome to the {{ system_name }}

Hello {{ student.name }},

Your registration with the {{ system_name }} is now complete!

Your Registration Details:
- Student ID: {{ student.student_id }}
- Course: {{ student.course }}
- Year Level: {{ student.year_level or 'N/A' }}
{% if student.section %}
- Section: {{ student.section }}
{% endif %}
{% if student.address %}
- Address: {{ student.address }}
{% endif %}
- Registration Date: {{ student.registration_date }}

You can now borrow books, access resources, and use all library services.
If you have any questions, please visit the library or contact the librarian.

This is an automated message from the {{ system_name }}. Please do not reply to this email.
"""

    def _get_borrow_template(self) -> str:
        """Get email template for borrowing confirmations."""
        return """
        <div style="font-family: Arial, sans-serif; max-width: 600px; margin: 0 auto;">
          <h2 style="color: #1976d2;">Library Book Borrowing Confirmation</h2>
          <p>Dear {{ student_name }},</p>
          <p>This email confirms that you have borrowed the following book(s):</p>
          <div style="margin: 20px 0; padding: 10px; background-color: #f5f5f5; border-radius: 4px;">
            {% for book in books %}
            <p style="margin: 5px 0;">&bull; {{ book.title }} by {{ book.author }}<br>
            <span style="color: #666; font-size: 0.9em;">Accession Number: {{ book.accession_number }}</span></p>
            {% endfor %}
          </div>
          <p style="color: #d32f2f; font-weight: bold;">Due Date: {{ due_date }}</p>
          <p>Please return these items by the due date to avoid overdue fines.</p>
          <p style="margin-top: 30px;">Best regards,<br>{{ system_name }}</p>
        </div>
        """

    def _get_borrow_text_template(self) -> str:
        return """
Dear {{ student_name }},

This email confirms that you have borrowed the following book(s):

{% for book in books %}
- {{ book.title }} by {{ book.author }} (Accession: {{ book.accession_number }})
{% endfor %}

Due Date: {{ due_date }}

Please return these items by the due date to avoid overdue fines.

Best regards,
{{ system_name }}
"""

    def _get_return_template(self) -> str:
        """Get email template for return confirmations."""
        return """
        <div style="font-family: Arial, sans-serif; max-width: 600px; margin: 0 auto;">
          <h2 style="color: #1976d2;">Library Book Return Confirmation</h2>
          <p>Dear {{ student_name }},</p>
          <p>This email confirms that you have returned the following book(s):</p>
          <div style="margin: 20px 0; padding: 10px; background-color: #f5f5f5; border-radius: 4px;">
            {% for book in books %}
            <p style="margin: 5px 0;">
              &bull; {{ book.title }} by {{ book.author }}<br>
              <span style="color: #666; font-size: 0.9em;">Accession Number: {{ book.accession_number }}</span><br>
              <span style="color: #666; font-size: 0.9em;">Condition: {{ book.condition }}</span>
              {% if book.days_overdue %}
              <br><span style="color: #d32f2f; font-size: 0.9em;">
                Overdue: {{ book.days_overdue }} days (Fine: &#8369;{{ '%.2f'|format(book.fine or 0) }})
              </span>
              {% endif %}
            </p>
            {% endfor %}
          </div>
          {% if fine %}
          <div style="margin: 20px 0; padding: 15px; background-color: {{ '#e8f5e9' if fine.is_paid else '#ffebee' }}; border-radius: 4px;">
            <h3 style="margin: 0 0 10px 0; color: {{ '#2e7d32' if fine.is_paid else '#c62828' }};">
              {{ 'Fine Payment Received' if fine.is_paid else 'Outstanding Fine' }}
            </h3>
            <p style="margin: 0;">
              Total Fine Amount: &#8369;{{ '%.2f'|format(fine.total_amount) }}<br>
              Status: {{ 'PAID' if fine.is_paid else 'UNPAID' }}
            </p>
            {% if not fine.is_paid %}
            <p style="margin: 10px 0 0 0; font-size: 0.9em; color: #d32f2f;">
              Please settle the outstanding fine at the library counter to avoid borrowing restrictions.
            </p>
            {% endif %}
          </div>
          {% endif %}
          <p>Thank you for returning your books{{ ' and your attention to the fine payment' if fine }}.</p>
          <p style="margin-top: 30px;">Best regards,<br>{{ system_name }}</p>
        </div>
        """

    def _get_return_text_template(self) -> str:
        return """
Dear {{ student_name }},

This email confirms that you have returned the following book(s):

{% for book in books %}
- {{ book.title }} by {{ book.author }}
  Accession Number: {{ book.accession_number }}
  Condition: {{ book.condition }}
{% if book.days_overdue %}
  Overdue: {{ book.days_overdue }} days (Fine: PHP {{ '%.2f'|format(book.fine or 0) }})
{% endif %}
{% endfor %}
{% if fine %}

{{ 'Fine Payment Received' if fine.is_paid else 'Outstanding Fine' }}
Total Fine Amount: PHP {{ '%.2f'|format(fine.total_amount) }}
Status: {{ 'PAID' if fine.is_paid else 'UNPAID' }}
{% if not fine.is_paid %}

Please settle the outstanding fine at the library counter to avoid borrowing restrictions.
{% endif %}
{% endif %}

Thank you for returning your books{{ ' and your attention to the fine payment' if fine }}.

Best regards,
{{ system_name }}
"""

    def _get_overdue_template(self) -> str:
        """Get email template for overdue notices."""
        return """
        <div style="font-family: Arial, sans-serif; max-width: 600px; margin: 0 auto;">
          <h2 style="color: #d32f2f;">Library Book Overdue Notice</h2>
          <p>Dear {{ student_name }},</p>
          <p>Our records indicate that you have overdue book(s) from the library. Please return them as soon as possible to avoid additional fines.</p>
          <div style="margin: 20px 0; padding: 15px; background-color: #ffebee; border-radius: 4px;">
            <h3 style="margin: 0 0 10px 0; color: #c62828;">Overdue Books:</h3>
            {% for book in books %}
            <div style="margin-bottom: 15px; padding-bottom: 15px; border-bottom: 1px solid #ffcdd2;">
              <p style="margin: 5px 0;">
                <strong>{{ book.title }}</strong> by {{ book.author }}<br>
                <span style="color: #666; font-size: 0.9em;">Accession Number: {{ book.accession_number }}</span><br>
                <span style="color: #d32f2f; font-size: 0.9em;">
                  Due Date: {{ book.due_date }}<br>
                  Days Overdue: {{ book.days_overdue }}<br>
                  Fine Accumulated: &#8369;{{ '%.2f'|format(book.fine or 0) }}
                </span>
              </p>
            </div>
            {% endfor %}
            <div style="margin-top: 20px; padding-top: 15px; border-top: 2px solid #ffcdd2;">
              <h4 style="color: #c62828; margin: 0;">Total Fine Amount: &#8369;{{ '%.2f'|format(total_fine) }}</h4>
            </div>
          </div>
          <p>If you have already returned these items, please disregard this notice and contact the library to resolve any discrepancies.</p>
          <p style="margin-top: 30px;">Best regards,<br>{{ system_name }}</p>
        </div>
        """

    def _get_overdue_text_template(self) -> str:
        return """
Dear {{ student_name }},

Our records indicate that you have overdue book(s) from the library. Please return them as soon as possible to avoid additional fines.

Overdue Books:
{% for book in books %}
- {{ book.title }} by {{ book.author }}
  Accession Number: {{ book.accession_number }}
  Due Date: {{ book.due_date }}
  Days Overdue: {{ book.days_overdue }}
  Fine Accumulated: PHP {{ '%.2f'|format(book.fine or 0) }}
{% endfor %}

Total Fine Amount: PHP {{ '%.2f'|format(total_fine) }}

If you have already returned these items, please disregard this notice and contact the library to resolve any discrepancies.

Best regards,
{{ system_name }}
"""
