"""
Mail Transport Module - Library Attendance & Mail Service

SMTP delivery of library email. A transport sends one message to either a
direct recipient list or a blind-carbon-copy list and returns the
Message-ID, raising TransportError on any failure.
"""

import smtplib
import ssl
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from email.utils import formataddr, formatdate, make_msgid
from dataclasses import dataclass
from typing import Dict, List, Optional, Sequence
import logging

from library_app.modules.exceptions import TransportError

PRIORITY_HEADERS = {
    'high': {'X-Priority': '1', 'X-MSMail-Priority': 'High', 'Importance': 'high'},
    'normal': {'X-Priority': '3', 'X-MSMail-Priority': 'Normal', 'Importance': 'normal'},
    'low': {'X-Priority': '5', 'X-MSMail-Priority': 'Low', 'Importance': 'low'},
}


@dataclass
class MailMessage:
    """Data structure for an outgoing email."""
    subject: str
    text_body: str
    html_body: str
    attachment_url: Optional[str] = None
    priority: str = 'high'

    @property
    def headers(self) -> Dict[str, str]:
        return PRIORITY_HEADERS.get(self.priority, PRIORITY_HEADERS['normal'])


class SMTPTransport:
    """
    SMTP client used by the mailer.
    """

    def __init__(self, smtp_server: str, smtp_port: int = 587, username: str = None,
                 password: str = None, use_tls: bool = True, sender: str = None,
                 sender_name: str = 'Library Management System', timeout: float = 30,
                 suppress_send: bool = False):
        """
        Initialize the transport.

        Args:
            smtp_server (str): SMTP server address
            smtp_port (int): SMTP server port
            username (str): SMTP username; no login when empty
            password (str): SMTP password
            use_tls (bool): Upgrade the connection with STARTTLS
            sender (str): From address, defaults to the username
            sender_name (str): From display name
            timeout (float): Seconds before a connection or command times out
            suppress_send (bool): Keep messages in ``outbox`` instead of sending
        """
        self.logger = logging.getLogger(__name__)
        self.smtp_server = smtp_server
        self.smtp_port = smtp_port
        self.username = username
        self.password = password
        self.use_tls = use_tls
        self.sender = sender or username
        self.sender_name = sender_name
        self.timeout = timeout
        self.suppress_send = suppress_send
        self.outbox: List[MIMEMultipart] = []

    @classmethod
    def from_config(cls, config) -> 'SMTPTransport':
        """Build a transport from a configuration class or Flask config mapping."""
        get = config.get if hasattr(config, 'get') else lambda key, default=None: getattr(config, key, default)
        return cls(
            smtp_server=get('MAIL_SERVER'),
            smtp_port=int(get('MAIL_PORT', 587)),
            username=get('MAIL_USERNAME'),
            password=get('MAIL_PASSWORD'),
            use_tls=get('MAIL_USE_TLS', True),
            sender=get('MAIL_DEFAULT_SENDER'),
            sender_name=get('MAIL_SENDER_NAME', 'Library Management System'),
            timeout=get('MAIL_TIMEOUT', 30),
            suppress_send=get('MAIL_SUPPRESS_SEND', False),
        )

    def is_configured(self) -> bool:
        """Check if the SMTP configuration is complete."""
        return all([self.smtp_server, self.sender])

    def build_message(self, message: MailMessage, to: Sequence[str] = (),
                      bcc: Sequence[str] = ()) -> MIMEMultipart:
        """
        Build the MIME message for ``message``.

        Args:
            message (MailMessage): Message content
            to (Sequence[str]): Visible recipients
            bcc (Sequence[str]): Hidden recipients

        Returns:
            MIMEMultipart: multipart/alternative message with plain and HTML parts
        """
        msg = MIMEMultipart('alternative')
        msg['From'] = formataddr((self.sender_name, self.sender))
        if to:
            msg['To'] = ', '.join(to)
        if bcc:
            msg['Bcc'] = ', '.join(bcc)
        msg['Subject'] = message.subject
        msg['Date'] = formatdate(localtime=True)
        msg['Message-ID'] = make_msgid(domain=self.sender.split('@')[-1] if self.sender else None)

        for name, value in message.headers.items():
            msg[name] = value

        msg.attach(MIMEText(message.text_body, 'plain', 'utf-8'))
        msg.attach(MIMEText(message.html_body, 'html', 'utf-8'))
        return msg

    def send(self, message: MailMessage, to: Sequence[str] = (), bcc: Sequence[str] = ()) -> str:
        """
        Send one message.

        Args:
            message (MailMessage): Message content
            to (Sequence[str]): Visible recipients
            bcc (Sequence[str]): Hidden recipients

        Returns:
            str: Message-ID of the sent message

        Raises:
            TransportError: Configuration, connection, authentication or
                recipient failure
        """
        to = list(to or [])
        bcc = list(bcc or [])
        if not to and not bcc:
            raise TransportError('No recipients given')
        if not self.is_configured():
            raise TransportError('Email transport is not configured')

        msg = self.build_message(message, to=to, bcc=bcc)

        if self.suppress_send:
            self.outbox.append(msg)
            self.logger.info(f"Email suppressed ({len(to) + len(bcc)} recipients): {message.subject}")
            return msg['Message-ID']

        try:
            with smtplib.SMTP(self.smtp_server, self.smtp_port, timeout=self.timeout) as server:
                if self.use_tls:
                    context = ssl.create_default_context()
                    server.starttls(context=context)

                if self.username and self.password:
                    server.login(self.username, self.password)

                server.send_message(msg, from_addr=self.sender, to_addrs=to + bcc)

        except (smtplib.SMTPException, OSError) as e:
            raise TransportError(str(e)) from e

        return msg['Message-ID']

    def verify(self) -> bool:
        """
        Check that the SMTP server accepts a connection and the credentials.

        Returns:
            bool: True when the server is ready to send
        """
        if self.suppress_send:
            return True

        try:
            with smtplib.SMTP(self.smtp_server, self.smtp_port, timeout=self.timeout) as server:
                if self.use_tls:
                    server.starttls(context=ssl.create_default_context())
                if self.username and self.password:
                    server.login(self.username, self.password)
                server.noop()

            self.logger.info("SMTP server is ready to send emails")
            return True

        except (smtplib.SMTPException, OSError) as e:
            self.logger.error(f"SMTP connection error: {str(e)}")
            return False
