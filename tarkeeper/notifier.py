"""
Operator notifications by e-mail.

Sending is best-effort: a failed send is logged and never escalated.
"""

import smtplib
import logging
from email.message import EmailMessage

from tarkeeper.config import Config


logger = logging.getLogger(__name__)


class Notifier:
    """Plain-text mail notifier."""

    def __init__(self, recipient: str, smtp_host: str = Config.SMTP_HOST,
                 smtp_port: int = Config.SMTP_PORT, sender: str = Config.MAIL_FROM):
        """
        Initialize notifier.

        Args:
            recipient: Address that receives notifications
            smtp_host: Mail relay host
            smtp_port: Mail relay port
            sender: From address
        """
        self.recipient = recipient
        self.smtp_host = smtp_host
        self.smtp_port = smtp_port
        self.sender = sender

    @classmethod
    def from_config(cls, config) -> 'Notifier':
        return cls(
            recipient=config.email_to,
            smtp_host=config.smtp_host,
            smtp_port=config.smtp_port,
            sender=config.mail_from
        )

    def notify(self, subject: str, body: str) -> bool:
        """
        Send a notification.

        Args:
            subject: Mail subject
            body: Plain-text body

        Returns:
            True if the relay accepted the message
        """
        msg = EmailMessage()
        msg['Subject'] = subject
        msg['From'] = self.sender
        msg['To'] = self.recipient
        msg.set_content(body)

        try:
            with smtplib.SMTP(self.smtp_host, self.smtp_port, timeout=30) as server:
                server.send_message(msg)
        except (smtplib.SMTPException, OSError) as e:
            logger.error(f"ERROR: Failed to send email notification to {self.recipient} "
                         f"with subject: {subject} ({e})")
            return False

        logger.info(f"Sent email notification to {self.recipient} with subject: {subject}")
        return True
