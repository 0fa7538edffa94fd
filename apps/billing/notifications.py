# billing/notifications.py

"""
Invoice email delivery.
"""

from django.conf import settings
from django.core.mail import EmailMessage
from smtplib import SMTPException
import logging

from billing.exceptions import DependencyError

logger = logging.getLogger(__name__)


def build_invoice_body(company_name, invoice_number, billing_month, total_display):
    return (
        f"Dear {company_name},\n\n"
        f"Please find attached invoice {invoice_number} for book lending "
        f"usage in {billing_month}.\n\n"
        f"Amount due: {total_display}\n\n"
        f"This is an automated message from the BookLend billing system."
    )


class InvoiceMailer:
    """Send invoice emails with the PDF attached through Django's mail backend."""

    def __init__(self, from_email=None, connection=None):
        self.from_email = from_email or settings.DEFAULT_FROM_EMAIL
        self.connection = connection

    def send(self, recipient, subject, body, filename, document):
        """
        Raises:
            DependencyError: the mail backend did not accept the message
        """
        message = EmailMessage(
            subject=subject,
            body=body,
            from_email=self.from_email,
            to=[recipient],
            connection=self.connection,
        )
        message.attach(filename, bytes(document), 'application/pdf')

        try:
            sent = message.send(fail_silently=False)
        except (SMTPException, OSError) as e:
            logger.error(f"Sending {filename} to {recipient} failed: {e}")
            raise DependencyError() from e

        if not sent:
            logger.error(f"Mail backend did not accept {filename} for {recipient}")
            raise DependencyError()

        logger.info(f"Sent {filename} to {recipient}")

    def send_dispatch(self, dispatch):
        self.send(
            dispatch.recipient,
            dispatch.subject,
            dispatch.body,
            dispatch.filename,
            dispatch.document,
        )
