from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from email.utils import formataddr
import base64
from datetime import datetime
from pathlib import Path
import logging

import google_auth_httplib2
import httplib2
from google.auth.exceptions import GoogleAuthError
from google.oauth2 import service_account
from googleapiclient.discovery import build
from googleapiclient.errors import HttpError
from jinja2 import Environment, FileSystemLoader, select_autoescape

from . import clock_rules
from .booking_record import Booking
from .error_utils import NotificationError
from .slots import parse_instant

logger = logging.getLogger(__name__)

TEMPLATE_DIR = Path(__file__).resolve().parent.parent / "templates"

CLINIC_NAME = "NY Manual Physical Therapy"

REQUEST_TIMEOUT = 10  # seconds


def format_local_datetime(start: str) -> str:
    """
    Human readable clinic-local time for a booking start, e.g. 'Monday, June 10, 2024 at 10:00 AM'.
    """
    local = clock_rules.to_local(parse_instant(start))
    return f"{local.strftime('%A, %B')} {local.day}, {local.year} at {local.strftime('%I:%M %p')}"


class GmailNotifier:
    """
    Sends the clinic's admin notification and the client's confirmation for a booking through the Gmail API.
    """

    SCOPES = ['https://www.googleapis.com/auth/gmail.send']

    def __init__(self, service_account_file, sender: str, service=None):
        self._api_key_path = service_account_file
        self.sender = sender
        self._service = service
        self.templates = Environment(loader=FileSystemLoader(TEMPLATE_DIR), autoescape=select_autoescape(['html']))

    @property
    def service(self):
        # Built on first use so startup does not depend on the key file being readable
        if self._service is None:
            self._service = self._authorize()
        return self._service

    def _authorize(self):
        creds = service_account.Credentials.from_service_account_file(
                self._api_key_path,
                scopes=self.SCOPES,
                subject=self.sender  # Impersonating the clinic email
            )
        http = google_auth_httplib2.AuthorizedHttp(creds, http=httplib2.Http(timeout=REQUEST_TIMEOUT))
        return build("gmail", "v1", http=http, cache_discovery=False)

    def create_message(self, to, from_email, subject, html_body):
        message = MIMEMultipart('alternative')
        message['to'] = to
        message['from'] = from_email
        message['subject'] = subject

        message.attach(MIMEText(html_body, 'html'))

        # Encode to base64 for Gmail API
        raw = base64.urlsafe_b64encode(message.as_bytes()).decode()
        return {'raw': raw}

    def render(self, template_name: str, booking: Booking) -> str:
        template = self.templates.get_template(f"email/{template_name}")
        return template.render(booking=booking, clinic_name=CLINIC_NAME,
                               appointment_time=format_local_datetime(booking.start), year=datetime.now().year)

    def build_messages(self, booking: Booking):
        admin_message = self.create_message(
            self.sender,
            formataddr(("NY Manual PT Booking", self.sender)),
            f"New Appointment: {booking.name}",
            self.render("admin_notification.html", booking))
        client_message = self.create_message(
            booking.email,
            formataddr((CLINIC_NAME, self.sender)),
            "Your Appointment is Confirmed - NY Manual PT",
            self.render("confirmation.html", booking))
        return admin_message, client_message

    def send(self, booking: Booking):
        admin_message, client_message = self.build_messages(booking)
        try:
            self.service.users().messages().send(userId='me', body=admin_message).execute()
            logger.info(f"Email sent to clinic: {self.sender}")
            self.service.users().messages().send(userId='me', body=client_message).execute()
            logger.info(f"Confirmation email sent to client: {booking.email}")
        except (HttpError, GoogleAuthError, httplib2.HttpLib2Error, OSError) as e:
            raise NotificationError(f"Email delivery failed for booking {booking.id}: {e}") from e
