import logging
from typing import Dict

import google_auth_httplib2
import httplib2
from google.auth.exceptions import GoogleAuthError
from google.oauth2.credentials import Credentials
from googleapiclient.discovery import build
from googleapiclient.errors import HttpError

from .booking_record import Booking
from .error_utils import PublisherError
from .slots import SLOT_DURATION, format_instant, parse_instant

logger = logging.getLogger(__name__)

# Define the required scope
SCOPES = ["https://www.googleapis.com/auth/calendar"]

TOKEN_URI = "https://oauth2.googleapis.com/token"

TIME_ZONE = "America/New_York"

REQUEST_TIMEOUT = 10  # seconds


class GoogleCalendarPublisher:
    """
    Mirrors accepted bookings as events on the clinic's Google Calendar.
    """

    def __init__(self, client_id: str, client_secret: str, refresh_token: str, calendar_id: str, service=None):
        self._client_id = client_id
        self._client_secret = client_secret
        self._refresh_token = refresh_token
        self.calendar_id = calendar_id
        self._service = service

    @property
    def service(self):
        if self._service is None:
            self._service = self._authorize()
        return self._service

    def _authorize(self):
        # An access token is fetched with the refresh token on the first request
        creds = Credentials(
            None,
            refresh_token=self._refresh_token,
            client_id=self._client_id,
            client_secret=self._client_secret,
            token_uri=TOKEN_URI,
            scopes=SCOPES,
        )
        http = google_auth_httplib2.AuthorizedHttp(creds, http=httplib2.Http(timeout=REQUEST_TIMEOUT))
        return build("calendar", "v3", http=http, cache_discovery=False)

    @staticmethod
    def event_body(booking: Booking) -> Dict:
        start = parse_instant(booking.start)
        end = start + SLOT_DURATION
        return {"summary": f"PT Appointment: {booking.name}",
                "description": (f"Patient: {booking.name}\nEmail: {booking.email}\n"
                                f"Phone: {booking.phone or 'N/A'}\nLocation: {booking.location or 'N/A'}\n\n"
                                f"Booking ID: {booking.id}"),
                "start": {"dateTime": format_instant(start), "timeZone": TIME_ZONE},
                "end": {"dateTime": format_instant(end), "timeZone": TIME_ZONE},
                "reminders": {"useDefault": False,
                              "overrides": [{"method": "email", "minutes": 60},
                                            {"method": "popup", "minutes": 30}]}
                }

    def publish(self, booking: Booking) -> str:
        """
        Insert the calendar event for a booking.

        Returns: id of the created event. Raises PublisherError if the API call fails.
        """
        try:
            event = self.service.events().insert(calendarId=self.calendar_id, body=self.event_body(booking)).execute()
        except (HttpError, GoogleAuthError, httplib2.HttpLib2Error, OSError) as e:
            raise PublisherError(f"Calendar event creation failed for booking {booking.id}: {e}") from e
        logger.info(f"Google Calendar event created: {event.get('htmlLink')}")
        return event.get("id")
