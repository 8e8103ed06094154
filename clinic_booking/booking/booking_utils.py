# Utility functions for booking request input
import re
from datetime import date
from uuid import uuid4

import phonenumbers

from .error_utils import InvalidDateError, InvalidEmailError, MissingFieldError

DATE_PATTERN = re.compile(r'^\d{4}-\d{2}-\d{2}$')
# Basic user@domain.tld shape, no whitespace and a single '@'
EMAIL_PATTERN = re.compile(r'^[^\s@]+@[^\s@]+\.[^\s@]+$')

REQUIRED_FIELDS = ("start", "name", "email")


def parse_date(raw) -> date:
    """
    Parse a YYYY-MM-DD query parameter into a date.

    Raises InvalidDateError when missing, badly formatted or not a real calendar date.
    """
    if not raw:
        raise InvalidDateError("Date parameter required (YYYY-MM-DD)")
    if not DATE_PATTERN.match(raw):
        raise InvalidDateError()
    try:
        return date.fromisoformat(raw)
    except ValueError:
        # Matches the pattern but is out of range, e.g. 2024-02-30
        raise InvalidDateError()


def clean_text(value) -> str:
    if value is None:
        return ""
    return str(value).strip()


def require_fields(payload: dict) -> None:
    if any(not clean_text(payload.get(field)) for field in REQUIRED_FIELDS):
        raise MissingFieldError()


def validate_email(email: str) -> str:
    if not EMAIL_PATTERN.match(email):
        raise InvalidEmailError()
    return email


def normalize_phone(phone: str) -> str:
    """
    Format a phone number in E.164 when it parses as a valid number, otherwise keep it as given.

    Phone is optional and informational only, so an unparseable number never rejects a booking.
    """
    phone = clean_text(phone)
    if not phone:
        return ""
    try:
        # Assume 'US' as the default region if no international prefix is provided.
        parsed_phone = phonenumbers.parse(phone, None if phone.startswith('+') else 'US')
    except phonenumbers.NumberParseException:
        return phone
    if not phonenumbers.is_valid_number(parsed_phone):
        return phone
    return phonenumbers.format_number(parsed_phone, phonenumbers.PhoneNumberFormat.E164)


def new_booking_id() -> str:
    return uuid4().hex
