# Custom exceptions to be used throughout the project.
# The Flask error handler in app.py turns any BookingError into {"error": message} with its status_code.


class BookingError(Exception):
    status_code = 500
    default_message = "Internal server error"

    # By default Exception class takes a tuple of arguments
    def __init__(self, message=None, *args):
        self.message = message or self.default_message
        super().__init__(self.message, *args)


class ValidationError(BookingError):
    """
    To be raised when request input is missing or malformed. Detected before any mutation of the store.
    """
    status_code = 400
    default_message = "Invalid request"


class MissingFieldError(ValidationError):
    default_message = "Missing required fields: start, name, email"


class InvalidEmailError(ValidationError):
    default_message = "Invalid email format"


class InvalidDateError(ValidationError):
    default_message = "Invalid date format. Use YYYY-MM-DD"


class ConflictError(BookingError):
    status_code = 409
    default_message = "Conflict"


class SlotTakenError(ConflictError):
    """
    To be raised when a booking already exists for the requested slot start. Caller may retry with another slot.
    """
    default_message = "This time slot is no longer available"


class NotFoundError(BookingError):
    status_code = 404
    default_message = "Booking not found"


class PersistenceError(BookingError):
    """
    To be raised when the booking store cannot be read or written. Fatal to the request, no partial state is kept.
    """
    status_code = 500
    default_message = "Internal server error"


class NotificationError(Exception):
    """
    Email delivery failure. Only ever logged by the dispatcher, never returned to a client.
    """


class PublisherError(Exception):
    """
    Calendar event creation failure. Only ever logged by the dispatcher, never returned to a client.
    """
