from datetime import date, datetime, timezone
import logging
from typing import Callable, List, Optional

from . import booking_utils as util
from .availability import AvailabilityResolver
from .booking_record import Booking
from .database import BookingStore
from .dispatcher import Dispatcher
from .error_utils import NotFoundError
from .slots import Slot, format_instant

logger = logging.getLogger(__name__)


class BookingService:
    """
    Acceptance flow for bookings: validate, reserve the slot, persist, then hand off to the dispatcher.

    The store is owned by this service; nothing else writes to it.
    """

    def __init__(self, store: BookingStore, dispatcher: Optional[Dispatcher] = None,
                 clock: Optional[Callable[[], datetime]] = None, id_factory: Optional[Callable[[], str]] = None):
        self.store = store
        self.resolver = AvailabilityResolver(store)
        self.dispatcher = dispatcher
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self._id_factory = id_factory or util.new_booking_id

    def available_slots(self, day: date) -> List[Slot]:
        return self.resolver.available_slots(day)

    def list_bookings(self) -> List[Booking]:
        return self.store.list()

    def book(self, payload: dict) -> Booking:
        """
        Accept a booking request.

        Input: dict with start, name, email and optional phone and location.

        Returns: the stored Booking. Raises MissingFieldError, InvalidEmailError or SlotTakenError before
        anything is written, PersistenceError if the store fails.
        """
        util.require_fields(payload)
        # Checked as submitted, surrounding whitespace makes the address invalid
        email = util.validate_email(str(payload["email"]))

        booking = Booking(
            id=self._id_factory(),
            # Kept verbatim, it has to equal a slot start exactly
            start=str(payload["start"]),
            name=util.clean_text(payload.get("name")),
            email=email,
            phone=util.normalize_phone(payload.get("phone")),
            location=util.clean_text(payload.get("location")),
            created_at=format_instant(self._clock()),
        )
        self.resolver.validate_and_reserve(booking)
        logger.info(f"New booking {booking.id}: {booking.name} - {booking.start}")

        # Side effects run outside the store lock and cannot undo the booking
        if self.dispatcher is not None:
            try:
                self.dispatcher.dispatch(booking)
            except Exception as e:
                logger.error(f"Could not queue notifications for booking {booking.id}: {e}")
        return booking

    def cancel(self, booking_id: str) -> None:
        with self.store.lock():
            if not self.store.remove(booking_id):
                raise NotFoundError()
        logger.info(f"Booking {booking_id} cancelled")
