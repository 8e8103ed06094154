# Free slot lookup and the authoritative double-booking check
import logging
from datetime import date
from typing import Iterable, List

from .booking_record import Booking
from .database import BookingStore
from .error_utils import SlotTakenError
from .slots import Slot, generate_slots

logger = logging.getLogger(__name__)


class AvailabilityResolver:

    def __init__(self, store: BookingStore):
        self.store = store

    @staticmethod
    def is_taken(start: str, bookings: Iterable[Booking]) -> bool:
        # Exact string equality, no tolerance window
        return any(booking.start == start for booking in bookings)

    def available_slots(self, day: date) -> List[Slot]:
        """
        Generated slots for the day minus those already booked.

        Reads a snapshot of the store without locking. A slot reported free here may be taken before the client
        books it; validate_and_reserve() settles that.
        """
        booked = {booking.start for booking in self.store.list()}
        return [slot for slot in generate_slots(day) if slot.start_iso not in booked]

    def validate_and_reserve(self, booking: Booking) -> Booking:
        """
        Appends the booking unless its start is already booked. Check and append run under the store lock as one unit.

        Raises SlotTakenError when the slot is taken; the store is left untouched in that case.
        """
        with self.store.lock():
            if self.is_taken(booking.start, self.store.list()):
                logger.info("Rejected booking for %s: slot already taken", booking.start)
                raise SlotTakenError()
            self.store.append(booking)
        return booking
