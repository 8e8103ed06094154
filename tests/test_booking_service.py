import unittest
import os
import shutil
import sys
import tempfile
import threading
from concurrent.futures import ThreadPoolExecutor
from datetime import date, datetime, timezone
from itertools import count
from unittest.mock import MagicMock
sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))
from clinic_booking.booking.availability import AvailabilityResolver
from clinic_booking.booking.booking_record import Booking
from clinic_booking.booking.booking_service import BookingService
from clinic_booking.booking.database import InMemoryBookingStore, JsonFileBookingStore
from clinic_booking.booking.error_utils import (InvalidEmailError, MissingFieldError, NotFoundError,
                                               PersistenceError, SlotTakenError)

MONDAY = date(2024, 6, 10)
FIRST_SLOT = "2024-06-10T14:00:00.000Z"


def request(**overrides):
    payload = {"start": FIRST_SLOT, "name": "Jane Doe", "email": "jane@example.com"}
    payload.update(overrides)
    return payload


def make_service(store=None, dispatcher=None):
    ids = count(1)
    return BookingService(store if store is not None else InMemoryBookingStore(), dispatcher,
                          clock=lambda: datetime(2024, 6, 1, 12, tzinfo=timezone.utc),
                          id_factory=lambda: f"booking-{next(ids)}")


class AvailabilityResolverTest(unittest.TestCase):

    def test_booked_slot_is_hidden(self):
        store = InMemoryBookingStore([Booking(id="b1", start=FIRST_SLOT, name="Jane", email="jane@example.com")])
        slots = AvailabilityResolver(store).available_slots(MONDAY)
        self.assertEqual(len(slots), 23)
        self.assertNotIn(FIRST_SLOT, [slot.start_iso for slot in slots])

    def test_match_is_exact_string(self):
        # Same instant written differently does not block the slot
        store = InMemoryBookingStore([Booking(id="b1", start="2024-06-10T14:00:00Z", name="Jane", email="jane@example.com")])
        slots = AvailabilityResolver(store).available_slots(MONDAY)
        self.assertEqual(slots[0].start_iso, FIRST_SLOT)

    def test_validate_and_reserve_rejects_taken_slot(self):
        store = InMemoryBookingStore()
        resolver = AvailabilityResolver(store)
        resolver.validate_and_reserve(Booking(id="b1", start=FIRST_SLOT, name="Jane", email="jane@example.com"))
        with self.assertRaises(SlotTakenError):
            resolver.validate_and_reserve(Booking(id="b2", start=FIRST_SLOT, name="John", email="john@example.com"))
        self.assertEqual([b.id for b in store.list()], ["b1"])


class BookingServiceTest(unittest.TestCase):

    def test_book_stores_all_fields(self):
        service = make_service()
        booking = service.book(request(phone=" (212) 736-5000 ", location=" Brooklyn "))
        self.assertEqual(booking.id, "booking-1")
        self.assertEqual(booking.start, FIRST_SLOT)
        self.assertEqual(booking.phone, "+12127365000")
        self.assertEqual(booking.location, "Brooklyn")
        self.assertEqual(booking.created_at, "2024-06-01T12:00:00.000Z")
        self.assertEqual(service.list_bookings(), [booking])

    def test_optional_fields_default_to_empty(self):
        booking = make_service().book(request())
        self.assertEqual((booking.phone, booking.location), ("", ""))

    def test_unparseable_phone_kept_as_given(self):
        booking = make_service().book(request(phone="call after 5"))
        self.assertEqual(booking.phone, "call after 5")

    def test_missing_fields(self):
        service = make_service()
        for field in ("start", "name", "email"):
            with self.assertRaises(MissingFieldError):
                service.book(request(**{field: ""}))
            payload = request()
            del payload[field]
            with self.assertRaises(MissingFieldError):
                service.book(payload)
        self.assertEqual(service.list_bookings(), [])

    def test_invalid_email(self):
        service = make_service()
        for email in ("jane", "jane@example", "jane doe@example.com", "jane@@example.com", "@example.com",
                      " jane@example.com", "jane@example.com "):
            with self.assertRaises(InvalidEmailError, msg=email):
                service.book(request(email=email))
        self.assertEqual(service.list_bookings(), [])

    def test_second_booking_for_same_start_conflicts(self):
        service = make_service()
        service.book(request())
        with self.assertRaises(SlotTakenError):
            service.book(request(name="John Roe", email="john@example.com"))
        self.assertEqual(len(service.list_bookings()), 1)

    def test_book_then_cancel_round_trip(self):
        service = make_service()
        booking = service.book(request())
        self.assertNotIn(FIRST_SLOT, [s.start_iso for s in service.available_slots(MONDAY)])
        service.cancel(booking.id)
        self.assertIn(FIRST_SLOT, [s.start_iso for s in service.available_slots(MONDAY)])
        self.assertEqual(service.list_bookings(), [])

    def test_cancel_unknown_id(self):
        with self.assertRaises(NotFoundError):
            make_service().cancel("unknown-id")

    def test_dispatch_after_commit(self):
        dispatcher = MagicMock()
        service = make_service(dispatcher=dispatcher)
        booking = service.book(request())
        dispatcher.dispatch.assert_called_once_with(booking)

    def test_rejected_booking_is_not_dispatched(self):
        dispatcher = MagicMock()
        service = make_service(dispatcher=dispatcher)
        with self.assertRaises(InvalidEmailError):
            service.book(request(email="nope"))
        dispatcher.dispatch.assert_not_called()

    def test_dispatch_failure_does_not_fail_booking(self):
        dispatcher = MagicMock()
        dispatcher.dispatch.side_effect = RuntimeError("queue closed")
        service = make_service(dispatcher=dispatcher)
        with self.assertLogs('clinic_booking.booking.booking_service', level='ERROR'):
            booking = service.book(request())
        self.assertEqual(service.list_bookings(), [booking])

    def test_persistence_error_propagates_without_dispatch(self):
        store = MagicMock(wraps=InMemoryBookingStore())
        store.append.side_effect = PersistenceError()
        dispatcher = MagicMock()
        service = make_service(store=store, dispatcher=dispatcher)
        with self.assertRaises(PersistenceError):
            service.book(request())
        dispatcher.dispatch.assert_not_called()


class ConcurrentBookingTest(unittest.TestCase):

    def setUp(self):
        self.data_path = tempfile.mkdtemp()

    def tearDown(self):
        shutil.rmtree(self.data_path, ignore_errors=True)

    def race(self, service, attempts=16):
        barrier = threading.Barrier(attempts)

        def attempt(i):
            barrier.wait()
            try:
                service.book(request(name=f"Client {i}", email=f"client{i}@example.com"))
                return "accepted"
            except SlotTakenError:
                return "taken"

        with ThreadPoolExecutor(max_workers=attempts) as executor:
            return list(executor.map(attempt, range(attempts)))

    def test_one_winner_in_memory(self):
        service = make_service()
        outcomes = self.race(service)
        self.assertEqual(outcomes.count("accepted"), 1)
        self.assertEqual(outcomes.count("taken"), 15)
        self.assertEqual(len(service.list_bookings()), 1)

    def test_one_winner_json_file(self):
        store = JsonFileBookingStore(os.path.join(self.data_path, 'bookings.json'))
        service = BookingService(store)
        outcomes = self.race(service)
        self.assertEqual(outcomes.count("accepted"), 1)
        self.assertEqual(len(JsonFileBookingStore(store.path).list()), 1)


if __name__ == '__main__':
    unittest.main()
