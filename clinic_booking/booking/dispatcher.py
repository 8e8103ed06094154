"""
Post-commit side effects for accepted bookings.

Bookings are put on an in-process queue and handed to each handler (email, calendar) by background worker
threads, so the HTTP response never waits on Gmail or Google Calendar. Delivery is best effort and at most
once: a failing handler is logged and the booking stays accepted.
"""
import logging
import queue
import threading
from typing import Callable, Dict, Optional

from .booking_record import Booking

logger = logging.getLogger(__name__)

Handler = Callable[[Booking], object]

_STOP = object()


class Dispatcher:

    def __init__(self, handlers: Optional[Dict[str, Handler]] = None, workers: int = 1):
        # handlers maps a short name used in log lines to a callable taking the booking
        self.handlers = dict(handlers or {})
        self._queue = queue.Queue()
        self._threads = []
        # Without handlers there is nothing to run, so no workers are started
        if not self.handlers:
            return
        for i in range(max(workers, 1)):
            thread = threading.Thread(target=self._work, name=f"booking-dispatch-{i}", daemon=True)
            thread.start()
            self._threads.append(thread)

    def dispatch(self, booking: Booking) -> None:
        """
        Queue a committed booking for the handlers. Returns immediately.

        A no-op when there are no handlers or no running workers (after shutdown()).
        """
        if not self.handlers or not self._threads:
            return
        self._queue.put(booking)

    def join(self) -> None:
        """
        Block until every queued booking has been through all handlers.
        """
        self._queue.join()

    def shutdown(self) -> None:
        for _ in self._threads:
            self._queue.put(_STOP)
        for thread in self._threads:
            thread.join()
        self._threads = []

    def _work(self):
        while True:
            booking = self._queue.get()
            try:
                if booking is _STOP:
                    return
                self._run_handlers(booking)
            finally:
                self._queue.task_done()

    def _run_handlers(self, booking: Booking):
        for name, handler in self.handlers.items():
            try:
                handler(booking)
            except Exception as e:
                # Handlers are independent: one failing must not stop the others
                logger.error(f"{name} failed for booking {booking.id}: {type(e).__name__}: {e}")
