from abc import ABC, abstractmethod
from contextlib import contextmanager
import json
import logging
import os
from pathlib import Path
import tempfile
import threading
from typing import List

import psycopg2
from psycopg2 import errors as pg_errors
from psycopg2.extras import DictCursor

from .booking_record import Booking
from .error_utils import PersistenceError, SlotTakenError

logger = logging.getLogger(__name__)


class BookingStore(ABC):
    """
    Ordered collection of non-cancelled bookings, in insertion order.

    The booking service is the only writer. Anything that must read, check and then write holds lock() for
    the whole sequence; list() on its own is a snapshot and takes no lock.
    """

    def __init__(self):
        # Re-entrant so append()/remove() can take it again inside a caller's lock() block
        self._lock = threading.RLock()

    @contextmanager
    def lock(self):
        with self._lock:
            yield self

    @abstractmethod
    def list(self) -> List[Booking]:
        pass

    @abstractmethod
    def append(self, booking: Booking) -> None:
        pass

    @abstractmethod
    def remove(self, booking_id: str) -> bool:
        """
        Delete a booking by id. Returns False when no booking has that id.
        """
        pass


class InMemoryBookingStore(BookingStore):
    """
    List-backed store for tests and local development. Data is lost on restart.
    """

    def __init__(self, bookings=None):
        super().__init__()
        self._bookings: List[Booking] = list(bookings or [])

    def list(self) -> List[Booking]:
        with self._lock:
            return list(self._bookings)

    def append(self, booking: Booking) -> None:
        with self._lock:
            self._bookings.append(booking)

    def remove(self, booking_id: str) -> bool:
        with self._lock:
            for index, booking in enumerate(self._bookings):
                if booking.id == booking_id:
                    del self._bookings[index]
                    return True
        return False


class JsonFileBookingStore(BookingStore):
    """
    Keeps every booking in a single JSON document {"bookings": [...]} that is rewritten in full on each mutation.

    Writes go to a temporary file in the same folder and replace the document atomically, so a failed write
    leaves the previous contents in place. Mutual exclusion covers the threads of one process.
    """

    def __init__(self, path):
        super().__init__()
        self.path = Path(path)
        self._ensure_document()

    def _ensure_document(self):
        """
        Internal function to create the data folder and an empty document on first start.
        """
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            if not self.path.exists():
                logger.info("Creating empty bookings file at %s", self.path)
                self._write([])
        except OSError as e:
            logger.error("Could not initialise bookings file %s: %s", self.path, e.args)
            raise PersistenceError() from e

    def _read(self) -> List[Booking]:
        try:
            with open(self.path, "r", encoding="utf-8") as f:
                raw = json.load(f)
            return [Booking.from_dict(record) for record in raw.get("bookings", [])]
        except (OSError, ValueError, KeyError, TypeError, AttributeError) as e:
            # A corrupt document must not be silently replaced by an empty one
            logger.error("Reading bookings file %s failed: %s", self.path, e)
            raise PersistenceError() from e

    def _write(self, bookings: List[Booking]) -> None:
        data = {"bookings": [booking.to_dict() for booking in bookings]}
        tmp_name = None
        try:
            with tempfile.NamedTemporaryFile("w", delete=False, encoding="utf-8", dir=self.path.parent, suffix=".tmp") as tf:
                tmp_name = tf.name
                json.dump(data, tf, ensure_ascii=False, indent=2)
            # The temporary file is created 0600; carry over the permissions of the document it replaces
            if self.path.exists():
                os.chmod(tmp_name, self.path.stat().st_mode & 0o777)
            os.replace(tmp_name, self.path)
        except OSError as e:
            logger.error("Writing bookings file %s failed: %s", self.path, e.args)
            if tmp_name and os.path.exists(tmp_name):
                os.remove(tmp_name)
            raise PersistenceError() from e
        logger.debug("Bookings file rewritten with %d bookings", len(bookings))

    def list(self) -> List[Booking]:
        return self._read()

    def append(self, booking: Booking) -> None:
        with self._lock:
            bookings = self._read()
            bookings.append(booking)
            self._write(bookings)

    def remove(self, booking_id: str) -> bool:
        with self._lock:
            bookings = self._read()
            remaining = [booking for booking in bookings if booking.id != booking_id]
            if len(remaining) == len(bookings):
                return False
            self._write(remaining)
        return True


class PostgresBookingStore(BookingStore):
    """
    Postgres-backed store used when DATABASE_URL is set.

    lock() opens a transaction and takes a table lock that blocks other writers, so read-check-append is
    serialised across processes too. The UNIQUE constraint on start is a second guard against double-booking.
    """

    def __init__(self, dsn: str):
        super().__init__()
        self._dsn = dsn
        # Connection of the transaction opened by lock() in the current thread, if any
        self._local = threading.local()
        self._setup_schema()

    @contextmanager
    def _database_connect(self):
        """
        Internal function to manage the Postgres database connections. Re-uses the connection of an enclosing
        lock() block so the whole block runs in one transaction.
        """
        current = getattr(self._local, "connection", None)
        if current is not None:
            yield current
            return

        try:
            connection = psycopg2.connect(self._dsn)
        except psycopg2.Error as e:
            logger.error("Database connection failed: %s", e.args)
            raise PersistenceError() from e
        self._local.connection = connection
        try:
            with connection:
                yield connection
        except psycopg2.Error as e:
            logger.error("Database operation failed: %s", e.args)
            raise PersistenceError() from e
        finally:
            self._local.connection = None
            connection.close()

    @contextmanager
    def lock(self):
        with self._lock:
            with self._database_connect() as conn:
                with conn.cursor() as cursor:
                    cursor.execute("LOCK TABLE bookings IN SHARE ROW EXCLUSIVE MODE")
                yield self

    def list(self) -> List[Booking]:
        query = "SELECT id, start, name, email, phone, location, created_at FROM bookings ORDER BY seq"
        logger.debug("Executing query: %s", query)
        with self._database_connect() as conn:
            with conn.cursor(cursor_factory=DictCursor) as cursor:
                cursor.execute(query)
                rows = cursor.fetchall()
        return [Booking(id=row['id'], start=row['start'], name=row['name'], email=row['email'],
                        phone=row['phone'], location=row['location'], created_at=row['created_at']) for row in rows]

    def append(self, booking: Booking) -> None:
        query = """INSERT INTO bookings (id, start, name, email, phone, location, created_at)
                   VALUES (%s, %s, %s, %s, %s, %s, %s)"""
        logger.debug("Executing query: %s", query)
        with self._database_connect() as conn:
            with conn.cursor() as cursor:
                try:
                    cursor.execute(query, (booking.id, booking.start, booking.name, booking.email,
                                           booking.phone, booking.location, booking.created_at))
                except pg_errors.UniqueViolation:
                    raise SlotTakenError()

    def remove(self, booking_id: str) -> bool:
        query = "DELETE FROM bookings WHERE id = %s"
        logger.debug("Executing query: %s", query)
        with self._database_connect() as conn:
            with conn.cursor() as cursor:
                cursor.execute(query, (booking_id,))
                return cursor.rowcount > 0

    def _setup_schema(self):
        """
        Internal function to set-up the database schema if the table does not exist.
        """
        with self._database_connect() as conn:
            with conn.cursor() as cursor:
                cursor.execute("""
                    SELECT COUNT(*)
                    FROM information_schema.tables
                    WHERE table_schema = 'public' AND table_name = 'bookings';
                """)
                if cursor.fetchone()[0] == 0:
                    logger.info("Setting up the schema.")
                    # start is kept as the exact text the client booked so it compares equal to generated slots
                    cursor.execute("""
                        CREATE TABLE bookings (
                        seq serial PRIMARY KEY,
                        id text UNIQUE NOT NULL,
                        start text UNIQUE NOT NULL,
                        name text NOT NULL,
                        email text NOT NULL,
                        phone text NOT NULL DEFAULT '',
                        location text NOT NULL DEFAULT '',
                        created_at text NOT NULL);
                    """)
