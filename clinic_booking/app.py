from datetime import datetime, timezone
from functools import wraps
import logging

from flask import Blueprint, Flask, current_app, g, jsonify, request
from flask_cors import CORS
from werkzeug.exceptions import HTTPException

from clinic_booking.booking import booking_utils as util
from clinic_booking.booking.booking_service import BookingService
from clinic_booking.booking.calendar_publisher import GoogleCalendarPublisher
from clinic_booking.booking.database import JsonFileBookingStore, PostgresBookingStore
from clinic_booking.booking.dispatcher import Dispatcher
from clinic_booking.booking.error_utils import BookingError
from clinic_booking.booking.gmail import GmailNotifier
from clinic_booking.booking.slots import format_instant
from clinic_booking.config import Settings, load_settings

LOG_FORMAT = "%(asctime)s - %(levelname)s - %(message)s"
logging.basicConfig(level=logging.INFO, format=LOG_FORMAT)
logger = logging.getLogger(__name__)

bp = Blueprint("booking", __name__)


def build_store(settings: Settings):
    if settings.database_url:
        logger.info("Using Postgres booking store")
        return PostgresBookingStore(settings.database_url)
    logger.info(f"Using bookings file {settings.data_file}")
    return JsonFileBookingStore(settings.data_file)


def build_dispatcher(settings: Settings) -> Dispatcher:
    handlers = {}
    if settings.email_enabled:
        notifier = GmailNotifier(settings.service_account_file, settings.email_user)
        handlers["Email"] = notifier.send
        logger.info("Email notifications enabled")
    else:
        logger.info("Email notifications disabled (no SERVICE_ACCOUNT_FILE set)")

    if settings.calendar_enabled:
        publisher = GoogleCalendarPublisher(settings.google_client_id, settings.google_client_secret,
                                            settings.google_refresh_token, settings.google_calendar_id)
        handlers["Google Calendar"] = publisher.publish
        logger.info("Google Calendar integration enabled")
    else:
        logger.info("Google Calendar integration disabled (missing credentials)")
    return Dispatcher(handlers, workers=settings.notify_workers)


def create_app(settings: Settings = None, store=None, dispatcher: Dispatcher = None):
    app = Flask(__name__)
    settings = settings or load_settings()
    app.config['SETTINGS'] = settings
    if store is None:
        store = build_store(settings)
    if dispatcher is None:
        dispatcher = build_dispatcher(settings)
    app.config['BOOKING_SERVICE'] = BookingService(store, dispatcher)
    # Booking widget is embedded on the clinic website, any origin may call the API
    CORS(app)
    app.register_blueprint(bp)
    return app


# Use decorator to expose the app's booking service as g.service within the request context
def with_booking_service(f):
    @wraps(f)
    def decorated_function(*args, **kwargs):
        g.service = current_app.config['BOOKING_SERVICE']
        return f(*args, **kwargs)
    return decorated_function


@bp.app_errorhandler(BookingError)
def handle_booking_error(error):
    if error.status_code >= 500:
        logger.error(f"Request failed: {error.message}")
    return jsonify({"error": error.message}), error.status_code


@bp.app_errorhandler(HTTPException)
def handle_http_error(error):
    return jsonify({"error": error.description}), error.code


# GET /slots?date=YYYY-MM-DD
@bp.route("/slots", methods=["GET"])
@with_booking_service
def get_slots():
    day = util.parse_date(request.args.get("date"))
    return jsonify([slot.to_dict() for slot in g.service.available_slots(day)])


@bp.route("/book", methods=["POST"])
@with_booking_service
def create_booking():
    payload = request.get_json(silent=True)
    if not isinstance(payload, dict):
        payload = {}
    booking = g.service.book(payload)
    return jsonify({"success": True, "message": "Booking confirmed", "booking": booking.public_fields()}), 201


# Operator endpoint to view all bookings
@bp.route("/bookings", methods=["GET"])
@with_booking_service
def list_bookings():
    return jsonify([booking.to_dict() for booking in g.service.list_bookings()])


@bp.route("/bookings/<booking_id>", methods=["DELETE"])
@with_booking_service
def cancel_booking(booking_id):
    g.service.cancel(booking_id)
    return jsonify({"success": True, "message": "Booking cancelled"})


@bp.route("/health")
def health():
    return jsonify({"status": "ok", "timestamp": format_instant(datetime.now(timezone.utc))})


if __name__ == '__main__':
    app = create_app()
    settings = app.config['SETTINGS']
    logger.info(f"Booking server running on http://localhost:{settings.port}")
    # production
    if settings.production:
        app.run(host="0.0.0.0", port=settings.port, threaded=True, debug=False)
    else:
        app.run(port=settings.port, threaded=True, debug=True)
