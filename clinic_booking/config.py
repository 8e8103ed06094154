import os
from dataclasses import dataclass
from typing import Optional

from dotenv import load_dotenv


@dataclass(frozen=True)
class Settings:
    port: int = 3000
    # Where bookings are kept when no DATABASE_URL is set
    data_file: str = os.path.join("data", "bookings.json")
    database_url: Optional[str] = None

    # Clinic mailbox: sender of all emails and recipient of admin notifications
    email_user: str = "hewidypt@gmail.com"
    service_account_file: Optional[str] = None

    google_client_id: Optional[str] = None
    google_client_secret: Optional[str] = None
    google_refresh_token: Optional[str] = None
    google_calendar_id: Optional[str] = None

    notify_workers: int = 1
    production: bool = False

    @property
    def email_enabled(self) -> bool:
        return bool(self.service_account_file)

    @property
    def calendar_enabled(self) -> bool:
        return bool(self.google_client_id and self.google_client_secret and self.google_refresh_token)


def load_settings(dotenv_path: Optional[str] = None) -> Settings:
    # Prefer .env in the working directory; dotenv_path allows overriding in tests.
    load_dotenv(dotenv_path=dotenv_path, override=False)

    email_user = os.getenv("EMAIL_USER", Settings.email_user)
    notify_workers = int(os.getenv("NOTIFY_WORKERS", "1"))
    if notify_workers < 1:
        raise RuntimeError("NOTIFY_WORKERS must be >= 1")

    return Settings(
        port=int(os.getenv("PORT", "3000")),
        data_file=os.getenv("DATA_FILE", Settings.data_file),
        database_url=os.getenv("DATABASE_URL") or None,
        email_user=email_user,
        service_account_file=os.getenv("SERVICE_ACCOUNT_FILE") or None,
        google_client_id=os.getenv("GOOGLE_CLIENT_ID") or None,
        google_client_secret=os.getenv("GOOGLE_CLIENT_SECRET") or None,
        google_refresh_token=os.getenv("GOOGLE_REFRESH_TOKEN") or None,
        google_calendar_id=os.getenv("GOOGLE_CALENDAR_ID") or email_user,
        notify_workers=notify_workers,
        production=os.environ.get("FLASK_ENV") == "production",
    )
