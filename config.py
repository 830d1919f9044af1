import os

BASE_DIR = os.path.abspath(os.path.dirname(__file__))


def _env_bool(name: str, default: str) -> bool:
    return os.getenv(name, default).lower() == "true"


def _env_list(name: str) -> list:
    raw = os.getenv(name, "")
    return [part.strip() for part in raw.split(",") if part.strip()]


class Config:
    # Secrets
    SECRET_KEY = os.getenv("SECRET_KEY", "dev-only-change-me")

    # SQLite database file stored beside the code as booking.db
    SQLALCHEMY_DATABASE_URI = os.getenv(
        "DATABASE_URL",
        "sqlite:///" + os.path.join(BASE_DIR, "booking.db")
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Telegram bot (launch param signing + notifications)
    BOT_TOKEN = os.getenv("BOT_TOKEN", "")
    ADMIN_TG_ID = int(os.getenv("ADMIN_TG_ID", "0"))
    WEBAPP_URL = os.getenv("WEBAPP_URL", "http://localhost:5173")

    # Signed launch params older than this are rejected (24 hours)
    AUTH_MAX_AGE_SECONDS = int(os.getenv("AUTH_MAX_AGE_SECONDS", "86400"))

    # Business clock: Moscow time, no DST
    BUSINESS_UTC_OFFSET_HOURS = int(os.getenv("BUSINESS_UTC_OFFSET_HOURS", "3"))

    # Time grid
    SLOT_MINUTES = 60
    OPEN_DAY_FROM_HOUR = int(os.getenv("OPEN_DAY_FROM_HOUR", "12"))
    OPEN_DAY_TO_HOUR = int(os.getenv("OPEN_DAY_TO_HOUR", "20"))

    # Tight mode kicks in for dates at most this many days away
    TIGHT_MODE_DAYS = int(os.getenv("TIGHT_MODE_DAYS", "3"))

    # Cancellation policy: client refund needs at least this much lead time
    REFUND_THRESHOLD_HOURS = int(os.getenv("REFUND_THRESHOLD_HOURS", "24"))

    # Payments
    PAYMENT_REQUIRED = _env_bool("PAYMENT_REQUIRED", "true")
    PREPAYMENT_AMOUNT = int(os.getenv("PREPAYMENT_AMOUNT")) if os.getenv("PREPAYMENT_AMOUNT") else None
    PAYMENT_CURRENCY = os.getenv("PAYMENT_CURRENCY", "rub")
    PAYMENT_TIMEOUT_MINUTES = int(os.getenv("PAYMENT_TIMEOUT_MINUTES", "15"))
    STRIPE_SECRET_KEY = os.getenv("STRIPE_SECRET_KEY")
    STRIPE_WEBHOOK_SECRET = os.getenv("STRIPE_WEBHOOK_SECRET")
    PAYMENT_WEBHOOK_ALLOWED_NETWORKS = _env_list("PAYMENT_WEBHOOK_ALLOWED_NETWORKS")

    # Background jobs
    SCHEDULER_ENABLED = _env_bool("SCHEDULER_ENABLED", "true")
    EXPIRY_SWEEP_INTERVAL_SECONDS = 5 * 60
    REMINDER_INTERVAL_SECONDS = 60 * 60

    # Simple IP rate limit for booking creation
    BOOKING_RATE_WINDOW_SECONDS = 60      # window size
    BOOKING_RATE_MAX_REQUESTS = 10        # max booking requests per IP per window

    # Local dev and tests without running migrations
    AUTO_CREATE_TABLES = _env_bool("AUTO_CREATE_TABLES", "false")

    LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")

    # Basic app settings
    DEBUG = False
