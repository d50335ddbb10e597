import os

BASE_DIR = os.path.abspath(os.path.dirname(__file__))

class Config:
    # Secrets
    SECRET_KEY = os.getenv("SECRET_KEY", "dev-only-change-me")

    # SQLite file next to the app unless DATABASE_URL points at Postgres
    SQLALCHEMY_DATABASE_URI = os.getenv(
        "DATABASE_URL",
        "sqlite:///" + os.path.join(BASE_DIR, "templebook.db")
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Create tables at startup instead of running migrations (local dev / tests)
    AUTO_CREATE_TABLES = os.getenv("AUTO_CREATE_TABLES", "false").lower() == "true"

    # Session cookie name for our auth token
    AUTH_COOKIE_NAME = "templebook_session"

    # 8 hours session lifetime
    SESSION_LIFETIME_SECONDS = int(os.getenv("SESSION_LIFETIME_SECONDS", str(8 * 60 * 60)))

    # Idle timeout: 20 minutes
    IDLE_TIMEOUT_SECONDS = int(os.getenv("IDLE_TIMEOUT_SECONDS", str(20 * 60)))

    # Session/cookie security defaults
    SESSION_COOKIE_HTTPONLY = True
    SESSION_COOKIE_SAMESITE = "Lax"
    SESSION_COOKIE_SECURE = os.getenv("SESSION_COOKIE_SECURE", "false").lower() == "true"

    # bcrypt work factor
    BCRYPT_ROUNDS = int(os.getenv("BCRYPT_ROUNDS", "12"))

    # Bookings
    BOOKING_NOTES_MAX_LENGTH = 500

    # Free-slot grid: bookable window and the step between offered start times
    BOOKING_OPENING_TIME = os.getenv("BOOKING_OPENING_TIME", "06:00")
    BOOKING_CLOSING_TIME = os.getenv("BOOKING_CLOSING_TIME", "21:00")
    BOOKING_SLOT_STEP_MINUTES = int(os.getenv("BOOKING_SLOT_STEP_MINUTES", "30"))

    # Basic app settings
    DEBUG = False
    LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
