import os
from pathlib import Path

from dotenv import load_dotenv

# Load .env from project root
env_path = Path(__file__).resolve().parent.parent / ".env"
load_dotenv(dotenv_path=env_path)

DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./clinic_scheduler.db")

# Wall-clock timezone of the clinic. Stored dates and times are local, never UTC.
LOCAL_TIMEZONE = os.getenv("LOCAL_TIMEZONE", "America/Argentina/Buenos_Aires")

# Monthly items anchored on day 29-31: "skip" short months or "clamp" to their last day
MONTHLY_OVERFLOW_POLICY = os.getenv("MONTHLY_OVERFLOW_POLICY", "skip")

# Hard safety cap for recurring appointment series
RECURRENCE_MAX_OCCURRENCES = int(os.getenv("RECURRENCE_MAX_OCCURRENCES", "52"))

# Weekdays open for booking (Monday=0 ... Sunday=6). Empty string disables the check.
BUSINESS_WEEKDAYS = tuple(
    int(day) for day in os.getenv("BUSINESS_WEEKDAYS", "0,1,2,3,4,5,6").split(",") if day.strip()
)

# Calendar sync is fire-and-forget with a few retries
CALENDAR_SYNC_MAX_RETRIES = int(os.getenv("CALENDAR_SYNC_MAX_RETRIES", "2"))
CALENDAR_SYNC_RETRY_DELAY = float(os.getenv("CALENDAR_SYNC_RETRY_DELAY", "1.0"))  # seconds

# Per-professional booking lock (seconds)
BOOKING_LOCK_TIMEOUT = int(os.getenv("BOOKING_LOCK_TIMEOUT", "10"))
# Seconds to wait before reconnecting after Redis was found unreachable
REDIS_RETRY_INTERVAL = float(os.getenv("REDIS_RETRY_INTERVAL", "30"))

# Status sweep cadence for the background worker
STATUS_SWEEP_CRON_MINUTES = int(os.getenv("STATUS_SWEEP_CRON_MINUTES", "15"))

# Security - CRITICAL: No default secret key in production
SECRET_KEY = os.getenv("SECRET_KEY")
if not SECRET_KEY:
    import warnings

    warnings.warn(
        "SECRET_KEY not set! Using insecure default - DO NOT USE IN PRODUCTION", RuntimeWarning, stacklevel=2
    )
    SECRET_KEY = "INSECURE-DEV-KEY-CHANGE-IN-PRODUCTION"  # noqa: S105 - Dev fallback only

# Google Calendar OAuth Configuration
GOOGLE_CLIENT_ID = os.getenv("GOOGLE_CLIENT_ID")
GOOGLE_CLIENT_SECRET = os.getenv("GOOGLE_CLIENT_SECRET")

# CORS
ALLOWED_ORIGINS = os.getenv(
    "ALLOWED_ORIGINS",
    "http://localhost:3000,http://localhost:5173",
).split(",")

# Redis (booking locks and the background worker). Unset means in-process locks only.
REDIS_URL = os.getenv("REDIS_URL")
REDIS_HOST = os.getenv("REDIS_HOST")
REDIS_PORT = int(os.getenv("REDIS_PORT", "6379"))
REDIS_PASSWORD = os.getenv("REDIS_PASSWORD")
REDIS_SSL = os.getenv("REDIS_SSL", "false").lower() == "true"
