import os
from pathlib import Path

from dotenv import load_dotenv

# Load .env from project root
env_path = Path(__file__).resolve().parent.parent / ".env"
load_dotenv(dotenv_path=env_path)

# Firebase Configuration
FIREBASE_PROJECT_ID = os.getenv("FIREBASE_PROJECT_ID")

# GoHighLevel (LeadConnector) Configuration
# Credentials stored in the crmSettings collection take precedence over these
GHL_API_KEY = os.getenv("GHL_API_KEY", "")
GHL_LOCATION_ID = os.getenv("GHL_LOCATION_ID", "")
GHL_API_BASE = os.getenv("GHL_API_BASE", "https://services.leadconnectorhq.com").rstrip("/")
GHL_API_VERSION = os.getenv("GHL_API_VERSION", "2021-07-28")
GHL_REQUEST_TIMEOUT = float(os.getenv("GHL_REQUEST_TIMEOUT", "30"))

# Calendar that website bookings are pushed into
GHL_SERVICE_CALENDAR_ID = os.getenv("GHL_SERVICE_CALENDAR_ID", "JvcOyRMMYoIPbH5s1Bg1")

# Fixed pause between per-record CRM calls (rate limits)
GHL_SYNC_DELAY_SECONDS = float(os.getenv("GHL_SYNC_DELAY_SECONDS", "0.2"))

# CRM -> website pull window
GHL_SYNC_PAST_DAYS = int(os.getenv("GHL_SYNC_PAST_DAYS", "7"))
GHL_SYNC_FUTURE_DAYS = int(os.getenv("GHL_SYNC_FUTURE_DAYS", "90"))

# Scheduled sync gives up on a record after this many attempts
GHL_MAX_RETRY_COUNT = int(os.getenv("GHL_MAX_RETRY_COUNT", "5"))

# Booking dates/times are entered in the studio's local time
STUDIO_TIMEZONE = os.getenv("STUDIO_TIMEZONE", "America/New_York")

# Shared secrets for machine callers. Unset means unchecked (development only)
CRON_SECRET = os.getenv("CRON_SECRET")
GHL_WEBHOOK_SECRET = os.getenv("GHL_WEBHOOK_SECRET")

# Comma-separated emails allowed into the admin endpoints besides admin-claim holders
ADMIN_EMAILS = [
    email.strip().lower() for email in os.getenv("ADMIN_EMAILS", "").split(",") if email.strip()
]

# Frontend base URL (CORS)
FRONTEND_URL = os.getenv("FRONTEND_URL", "http://localhost:3000")
