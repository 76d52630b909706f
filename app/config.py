import os
from pathlib import Path

from dotenv import load_dotenv

# Load .env from project root
env_path = Path(__file__).resolve().parent.parent / ".env"
load_dotenv(dotenv_path=env_path)

DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./clinic.db")

# Security - CRITICAL: No default secret key in production
SECRET_KEY = os.getenv("SECRET_KEY")
if not SECRET_KEY:
    import warnings

    warnings.warn(
        "SECRET_KEY not set! Using insecure default - DO NOT USE IN PRODUCTION", RuntimeWarning, stacklevel=2
    )
    SECRET_KEY = "INSECURE-DEV-KEY-CHANGE-IN-PRODUCTION"  # noqa: S105 - Dev fallback only

# Bearer tokens for patients, doctors and admins are issued elsewhere and signed with this secret
JWT_SECRET = os.getenv("JWT_SECRET", SECRET_KEY)
JWT_ALGORITHM = os.getenv("JWT_ALGORITHM", "HS256")

# Admin panel base URL, used as the default return target after Google consent
ADMIN_APP_URL = os.getenv("ADMIN_APP_URL", "http://localhost:5174")

# Google OAuth Configuration
# GOOGLE_REDIRECT_URI must point to the backend callback route (/api/doctor/google/callback)
GOOGLE_CLIENT_ID = os.getenv("GOOGLE_CLIENT_ID")
GOOGLE_CLIENT_SECRET = os.getenv("GOOGLE_CLIENT_SECRET")
GOOGLE_REDIRECT_URI = os.getenv(
    "GOOGLE_REDIRECT_URI", "http://localhost:4000/api/doctor/google/callback"
)

# Appointment mirroring mode: Google Tasks when true, Google Calendar events otherwise.
# Read once per process; flipping it does not migrate items created under the other mode.
GOOGLE_USE_TASKS = os.getenv("GOOGLE_USE_TASKS", "false").strip().lower() == "true"

GOOGLE_CALENDAR_ID = os.getenv("GOOGLE_CALENDAR_ID", "primary")
GOOGLE_TASKLIST_ID = os.getenv("GOOGLE_TASKLIST_ID", "@default")
GOOGLE_API_TIMEOUT_SECONDS = float(os.getenv("GOOGLE_API_TIMEOUT_SECONDS", "15"))

# Length of the calendar block created for an appointment (cosmetic, must be > 0)
EVENT_DURATION_MINUTES = int(os.getenv("EVENT_DURATION_MINUTES", "10"))

# Slot tokens ("19_10_2026", "10:30 AM") are wall-clock times in this zone
CLINIC_TIMEZONE = os.getenv("CLINIC_TIMEZONE", "UTC")

# Upper bound on task list pages (100 tasks each) scanned when matching by marker or time window
TASK_SCAN_MAX_PAGES = int(os.getenv("TASK_SCAN_MAX_PAGES", "10"))

# CORS - comma separated list of front-end origins
ALLOWED_ORIGINS = [
    origin.strip()
    for origin in os.getenv("ALLOWED_ORIGINS", "http://localhost:5173,http://localhost:5174").split(",")
    if origin.strip()
]
