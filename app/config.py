import os
from pathlib import Path

from dotenv import load_dotenv

# Load .env from project root
env_path = Path(__file__).resolve().parent.parent / ".env"
load_dotenv(dotenv_path=env_path)

DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./hosthub.db")

# Security - CRITICAL: No default secret key in production
SECRET_KEY = os.getenv("SECRET_KEY")
if not SECRET_KEY:
    import warnings

    warnings.warn(
        "SECRET_KEY not set! Using insecure default - DO NOT USE IN PRODUCTION", RuntimeWarning, stacklevel=2
    )
    SECRET_KEY = "INSECURE-DEV-KEY-CHANGE-IN-PRODUCTION"  # noqa: S105 - Dev fallback only

ACCESS_TOKEN_EXPIRE_MINUTES = int(os.getenv("ACCESS_TOKEN_EXPIRE_MINUTES", "1440"))

# Public base URL of the dashboard, used in notification links.
# The NEXT_PUBLIC_APP_URL setting in the database takes precedence.
APP_URL = os.getenv("NEXT_PUBLIC_APP_URL") or os.getenv("APP_URL") or "http://localhost:3000"

# Bearer token accepted by the cron endpoints (reminders, recurring tasks)
CRON_SECRET = os.getenv("CRON_SECRET")

# Settings encryption (generate with: python -c "from cryptography.fernet import Fernet; print(Fernet.generate_key().decode())")
SETTINGS_ENCRYPTION_KEY = os.getenv("SETTINGS_ENCRYPTION_KEY")

# Uploaded files live under {UPLOADS_DIR}/uploads/...
UPLOADS_DIR = os.getenv("UPLOADS_DIR", "public")
STATEMENTS_DIR = os.path.join(UPLOADS_DIR, "uploads", "statements")

# Deywuro SMS (env fallback, the Settings table overrides)
DEYWURO_API_URL = os.getenv("DEYWURO_API_URL", "https://deywuro.com/api/sms")

# Twilio WhatsApp
TWILIO_API_BASE = os.getenv("TWILIO_API_BASE", "https://api.twilio.com/2010-04-01")

# OpenAI REST endpoint
OPENAI_API_URL = os.getenv("OPENAI_API_URL", "https://api.openai.com/v1/chat/completions")

# Base currency for stored FX rates
BASE_CURRENCY = "USD"
DEFAULT_COMMISSION_RATE = 0.15
