import os
from pathlib import Path

from dotenv import load_dotenv

# Load .env from project root
env_path = Path(__file__).resolve().parent.parent / ".env"
load_dotenv(dotenv_path=env_path)

APP_NAME = os.getenv("APP_NAME", "clinic-brain-backend")

DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./clinic_brain.db")

# Security - used to encrypt per-professional messaging credentials at rest
SECRET_KEY = os.getenv("SECRET_KEY")
if not SECRET_KEY:
    import warnings

    warnings.warn(
        "SECRET_KEY not set! Using insecure default - DO NOT USE IN PRODUCTION", RuntimeWarning, stacklevel=2
    )
    SECRET_KEY = "INSECURE-DEV-KEY-CHANGE-IN-PRODUCTION"  # noqa: S105 - Dev fallback only

# Shared key expected from the messaging platform on every webhook call
WEBHOOK_API_KEY = os.getenv("WEBHOOK_API_KEY", "")

# Evolution API (WhatsApp gateway) Configuration
EVOLUTION_URL = os.getenv("EVOLUTION_URL", "http://localhost:8080").rstrip("/")
EVOLUTION_API_KEY = os.getenv("EVOLUTION_API_KEY", "")
EVOLUTION_INSTANCE = os.getenv("EVOLUTION_INSTANCE", "")
EVOLUTION_TIMEOUT_MS = int(os.getenv("EVOLUTION_TIMEOUT_MS", "5000"))
EVOLUTION_RETRY_ATTEMPTS = int(os.getenv("EVOLUTION_RETRY_ATTEMPTS", "2"))

# What happens when an outbound WhatsApp message cannot be delivered after a
# domain operation succeeded: "warn" returns a delivery warning to the caller,
# "fail" surfaces the delivery error.
DELIVERY_FAILURE_POLICY = os.getenv("DELIVERY_FAILURE_POLICY", "warn").strip().lower()
if DELIVERY_FAILURE_POLICY not in ("warn", "fail"):
    raise ValueError(
        f"DELIVERY_FAILURE_POLICY must be 'warn' or 'fail', got {DELIVERY_FAILURE_POLICY!r}"
    )

# Patient-facing booking site linked from the chatbot menus
BOOKING_SITE_URL = os.getenv("BOOKING_SITE_URL", "http://localhost:5173")
DEFAULT_DOCTOR_NAME = os.getenv("DEFAULT_DOCTOR_NAME", "Dra. Ana")

# Reminder scheduler
SCHEDULER_ENABLED = os.getenv("SCHEDULER_ENABLED", "true").lower() in ("true", "1", "yes")
REMINDER_CHECK_INTERVAL_MS = int(os.getenv("REMINDER_CHECK_INTERVAL_MS", "60000"))

DEFAULT_TIMEZONE = os.getenv("DEFAULT_TIMEZONE", "America/Sao_Paulo")
