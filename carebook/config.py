import os
from pathlib import Path

from dotenv import load_dotenv

# Load .env from project root
env_path = Path(__file__).resolve().parent.parent / ".env"
load_dotenv(dotenv_path=env_path)

DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./carebook.db")

# Connection pool (server databases only)
DB_POOL_SIZE = int(os.getenv("DB_POOL_SIZE", "20"))
DB_MAX_OVERFLOW = int(os.getenv("DB_MAX_OVERFLOW", "30"))
DB_POOL_TIMEOUT = int(os.getenv("DB_POOL_TIMEOUT", "30"))
DB_POOL_RECYCLE = int(os.getenv("DB_POOL_RECYCLE", "300"))
DB_LOG_SLOW_QUERIES = os.getenv("DB_LOG_SLOW_QUERIES", "true").lower() == "true"
DB_SLOW_QUERY_THRESHOLD = float(os.getenv("DB_SLOW_QUERY_THRESHOLD", "1.0"))

# Security - CRITICAL: No default secret key in production
SECRET_KEY = os.getenv("SECRET_KEY")
if not SECRET_KEY:
    import warnings

    warnings.warn(
        "SECRET_KEY not set! Using insecure default - DO NOT USE IN PRODUCTION", RuntimeWarning, stacklevel=2
    )
    SECRET_KEY = "INSECURE-DEV-KEY-CHANGE-IN-PRODUCTION"  # noqa: S105 - Dev fallback only

JWT_ALGORITHM = os.getenv("JWT_ALGORITHM", "HS256")
ACCESS_TOKEN_EXPIRE_MINUTES = int(os.getenv("ACCESS_TOKEN_EXPIRE_MINUTES", "60"))

# Frontend base URL used in email links
FRONTEND_URL = os.getenv("FRONTEND_URL", "http://localhost:3000")

# Resend Email Configuration
RESEND_API_KEY = os.getenv("RESEND_API_KEY")
EMAIL_FROM_ADDRESS = os.getenv("EMAIL_FROM_ADDRESS", "CareBook <noreply@carebook.health>")

# Stripe Configuration
STRIPE_SECRET_KEY = os.getenv("STRIPE_SECRET_KEY")
STRIPE_WEBHOOK_SECRET = os.getenv("STRIPE_WEBHOOK_SECRET")
STRIPE_API_BASE = os.getenv("STRIPE_API_BASE", "https://api.stripe.com/v1")
PAYMENT_CURRENCY = os.getenv("PAYMENT_CURRENCY", "usd")

# Outbound automation webhook (n8n, Zapier, ...). Disabled when unset.
AUTOMATION_WEBHOOK_URL = os.getenv("AUTOMATION_WEBHOOK_URL")
AUTOMATION_WEBHOOK_TIMEOUT = float(os.getenv("AUTOMATION_WEBHOOK_TIMEOUT", "10"))

# Cancellation rules
PATIENT_MIN_HOURS_BEFORE = int(os.getenv("PATIENT_MIN_HOURS_BEFORE", "24"))
DOCTOR_CAN_CANCEL_ANYTIME = os.getenv("DOCTOR_CAN_CANCEL_ANYTIME", "true").lower() == "true"
ADMIN_CAN_CANCEL_ANYTIME = os.getenv("ADMIN_CAN_CANCEL_ANYTIME", "true").lower() == "true"

# Hours before start at which patients still get a full refund
FULL_REFUND_HOURS_BEFORE = int(os.getenv("FULL_REFUND_HOURS_BEFORE", "24"))

# Rate limiting for booking endpoints (Redis)
RATE_LIMIT_ENABLED = os.getenv("RATE_LIMIT_ENABLED", "true").lower() == "true"
BOOKING_RATE_LIMIT_PER_MINUTE = int(os.getenv("BOOKING_RATE_LIMIT_PER_MINUTE", "10"))
