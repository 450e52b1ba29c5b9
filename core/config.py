import os
import logging
from dotenv import load_dotenv

# Load .env from project root
try:
    load_dotenv(dotenv_path=os.path.abspath(os.path.join(os.path.dirname(__file__), "..", ".env")))
except Exception:
    try:
        load_dotenv()
    except Exception:
        pass


def _float_env(name: str, default: str) -> float:
    raw = (os.getenv(name) or "").strip()
    try:
        return float(raw) if raw else float(default)
    except ValueError:
        return float(default)


def _int_env(name: str, default: str) -> int:
    raw = (os.getenv(name) or "").strip()
    try:
        return int(raw) if raw else int(default)
    except ValueError:
        return int(default)


# Public URLs
APP_URL = (os.getenv("APP_URL") or os.getenv("FRONTEND_ORIGIN", "http://localhost:3000").split(",")[0]).strip().rstrip("/")

# Scheduler trigger
CRON_SECRET = (os.getenv("CRON_SECRET", "") or "").strip()

# Pricing
PLATFORM_FEE_RATE = _float_env("PLATFORM_FEE_RATE", "0.035")
DEFAULT_DEPOSIT_PERCENTAGE = _float_env("DEFAULT_DEPOSIT_PERCENTAGE", "0.20")

# Milestones and reminders
FINAL_PAYMENT_DAYS_BEFORE_EVENT = _int_env("FINAL_PAYMENT_DAYS_BEFORE_EVENT", "30")
REMINDER_DAYS_BEFORE_DUE = _int_env("REMINDER_DAYS_BEFORE_DUE", "3")
REMINDER_COOLDOWN_HOURS = _int_env("REMINDER_COOLDOWN_HOURS", "24")
RECENT_BOOKING_DAYS = _int_env("RECENT_BOOKING_DAYS", "7")

# Email
MAIL_FROM = os.getenv("MAIL_FROM", "Momentum <no-reply@your-domain.com>")
SMTP_HOST = os.getenv("SMTP_HOST", "")
SMTP_PORT = _int_env("SMTP_PORT", "587")
SMTP_USER = os.getenv("SMTP_USER", "")
SMTP_PASS = os.getenv("SMTP_PASS", "")
SMTP_TIMEOUT_SEC = _float_env("SMTP_TIMEOUT_SEC", "20")

# Payments (connected accounts)
PAYMENTS_API_BASE = (os.getenv("PAYMENTS_API_BASE", "https://api.stripe.com") or "").strip().rstrip("/")
PAYMENTS_CHECKOUT_PATH = os.getenv("PAYMENTS_CHECKOUT_PATH", "/v1/checkout/sessions").strip()
if not PAYMENTS_CHECKOUT_PATH.startswith("/"):
    PAYMENTS_CHECKOUT_PATH = "/" + PAYMENTS_CHECKOUT_PATH
PAYMENTS_API_KEY = os.getenv("PAYMENTS_API_KEY") or os.getenv("STRIPE_SECRET_KEY", "")
PAYMENTS_CURRENCY = (os.getenv("PAYMENTS_CURRENCY", "usd") or "usd").strip().lower()
PAYMENTS_TIMEOUT_SEC = _float_env("PAYMENTS_TIMEOUT_SEC", "30")
PAYMENTS_WEBHOOK_SECRET = (
    os.getenv("PAYMENTS_WEBHOOK_SECRET")
    or os.getenv("PAYMENTS_WEBHOOK_KEY")
    or ""
).strip()

# Logging
logging.basicConfig(level=logging.INFO, format="%(asctime)s | %(levelname)s | %(message)s")
logger = logging.getLogger("momentum")

# Template dir helper
TEMPLATES_DIR = os.path.abspath(os.path.join(os.path.dirname(__file__), "..", "templates"))
