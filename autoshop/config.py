import os
from pathlib import Path

from dotenv import load_dotenv

# Load .env from project root
env_path = Path(__file__).resolve().parent.parent / ".env"
load_dotenv(dotenv_path=env_path)

DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./autoshop.db")

# Shop identity used in templated customer messages
SHOP_NAME = os.getenv("SHOP_NAME", "Autoshop")

# Work orders
DEFAULT_LABOR_RATE = float(os.getenv("DEFAULT_LABOR_RATE", "100"))
APPROVAL_COST_THRESHOLD = float(os.getenv("APPROVAL_COST_THRESHOLD", "500"))
WORK_ORDER_NUMBER_RETRIES = int(os.getenv("WORK_ORDER_NUMBER_RETRIES", "5"))
# Whether a parts re-check may move an on_hold work order back to pending on its own
RECHECK_AUTO_RESUME = os.getenv("RECHECK_AUTO_RESUME", "true").lower() == "true"

# Reminder scheduling
REMINDER_LOOKAHEAD_HOURS = int(os.getenv("REMINDER_LOOKAHEAD_HOURS", "24"))
REMINDER_DEDUP_WINDOW_MINUTES = int(os.getenv("REMINDER_DEDUP_WINDOW_MINUTES", "60"))
REMINDER_CONCURRENCY = int(os.getenv("REMINDER_CONCURRENCY", "10"))

# Notification batch jobs skip conditions already recorded for the same period
NOTIFICATION_IDEMPOTENCY = os.getenv("NOTIFICATION_IDEMPOTENCY", "true").lower() == "true"

# Twilio SMS Configuration
TWILIO_ACCOUNT_SID = os.getenv("TWILIO_ACCOUNT_SID")
TWILIO_AUTH_TOKEN = os.getenv("TWILIO_AUTH_TOKEN")
TWILIO_FROM_NUMBER = os.getenv("TWILIO_FROM_NUMBER")
TWILIO_MESSAGING_SERVICE_SID = os.getenv("TWILIO_MESSAGING_SERVICE_SID")

# Resend Email Configuration
RESEND_API_KEY = os.getenv("RESEND_API_KEY")
EMAIL_FROM_ADDRESS = os.getenv("EMAIL_FROM_ADDRESS", "Autoshop <noreply@autoshop.local>")
