import os

DATABASE_URL = os.getenv("BOOKING_DB")
REDIS_URL = os.getenv("REDIS_URL")

JWT_SECRET = os.getenv("JWT_SECRET")
JWT_ALGORITHM = os.getenv("JWT_ALGORITHM") or "HS256"
JWT_EXPIRE_MINUTES = int(os.getenv("JWT_EXPIRE_MINUTES") or 60)
BCRYPT_ROUNDS = int(os.getenv("BCRYPT_ROUNDS") or 12)

# optional; no URL means notifications are skipped
NOTIFY_WEBHOOK_URL = os.getenv("NOTIFY_WEBHOOK_URL")
NOTIFY_TIMEOUT_SECONDS = float(os.getenv("NOTIFY_TIMEOUT_SECONDS") or 3.0)

PAYMENT_DECLINE_RATE = float(os.getenv("PAYMENT_DECLINE_RATE") or 0.1)

RATE_LIMIT_PER_MINUTE = int(os.getenv("RATE_LIMIT_PER_MINUTE") or 120)

BOOTSTRAP_ADMIN_EMAIL = os.getenv("BOOTSTRAP_ADMIN_EMAIL")
BOOTSTRAP_ADMIN_PASSWORD = os.getenv("BOOTSTRAP_ADMIN_PASSWORD")

LOG_LEVEL = os.getenv("LOG_LEVEL") or "INFO"

RESERVATION_WINDOW_SECONDS = 600
