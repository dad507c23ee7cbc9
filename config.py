import os

BASE_DIR = os.path.abspath(os.path.dirname(__file__))

class Config:
    # Secrets
    SECRET_KEY = os.getenv("SECRET_KEY", "dev-only-change-me")

    # SQLite database file stored next to the app as stayhold.db
    SQLALCHEMY_DATABASE_URI = os.getenv(
        "DATABASE_URL",
        "sqlite:///" + os.path.join(BASE_DIR, "stayhold.db")
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    CREATE_TABLES = False  # schema comes from migrations outside tests

    LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")

    # Session cookie name for our auth token
    AUTH_COOKIE_NAME = "stayhold_session"

    # 8 hours session lifetime
    SESSION_LIFETIME_SECONDS = 8 * 60 * 60

    # Idle timeout: 20 minutes
    IDLE_TIMEOUT_SECONDS = 20 * 60

    # Session/cookie security defaults
    SESSION_COOKIE_HTTPONLY = True
    SESSION_COOKIE_SAMESITE = "Lax"
    SESSION_COOKIE_SECURE = os.getenv("SESSION_COOKIE_SECURE", "false").lower() == "true"

    # bcrypt cost factor
    BCRYPT_ROUNDS = int(os.getenv("BCRYPT_ROUNDS", "12"))

    # Hold windows
    HOLD_DURATION_MINUTES = int(os.getenv("HOLD_DURATION_MINUTES", "15"))
    REQUEST_APPROVAL_WINDOW_HOURS = int(os.getenv("REQUEST_APPROVAL_WINDOW_HOURS", "24"))
    APPROVED_PAYMENT_WINDOW_HOURS = int(os.getenv("APPROVED_PAYMENT_WINDOW_HOURS", "48"))

    # Shared secret for the scheduler hitting /cron/*
    CRON_SECRET = os.getenv("CRON_SECRET")

    # Payment gateways
    GATEWAY_TIMEOUT_SECONDS = float(os.getenv("GATEWAY_TIMEOUT_SECONDS", "10"))

    STRIPE_SECRET_KEY = os.getenv("STRIPE_SECRET_KEY")
    STRIPE_WEBHOOK_SECRET = os.getenv("STRIPE_WEBHOOK_SECRET")

    PAYPAL_CLIENT_ID = os.getenv("PAYPAL_CLIENT_ID")
    PAYPAL_CLIENT_SECRET = os.getenv("PAYPAL_CLIENT_SECRET")
    PAYPAL_MODE = os.getenv("PAYPAL_MODE", "sandbox")  # sandbox or live
    PAYPAL_WEBHOOK_ID = os.getenv("PAYPAL_WEBHOOK_ID")

    SADAD_MERCHANT_ID = os.getenv("SADAD_ID", "")
    SADAD_SECRET_KEY = os.getenv("SADAD_SECRET_KEY", "")
    SADAD_WEBSITE = os.getenv("SADAD_DOMAIN", "localhost")
    SADAD_CHECKOUT_URL = os.getenv("SADAD_CHECKOUT_URL", "https://secure.sadadqa.com/webpurchasepage")
    SADAD_CALLBACK_URL = os.getenv("SADAD_CALLBACK_URL", "http://localhost:5002/webhooks/sadad")

    # Email (SMTP)
    SMTP_HOST = os.getenv("SMTP_HOST")
    SMTP_PORT = int(os.getenv("SMTP_PORT", "587"))
    SMTP_USERNAME = os.getenv("SMTP_USERNAME")
    SMTP_PASSWORD = os.getenv("SMTP_PASSWORD")
    SMTP_FROM_EMAIL = os.getenv("SMTP_FROM_EMAIL")
    SMTP_USE_TLS = os.getenv("SMTP_USE_TLS", "true").lower() == "true"

    # Basic app settings
    DEBUG = False


class TestConfig(Config):
    TESTING = True
    SQLALCHEMY_DATABASE_URI = "sqlite://"
    CREATE_TABLES = True
    CRON_SECRET = "test-cron-secret"
    BCRYPT_ROUNDS = 4
    SMTP_HOST = None
    SADAD_MERCHANT_ID = "7000000"
    SADAD_SECRET_KEY = "test-sadad-key"
