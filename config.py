import os

BASE_DIR = os.path.abspath(os.path.dirname(__file__))


def _flag(name, default):
    return os.getenv(name, str(default)).lower() in ("1", "true", "yes")


class Config:
    SECRET_KEY = os.getenv("SECRET_KEY", "CHANGE_THIS_SECRET_KEY")
    JWT_EXPIRY_HOURS = int(os.getenv("JWT_EXPIRY_HOURS", 6))

    # DATABASE
    SQLALCHEMY_DATABASE_URI = os.getenv(
        "DATABASE_URL",
        "sqlite:///" + os.path.join(BASE_DIR, "instance", "parkspot.db"),
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # CACHE
    CACHE_TYPE = os.getenv("CACHE_TYPE", "RedisCache")
    CACHE_REDIS_URL = os.getenv("REDIS_URL", "redis://localhost:6379/0")
    CACHE_DEFAULT_TIMEOUT = int(os.getenv("CACHE_DEFAULT_TIMEOUT", 30))

    # CELERY
    CELERY_BROKER_URL = os.getenv("CELERY_BROKER_URL", "redis://localhost:6379/0")
    CELERY_RESULT_BACKEND = os.getenv("CELERY_RESULT_BACKEND", "redis://localhost:6379/0")
    SWEEP_INTERVAL_MINUTES = int(os.getenv("SWEEP_INTERVAL_MINUTES", 5))

    # EMAIL
    MAIL_SERVER = os.getenv("MAIL_SERVER", "smtp.gmail.com")
    MAIL_PORT = int(os.getenv("MAIL_PORT", 587))
    MAIL_USE_TLS = _flag("MAIL_USE_TLS", True)
    MAIL_USERNAME = os.getenv("MAIL_USERNAME")
    MAIL_PASSWORD = os.getenv("MAIL_PASSWORD")
    MAIL_DEFAULT_SENDER = os.getenv("MAIL_DEFAULT_SENDER", MAIL_USERNAME or "no-reply@parkspot.local")
    SEND_BOOKING_EMAILS = _flag("SEND_BOOKING_EMAILS", True)

    # BOOKING RULES
    BOOKING_EXTENSION_HOURS = int(os.getenv("BOOKING_EXTENSION_HOURS", 1))
    RESERVATION_GRACE_MINUTES = int(os.getenv("RESERVATION_GRACE_MINUTES", 15))

    LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
