"""Configuration objects for the salon booking backend."""
from __future__ import annotations

import os

from dotenv import load_dotenv

load_dotenv()


def _env_flag(name: str, default: str = "0") -> bool:
    return os.environ.get(name, default).strip().lower() in {"1", "true", "yes"}


class Config:
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-change-me")
    SQLALCHEMY_DATABASE_URI = os.environ.get("DATABASE_URL", "sqlite:///salonbook.db")
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Bearer tokens are valid for seven days
    TOKEN_MAX_AGE = int(os.environ.get("TOKEN_MAX_AGE", 7 * 24 * 3600))

    CORS_ORIGINS = [
        origin.strip()
        for origin in os.environ.get("CORS_ORIGINS", "http://localhost:3000").split(",")
        if origin.strip()
    ]
    SALON_NAME = os.environ.get("SALON_NAME", "Dreams Saloon")
    FRONTEND_URL = os.environ.get("FRONTEND_URL", "http://localhost:3000")
    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")

    # Feedback links are only ever logged, never delivered; channel is "sms" or "whatsapp"
    FEEDBACK_CHANNEL = os.environ.get("FEEDBACK_CHANNEL", "sms")
    SMS_ENABLED = _env_flag("SMS_ENABLED")
    TWILIO_ACCOUNT_SID = os.environ.get("TWILIO_ACCOUNT_SID")
    TWILIO_AUTH_TOKEN = os.environ.get("TWILIO_AUTH_TOKEN")
    TWILIO_PHONE_NUMBER = os.environ.get("TWILIO_PHONE_NUMBER")

    STRIPE_SECRET_KEY = os.environ.get("STRIPE_SECRET_KEY")
    STRIPE_CURRENCY = os.environ.get("STRIPE_CURRENCY", "inr")

    SALON_OPEN_HOUR = int(os.environ.get("SALON_OPEN_HOUR", 9))
    SALON_CLOSE_HOUR = int(os.environ.get("SALON_CLOSE_HOUR", 20))
    SLOT_INTERVAL_MINUTES = int(os.environ.get("SLOT_INTERVAL_MINUTES", 30))


class TestingConfig(Config):
    TESTING = True
    SECRET_KEY = "test-secret"
    SQLALCHEMY_DATABASE_URI = "sqlite:///:memory:"
    FRONTEND_URL = "http://localhost:3000"
    SMS_ENABLED = False
    FEEDBACK_CHANNEL = "sms"
    STRIPE_SECRET_KEY = None
    LOG_LEVEL = "WARNING"
