# backend/backoffice/config.py
from __future__ import annotations
import os


class Config:
    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL",
        "sqlite:///backoffice.sqlite3",
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Calendar used for "today" in the expiry sweep and sale date filters
    BUSINESS_TIMEZONE = os.environ.get("BUSINESS_TIMEZONE", "America/Guatemala")

    # Batches expiring within this many days raise an alert
    EXPIRY_ALERT_WINDOW_DAYS = int(os.environ.get("EXPIRY_ALERT_WINDOW_DAYS", "10"))

    # Accepted payment methods
    PAYMENT_METHODS = ("CASH", "CARD", "TRANSFER")

    # Payment methods that settle through a bank; a shift is optional for them.
    # Every other method is cash-equivalent and requires an open shift.
    BANK_PAYMENT_METHODS = ("CARD", "TRANSFER")

    # Opening balance of a branch's first shift when none is supplied
    DEFAULT_OPENING_BALANCE_CENTS = 0
