# backend/transferhub/config.py
from __future__ import annotations
import os


class Config:
    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # SQLite DB stored in backend/instance/transferhub.sqlite3
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL", #optional alternative location
        "sqlite:///transferhub.sqlite3", #default local location
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Transfer numbers look like TRF-20260129-001-0001
    TRANSFER_NUMBER_PREFIX = os.environ.get("TRANSFER_NUMBER_PREFIX", "TRF")
    DEFAULT_CURRENCY = os.environ.get("DEFAULT_CURRENCY", "USD")

    # Bounded retry for lock/version conflicts inside one unit of work
    TRANSFER_RETRY_ATTEMPTS = int(os.environ.get("TRANSFER_RETRY_ATTEMPTS", "3"))
    TRANSFER_RETRY_BACKOFF = float(os.environ.get("TRANSFER_RETRY_BACKOFF", "0.05"))
