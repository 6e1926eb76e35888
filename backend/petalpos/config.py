# backend/petalpos/config.py
from __future__ import annotations
import os


class Config:
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # SQLite DB stored in backend/instance/petalpos.sqlite3
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL",
        "sqlite:///petalpos.sqlite3",
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")

    # Care intervals used when a flower product has none configured
    DEFAULT_CARE_DAYS_WATER = int(os.environ.get("DEFAULT_CARE_DAYS_WATER", "2"))
    DEFAULT_CARE_DAYS_CUT = int(os.environ.get("DEFAULT_CARE_DAYS_CUT", "3"))

    LOCK_RETRY_ATTEMPTS = int(os.environ.get("LOCK_RETRY_ATTEMPTS", "3"))
