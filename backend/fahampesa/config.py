from __future__ import annotations
import os


class Config:
    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # SQLite DB stored in backend/instance/fahampesa.sqlite3
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL", #optional alternative location
        "sqlite:///fahampesa.sqlite3", #default local location
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")

    # Optimistic-concurrency retry policy for transactional writes
    TX_RETRY_ATTEMPTS = int(os.environ.get("TX_RETRY_ATTEMPTS", "3"))
    TX_RETRY_BACKOFF_SECONDS = float(os.environ.get("TX_RETRY_BACKOFF_SECONDS", "0.1"))

    # Product catalog lookups are cached per tenant
    CATALOG_CACHE_TTL_SECONDS = int(os.environ.get("CATALOG_CACHE_TTL_SECONDS", "300"))

    DEFAULT_CURRENCY = os.environ.get("DEFAULT_CURRENCY", "KES")
    TRANSFER_NUMBER_PREFIX = "TR"
    PO_NUMBER_PREFIX = "PO"
    BRANCH_CODE_PREFIX = "BR"

    # Browser origins allowed to call the API (comma-separated)
    CORS_ALLOWED_ORIGINS = tuple(
        origin.strip()
        for origin in os.environ.get(
            "CORS_ALLOWED_ORIGINS",
            "http://localhost:3000,http://127.0.0.1:3000",
        ).split(",")
        if origin.strip()
    )
