"""Configuration settings for the admission service."""

import os
from datetime import timedelta


def get_postgres_uri():
    """Get PostgreSQL connection URI from environment variables."""
    host = os.environ.get("DB_HOST", "localhost")
    port = int(os.environ.get("DB_PORT", 5433 if host == "localhost" else 5432))
    password = os.environ.get("DB_PASSWORD", "admission_pass")
    user = os.environ.get("DB_USER", "admission_user")
    db_name = os.environ.get("DB_NAME", "admission_db")
    return f"postgresql://{user}:{password}@{host}:{port}/{db_name}"


def get_redis_host_and_port():
    """Get Redis connection details from environment variables."""
    host = os.environ.get("REDIS_HOST", "localhost")
    port = int(os.environ.get("REDIS_PORT", 6379))
    return dict(host=host, port=port)


def get_notification_channel():
    """Redis channel the UI listens on for user-facing notifications."""
    return os.environ.get("NOTIFICATION_CHANNEL", "admission:notifications")


def get_transaction_channel():
    """Redis channel for finished saga transactions."""
    return os.environ.get("TRANSACTION_CHANNEL", "admission:transactions")


def get_ledger_retention():
    """How long transaction logs are kept before an explicit cleanup removes them."""
    hours = float(os.environ.get("LEDGER_RETENTION_HOURS", "24"))
    return timedelta(hours=hours)


def get_api_port():
    return int(os.environ.get("API_PORT", 8000))


def get_log_level():
    """Get log level name from environment variables."""
    return os.environ.get("LOG_LEVEL", "INFO").upper()
