from __future__ import annotations

import os


def _env_flag(name: str, default: str) -> bool:
    return os.getenv(name, default).strip().lower() in {"1", "true", "yes", "on"}


class Config:
    SECRET_KEY = os.getenv("SECRET_KEY", "dev-secret-key")
    SQLALCHEMY_DATABASE_URI = os.getenv(
        "DATABASE_URL",
        "sqlite:///incidencias.db",
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
    APP_BASE_URL = os.getenv("APP_BASE_URL", "http://localhost:5000")
    STATS_CACHE_TTL_SECONDS = int(os.getenv("STATS_CACHE_TTL_SECONDS", "30"))

    # smtp | memory | log
    MAIL_BACKEND = os.getenv("MAIL_BACKEND", "log")
    MAIL_SERVER = os.getenv("MAIL_SERVER", "")
    MAIL_PORT = int(os.getenv("MAIL_PORT", "587"))
    MAIL_USERNAME = os.getenv("MAIL_USERNAME", "")
    MAIL_PASSWORD = os.getenv("MAIL_PASSWORD", "")
    MAIL_USE_TLS = _env_flag("MAIL_USE_TLS", "true")
    MAIL_SENDER = os.getenv("MAIL_SENDER", "Incidencias App <no-reply@incidencias.local>")
    MAIL_ASYNC = _env_flag("MAIL_ASYNC", "true")
