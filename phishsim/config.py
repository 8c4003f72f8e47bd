"""Application configuration for PhishSim.

Settings are read from the environment once, at startup, and handed to each
component explicitly. Nothing below the application factory calls
``os.getenv``.
"""

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv


def _env_bool(name: str, default: str) -> bool:
    return os.getenv(name, default).lower() == "true"


@dataclass(frozen=True)
class Settings:
    """Runtime settings shared by the API, dispatcher and mailer."""

    database_url: str = "sqlite:///./phishsim.db"

    # Public address recipients reach; tracking links and beacons hang off it
    public_base_url: str = "http://localhost:8080"

    # Auth
    jwt_secret: str = "default-secret-change-in-production"
    jwt_algorithm: str = "HS256"
    jwt_expire_minutes: int = 60 * 24 * 7  # 7 days
    cookie_secure: bool = False

    # SMTP transport
    smtp_host: str = "smtp.gmail.com"
    smtp_port: int = 587
    smtp_username: str = ""
    smtp_password: str = ""
    smtp_use_tls: bool = True
    smtp_timeout: float = 30.0

    # Dispatch
    send_interval: float = 0.5  # 2 emails per second
    claim_ttl_seconds: int = 600
    max_pending_jobs: int = 100

    frontend_url: str = "http://localhost:3000"
    log_level: str = "INFO"


def load_settings(env_file: Optional[str] = None) -> Settings:
    """Build settings from environment variables (and an optional .env file)."""
    if env_file is None:
        env_file = str(Path.cwd() / ".env")
    load_dotenv(env_file)

    smtp_user = os.getenv("SMTP_USER", "")

    return Settings(
        database_url=os.getenv("DATABASE_URL", Settings.database_url),
        public_base_url=os.getenv("APP_HOST", Settings.public_base_url).rstrip("/"),
        jwt_secret=os.getenv("JWT_SECRET", Settings.jwt_secret),
        jwt_expire_minutes=int(os.getenv("JWT_EXPIRE_MINUTES", str(Settings.jwt_expire_minutes))),
        cookie_secure=_env_bool("COOKIE_SECURE", "false"),
        smtp_host=os.getenv("SMTP_HOST", Settings.smtp_host),
        smtp_port=int(os.getenv("SMTP_PORT", str(Settings.smtp_port))),
        smtp_username=smtp_user,
        smtp_password=os.getenv("SMTP_PASS", ""),
        smtp_use_tls=_env_bool("SMTP_USE_TLS", "true"),
        smtp_timeout=float(os.getenv("SMTP_TIMEOUT", str(Settings.smtp_timeout))),
        send_interval=float(os.getenv("SEND_INTERVAL_SECONDS", str(Settings.send_interval))),
        claim_ttl_seconds=int(os.getenv("CLAIM_TTL_SECONDS", str(Settings.claim_ttl_seconds))),
        max_pending_jobs=int(os.getenv("MAX_PENDING_JOBS", str(Settings.max_pending_jobs))),
        frontend_url=os.getenv("FRONTEND_URL", Settings.frontend_url),
        log_level=os.getenv("LOG_LEVEL", Settings.log_level).upper(),
    )
