import os
import logging
from pydantic import BaseModel, Field
from typing import List
from dotenv import load_dotenv

load_dotenv()


def _env_flag(name: str, default: str) -> bool:
    return os.getenv(name, default).lower() == "true"


class SchedulerSettings(BaseModel):
    enabled: bool = Field(default=_env_flag("SCHEDULER_ENABLED", "true"))
    # How often the scheduled-appraisal sweep runs
    sweep_interval_minutes: int = Field(default=int(os.getenv("SCHEDULER_SWEEP_MINUTES", "5")))
    # A task left in processing this long is treated as abandoned by a dead worker
    stale_claim_minutes: int = Field(default=int(os.getenv("SCHEDULER_STALE_CLAIM_MINUTES", "30")))
    timezone: str = Field(default=os.getenv("SCHEDULER_TIMEZONE", "UTC"))


class EmailSettings(BaseModel):
    from_email: str = Field(default=os.getenv("EMAIL_FROM", "no-reply@appraisal.local"))
    from_name: str = Field(default=os.getenv("EMAIL_FROM_NAME", "Performance Review Platform"))
    max_attempts: int = Field(default=int(os.getenv("EMAIL_MAX_ATTEMPTS", "3")))
    # HTTP mail relay; when unset, emails are only written to the log
    api_url: str = Field(default=os.getenv("EMAIL_API_URL", ""))
    api_key: str = Field(default=os.getenv("EMAIL_API_KEY", ""))
    timeout_seconds: int = Field(default=int(os.getenv("EMAIL_TIMEOUT_SECONDS", "10")))


class Config(BaseModel):
    app_name: str = "Performance Review Platform"
    environment: str = os.getenv("APP_ENV", "development")
    api_prefix: str = "/api"

    # Database
    database_url: str = os.getenv("DATABASE_URL", "sqlite:///./database.db")

    # Auth
    secret_key: str = os.getenv("SECRET_KEY", "dev-only-insecure-key-DO-NOT-USE-IN-PROD")
    jwt_algorithm: str = "HS256"
    access_token_expire_minutes: int = 60 * 24  # 24 hours

    version: str = "1.0.0"
    request_id_header: str = "X-Request-ID"

    # Logging: LOG_FORMAT=json for aggregators, text for local development
    log_level: str = os.getenv("LOG_LEVEL", "INFO").upper()
    log_format: str = os.getenv("LOG_FORMAT", "json").lower()

    # Comma-separated CORS origins
    cors_origins: List[str] = Field(
        default_factory=lambda: [
            o.strip()
            for o in os.getenv(
                "CORS_ORIGINS",
                "http://localhost:3000,http://localhost:3001,"
                "http://127.0.0.1:3000,http://127.0.0.1:3001",
            ).split(",")
            if o.strip()
        ]
    )

    rate_limit_enabled: bool = _env_flag("RATE_LIMIT_ENABLED", "true")
    rate_limit_per_minute: int = int(os.getenv("RATE_LIMIT_PER_MINUTE", "60"))

    # Workflow defaults
    default_days_to_close: int = int(os.getenv("DEFAULT_DAYS_TO_CLOSE", "30"))
    default_number_of_reminders: int = 3
    reminder_due_in_days: int = 7

    # First-run bootstrap; skipped unless both admin values are set
    bootstrap_company_name: str = os.getenv("BOOTSTRAP_COMPANY_NAME", "Default Company")
    bootstrap_admin_email: str = os.getenv("BOOTSTRAP_ADMIN_EMAIL", "")
    bootstrap_admin_password: str = os.getenv("BOOTSTRAP_ADMIN_PASSWORD", "")

    scheduler: SchedulerSettings = SchedulerSettings()
    email: EmailSettings = EmailSettings()


settings = Config()

# --- Startup Validation for Production ---
_logger = logging.getLogger(__name__)
if settings.environment not in ("development", "testing"):
    if "dev-only" in settings.secret_key:
        raise RuntimeError(
            "FATAL: SECRET_KEY must be set for non-development environments. "
            "Set it as an environment variable."
        )
elif "dev-only" in settings.secret_key:
    _logger.warning("Using the insecure default SECRET_KEY; acceptable in development only")
