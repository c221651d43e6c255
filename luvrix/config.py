from __future__ import annotations
import os
from pydantic import BaseModel

def _csv(name: str, default: str = "") -> list[str]:
    return [v.strip() for v in os.getenv(name, default).split(",") if v.strip()]

class Settings(BaseModel):
    environment: str = os.getenv("ENVIRONMENT", "dev")
    log_level: str = os.getenv("LOG_LEVEL", "INFO")
    app_name: str = os.getenv("APP_NAME", "luvrix-giveaways")
    app_display_name: str = os.getenv("APP_DISPLAY_NAME", "Luvrix Giveaways")
    app_version: str = os.getenv("APP_VERSION", "0.1.0")
    git_sha: str = os.getenv("GIT_SHA", "dev")
    api_host: str = os.getenv("API_HOST", "0.0.0.0")
    api_port: int = int(os.getenv("API_PORT", "8000"))
    cors_origins: list[str] = os.getenv("CORS_ORIGINS", "*").split(",")
    database_url: str = os.getenv("DATABASE_URL", "postgresql+asyncpg://postgres:postgres@db:5432/luvrix_dev")
    redis_url: str = os.getenv("REDIS_URL", "redis://redis:6379/0")
    events_queue: str = os.getenv("EVENTS_QUEUE", "giveaway-events")

    # Upper bound for a single engine operation (all persistence calls inside one unit of work)
    persistence_timeout_seconds: float = float(os.getenv("PERSISTENCE_TIMEOUT_SECONDS", "5"))

    # Accounts registered with these emails get the admin role
    admin_emails: list[str] = [e.lower() for e in _csv("ADMIN_EMAILS")]

    invite_code_length: int = int(os.getenv("INVITE_CODE_LENGTH", "8"))
    support_currency: str = os.getenv("SUPPORT_CURRENCY", "inr")

settings = Settings()
