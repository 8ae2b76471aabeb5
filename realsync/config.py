"""realsync — Central Configuration via Pydantic Settings."""

from pydantic_settings import BaseSettings


class ConfigurationError(Exception):
    """Raised when a required setting is missing or empty."""


class Settings(BaseSettings):
    """Application settings loaded from environment variables / .env file."""

    # ── MongoDB ──
    mongo_url: str = "mongodb://localhost:27017"
    mongo_db_name: str = "realsync"

    # ── Client API (users, projects, reals) ──
    client_api_url: str = ""

    # ── Analytics API (events) ──
    analytics_api_url: str = ""
    analytics_api_key: str = ""

    # ── Sync ──
    admin_id: str = ""  # external userId of the tracked account
    http_timeout_seconds: float = 25.0

    # ── App ──
    log_level: str = "INFO"
    scheduler_enabled: bool = True

    def require(self, name: str) -> str:
        """Return a non-empty setting or raise ConfigurationError."""
        value = getattr(self, name, "")
        if not value:
            raise ConfigurationError(f"{name.upper()} is not configured")
        return value

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8"}


settings = Settings()
