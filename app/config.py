import warnings
from typing import Optional
from pydantic import model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    APP_NAME: str = "BizDomains"
    APP_ENV: str = "development"
    API_V1_STR: str = "/api/v1"

    # Shared secret for the internal ops API (X-Service-Token header)
    SERVICE_TOKEN: str = ""

    # Database
    DATABASE_URL: Optional[str] = None  # overrides the POSTGRES_* parts when set
    POSTGRES_SERVER: str = "localhost"
    POSTGRES_USER: str = "postgres"
    POSTGRES_PASSWORD: str = "postgres"
    POSTGRES_DB: str = "bizdomains"
    DB_ECHO: bool = False

    # Celery
    CELERY_BROKER_URL: str = "redis://localhost:6379/0"
    CELERY_RESULT_BACKEND: str = "redis://localhost:6379/0"

    # Render custom-domain API
    RENDER_API_KEY: str = ""
    RENDER_SERVICE_ID: str = ""
    RENDER_API_BASE_URL: str = "https://api.render.com/v1"
    RENDER_API_TIMEOUT: float = 15.0
    RENDER_CNAME_TARGET: str = "bizblasts.onrender.com"
    RENDER_APEX_IP: str = "216.24.57.1"  # Render anycast IP for apex A records

    # Platform hosting (subdomain sites)
    PLATFORM_DOMAIN: str = "bizblasts.com"
    PLATFORM_DEV_HOST: str = "lvh.me:3000"

    # Health check
    HEALTH_CHECK_TIMEOUT: float = 10.0   # seconds
    HEALTH_CHECK_MAX_REDIRECTS: int = 3
    HEALTH_CHECK_USER_AGENT: str = "BizBlasts-HealthChecker/1.0"

    # Monitoring / retry policy
    DOMAIN_MONITOR_INTERVAL_MINUTES: int = 5
    DOMAIN_MONITOR_MAX_ATTEMPTS: int = 12   # 12 x 5 min = 1 hour
    CERT_RETRY_MAX_ATTEMPTS: int = 6

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True
    )

    @model_validator(mode="after")
    def _validate_production_credentials(self) -> "Settings":
        """Block startup in production / staging when the provider is not configured."""
        if self.APP_ENV in ("production", "staging"):
            if not self.RENDER_API_KEY or not self.RENDER_SERVICE_ID:
                raise ValueError(
                    "RENDER_API_KEY and RENDER_SERVICE_ID must be set in .env or environment."
                )
            if not self.SERVICE_TOKEN:
                warnings.warn(
                    "SERVICE_TOKEN is empty; the ops API will reject every request.",
                    UserWarning,
                    stacklevel=2,
                )
        return self

    @property
    def database_url(self) -> str:
        if self.DATABASE_URL:
            return self.DATABASE_URL
        return (
            f"postgresql://{self.POSTGRES_USER}:{self.POSTGRES_PASSWORD}"
            f"@{self.POSTGRES_SERVER}/{self.POSTGRES_DB}"
        )

    @property
    def is_production(self) -> bool:
        return self.APP_ENV == "production"

    @property
    def is_staging(self) -> bool:
        return self.APP_ENV == "staging"


settings = Settings()
