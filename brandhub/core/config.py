"""
Centralized Settings

Environment-driven configuration loaded once per process. Missing required
values (brand identifier, database URL, automation runner endpoint) are a
fatal startup error rather than something callers recover from at runtime.
"""
import logging
from functools import lru_cache
from typing import Optional

from pydantic import Field, ValidationError
from pydantic_settings import BaseSettings, SettingsConfigDict

from brandhub.core.exceptions import ConfigurationError

logger = logging.getLogger(__name__)


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore", populate_by_name=True)

    # Required
    brand_id: str = Field(..., alias="BRAND_ID", min_length=1)
    database_url: str = Field(..., alias="DATABASE_URL", min_length=1)
    automation_runner_url: str = Field(..., alias="AUTOMATION_RUNNER_URL", min_length=1)

    # Runtime
    environment: str = Field("development", alias="ENVIRONMENT")
    log_level: str = Field("INFO", alias="LOG_LEVEL")
    use_json_logging: bool = Field(False, alias="USE_JSON_LOGGING")

    # Dispatch and retry policy
    dispatch_timeout_seconds: float = Field(10.0, alias="DISPATCH_TIMEOUT_SECONDS", gt=0)
    retry_max_attempts: int = Field(3, alias="RETRY_MAX_ATTEMPTS", ge=1)
    retry_base_delay_seconds: float = Field(5.0, alias="RETRY_BASE_DELAY_SECONDS", ge=0)
    retry_max_delay_seconds: float = Field(300.0, alias="RETRY_MAX_DELAY_SECONDS", ge=0)
    # A processing claim older than the dispatch timeout plus this grace is abandoned
    claim_grace_seconds: float = Field(300.0, alias="CLAIM_GRACE_SECONDS", ge=0)

    # Automation runs
    automation_batch_size: int = Field(100, alias="AUTOMATION_BATCH_SIZE", ge=1)
    automation_concurrency: int = Field(4, alias="AUTOMATION_CONCURRENCY", ge=1)

    # Celery
    celery_broker_url: str = Field("redis://localhost:6379/0", alias="CELERY_BROKER_URL")
    celery_result_backend: Optional[str] = Field(None, alias="CELERY_RESULT_BACKEND")

    def get_celery_broker_url(self) -> str:
        return self.celery_broker_url

    def get_celery_result_backend(self) -> str:
        return self.celery_result_backend or self.celery_broker_url

    @property
    def is_production(self) -> bool:
        return self.environment.lower() == "production"


def load_settings() -> Settings:
    """
    Build settings from the environment.

    Raises:
        ConfigurationError: If a required variable is missing or invalid
    """
    try:
        return Settings()
    except ValidationError as e:
        problems = []
        for error in e.errors():
            name = ".".join(str(part) for part in error.get("loc", ())) or "unknown"
            problems.append(f"{name} ({error.get('msg')})")
        raise ConfigurationError(f"Invalid configuration: {', '.join(problems)}") from e


@lru_cache()
def get_settings() -> Settings:
    """Get the cached process settings"""
    settings = load_settings()
    logger.debug(f"Settings loaded for brand {settings.brand_id} ({settings.environment})")
    return settings
