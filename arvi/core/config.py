import logging
from typing import List, Optional

from pydantic import ConfigDict, Field
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    ENV: str = "development"  # development | test | production
    CONFIG_STRICT: bool = False

    # Vendors. Groq serves the creative pass, OpenAI the structuring passes.
    GROQ_API_KEY: Optional[str] = None
    OPENAI_API_KEY: Optional[str] = None

    # Generation pipeline
    AI_PASS_TIMEOUT_SECONDS: float = Field(30.0, gt=0)
    AI_PASS_MAX_ATTEMPTS: int = 2  # first try included; only transient failures retry
    AI_RETRY_BACKOFF_SECONDS: float = Field(0.5, ge=0)

    # Store
    DATABASE_URL: Optional[str] = None
    TEST_DATABASE_URL: Optional[str] = None
    SQLITE_BUSY_TIMEOUT_SECONDS: float = Field(10.0, gt=0)

    ALLOWED_ORIGINS: str = "http://localhost:3000"  # comma-separated

    OTEL_ENABLED: bool = False
    OTEL_EXPORTER: str = "console"  # console | memory

    model_config = ConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    @property
    def allowed_origins(self) -> List[str]:
        return [origin.strip() for origin in self.ALLOWED_ORIGINS.split(",") if origin.strip()]


settings = Settings()

# Key -> what stops working without it.
REQUIRED_CONFIG = {
    "DATABASE_URL": "persistence",
    "GROQ_API_KEY": "creative pass",
    "OPENAI_API_KEY": "structure and schema passes",
}


def missing_config(cfg: Settings) -> List[str]:
    return [key for key in REQUIRED_CONFIG if not getattr(cfg, key, None)]


def validate_config(strict: Optional[bool] = None, settings_obj: Optional[Settings] = None, logger: Optional[logging.Logger] = None) -> bool:
    """Warn about missing configuration, or raise RuntimeError in strict mode.

    Only key names are reported, never values.
    """
    cfg = settings_obj or settings
    log = logger or logging.getLogger("arvi")
    strict_mode = cfg.CONFIG_STRICT if strict is None else strict

    missing = missing_config(cfg)
    if not missing:
        return True

    message = "Missing required configuration: " + ", ".join(
        f"{key} ({REQUIRED_CONFIG[key]})" for key in missing
    )
    if strict_mode:
        raise RuntimeError(message)
    log.warning(message)
    return True
