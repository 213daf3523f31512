from pydantic import AnyUrl
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Application settings class.
    Reads variables from .env file automatically.
    """

    # API Config
    PROJECT_NAME: str
    API_V1_STR: str

    # MongoDB Config
    MONGODB_URL: AnyUrl
    DATABASE_NAME: str

    # Security Config (tokens are issued by the auth service, we only verify them)
    SECRET_KEY: str
    ALGORITHM: str = "HS256"

    # Environment
    ENVIRONMENT: str = "development"
    LOG_LEVEL: str = "INFO"

    # Redis (subscription tier limits cache)
    REDIS_HOST: str = "localhost"
    REDIS_PORT: int = 6379
    CACHE_ENABLED: bool = True
    PLAN_LIMITS_CACHE_TTL_SECONDS: int = 3600

    # Weekly plan lifecycle
    SWEEPER_ENABLED: bool = True
    EXPIRATION_LOOKBACK_WEEKS: int = 4
    MENU_LIMIT_WARNING_THRESHOLD: int = 3

    # Live notifications
    NOTIFIER_PRUNE_INTERVAL_SECONDS: int = 300

    # Pydantic V2 Configuration
    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=True,
        extra="ignore"
    )


# It creates the 'settings' object that main.py uses.
config = Settings()
