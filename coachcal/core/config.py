# coachcal/core/config.py

from pydantic_settings import BaseSettings, SettingsConfigDict
import urllib.parse

class Settings(BaseSettings):
    # Read env from .env; ignore unknown keys so extra lines don't crash startup
    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=False,
        extra="ignore",
    )

    # --- Database ---
    # Full SQLAlchemy URL; when set it wins over the POSTGRES_* parts
    DATABASE_URL: str | None = None
    POSTGRES_HOST: str = "localhost"
    POSTGRES_PORT: int = 5432
    POSTGRES_DB: str = "coachcal"
    POSTGRES_USER: str = "coachcal"
    POSTGRES_PASSWORD: str = ""

    # --- Security ---
    COACHCAL_API_KEY: str | None = None

    # --- Redis (slot cache + event channel) ---
    REDIS_URL: str | None = None
    SLOT_CACHE_TTL_SECONDS: int = 60
    EVENTS_CHANNEL: str = "coachcal_events"

    # --- Scheduling defaults ---
    DEFAULT_TIMEZONE: str = "UTC"
    DEFAULT_APPOINTMENT_DURATION: int = 30
    MAX_CALENDAR_RANGE_DAYS: int = 62

    # --- External collaborators ---
    INTEGRATION_TIMEOUT_SECONDS: float = 5.0
    MEETING_ENABLED: bool = False
    MEETING_API_BASE_URL: str = "https://api.zoom.us/v2"
    REMINDER_POLL_SECONDS: int = 30

    # --- Monitoring & Logging ---
    APP_ENV: str = "production"
    LOG_LEVEL: str = "INFO"
    LOG_REQUESTS: bool = False
    LOG_RESPONSES: bool = False
    MAX_LOG_LENGTH: int = 200
    SLOW_REQUEST_THRESHOLD: float = 2.0

    ALLOWED_CORS_ORIGINS: str = "*"  # comma-separated list

    # Sync URI (Alembic)
    @property
    def sync_db_uri(self) -> str:
        if self.DATABASE_URL:
            return (self.DATABASE_URL
                    .replace("+asyncpg", "")
                    .replace("+aiosqlite", ""))
        pwd = urllib.parse.quote_plus(self.POSTGRES_PASSWORD)
        return f"postgresql://{self.POSTGRES_USER}:{pwd}@{self.POSTGRES_HOST}:{self.POSTGRES_PORT}/{self.POSTGRES_DB}"

    # Async URI (SQLAlchemy engine)
    @property
    def async_db_uri(self) -> str:
        if self.DATABASE_URL:
            return self.DATABASE_URL
        pwd = urllib.parse.quote_plus(self.POSTGRES_PASSWORD)
        return f"postgresql+asyncpg://{self.POSTGRES_USER}:{pwd}@{self.POSTGRES_HOST}:{self.POSTGRES_PORT}/{self.POSTGRES_DB}"

    @property
    def allowed_origins_list(self) -> list[str]:
        return [o.strip() for o in self.ALLOWED_CORS_ORIGINS.split(",") if o.strip()]

    @property
    def is_development(self) -> bool:
        return self.APP_ENV.lower() in ("development", "dev", "local")

    @property
    def is_production(self) -> bool:
        return self.APP_ENV.lower() in ("production", "prod")

# Singleton
settings = Settings()
