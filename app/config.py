"""Application configuration."""

from functools import lru_cache

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
        env_parse_none_str="null",
    )

    # Application
    app_name: str = Field(default="CitaGo Booking API", alias="APP_NAME")
    app_version: str = Field(default="0.1.0", alias="APP_VERSION")
    environment: str = Field(default="development", alias="ENVIRONMENT")
    debug: bool = Field(default=False, alias="DEBUG")
    api_v1_prefix: str = Field(default="/api/v1", alias="API_V1_PREFIX")

    # Server
    host: str = Field(default="0.0.0.0", alias="HOST")
    port: int = Field(default=8000, alias="PORT")
    reload: bool = Field(default=False, alias="RELOAD")

    # Database
    database_url: str = Field(..., alias="DATABASE_URL")

    # Redis
    redis_host: str = Field(default="localhost", alias="REDIS_HOST")
    redis_port: int = Field(default=6379, alias="REDIS_PORT")
    redis_username: str = Field(default="default", alias="REDIS_USERNAME")
    redis_password: str = Field(default="", alias="REDIS_PASSWORD")
    redis_decode_responses: bool = Field(default=True, alias="REDIS_DECODE_RESPONSES")
    cache_enabled: bool = Field(default=True, alias="CACHE_ENABLED")
    availability_cache_ttl_seconds: int = Field(
        default=60, alias="AVAILABILITY_CACHE_TTL_SECONDS"
    )

    # JWT
    jwt_secret_key: str = Field(..., alias="JWT_SECRET_KEY")
    jwt_algorithm: str = Field(default="HS256", alias="JWT_ALGORITHM")
    access_token_expire_minutes: int = Field(default=30, alias="ACCESS_TOKEN_EXPIRE_MINUTES")

    # Mail (SMTP)
    smtp_host: str = Field(default="", alias="SMTP_HOST")
    smtp_port: int = Field(default=587, alias="SMTP_PORT")
    smtp_username: str = Field(default="", alias="SMTP_USERNAME")
    smtp_password: str = Field(default="", alias="SMTP_PASSWORD")
    smtp_use_tls: bool = Field(default=True, alias="SMTP_USE_TLS")
    mail_from: str = Field(default="no-reply@citago.local", alias="MAIL_FROM")
    mail_timeout_seconds: float = Field(default=10.0, alias="MAIL_TIMEOUT_SECONDS")

    # Booking policy
    availability_horizon_days: int = Field(default=183, alias="AVAILABILITY_HORIZON_DAYS")
    # Date-level availability counts every booking as this many minutes
    estimated_minutes_per_booking: int = Field(default=30, alias="ESTIMATED_MINUTES_PER_BOOKING")
    cancellation_window_days: int = Field(default=30, alias="CANCELLATION_WINDOW_DAYS")
    max_cancellations: int = Field(default=3, alias="MAX_CANCELLATIONS")

    # Reminders
    reminders_enabled: bool = Field(default=True, alias="REMINDERS_ENABLED")
    reminder_sweep_interval_seconds: int = Field(
        default=120, alias="REMINDER_SWEEP_INTERVAL_SECONDS"
    )
    reminder_lead_hours_str: str = Field(default="1,24", alias="REMINDER_LEAD_HOURS")
    reminder_tolerance_minutes: int = Field(default=2, alias="REMINDER_TOLERANCE_MINUTES")

    @property
    def reminder_lead_hours(self) -> list[int]:
        """Get reminder lead times (hours before the appointment) as a list."""
        return [int(hours.strip()) for hours in self.reminder_lead_hours_str.split(",") if hours.strip()]

    # CORS
    cors_origins_str: str = Field(
        default="http://localhost:3000",
        alias="CORS_ORIGINS",
    )
    cors_allow_credentials: bool = Field(default=True, alias="CORS_ALLOW_CREDENTIALS")

    @property
    def cors_origins(self) -> list[str]:
        """Get CORS origins as a list."""
        if isinstance(self.cors_origins_str, str):
            return [origin.strip() for origin in self.cors_origins_str.split(",") if origin.strip()]
        return [self.cors_origins_str]

    # Logging
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")
    log_format: str = Field(default="json", alias="LOG_FORMAT")

    @property
    def is_production(self) -> bool:
        """Check if running in production environment."""
        return self.environment.lower() == "production"

    @property
    def is_development(self) -> bool:
        """Check if running in development environment."""
        return self.environment.lower() == "development"


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()  # type: ignore[call-arg]


# Global settings instance
settings = get_settings()
