from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    APP_NAME: str = "seatlock"
    DEBUG: bool = False
    LOG_LEVEL: str = "INFO"
    DATABASE_URL: str = "sqlite+aiosqlite:///./seatlock.db"
    REDIS_URL: str = "redis://localhost:6379/0"
    SENTRY_DSN: str = ""
    # Seat holds stay valid for a day so offline payments can complete
    SEAT_HOLD_SECONDS: int = 24 * 60 * 60
    SEAT_HOLD_MAX_SECONDS: int = 30 * 24 * 60 * 60
    # Expiry sweep (in-process loop and celery beat)
    SWEEPER_ENABLED: bool = True
    SWEEP_INTERVAL_SECONDS: int = 60
    # Change feed transport: "memory" or "redis"
    FEED_BACKEND: str = "memory"
    FEED_RECONNECT_DELAY_SECONDS: float = 1.0
    # Notifications: "log" or "smtp"
    NOTIFICATION_PROVIDER: str = "log"
    NOTIFICATION_FROM: str = "transport-office@example.edu"
    SMTP_HOST: str = "localhost"
    SMTP_PORT: int = 25
    SMTP_USERNAME: str = ""
    SMTP_PASSWORD: str = ""


settings = Settings()
