from typing import Optional

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    app_name: str = "pws-ingest"
    app_version: str = "0.1.0"
    log_level: str = "INFO"
    host: str = "0.0.0.0"
    port: int = 8000

    # Station and provider credential
    station_id: Optional[str] = None
    api_key: Optional[str] = None
    base_url: str = "https://api.weather.com/v2/pws/history/all"
    timeout_connect: float = 5.0
    timeout_read: float = 30.0
    max_retries: int = 3

    # Storage: filesystem path (SQLite) or SQLAlchemy URL
    database: str = "Database/Wunderground.sql"

    # Polling
    active_start: str = "06:00"
    active_end: str = "22:00"
    poll_interval_s: int = 3600
    scheduler_enabled: bool = True
    status_history: int = 200

    # .env support and prefix for clarity, e.g. PWS_STATION_ID
    model_config = SettingsConfigDict(
        env_prefix="PWS_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )
