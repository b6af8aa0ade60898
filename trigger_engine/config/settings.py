from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Engine settings with environment variable support"""

    # Application
    APP_NAME: str = "Trigger Engine"
    APP_VERSION: str = "0.1.0"
    LOG_LEVEL: str = Field(default="INFO", env="LOG_LEVEL")
    LOG_FILE: str = Field(default="logs/trigger_engine.log", env="LOG_FILE")
    LOG_MAX_BYTES: int = Field(default=10 * 1024 * 1024, env="LOG_MAX_BYTES")
    LOG_BACKUP_COUNT: int = Field(default=5, env="LOG_BACKUP_COUNT")

    # Redis
    REDIS_URL: str = Field(default="redis://redis:6379/0", env="REDIS_URL")
    EVENTS_CHANNEL: str = Field(default="trigger:market_events", env="EVENTS_CHANNEL")
    DISPATCH_CHANNEL: str = Field(default="trigger:dispatch:events", env="DISPATCH_CHANNEL")
    RESULTS_CHANNEL: str = Field(default="trigger:dispatch:results", env="RESULTS_CHANNEL")
    SNAPSHOT_KEY_PREFIX: str = Field(default="trigger:snapshot:", env="SNAPSHOT_KEY_PREFIX")
    SNAPSHOT_EVENTS_CHANNEL: str = Field(default="trigger:snapshot:events", env="SNAPSHOT_EVENTS_CHANNEL")
    EXECUTION_LOGS_KEY: str = Field(default="trigger:execution_logs", env="EXECUTION_LOGS_KEY")
    WALLET_BALANCES_KEY: str = Field(default="trigger:wallet_balances", env="WALLET_BALANCES_KEY")

    # Engine
    MAX_EXECUTION_LOGS: int = Field(default=500, env="MAX_EXECUTION_LOGS")
    SNAPSHOT_FLUSH_SECONDS: int = Field(default=5, env="SNAPSHOT_FLUSH_SECONDS")
    TRADE_WINDOW_MINUTES: int = Field(default=24 * 60, env="TRADE_WINDOW_MINUTES")
    PENDING_DISPATCH_TTL_SECONDS: int = Field(default=300, env="PENDING_DISPATCH_TTL_SECONDS")
    BALANCE_REFRESH_SECONDS: int = Field(default=10, env="BALANCE_REFRESH_SECONDS")
    TIMEZONE: Optional[str] = Field(default="UTC", env="TIMEZONE")

    class Config:
        env_file = ".env"
        case_sensitive = True


settings = Settings()
