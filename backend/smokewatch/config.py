from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    # Application
    APP_NAME: str = "Smokewatch"
    APP_VERSION: str = "1.0.0"
    DEBUG: bool = False
    LOG_LEVEL: str = "INFO"
    ALLOWED_ORIGINS: str = "*"

    # Database
    DATABASE_URL: str = "postgresql+asyncpg://smokewatch:smokewatch@db:5432/smokewatch"

    # Ping cadence
    PING_INTERVAL_MS: int = 60000
    PING_COUNT: int = 30
    PING_TIMEOUT_SECONDS: int = 2  # per-packet wait

    # Route cadence (mtr, traceroute fallback)
    MTR_INTERVAL_SECONDS: int = 300
    MTR_COUNT: int = 10
    ROUTE_TIMEOUT_SECONDS: int = 60
    TRACEROUTE_MAX_HOPS: int = 30

    # Retention
    RETENTION_DAYS: int = 30
    CLEANUP_INTERVAL_HOURS: int = 24

    # Scheduler
    PROBE_CONCURRENCY: int = 50
    SHUTDOWN_GRACE_SECONDS: float = 10.0

    # Tool binaries
    PING_BIN: str = "ping"
    MTR_BIN: str = "mtr"
    TRACEROUTE_BIN: str = "traceroute"

    class Config:
        env_file = ".env"
        case_sensitive = True


settings = Settings()
