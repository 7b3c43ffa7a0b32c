from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env")

    APP_NAME: str = "WAYPOINT"
    DATABASE_URL: str = "sqlite+pysqlite:///./waypoint.db"
    METRICS_ENABLED: bool = True
    TRANSFER_LOCK_TIMEOUT_SEC: float = 10.0
    CRITICAL_STALE_DAYS: dict[str, float] = {
        "IN_PREPARATION": 7,
        "IN_TRANSIT": 14,
        "IN_CUSTOMS": 5,
        "QUALITY_CHECK": 3,
    }
    CRITICAL_HIGH_VALUE_THRESHOLD: float = 50000
    CRITICAL_APPROVAL_GRACE_HOURS: float = 48
    CRITICAL_OVERDUE_GRACE_HOURS: float = 24
    ANALYTICS_DEFAULT_WINDOW_DAYS: int = 30
    ANALYTICS_MAX_WINDOW_DAYS: int = 365
    TRANSFERS_LIST_MAX_PAGE_SIZE: int = 200
    OPS_ENABLE_INTEGRITY_SCAN: bool = True


settings = Settings()
