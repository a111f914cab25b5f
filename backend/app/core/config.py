from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    PROJECT_NAME: str = "Team Calendar"
    ENVIRONMENT: str = "development"
    LOG_LEVEL: str = "INFO"

    MONGODB_URL: str
    DATABASE_NAME: str = "team_calendar"

    # Every store call is bounded by this timeout (seconds)
    STORE_TIMEOUT_SECONDS: float = 10.0

    # Per-team write lock used by the request path
    TEAM_LOCK_TTL_SECONDS: int = 30
    TEAM_LOCK_WAIT_SECONDS: float = 5.0

    # Recurrence materialization
    MATERIALIZER_ENABLED: bool = True
    MATERIALIZER_INTERVAL_SECONDS: float = 300.0
    MATERIALIZATION_WINDOW_DAYS: int = 30
    MATERIALIZATION_SKEW_SECONDS: int = 300

    class Config:
        case_sensitive = True
        env_file = ".env"


settings = Settings()
