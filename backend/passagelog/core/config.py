from pathlib import Path

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    # Storage
    DATA_DIR: Path = Path("./data")
    DATABASE_URL: str = "sqlite:///./data/passagelog.db"

    # Remote passage import service
    BOATLY_API_URL: str = "https://boatly-api.herokuapp.com/v1"
    BOATLY_AUTH_TOKEN: str | None = None
    BOATLY_USER_ID: str | None = None
    HTTP_TIMEOUT_S: float = 20.0
    UPLOAD_WORKERS: int = 2

    # Passage detection
    MOVEMENT_THRESHOLD_M: float = 10.0
    STILLNESS_STATUS_MINUTES: float = 0.25
    STATIONARY_MINUTES_END_PASSAGE: float = 10.0

    # Observability
    LOG_LEVEL: str = "INFO"
    SENTRY_DSN: str | None = None
    SENTRY_TRACES_SAMPLE_RATE: float = 0.0


settings = Settings()
