from pydantic_settings import BaseSettings
from pathlib import Path
from typing import Set

class Settings(BaseSettings):
    DATABASE_URL: str = "sqlite:///./analytics.db"
    NATS_URL: str = "nats://localhost:4222"
    API_KEYS: Set[str] = set()

    ACTIONS_SUBJECT: str = "actions.track"
    DLQ_SUBJECT: str = "actions.dlq"

    QUERY_TIMEOUT_MS: int = 15000
    MAX_ACTIONS_PER_REQUEST: int = 5000
    TOP_LIMIT_MAX: int = 100
    SLOW_REQUEST_SECONDS: float = 2.0

    class Config:
        env_file = Path(__file__).parent.parent / ".env"
        case_sensitive = True

settings = Settings()
