from pydantic_settings import BaseSettings
from functools import lru_cache

class Settings(BaseSettings):
    # Application
    APP_NAME: str = "Trivia Challenge"
    DEBUG: bool = True
    API_V1_PREFIX: str = "/api/v1"

    # Upstream question bank (Open Trivia DB protocol)
    TRIVIA_API_URL: str = "https://opentdb.com/api.php"
    TRIVIA_CATEGORIES_URL: str = "https://opentdb.com/api_category.php"
    TRIVIA_COUNT_URL: str = "https://opentdb.com/api_count.php"
    TRIVIA_TIMEOUT_SECONDS: float = 10.0
    TRIVIA_DEFAULT_AMOUNT: int = 10

    # Retry and degraded fallback
    TRIVIA_MAX_ATTEMPTS: int = 3
    TRIVIA_RETRY_BASE_DELAY: float = 1.0  # seconds, doubled per retry
    TRIVIA_FALLBACK_TTL_SECONDS: int = 60

    # Quiz timing
    QUIZ_TIME_LIMIT_SECONDS: int = 300  # 5 minutes
    QUIZ_ADVANCE_DELAY_SECONDS: float = 0.3
    QUIZ_TICK_INTERVAL_SECONDS: float = 1.0
    QUIZ_MAX_CACHED_SESSIONS: int = 1000  # idle managers beyond this are evicted

    # Progression
    ABANDON_PENALTY_XP: int = 10
    QUIZ_HISTORY_LIMIT: int = 20

    # Durable storage
    STORAGE_BACKEND: str = "redis"  # redis | memory
    REDIS_URL: str = "redis://localhost:6379/0"
    STORAGE_KEY_PREFIX: str = "trivia"

    class Config:
        env_file = ".env"
        case_sensitive = True
        extra = "ignore"  # Ignore extra fields in .env

@lru_cache()
def get_settings() -> Settings:
    return Settings()
