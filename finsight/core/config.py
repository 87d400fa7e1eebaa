from pydantic_settings import BaseSettings
from typing import List
from functools import lru_cache


class Settings(BaseSettings):
    PROJECT_NAME: str = "FinSight Insights Service"
    VERSION: str = "1.0.0"
    DEBUG: bool = False

    HOST: str = "0.0.0.0"
    PORT: int = 8000

    DATABASE_URL: str = "sqlite+aiosqlite:///./finsight.db"

    ALLOWED_ORIGINS: str = "http://localhost:3000,http://localhost:5173"

    @property
    def allowed_origins_list(self) -> List[str]:
        if isinstance(self.ALLOWED_ORIGINS, list):
            return self.ALLOWED_ORIGINS
        return [origin.strip() for origin in self.ALLOWED_ORIGINS.split(",")]

    LOG_LEVEL: str = "INFO"
    LOG_FORMAT: str = "json"

    # Anomaly detection
    ANOMALY_MIN_SAMPLES: int = 5  # Per-category debits needed for statistics
    ANOMALY_ZSCORE_THRESHOLD: float = 2.0
    ANOMALY_MEAN_MULTIPLIER: float = 1.5  # Amount must also exceed mean * multiplier
    ANOMALY_MEDIUM_ZSCORE: float = 2.5
    ANOMALY_HIGH_ZSCORE: float = 3.0
    ANOMALY_MERCHANT_FREQUENCY: int = 20  # Debits with one merchant before flagging

    # Merchant learning
    LEARNING_MIN_CONFIDENCE: float = 0.7
    LEARNING_MIN_FREQUENCY: int = 2
    LEARNING_PERSIST_ON_SHUTDOWN: bool = True

    # Pattern analysis
    TREND_RECENT_TRANSACTIONS: int = 10
    TREND_INCREASE_RATIO: float = 1.1
    TREND_DECREASE_RATIO: float = 0.9
    WEEKEND_SKEW_RATIO: float = 0.4

    # Recommendations
    RECOMMENDATION_LIMIT: int = 8

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        case_sensitive = True


@lru_cache()
def get_settings() -> Settings:
    return Settings()


settings = get_settings()
