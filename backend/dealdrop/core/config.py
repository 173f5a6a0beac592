from typing import List
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""
    
    # MongoDB Configuration
    MONGODB_URI: str = "mongodb://localhost:27017"
    MONGODB_DB_NAME: str = "dealdrop_db"
    
    # JWT Configuration (tokens are issued by the external auth service)
    JWT_SECRET_KEY: str
    JWT_ALGORITHM: str = "HS256"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 1440  # 24 hours
    
    # Discovery
    DEFAULT_SEARCH_RADIUS_KM: float = 50.0
    REGION_GATE_CACHE_TTL_SECONDS: float = 5.0
    REGION_DEFAULT_ENABLED: bool = True
    
    # Recurrence
    RECURRENCE_SCHEDULER_ENABLED: bool = True
    RECURRENCE_SWEEP_INTERVAL_SECONDS: int = 3600  # hourly
    REPOST_DURATION_HOURS: int = 24
    
    # Application Settings
    BACKEND_CORS_ORIGINS: List[str] = ["http://localhost:3000", "http://localhost:8000"]
    API_V1_PREFIX: str = "/api"
    PROJECT_NAME: str = "DealDrop"
    LOG_LEVEL: str = "INFO"
    
    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=True,
        extra="ignore"
    )


# Global settings instance
settings = Settings()
