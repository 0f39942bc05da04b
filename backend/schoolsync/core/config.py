from pydantic_settings import BaseSettings
from pydantic import Field, validator
from typing import List, Optional
import secrets


class Settings(BaseSettings):
    # Application settings
    APP_NAME: str = "School Dataset Sync"
    DEBUG: bool = False
    HOST: str = "0.0.0.0"
    PORT: int = 5600
    LOG_LEVEL: str = "INFO"

    # Security settings
    JWT_SECRET_KEY: str = Field(default_factory=lambda: secrets.token_urlsafe(32))
    JWT_ALGORITHM: str = "HS256"
    JWT_ACCESS_TOKEN_EXPIRE_MINUTES: int = 60 * 24 * 7

    # CORS settings
    ALLOWED_ORIGINS: List[str] = [
        "http://localhost:3000",
        "http://localhost:5173",
    ]

    # Database settings
    DATABASE_URL: str = "sqlite+aiosqlite:///./schoolsync.db"
    DATABASE_ECHO: bool = False

    # Dataset settings
    DATASET_KEY: str = "default"
    DEFAULT_SCHOOL_NAME: str = "Default School"
    DEFAULT_SCHOOL_SLUG: str = "default-school"

    # Server-side sync settings
    SYNC_PUSH_TIMEOUT_SECONDS: float = 30.0
    SYNC_IMPORT_BATCH_SIZE: int = 500

    # Client sync orchestrator settings
    SYNC_API_BASE_URL: Optional[str] = None
    SYNC_CLIENT_INTERVAL_SECONDS: float = 300.0
    SYNC_CLIENT_DEBOUNCE_SECONDS: float = 1.2
    SYNC_CLIENT_TIMEOUT_SECONDS: float = 30.0
    SYNC_CLIENT_CONFLICT_STRATEGY: str = "local_wins"

    @validator("ALLOWED_ORIGINS", pre=True)
    def parse_origins(cls, v):
        if isinstance(v, str):
            return [origin.strip() for origin in v.split(",") if origin.strip()]
        return v

    @validator("DATABASE_URL")
    def validate_database_url(cls, v):
        if not v:
            raise ValueError("DATABASE_URL is required")
        return v

    @validator("DATASET_KEY")
    def validate_dataset_key(cls, v):
        if not v or not v.strip():
            raise ValueError("DATASET_KEY must not be empty")
        return v.strip()

    @validator("SYNC_IMPORT_BATCH_SIZE")
    def validate_batch_size(cls, v):
        if v < 1:
            raise ValueError("SYNC_IMPORT_BATCH_SIZE must be positive")
        return v

    @validator("SYNC_CLIENT_CONFLICT_STRATEGY")
    def validate_conflict_strategy(cls, v):
        allowed = {"local_wins", "server_wins", "manual"}
        if v not in allowed:
            raise ValueError(f"SYNC_CLIENT_CONFLICT_STRATEGY must be one of {sorted(allowed)}")
        return v

    class Config:
        env_file = ".env"
        case_sensitive = True


settings = Settings()
