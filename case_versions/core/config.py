from pydantic_settings import BaseSettings
from typing import List, Optional
import os


class Settings(BaseSettings):
    # Environment configuration
    environment: str = os.getenv("ENVIRONMENT", "development")

    # Database configuration (asyncpg in production, aiosqlite for local runs)
    database_url: Optional[str] = os.getenv("DATABASE_URL", "")
    database_echo: bool = os.getenv("DATABASE_ECHO", "false").lower() == "true"

    # Frontend URL (for CORS)
    frontend_url: str = os.getenv("FRONTEND_URL", "http://localhost:5173")

    # JWT configuration (tokens issued by the identity provider)
    jwt_secret_key: str = os.getenv("JWT_SECRET_KEY", "your-secret-key-change-this")
    jwt_algorithm: str = "HS256"

    # Snapshot schema contract
    required_sections: List[str] = ["title"]
    media_reference_keys: List[str] = ["media_ref", "image_ref", "asset_ref"]
    identity_fields: List[str] = ["id"]

    # Diff engine
    diff_max_depth: int = int(os.getenv("DIFF_MAX_DEPTH", "64"))
    diff_timeout_seconds: float = float(os.getenv("DIFF_TIMEOUT_SECONDS", "5.0"))

    # Commit boundary retries
    commit_max_retries: int = int(os.getenv("COMMIT_MAX_RETRIES", "3"))
    commit_retry_backoff_seconds: float = float(os.getenv("COMMIT_RETRY_BACKOFF_SECONDS", "0.05"))

    # Retention
    max_delta_chain_length: int = int(os.getenv("MAX_DELTA_CHAIN_LENGTH", "50"))
    audit_retention_days: int = int(os.getenv("AUDIT_RETENTION_DAYS", "365"))
    retention_sweep_interval_seconds: int = int(os.getenv("RETENTION_SWEEP_INTERVAL_SECONDS", "0"))
    sweep_max_active_versions: Optional[int] = None
    sweep_max_age_days: Optional[int] = None
    sweep_compress_after_days: Optional[int] = None
    sweep_purge_after_days: Optional[int] = None

    # History listing
    default_page_size: int = 20
    max_page_size: int = 100

    # Notifications
    notification_max_retries: int = int(os.getenv("NOTIFICATION_MAX_RETRIES", "3"))

    class Config:
        env_file = ".env"
        extra = "ignore"


settings = Settings()
