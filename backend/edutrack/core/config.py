from pydantic_settings import BaseSettings
from typing import List, Any
import json
from pathlib import Path


def parse_cors_origins(v: Any) -> List[str]:
    """Parse CORS origins from string or list"""
    if isinstance(v, list):
        return v
    if isinstance(v, str):
        # Try JSON parsing first
        if v.startswith('['):
            try:
                return json.loads(v)
            except json.JSONDecodeError:
                pass
        # Fall back to comma-separated
        return [origin.strip() for origin in v.split(',') if origin.strip()]
    return []


class Settings(BaseSettings):
    """Application settings - all configurable via environment variables"""

    # ==========================================
    # Application
    # ==========================================
    APP_NAME: str = "EduTrack"
    ENVIRONMENT: str = "development"
    DEBUG: bool = True
    SECRET_KEY: str = "CHANGE_ME"
    API_VERSION: str = "v1"

    SERVER_HOST: str = "0.0.0.0"
    SERVER_PORT: int = 8000

    # ==========================================
    # Database
    # ==========================================
    DATABASE_URL: str = "sqlite+aiosqlite:///./edutrack.db"
    DB_POOL_SIZE: int = 10
    DB_MAX_OVERFLOW: int = 20
    DB_POOL_TIMEOUT: int = 30
    DB_POOL_RECYCLE: int = 1800
    DB_ECHO: bool = False

    # Read-only aggregations are bounded; overruns surface as 503
    OPERATION_TIMEOUT_SECONDS: float = 15.0

    # ==========================================
    # JWT / Passwords
    # ==========================================
    JWT_SECRET_KEY: str = "CHANGE_ME"
    JWT_ALGORITHM: str = "HS256"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 60 * 24
    BCRYPT_ROUNDS: int = 12

    # ==========================================
    # Provisioning
    # ==========================================
    GENERATED_PASSWORD_LENGTH: int = 10
    RESET_PASSWORD_LENGTH: int = 12
    USERNAME_MAX_ATTEMPTS: int = 5
    DEFAULT_EMAIL_DOMAIN: str = "college.edu"
    # "response" returns generated passwords once; "out_of_band" never returns them
    PASSWORD_DELIVERY: str = "response"

    # Created at startup only when no superadmin exists
    BOOTSTRAP_SUPERADMIN_EMAIL: str = "superadmin@college.edu"
    BOOTSTRAP_SUPERADMIN_PASSWORD: str = ""

    # ==========================================
    # CORS
    # ==========================================
    CORS_ORIGINS_STR: str = "http://localhost:3000"

    # ==========================================
    # Logging
    # ==========================================
    LOG_LEVEL: str = "INFO"
    LOG_FILE: str = ""

    # ==========================================
    # Uploads
    # ==========================================
    UPLOAD_PATH: str = "./uploads"
    MAX_REPORT_UPLOAD_SIZE: int = 10 * 1024 * 1024
    MAX_RESOURCE_UPLOAD_SIZE: int = 50 * 1024 * 1024
    MAX_BULK_UPLOAD_SIZE: int = 5 * 1024 * 1024

    class Config:
        env_file = ".env"
        case_sensitive = True
        extra = "ignore"  # Ignore extra fields in .env that aren't defined in Settings

    @property
    def CORS_ORIGINS(self) -> List[str]:
        return parse_cors_origins(self.CORS_ORIGINS_STR)

    @property
    def UPLOAD_DIR(self) -> Path:
        return Path(self.UPLOAD_PATH)

    def is_dev_mode(self) -> bool:
        return self.ENVIRONMENT == "development"


settings = Settings()
