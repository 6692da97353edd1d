# backend/config.py
from functools import lru_cache
from pathlib import Path
from typing import List

from pydantic_settings import BaseSettings, SettingsConfigDict
from sqlalchemy import create_engine
from sqlalchemy.orm import declarative_base, sessionmaker


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    # --- Database ---
    database_url: str = "sqlite:///backend/correspondence.db"

    # --- Security / JWT ---
    jwt_secret: str = "dev-secret-please-change"
    jwt_algorithm: str = "HS256"
    access_token_expire_minutes: int = 15
    refresh_token_expire_minutes: int = 60 * 24 * 7  # 7 days

    # --- Login throttling ---
    login_rate_limit: int = 20
    login_rate_window_seconds: int = 60

    # Only honour X-Forwarded-For when deployed behind a trusted reverse proxy.
    trust_forwarded_for: bool = False

    # --- CORS ---
    cors_origins: List[str] = ["http://localhost:5173"]

    # --- Attachments ---
    uploads_dir: str = "uploads"
    upload_max_size: int = 10 * 1024 * 1024  # 10 MiB

    # --- Logging ---
    log_level: str = "INFO"
    log_json: bool = False

    @property
    def uploads_root_path(self) -> Path:
        return Path(self.uploads_dir).resolve()


@lru_cache
def get_settings() -> Settings:
    return Settings()


settings = get_settings()

# Ensure path directory exists (for SQLite files)
if settings.database_url.startswith("sqlite:///"):
    db_path = Path(settings.database_url.replace("sqlite:///", "", 1))
    db_path.parent.mkdir(parents=True, exist_ok=True)

# --- SQLAlchemy setup ---
engine = create_engine(
    settings.database_url,
    connect_args={"check_same_thread": False}
    if settings.database_url.startswith("sqlite")
    else {},
)
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
Base = declarative_base()
