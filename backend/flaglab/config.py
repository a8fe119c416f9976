"""Application configuration."""
from pydantic_settings import BaseSettings
from functools import lru_cache


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Application
    app_name: str = "FlagLab"
    debug: bool = False

    # Database
    database_url: str = "sqlite:///./flaglab.db"

    # CORS
    frontend_url: str = "http://localhost:5173"

    # Logging
    log_level: str = "INFO"
    log_json: bool = True  # False renders human-readable console output
    log_evaluations: bool = False  # Emit one log event per flag decision

    class Config:
        env_file = ".env"
        case_sensitive = False


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
