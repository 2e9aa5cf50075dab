"""Application configuration using Pydantic settings."""
from functools import lru_cache

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Database
    DATABASE_URL: str = "postgresql://localhost/curriculum_admin"

    # App Configuration
    SECRET_KEY: str = "change-me-in-production"
    ADMIN_EMAILS: str = ""  # Comma-separated list
    LOG_LEVEL: str = "INFO"

    # Reordering
    QUARANTINE_OFFSET: int = 100_000
    REORDER_COMPENSATE: bool = True
    RECONCILE_DELAY_SECONDS: float = 0.5

    @property
    def admin_email_list(self) -> list[str]:
        """Parse comma-separated admin emails into a list."""
        return [e.strip() for e in self.ADMIN_EMAILS.split(",") if e.strip()]

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


settings = get_settings()
