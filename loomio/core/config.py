import logging
from dotenv import load_dotenv
from pydantic import Field, computed_field
from pydantic_settings import BaseSettings
from typing import ClassVar, List

# Load environment variables from .env file
load_dotenv(".env", override=False)
logger = logging.getLogger(__name__)


class Settings(BaseSettings):
    """Class to store all the settings of the Loomio application."""

    # ------------------------------
    # Database
    # ------------------------------
    DATABASE_URL: str = Field(default="sqlite+aiosqlite:///./loomio.db")
    DB_ECHO: bool = Field(default=False)

    # ------------------------------
    # Auth
    # ------------------------------
    SECRET_KEY: str = Field(default="change-me-in-production")
    ALGORITHM: str = Field(default="HS256")
    ACCESS_TOKEN_EXPIRE_MINUTES: int = Field(default=60 * 24 * 7)
    REFRESH_TOKEN_EXPIRE_DAYS: int = Field(default=30)
    LOGIN_RATE_LIMIT: str = Field(default="10/minute")

    # ------------------------------
    # URLs
    # ------------------------------
    API_PREFIX: str = Field(default="/api/v1")
    FRONTEND_URL: str = Field(default="http://localhost:3000")

    # ------------------------------
    # Environment
    # ------------------------------
    ENVIRONMENT: str = Field(default="development")
    LOG_LEVEL: str = Field(default="INFO")

    # ------------------------------
    # Task workflow
    # ------------------------------
    TASK_COMPLETION_POINTS: int = Field(default=10, ge=0)

    # ------------------------------
    # Database models
    # ------------------------------
    DB_MODELS: ClassVar[List[str]] = [
        "loomio.models.user",
        "loomio.models.community",
        "loomio.models.task",
        "loomio.models.subtask",
        "loomio.models.tag",
        "loomio.models.contribution",
        "loomio.models.notifications",
        "loomio.models.event",
    ]

    # ------------------------------
    # Computed Fields
    # ------------------------------
    @computed_field
    @property
    def ASYNC_DATABASE_URL(self) -> str:
        """Database URL with an async driver."""
        url = self.DATABASE_URL
        if url.startswith("postgres://"):
            url = url.replace("postgres://", "postgresql://", 1)
        if url.startswith("postgresql://"):
            url = url.replace("postgresql://", "postgresql+asyncpg://", 1)
        elif url.startswith("sqlite://"):
            url = url.replace("sqlite://", "sqlite+aiosqlite://", 1)
        return url

    @computed_field
    @property
    def CORS_ORIGINS(self) -> List[str]:
        if self.ENVIRONMENT == "production":
            return [self.FRONTEND_URL]
        return [
            "http://localhost:3000",
            "http://localhost:5173",
            self.FRONTEND_URL,
        ]

    class Config:
        """Configuration for the settings class."""
        env_file = ".env"
        env_file_encoding = "utf-8"
        extra = "ignore"


# Instantiate the settings
settings = Settings()
