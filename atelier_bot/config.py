"""
Configuration management for Atelier Order Bot.
Loads settings from environment variables with validation.
"""

from pathlib import Path
from typing import Literal, Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Paths
    base_dir: Path = Path(__file__).parent.parent
    data_dir: Path = Path(__file__).parent.parent / "data"

    # Telegram
    telegram_bot_token: str = Field(..., description="Telegram Bot API token")
    admin_telegram_ids: str = Field(
        default="",
        description="Comma-separated Telegram IDs with admin role",
    )

    @property
    def admin_ids(self) -> set[int]:
        """Parsed admin Telegram IDs."""
        return {
            int(part)
            for part in self.admin_telegram_ids.replace(";", ",").split(",")
            if part.strip()
        }

    # LLM Provider (only used to reword clarifying questions)
    llm_provider: Literal["gigachat"] = Field(
        default="gigachat", description="LLM provider to use"
    )
    llm_phrasing_enabled: bool = Field(
        default=False, description="Reword clarifying questions through the LLM"
    )

    # GigaChat
    gigachat_credentials: Optional[str] = Field(
        default=None, description="GigaChat API credentials"
    )
    gigachat_scope: str = Field(
        default="GIGACHAT_API_PERS", description="GigaChat API scope"
    )

    # Database
    database_url: Optional[str] = Field(
        default=None,
        description="Database connection URL",
    )

    @property
    def db_url(self) -> str:
        """Get database URL with absolute path."""
        if self.database_url:
            return self.database_url
        return f"sqlite+aiosqlite:///{self.data_dir / 'atelier.db'}"

    # Message editing
    edit_lock_stale_after_seconds: int = Field(
        default=300,
        ge=0,
        description="Edit lock older than this may be taken over (0 = never)",
    )
    history_limit: int = Field(
        default=100, ge=1, description="Audit entries returned by the history endpoint"
    )

    # Debug
    debug: bool = Field(default=False, description="Debug mode")


# Global settings instance
settings = Settings()
