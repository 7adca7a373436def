"""Configuration management for Inbox Digest.

This module handles application configuration using Pydantic settings.
Configuration can be loaded from environment variables or .env files.
"""

from functools import lru_cache
from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from inbox_digest.models import SuggestedAction, Urgency


class Settings(BaseSettings):
    """Application settings with environment variable support.

    All settings can be overridden via environment variables with
    the INBOX_DIGEST_ prefix (e.g., INBOX_DIGEST_GOOGLE_CLIENT_ID).
    """

    model_config = SettingsConfigDict(
        env_prefix="INBOX_DIGEST_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Google OAuth / Gmail Configuration
    google_client_id: str = Field(
        default="",
        description="OAuth client ID of the Google Cloud web application",
    )
    google_client_secret: str = Field(
        default="",
        description="OAuth client secret of the Google Cloud web application",
    )
    google_redirect_uri: str = Field(
        default="http://localhost:3000/auth/callback",
        description="Redirect URI registered for the OAuth client",
    )
    gmail_scopes: list[str] = Field(
        default=[
            "https://www.googleapis.com/auth/gmail.readonly",
            "https://www.googleapis.com/auth/gmail.modify",
            "https://www.googleapis.com/auth/userinfo.email",
        ],
        description="OAuth scopes requested when a user connects a mailbox",
    )
    gmail_inbox_query: str = Field(
        default="in:inbox",
        description="Gmail search query used to restrict thread listings",
    )
    gmail_max_threads: int = Field(
        default=10,
        description="Default number of threads fetched per listing",
    )
    request_timeout_seconds: float = Field(
        default=30.0,
        description="Deadline applied to every outbound Gmail API call",
    )

    # Storage Configuration
    database_path: Path = Field(
        default=Path("inbox_digest.sqlite3"),
        description="Path to the SQLite database holding tokens, summaries and replies",
    )

    # Digest Configuration
    smtp_host: str = Field(default="smtp.gmail.com", description="SMTP server hostname")
    smtp_port: int = Field(default=587, description="SMTP server port (STARTTLS)")
    smtp_user: str | None = Field(default=None, description="SMTP username")
    smtp_password: str | None = Field(default=None, description="SMTP password")
    digest_from_email: str | None = Field(
        default=None,
        description="From address of digest emails (defaults to the SMTP user)",
    )
    digest_from_name: str = Field(
        default="AI Email Assistant",
        description="Display name used in the From header of digest emails",
    )
    digest_subject: str = Field(
        default="Your Daily Email Digest",
        description="Subject line of digest emails",
    )
    digest_max_items: int = Field(
        default=10,
        description="Maximum number of summaries included in one digest",
    )

    # Summarization Configuration
    ollama_host: str = Field(
        default="http://localhost:11434",
        description="Ollama API host URL",
    )
    ollama_model: str = Field(
        default="llama3.1:8b",
        description="Ollama model used to summarize threads",
    )
    ollama_timeout: int = Field(
        default=60,
        description="Timeout for Ollama API requests in seconds",
    )
    summarize_concurrency: int = Field(
        default=4,
        ge=1,
        description="Maximum number of threads summarized at the same time",
    )
    default_urgency: Urgency = Field(
        default=Urgency.LOW,
        description="Urgency used when the model response carries no usable urgency",
    )
    default_action: SuggestedAction = Field(
        default=SuggestedAction.READ_LATER,
        description="Suggested action used when the model response carries no usable action",
    )

    # Application Configuration
    log_level: str = Field(
        default="INFO",
        description="Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)",
    )
    debug: bool = Field(
        default=False,
        description="Enable debug mode",
    )


@lru_cache
def get_settings() -> Settings:
    """Get cached application settings.

    Returns:
        Settings: Application settings instance.
    """
    return Settings()
