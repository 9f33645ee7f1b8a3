"""Application configuration."""

from functools import lru_cache
from typing import List, Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Application
    app_name: str = Field(default="CodeMentor", description="Application name")
    app_version: str = Field(default="2.0.0", description="Application version")
    environment: str = Field(default="development", description="Environment")
    debug: bool = Field(default=False, description="Debug mode")
    log_level: str = Field(default="INFO", description="Log level")

    # Server
    host: str = Field(default="0.0.0.0", description="Server host")
    port: int = Field(default=8000, description="Server port")
    workers: int = Field(default=1, description="Number of workers")
    reload: bool = Field(default=False, description="Auto-reload on changes")

    # Security
    secret_key: str = Field(description="Secret key for JWT signing")
    algorithm: str = Field(default="HS256", description="JWT algorithm")
    access_token_expire_hours: int = Field(
        default=168, description="Access token expiration in hours"
    )
    salt_rounds: int = Field(default=12, description="Password salt rounds")

    # Database
    database_url: str = Field(
        default="sqlite+aiosqlite:///./codementor.db", description="Database URL"
    )
    database_pool_size: int = Field(default=10, description="Database pool size")
    database_max_overflow: int = Field(
        default=20, description="Database max overflow"
    )
    database_echo: bool = Field(default=False, description="Echo SQL statements")

    # Collaboration
    room_code_length: int = Field(default=12, description="Room code length")
    room_code_max_attempts: int = Field(
        default=5, description="Room code generation attempts before giving up"
    )
    connection_queue_size: int = Field(
        default=256, description="Outbound event queue size per connection"
    )

    # AI
    google_api_key: Optional[str] = Field(default=None, description="Google AI API key")
    ai_model: str = Field(default="gemini-pro", description="Generative model name")
    ai_base_url: str = Field(
        default="https://generativelanguage.googleapis.com/v1beta",
        description="Generative Language API base URL",
    )
    ai_timeout_seconds: float = Field(default=30.0, description="AI request timeout")

    # Monitoring
    metrics_enabled: bool = Field(default=True, description="Enable metrics")

    # CORS
    cors_enabled: bool = Field(default=True, description="Enable CORS")
    cors_origins: List[str] = Field(
        default=["http://localhost:3000", "http://localhost:5173"],
        description="CORS origins",
    )
    cors_credentials: bool = Field(default=True, description="CORS credentials")
    cors_methods: List[str] = Field(
        default=["GET", "POST", "PUT", "DELETE", "PATCH", "OPTIONS"],
        description="CORS methods",
    )
    cors_headers: List[str] = Field(default=["*"], description="CORS headers")

    @property
    def is_development(self) -> bool:
        """Check if running in development mode."""
        return self.environment.lower() in ("development", "dev")

    @property
    def is_production(self) -> bool:
        """Check if running in production mode."""
        return self.environment.lower() in ("production", "prod")

    @property
    def is_testing(self) -> bool:
        """Check if running in testing mode."""
        return self.environment.lower() in ("testing", "test")

    @property
    def is_sqlite(self) -> bool:
        """Check if the configured database is SQLite."""
        return self.database_url.startswith("sqlite")


@lru_cache()
def get_settings() -> Settings:
    """Get application settings (cached)."""
    return Settings()


# Global settings instance
settings = get_settings()
