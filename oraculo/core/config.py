"""Application configuration using Pydantic Settings V2."""

from functools import cached_property
from typing import Literal

from pydantic import Field, SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict

from oraculo.core.settings import (
    AppConfig,
    AuthConfig,
    ChatConfig,
    DatabaseConfig,
    LoggingConfig,
    RedisConfig,
    ServerConfig,
    WebhookConfig,
)


class Settings(BaseSettings):
    """Application settings loaded from environment variables.

    Flat fields are loaded directly from environment variables.
    Domain properties provide grouped access (e.g. settings.chat.poll_interval).
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # App
    app_name: str = Field(
        default="oraculo",
        description="Application name",
    )
    app_env: Literal["development", "staging", "production"] = Field(
        default="development",
        description="Application environment",
    )
    debug: bool = Field(
        default=True,
        description="Debug mode",
    )

    # Server
    host: str = Field(
        default="0.0.0.0",
        description="Server host",
    )
    port: int = Field(
        default=8004,
        ge=1,
        le=65535,
        description="Server port",
    )

    # Supabase Auth
    supabase_jwt_secret: SecretStr = Field(
        description="Supabase project JWT secret used to verify access tokens",
    )
    jwt_algorithm: str = Field(
        default="HS256",
        description="JWT signing algorithm",
    )
    jwt_audience: str = Field(
        default="authenticated",
        description="Expected audience claim of access tokens",
    )

    # Database
    database_url: SecretStr = Field(
        description="Database URL (postgresql+asyncpg://...)",
    )

    # Redis
    redis_url: str = Field(
        default="redis://localhost:6379/0",
        description="Redis connection URL",
    )

    # Generation webhook
    generation_webhook_url: str = Field(
        default="",
        description="Workflow webhook that produces AI replies",
    )
    generation_webhook_token: SecretStr = Field(
        default=SecretStr(""),
        description="Optional bearer token sent to the webhook",
    )
    generation_webhook_timeout: float = Field(
        default=30.0,
        gt=0,
        le=300,
        description="Webhook request timeout in seconds",
    )

    # Chat
    chat_max_human_messages: int = Field(
        default=10,
        ge=1,
        le=1000,
        description="Human messages allowed per session",
    )
    chat_poll_interval: float = Field(
        default=2.0,
        gt=0,
        description="Seconds between history polls",
    )
    chat_session_retry_delay: float = Field(
        default=0.3,
        ge=0,
        description="Delay before re-reading an empty session after a switch",
    )
    chat_reconcile_delay: float = Field(
        default=2.0,
        ge=0,
        description="Delay before the forced reconcile that follows a send",
    )
    chat_safety_check_delay: float = Field(
        default=10.0,
        gt=0,
        description="Delay before an unanswered send forces a reconcile",
    )
    chat_safety_reset_delay: float = Field(
        default=5.0,
        gt=0,
        description="Delay after the safety check before processing is cleared",
    )
    chat_stuck_processing_timeout: float = Field(
        default=45.0,
        gt=0,
        description="Longest time processing may stay on before it is reset",
    )
    chat_idle_timeout: float = Field(
        default=900.0,
        gt=0,
        description="Seconds without requests before a user's chat sync is closed",
    )
    chat_idle_sweep_interval: float = Field(
        default=60.0,
        gt=0,
        description="Seconds between idle chat sync sweeps",
    )
    chat_default_title: str = Field(
        default="Nova Conversa",
        min_length=1,
        max_length=100,
        description="Title given to new sessions",
    )
    send_message_rate_limit: str = Field(
        default="30/minute",
        description="Send message endpoint rate limit",
    )

    # Logging
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = Field(
        default="INFO",
        description="Minimum log level",
    )
    log_json: bool = Field(
        default=False,
        description="Render logs as JSON",
    )

    # --- Domain properties ---

    @cached_property
    def app(self) -> AppConfig:
        """Application environment configuration."""
        return AppConfig(
            name=self.app_name,
            env=self.app_env,
            debug=self.debug,
        )

    @cached_property
    def server(self) -> ServerConfig:
        """Server configuration."""
        return ServerConfig(
            host=self.host,
            port=self.port,
        )

    @cached_property
    def auth(self) -> AuthConfig:
        """Access token validation configuration."""
        return AuthConfig(
            jwt_secret=self.supabase_jwt_secret,
            algorithm=self.jwt_algorithm,
            audience=self.jwt_audience,
        )

    @cached_property
    def database(self) -> DatabaseConfig:
        """Database connection configuration."""
        return DatabaseConfig(url=self.database_url)

    @cached_property
    def redis(self) -> RedisConfig:
        """Redis connection configuration."""
        return RedisConfig(url=self.redis_url)

    @cached_property
    def webhook(self) -> WebhookConfig:
        """Generation webhook configuration."""
        return WebhookConfig(
            url=self.generation_webhook_url,
            token=self.generation_webhook_token,
            timeout=self.generation_webhook_timeout,
        )

    @cached_property
    def chat(self) -> ChatConfig:
        """Chat synchronization configuration."""
        return ChatConfig(
            max_human_messages=self.chat_max_human_messages,
            poll_interval=self.chat_poll_interval,
            session_retry_delay=self.chat_session_retry_delay,
            reconcile_delay=self.chat_reconcile_delay,
            safety_check_delay=self.chat_safety_check_delay,
            safety_reset_delay=self.chat_safety_reset_delay,
            stuck_processing_timeout=self.chat_stuck_processing_timeout,
            idle_timeout=self.chat_idle_timeout,
            idle_sweep_interval=self.chat_idle_sweep_interval,
            default_title=self.chat_default_title,
            send_rate_limit=self.send_message_rate_limit,
        )

    @cached_property
    def logging(self) -> LoggingConfig:
        """Logging configuration."""
        return LoggingConfig(level=self.log_level, json_format=self.log_json)

    # --- Convenience properties (delegate to domain configs) ---

    @property
    def is_development(self) -> bool:
        """Check if running in development mode."""
        return self.app.is_development


# Global settings instance
settings = Settings()
