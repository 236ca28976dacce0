"""Domain-specific configuration models."""

from oraculo.core.settings.app_config import AppConfig
from oraculo.core.settings.auth_config import AuthConfig
from oraculo.core.settings.chat_config import ChatConfig
from oraculo.core.settings.database_config import DatabaseConfig
from oraculo.core.settings.logging_config import LoggingConfig
from oraculo.core.settings.redis_config import RedisConfig
from oraculo.core.settings.server_config import ServerConfig
from oraculo.core.settings.webhook_config import WebhookConfig

__all__ = [
    "AppConfig",
    "AuthConfig",
    "ChatConfig",
    "DatabaseConfig",
    "LoggingConfig",
    "RedisConfig",
    "ServerConfig",
    "WebhookConfig",
]
