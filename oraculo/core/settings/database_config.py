"""Database connection configuration."""

from pydantic import BaseModel, SecretStr


class DatabaseConfig(BaseModel, frozen=True):
    """Database connection settings."""

    url: SecretStr

    @property
    def async_url(self) -> str:
        """Async driver URL, upgrading plain postgres URLs to asyncpg."""
        base = self.url.get_secret_value()
        for prefix in ("postgres://", "postgresql://"):
            if base.startswith(prefix):
                return "postgresql+asyncpg://" + base[len(prefix) :]
        return base

    @property
    def is_sqlite(self) -> bool:
        """SQLite engines do not accept connection pool sizing."""
        return self.async_url.startswith("sqlite")
