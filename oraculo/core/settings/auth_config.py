"""Supabase access token validation configuration."""

from pydantic import BaseModel, SecretStr


class AuthConfig(BaseModel, frozen=True):
    """JWT validation settings for tokens issued by Supabase Auth."""

    jwt_secret: SecretStr
    algorithm: str
    audience: str
