"""Generation webhook configuration."""

from pydantic import BaseModel, SecretStr


class WebhookConfig(BaseModel, frozen=True):
    """Settings for the external workflow that writes AI replies."""

    url: str
    token: SecretStr
    timeout: float

    @property
    def is_configured(self) -> bool:
        """Check if a webhook URL has been provided."""
        return bool(self.url.strip())
