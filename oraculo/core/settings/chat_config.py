"""Chat synchronization configuration."""

from pydantic import BaseModel, Field


class ChatConfig(BaseModel, frozen=True):
    """Limits and timers for the chat synchronization core.

    All delays are in seconds.
    """

    max_human_messages: int = Field(default=10, ge=1)
    poll_interval: float = Field(default=2.0, gt=0)
    session_retry_delay: float = Field(default=0.3, ge=0)
    reconcile_delay: float = Field(default=2.0, ge=0)
    safety_check_delay: float = Field(default=10.0, gt=0)
    safety_reset_delay: float = Field(default=5.0, gt=0)
    stuck_processing_timeout: float = Field(default=45.0, gt=0)
    idle_timeout: float = Field(default=900.0, gt=0)
    idle_sweep_interval: float = Field(default=60.0, gt=0)
    default_title: str = "Nova Conversa"
    send_rate_limit: str = "30/minute"
