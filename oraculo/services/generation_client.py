"""Client for the workflow webhook that produces AI replies."""

from collections.abc import Sequence
from typing import Any

import httpx
import structlog

from oraculo.core.exceptions import GenerationError
from oraculo.core.settings import WebhookConfig

logger = structlog.get_logger()


class GenerationClient:
    """Hands a human message to the generation workflow.

    The reply is not returned here: the workflow writes it into the chat
    history table on its own schedule.
    """

    def __init__(
        self,
        config: WebhookConfig,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._config = config
        self._transport = transport

    def _headers(self) -> dict[str, str]:
        headers = {"Content-Type": "application/json"}
        token = self._config.token.get_secret_value()
        if token:
            headers["Authorization"] = f"Bearer {token}"
        return headers

    @staticmethod
    def build_payload(
        content: str,
        session_id: str,
        user_id: str,
        vector_store_ids: Sequence[str] | None = None,
    ) -> dict[str, Any]:
        """Build the webhook request body."""
        payload: dict[str, Any] = {
            "chatInput": content,
            "sessionId": session_id,
            "userId": user_id,
        }
        if vector_store_ids:
            payload["vectorStoreIds"] = list(vector_store_ids)
        return payload

    async def dispatch(
        self,
        content: str,
        session_id: str,
        user_id: str,
        vector_store_ids: Sequence[str] | None = None,
    ) -> None:
        """POST the message to the webhook; any 2xx counts as accepted.

        Raises:
            GenerationError: The webhook is not configured, unreachable, or
                answered with a non-2xx status.
        """
        if not self._config.is_configured:
            raise GenerationError("Webhook de geração não configurado")

        payload = self.build_payload(content, session_id, user_id, vector_store_ids)
        try:
            async with httpx.AsyncClient(
                timeout=self._config.timeout, transport=self._transport
            ) as client:
                response = await client.post(
                    self._config.url, json=payload, headers=self._headers()
                )
        except httpx.HTTPError as exc:
            logger.warning(
                "Generation webhook unreachable",
                session_id=session_id,
                error=str(exc),
            )
            raise GenerationError(f"Falha ao enviar mensagem: {exc}") from exc

        if not response.is_success:
            logger.warning(
                "Generation webhook rejected message",
                session_id=session_id,
                status=response.status_code,
            )
            raise GenerationError(f"Erro HTTP: {response.status_code}")

        logger.info("Message dispatched to generation webhook", session_id=session_id)
