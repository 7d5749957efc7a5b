"""
Delivery Gateway

Relays the response agent's reply to the chat platform.
"""

import logging
from abc import ABC, abstractmethod
from typing import Optional

import httpx

from ..common.errors import UpstreamUnavailableError
from ..pipeline.models import ProcessingContext

logger = logging.getLogger("relay.gateway.delivery")

DEFAULT_ACCOUNT_ID = "1"


class DeliveryGateway(ABC):
    """Sends a reply into the conversation a message came from."""

    @abstractmethod
    async def send(self, context: ProcessingContext, text: str) -> None:
        """Deliver text; raises on failure."""

    async def aclose(self) -> None:
        return None


class NullDelivery(DeliveryGateway):
    """Logs replies instead of sending them (chat platform not configured)."""

    async def send(self, context: ProcessingContext, text: str) -> None:
        logger.info(
            "Delivery not configured; reply for conversation %s not sent (%d chars)",
            context.conversation_id, len(text),
        )


class ChatwootDelivery(DeliveryGateway):
    """Posts replies as outgoing messages through the Chatwoot API."""

    def __init__(
        self,
        base_url: str,
        api_key: str,
        timeout: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """
        Initialize Chatwoot delivery.

        Args:
            base_url: Chatwoot base URL
            api_key: Chatwoot API access token
            timeout: Per-request timeout in seconds
            transport: Optional httpx transport (tests pass a MockTransport)
        """
        self._base_url = base_url.rstrip("/")
        self._http = httpx.AsyncClient(
            base_url=self._base_url,
            headers={"api_access_token": api_key, "Content-Type": "application/json"},
            timeout=timeout,
            transport=transport,
        )

    async def send(self, context: ProcessingContext, text: str) -> None:
        account_id = context.account_id or DEFAULT_ACCOUNT_ID
        path = f"/api/v1/accounts/{account_id}/conversations/{context.conversation_id}/messages"

        try:
            response = await self._http.post(path, json={"content": text, "message_type": "outgoing"})
        except httpx.HTTPError as e:
            raise UpstreamUnavailableError(f"Chatwoot unreachable: {e}") from e

        if response.status_code >= 400:
            raise UpstreamUnavailableError(
                f"Chatwoot rejected message ({response.status_code}): {response.text[:200]}"
            )

        logger.info("Delivered reply to conversation %s", context.conversation_id)

    async def aclose(self) -> None:
        await self._http.aclose()
