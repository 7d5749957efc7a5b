"""
Base Handler

Abstract base class for chat-platform webhook handlers.
Provides a common interface for turning webhook payloads into a
ProcessingContext.
"""

from abc import ABC, abstractmethod
from typing import Any, Dict, Optional

from ...pipeline.models import ProcessingContext


class BaseHandler(ABC):
    """
    Abstract base class for platform handlers.

    Each handler must implement:
    - parse_event: Convert a webhook payload to a ProcessingContext
    - verify_signature: Verify the webhook signature
    """

    def __init__(self, source_name: str):
        """
        Initialize handler.

        Args:
            source_name: Name of the platform (e.g., "chatwoot")
        """
        self.source_name = source_name

    @abstractmethod
    async def parse_event(self, raw_data: Dict[str, Any], inbox_id: str) -> ProcessingContext:
        """
        Parse a webhook payload into a ProcessingContext.

        Args:
            raw_data: Decoded webhook payload
            inbox_id: Inbox the webhook was addressed to

        Returns:
            ProcessingContext (eligibility is decided by the orchestrator)
        """
        pass

    @abstractmethod
    def verify_signature(self, body: bytes, signature: Optional[str], secret: Optional[str]) -> bool:
        """
        Verify the webhook signature.

        Args:
            body: Raw request body
            signature: Signature from headers
            secret: Inbox webhook secret

        Returns:
            True if signature is valid
        """
        pass
