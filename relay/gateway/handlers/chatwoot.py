"""
Chatwoot Handler

Handles Chatwoot inbox webhooks.
"""

import hashlib
import hmac
from typing import Any, Dict, Optional

from ...pipeline.models import ProcessingContext
from .base import BaseHandler

SIGNATURE_HEADER = "X-Webhook-Secret"
SIGNATURE_PREFIX = "sha256="


class ChatwootHandler(BaseHandler):
    """
    Handler for Chatwoot webhooks.

    Signatures are HMAC-SHA256 hex digests of the raw body, optionally
    prefixed with "sha256=".
    """

    def __init__(self):
        super().__init__("chatwoot")

    async def parse_event(self, raw_data: Dict[str, Any], inbox_id: str) -> ProcessingContext:
        return ProcessingContext.from_webhook(raw_data, inbox_id)

    def verify_signature(self, body: bytes, signature: Optional[str], secret: Optional[str]) -> bool:
        if not signature or not secret:
            return False

        expected = hmac.new(secret.encode("utf-8"), body, hashlib.sha256).hexdigest()

        provided = signature.strip()
        if provided.startswith(SIGNATURE_PREFIX):
            provided = provided[len(SIGNATURE_PREFIX):]

        return hmac.compare_digest(expected.encode("ascii"), provided.lower().encode("utf-8", "surrogateescape"))
