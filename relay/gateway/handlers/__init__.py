"""
Webhook handlers for chat platforms.
"""

from .base import BaseHandler
from .chatwoot import ChatwootHandler, SIGNATURE_HEADER

__all__ = ["BaseHandler", "ChatwootHandler", "SIGNATURE_HEADER"]
