"""
Gateway - Outer Surface

Webhook handlers, reply delivery, and the FastAPI server.
"""

from .delivery import DeliveryGateway, ChatwootDelivery, NullDelivery
from .handlers import BaseHandler, ChatwootHandler

__all__ = [
    "DeliveryGateway",
    "ChatwootDelivery",
    "NullDelivery",
    "BaseHandler",
    "ChatwootHandler",
]
