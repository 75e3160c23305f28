"""
Webhook module - FastAPI route handlers for chat platform deliveries.

Includes:
- stream_chat.py: Stream Chat event receiver
"""

from webhook.stream_chat import router as stream_router

__all__ = ["stream_router"]
