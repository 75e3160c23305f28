"""
Stream Chat Webhook Handler

Receives Stream Chat events and fans them out to the agents through the
in-process EventBus.

Security:
  - X-Signature: HMAC-SHA256 of the raw body with the Stream API secret

Event Flow:
  webhook → verify signature → parse ChatEvent → EventBus.dispatch (background)
"""

import json
import logging

from fastapi import APIRouter, BackgroundTasks, HTTPException, Request
from pydantic import ValidationError

from infra.bootstrap import InfraBootstrap
from transport.schemas import ChatEvent

# Setup logging
logger = logging.getLogger(__name__)

# Create router
router = APIRouter(prefix="/webhook", tags=["webhook"])


@router.post("/stream")
async def stream_webhook(request: Request, background_tasks: BackgroundTasks):
    """
    Receive Stream Chat webhook events.

    Expected payload (message.new):
    {
        "type": "message.new",
        "cid": "messaging:abc",
        "message": {"id": "m1", "text": "Hello", "user": {"id": "u1"}}
    }

    Returns:
        {"status": "ok"} once the signature is valid, even for events that
        cannot be parsed (Stream retries non-2xx deliveries)
    """
    bootstrap = InfraBootstrap.get_instance()
    body = await request.body()

    signature = request.headers.get("X-Signature", "")
    if not bootstrap.chat_client.verify_webhook(body, signature):
        logger.warning("Rejected Stream webhook with invalid signature")
        raise HTTPException(status_code=401, detail="Invalid signature")

    try:
        event = ChatEvent.model_validate(json.loads(body or b"{}"))
    except (ValueError, ValidationError) as e:
        logger.warning(f"Ignoring malformed Stream webhook payload: {e}")
        return {"status": "ok"}

    logger.debug(f"Stream event {event.type} for {event.channel_cid}")
    background_tasks.add_task(bootstrap.event_bus.dispatch, event)
    return {"status": "ok"}
