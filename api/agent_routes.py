"""
Agent control endpoints.

Start / stop the per-channel writing assistant, report its status and mint
chat user tokens for the front-end. I/O only: all lifecycle logic lives in
AgentRegistry.
"""

import logging
import time
from typing import Optional

from fastapi import APIRouter
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from infra.bootstrap import InfraBootstrap

logger = logging.getLogger(__name__)

router = APIRouter(tags=["agents"])

TOKEN_TTL_S = 60 * 60


class StartAgentRequest(BaseModel):
    channel_id: Optional[str] = None
    channel_type: str = "messaging"


class StopAgentRequest(BaseModel):
    channel_id: Optional[str] = None


class TokenRequest(BaseModel):
    userId: Optional[str] = None


def get_bootstrap() -> InfraBootstrap:
    return InfraBootstrap.get_instance()


@router.post("/start-ai-agent")
async def start_ai_agent(request: StartAgentRequest):
    """
    Start the AI agent for a channel.

    Expected payload:
    {"channel_id": "abc", "channel_type": "messaging"}
    """
    logger.info(f"/start-ai-agent called for channel: {request.channel_id}")
    if not request.channel_id:
        return JSONResponse(status_code=400, content={"error": "Missing required fields"})

    try:
        await get_bootstrap().registry.start_agent(request.channel_id, request.channel_type)
    except Exception as e:
        logger.error(f"Failed to start AI Agent: {e}", exc_info=True)
        return JSONResponse(
            status_code=500,
            content={"error": "Failed to start AI Agent", "reason": str(e)},
        )

    return {"message": "AI Agent started", "data": []}


@router.post("/stop-ai-agent")
async def stop_ai_agent(request: StopAgentRequest):
    logger.info(f"/stop-ai-agent called for channel: {request.channel_id}")
    if not request.channel_id:
        return JSONResponse(status_code=400, content={"error": "Missing required fields"})

    try:
        await get_bootstrap().registry.stop_agent(request.channel_id)
    except Exception as e:
        logger.error(f"Failed to stop AI Agent: {e}", exc_info=True)
        return JSONResponse(
            status_code=500,
            content={"error": "Failed to stop AI Agent", "reason": str(e)},
        )

    return {"message": "AI Agent stopped", "data": []}


@router.get("/agent-status")
async def agent_status(channel_id: Optional[str] = None):
    if not channel_id:
        return JSONResponse(status_code=400, content={"error": "Missing channel_id"})

    status = get_bootstrap().registry.status(channel_id)
    logger.debug(f"Status for {channel_id}: {status.value}")
    return {"status": status.value}


@router.post("/token")
async def create_token(request: TokenRequest):
    """Chat user token valid for one hour."""
    if not request.userId:
        return JSONResponse(status_code=400, content={"error": "userId is required"})

    try:
        issued_at = int(time.time())
        token = get_bootstrap().chat_client.create_token(
            request.userId, exp=issued_at + TOKEN_TTL_S, iat=issued_at
        )
    except Exception as e:
        logger.error(f"Error generating token: {e}", exc_info=True)
        return JSONResponse(status_code=500, content={"error": "Failed to generate token"})

    return {"token": token}
