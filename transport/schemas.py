"""
Chat Transport Schemas

Pydantic models for chat events and messages (platform wire shapes), plus
the AI status-indicator enumeration.
"""

from enum import Enum
from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field


class AIState(str, Enum):
    """Status indicator values broadcast alongside a generated message."""

    THINKING = "AI_STATE_THINKING"
    EXTERNAL_SOURCES = "AI_STATE_EXTERNAL_SOURCES"
    GENERATING = "AI_STATE_GENERATING"
    DONE = "AI_STATE_DONE"
    ERROR = "AI_STATE_ERROR"


AI_INDICATOR_UPDATE = "ai_indicator.update"
AI_INDICATOR_STOP = "ai_indicator.stop"
MESSAGE_NEW = "message.new"


class ChatUser(BaseModel):
    model_config = ConfigDict(extra="allow")

    id: str
    name: Optional[str] = None


class InboundMessage(BaseModel):
    """Message as delivered inside a chat event. Unknown fields are kept."""

    model_config = ConfigDict(extra="allow")

    id: str = ""
    text: Optional[str] = None
    user: Optional[ChatUser] = None
    ai_generated: bool = False
    custom: Dict[str, Any] = Field(default_factory=dict)

    def writing_task(self) -> Optional[str]:
        """Writing-task context attached by the front-end, if any."""
        task = self.custom.get("writingTask")
        if task is None:
            # Custom fields may also arrive flattened onto the message
            task = (self.model_extra or {}).get("writingTask")
        return str(task) if task else None


class ChatEvent(BaseModel):
    """A chat event (webhook delivery or in-process dispatch)."""

    model_config = ConfigDict(extra="allow")

    type: str
    cid: Optional[str] = None
    channel_type: Optional[str] = None
    channel_id: Optional[str] = None
    message_id: Optional[str] = None
    message: Optional[InboundMessage] = None
    user: Optional[ChatUser] = None

    @property
    def channel_cid(self) -> Optional[str]:
        """Channel cid ("<type>:<id>"), derived when not sent explicitly."""
        if self.cid:
            return self.cid
        if self.channel_type and self.channel_id:
            return f"{self.channel_type}:{self.channel_id}"
        return None


class OutboundMessage(BaseModel):
    """Handle on a message the bot created."""

    id: str
    cid: str
    text: str = ""
