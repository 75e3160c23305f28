"""
Chat transport boundary.

Agent code must depend ONLY on this interface; it never knows which chat
platform carries its messages.
"""

from abc import ABC, abstractmethod
from typing import Awaitable, Callable

from transport.schemas import AIState, ChatEvent, OutboundMessage

EventHandler = Callable[[ChatEvent], Awaitable[None]]


class ChatTransportError(Exception):
    """A chat platform call failed."""
    pass


class ChatTransport(ABC):
    """
    Per-channel chat connection used by one agent.
    """

    bot_user_id: str

    @abstractmethod
    async def send_message(self, text: str, ai_generated: bool = True) -> OutboundMessage:
        """Create a message in the channel as the bot user."""
        raise NotImplementedError

    @abstractmethod
    async def partial_update_message(self, message_id: str, text: str) -> None:
        """Replace the text of an existing message."""
        raise NotImplementedError

    @abstractmethod
    async def send_event(self, message: OutboundMessage, state: AIState) -> None:
        """Broadcast an ai_indicator.update event for a message."""
        raise NotImplementedError

    @abstractmethod
    def on(self, event_type: str, handler: EventHandler) -> None:
        """Subscribe to events of one type for this channel."""
        raise NotImplementedError

    @abstractmethod
    def off(self, event_type: str, handler: EventHandler) -> None:
        """Remove a subscription made with on(); unknown handlers are ignored."""
        raise NotImplementedError

    @abstractmethod
    async def disconnect(self) -> None:
        """Drop every subscription and release the connection."""
        raise NotImplementedError
