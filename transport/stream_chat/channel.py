"""
Channel-bound Stream Chat transport.

Binds the shared StreamChatClient and EventBus to one channel and one bot
user, implementing ChatTransport for a single agent.
"""

import logging
from typing import Dict, Tuple

from transport.base import ChatTransport, EventHandler
from transport.events import EventBus
from transport.schemas import AIState, ChatEvent, OutboundMessage
from transport.stream_chat.client import StreamChatClient

logger = logging.getLogger(__name__)


class StreamChannelTransport(ChatTransport):
    def __init__(
        self,
        client: StreamChatClient,
        bus: EventBus,
        channel_type: str,
        channel_id: str,
        bot_user_id: str,
    ):
        self._client = client
        self._bus = bus
        self.channel_type = channel_type
        self.channel_id = channel_id
        self.cid = f"{channel_type}:{channel_id}"
        self.bot_user_id = bot_user_id
        self._subscriptions: Dict[Tuple[str, EventHandler], EventHandler] = {}

    async def send_message(self, text: str, ai_generated: bool = True) -> OutboundMessage:
        return await self._client.send_message(
            self.channel_type, self.channel_id, self.bot_user_id, text, ai_generated=ai_generated
        )

    async def partial_update_message(self, message_id: str, text: str) -> None:
        await self._client.update_message_partial(message_id, self.bot_user_id, {"text": text})

    async def send_event(self, message: OutboundMessage, state: AIState) -> None:
        await self._client.send_ai_indicator(message, self.bot_user_id, state)

    def on(self, event_type: str, handler: EventHandler) -> None:
        key = (event_type, handler)
        if key in self._subscriptions:
            return

        async def channel_filter(event: ChatEvent) -> None:
            if event.channel_cid != self.cid:
                return
            await handler(event)

        self._subscriptions[key] = channel_filter
        self._bus.on(event_type, channel_filter)

    def off(self, event_type: str, handler: EventHandler) -> None:
        wrapper = self._subscriptions.pop((event_type, handler), None)
        if wrapper is not None:
            self._bus.off(event_type, wrapper)

    async def disconnect(self) -> None:
        for (event_type, _), wrapper in list(self._subscriptions.items()):
            self._bus.off(event_type, wrapper)
        self._subscriptions.clear()
        logger.debug(f"Bot {self.bot_user_id} disconnected from {self.cid}")
