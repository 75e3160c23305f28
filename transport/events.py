"""
In-process event bus.

Chat events reach the process through the webhook and are fanned out here to
every subscribed handler. Handlers run sequentially in subscription order; a
failing handler is logged and does not stop delivery to the others.
"""

import logging
from typing import Dict, List

from transport.base import EventHandler
from transport.schemas import ChatEvent

logger = logging.getLogger(__name__)


class EventBus:
    def __init__(self):
        self._handlers: Dict[str, List[EventHandler]] = {}

    def on(self, event_type: str, handler: EventHandler) -> None:
        self._handlers.setdefault(event_type, []).append(handler)

    def off(self, event_type: str, handler: EventHandler) -> None:
        handlers = self._handlers.get(event_type)
        if not handlers:
            return
        try:
            handlers.remove(handler)
        except ValueError:
            return
        if not handlers:
            del self._handlers[event_type]

    def handler_count(self, event_type: str) -> int:
        return len(self._handlers.get(event_type, []))

    async def dispatch(self, event: ChatEvent) -> None:
        # Snapshot: handlers may unsubscribe while the event is delivered
        for handler in list(self._handlers.get(event.type, [])):
            try:
                await handler(event)
            except Exception as e:
                logger.error(f"Event handler failed for {event.type}: {e}", exc_info=True)
