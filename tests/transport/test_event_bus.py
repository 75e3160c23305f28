"""
In-process EventBus Tests

Verify fan-out of chat events to subscribed handlers.
"""

import pytest

from transport.events import EventBus
from transport.schemas import ChatEvent, MESSAGE_NEW


def make_event(event_type: str = MESSAGE_NEW, cid: str = "messaging:abc") -> ChatEvent:
    return ChatEvent(type=event_type, cid=cid)


class TestEventBus:
    """Test subscription and dispatch."""

    @pytest.mark.asyncio
    async def test_dispatch_reaches_handlers_in_order(self):
        bus = EventBus()
        seen = []

        async def first(event):
            seen.append(("first", event.type))

        async def second(event):
            seen.append(("second", event.type))

        bus.on(MESSAGE_NEW, first)
        bus.on(MESSAGE_NEW, second)
        await bus.dispatch(make_event())

        assert seen == [("first", MESSAGE_NEW), ("second", MESSAGE_NEW)]

    @pytest.mark.asyncio
    async def test_other_event_types_ignored(self):
        bus = EventBus()
        seen = []

        async def handler(event):
            seen.append(event)

        bus.on(MESSAGE_NEW, handler)
        await bus.dispatch(make_event("reaction.new"))

        assert seen == []

    @pytest.mark.asyncio
    async def test_failing_handler_does_not_block_others(self):
        bus = EventBus()
        seen = []

        async def broken(event):
            raise RuntimeError("boom")

        async def healthy(event):
            seen.append(event.cid)

        bus.on(MESSAGE_NEW, broken)
        bus.on(MESSAGE_NEW, healthy)
        await bus.dispatch(make_event())

        assert seen == ["messaging:abc"]

    @pytest.mark.asyncio
    async def test_off_removes_handler(self):
        bus = EventBus()
        seen = []

        async def handler(event):
            seen.append(event)

        bus.on(MESSAGE_NEW, handler)
        bus.off(MESSAGE_NEW, handler)
        await bus.dispatch(make_event())

        assert seen == []
        assert bus.handler_count(MESSAGE_NEW) == 0

    def test_off_unknown_handler_is_ignored(self):
        bus = EventBus()

        async def handler(event):
            pass

        bus.off(MESSAGE_NEW, handler)
        bus.on(MESSAGE_NEW, handler)
        bus.off(MESSAGE_NEW, lambda event: None)

        assert bus.handler_count(MESSAGE_NEW) == 1

    @pytest.mark.asyncio
    async def test_handler_may_unsubscribe_during_dispatch(self):
        bus = EventBus()
        seen = []

        async def once(event):
            seen.append("once")
            bus.off(MESSAGE_NEW, once)

        async def always(event):
            seen.append("always")

        bus.on(MESSAGE_NEW, once)
        bus.on(MESSAGE_NEW, always)
        await bus.dispatch(make_event())
        await bus.dispatch(make_event())

        assert seen == ["once", "always", "always"]
