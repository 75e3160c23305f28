"""
tests/unit/test_stream_handler.py

Unit tests for ResponseHandler (one streamed pass).

Verifies:
✔ Text frames produce debounced, monotonically growing message updates
✔ Finish("stop") writes the final text, sends DONE, reports completion
✔ Tool-call fragments are accumulated and delegated after finalization
✔ Malformed / empty / query-less tool arguments finalize as ERROR
✔ A tool call without a delegation target completes normally
✔ Mid-stream failures keep the partial text and send ERROR
✔ ai_indicator.stop cancels exactly the targeted message
✔ Finalization happens once; later frames and events are ignored
✔ Transport and tracer failures never abort the pass
"""

import asyncio
import logging
from unittest.mock import Mock

import pytest

from agent.stream_handler import (
    APOLOGY_MESSAGE,
    STOP_MARKER,
    HandlerState,
    ResponseHandler,
    ResponseListener,
    ToolCallParseError,
)
from agent.tracing import Tracer
from inference.types import Finish, TextDelta, ToolCallDelta
from transport.schemas import AI_INDICATOR_STOP, AIState, OutboundMessage


# ─────────────────────────────────────────────────────
# Helpers
# ─────────────────────────────────────────────────────


MESSAGE = OutboundMessage(id="msg-1", cid="messaging:test")


class RecordingListener(ResponseListener):
    def __init__(self, accepts_tool_calls: bool = False):
        self.accepts_tool_calls = accepts_tool_calls
        self.deltas = []
        self.completed = []
        self.errors = []
        self.tool_calls = []
        self.disposed = 0

    async def on_text_delta(self, text):
        self.deltas.append(text)

    async def on_tool_call(self, request):
        self.tool_calls.append(request)

    async def on_complete(self, text):
        self.completed.append(text)

    async def on_error(self, error):
        self.errors.append(error)

    def on_dispose(self, handler):
        self.disposed += 1


async def frames_of(*frames):
    for frame in frames:
        yield frame


async def wait_for(predicate, timeout: float = 1.0):
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("condition not met in time")
        await asyncio.sleep(0.001)


def make_handler(frames, transport, listener=None, clock=None, tracer=None):
    kwargs = {"listener": listener, "tracer": tracer}
    if clock is not None:
        kwargs["clock"] = clock
    return ResponseHandler(frames, transport, MESSAGE, **kwargs)


# ─────────────────────────────────────────────────────
# Plain text streaming
# ─────────────────────────────────────────────────────


class TestTextStreaming:
    @pytest.mark.asyncio
    async def test_stop_finalizes_with_full_text(self, chat_transport, fake_clock):
        listener = RecordingListener()
        handler = make_handler(
            frames_of(TextDelta("Hel"), TextDelta("lo"), TextDelta(" world"), Finish("stop")),
            chat_transport,
            listener,
            clock=fake_clock,
        )

        await handler.run()

        assert chat_transport.texts_for("msg-1") == ["Hel", "Hello world"]
        assert chat_transport.states_for("msg-1") == [AIState.DONE]
        assert listener.completed == ["Hello world"]
        assert listener.deltas == ["Hel", "lo", " world"]
        assert handler.state == HandlerState.FINALIZED
        assert handler.outcome == "done"

    @pytest.mark.asyncio
    async def test_updates_every_fifth_frame_when_clock_is_still(self, chat_transport, fake_clock):
        letters = "abcdefghijkl"
        handler = make_handler(
            frames_of(*[TextDelta(c) for c in letters], Finish("stop")),
            chat_transport,
            clock=fake_clock,
        )

        await handler.run()

        lengths = [len(text) for text in chat_transport.texts_for("msg-1")]
        assert lengths == [1, 6, 11, 12]

    @pytest.mark.asyncio
    async def test_updates_when_interval_elapsed(self, chat_transport, fake_clock):
        async def timed_frames():
            yield TextDelta("a")
            fake_clock.advance(0.05)
            yield TextDelta("b")
            fake_clock.advance(0.06)
            yield TextDelta("c")
            yield Finish("stop")

        handler = make_handler(timed_frames(), chat_transport, clock=fake_clock)
        await handler.run()

        assert chat_transport.texts_for("msg-1") == ["a", "abc", "abc"]

    @pytest.mark.asyncio
    async def test_displayed_text_only_grows(self, chat_transport, fake_clock):
        async def timed_frames():
            for word in ["The ", "quick ", "brown ", "fox ", "jumps ", "over ", "the ", "lazy ", "dog"]:
                fake_clock.advance(0.03)
                yield TextDelta(word)
            yield Finish("stop")

        handler = make_handler(timed_frames(), chat_transport, clock=fake_clock)
        await handler.run()

        texts = chat_transport.texts_for("msg-1")
        for earlier, later in zip(texts, texts[1:]):
            assert later.startswith(earlier)
        assert texts[-1] == "The quick brown fox jumps over the lazy dog"

    @pytest.mark.asyncio
    async def test_stream_end_without_finish_completes_normally(self, chat_transport):
        listener = RecordingListener()
        handler = make_handler(frames_of(TextDelta("partial answer")), chat_transport, listener)

        await handler.run()

        assert chat_transport.final_text("msg-1") == "partial answer"
        assert chat_transport.states_for("msg-1") == [AIState.DONE]
        assert listener.completed == ["partial answer"]

    @pytest.mark.asyncio
    async def test_unexpected_finish_reason_completes_normally(self, chat_transport):
        listener = RecordingListener()
        handler = make_handler(
            frames_of(TextDelta("cut short"), Finish("length")), chat_transport, listener
        )

        await handler.run()

        assert listener.completed == ["cut short"]
        assert chat_transport.states_for("msg-1") == [AIState.DONE]


# ─────────────────────────────────────────────────────
# Tool calls
# ─────────────────────────────────────────────────────


class TestToolCalls:
    @pytest.mark.asyncio
    async def test_fragments_are_accumulated_and_delegated(self, chat_transport):
        listener = RecordingListener(accepts_tool_calls=True)
        handler = make_handler(
            frames_of(
                ToolCallDelta(name="web_search", call_id="call-1", arguments='{"que'),
                ToolCallDelta(arguments='ry": "AI news'),
                ToolCallDelta(arguments=' today"}'),
                Finish("tool_calls"),
            ),
            chat_transport,
            listener,
        )

        await handler.run()

        assert len(listener.tool_calls) == 1
        request = listener.tool_calls[0]
        assert request.name == "web_search"
        assert request.call_id == "call-1"
        assert request.query == "AI news today"
        assert handler.outcome == "delegated"
        assert handler.finalized

    @pytest.mark.asyncio
    async def test_delegation_writes_no_final_message(self, chat_transport):
        listener = RecordingListener(accepts_tool_calls=True)
        handler = make_handler(
            frames_of(
                ToolCallDelta(name="web_search", call_id="c", arguments='{"query": "x"}'),
                Finish("tool_calls"),
            ),
            chat_transport,
            listener,
        )

        await handler.run()

        assert chat_transport.updates == []
        assert chat_transport.states_for("msg-1") == [AIState.EXTERNAL_SOURCES]
        assert listener.completed == []

    @pytest.mark.asyncio
    async def test_handler_is_disposed_before_delegation(self, chat_transport):
        seen = {}

        class CheckingListener(RecordingListener):
            async def on_tool_call(self, request):
                seen["finalized"] = handler.finalized
                seen["stop_handlers"] = chat_transport.handler_count(AI_INDICATOR_STOP)

        handler = make_handler(
            frames_of(
                ToolCallDelta(name="web_search", call_id="c", arguments='{"query": "x"}'),
                Finish("tool_calls"),
            ),
            chat_transport,
            CheckingListener(accepts_tool_calls=True),
        )

        await handler.run()

        assert seen == {"finalized": True, "stop_handlers": 0}

    @pytest.mark.asyncio
    async def test_text_before_tool_call_is_carried(self, chat_transport):
        listener = RecordingListener(accepts_tool_calls=True)
        handler = make_handler(
            frames_of(
                TextDelta("Let me check. "),
                ToolCallDelta(name="web_search", call_id="c", arguments='{"query": "x"}'),
                Finish("tool_calls"),
            ),
            chat_transport,
            listener,
        )

        await handler.run()

        assert listener.tool_calls[0].partial_text == "Let me check. "

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "arguments",
        ['{"query": ', "", '["not", "an", "object"]', "{}", '{"query": "   "}'],
    )
    async def test_bad_arguments_finalize_as_error(self, chat_transport, arguments):
        listener = RecordingListener(accepts_tool_calls=True)
        handler = make_handler(
            frames_of(
                ToolCallDelta(name="web_search", call_id="c", arguments=arguments),
                Finish("tool_calls"),
            ),
            chat_transport,
            listener,
        )

        await handler.run()

        assert listener.tool_calls == []
        assert chat_transport.states_for("msg-1") == [AIState.EXTERNAL_SOURCES, AIState.ERROR]
        assert chat_transport.final_text("msg-1") == APOLOGY_MESSAGE
        assert len(listener.errors) == 1
        assert isinstance(listener.errors[0], ToolCallParseError)

    @pytest.mark.asyncio
    async def test_tool_call_without_target_completes_normally(self, chat_transport, caplog):
        listener = RecordingListener(accepts_tool_calls=False)
        handler = make_handler(
            frames_of(
                TextDelta("Here is what I know."),
                ToolCallDelta(name="web_search", call_id="c", arguments='{"query": "x"}'),
                Finish("tool_calls"),
            ),
            chat_transport,
            listener,
        )

        with caplog.at_level(logging.WARNING, logger="agent.stream_handler"):
            await handler.run()

        assert "no handler available" in caplog.text
        assert listener.completed == ["Here is what I know."]
        assert chat_transport.states_for("msg-1")[-1] == AIState.DONE

    @pytest.mark.asyncio
    async def test_stream_ending_mid_tool_call_is_an_error(self, chat_transport):
        listener = RecordingListener(accepts_tool_calls=True)
        handler = make_handler(
            frames_of(ToolCallDelta(name="web_search", call_id="c", arguments='{"query": "x"}')),
            chat_transport,
            listener,
        )

        await handler.run()

        assert listener.tool_calls == []
        assert chat_transport.states_for("msg-1")[-1] == AIState.ERROR
        assert handler.outcome == "error"

    @pytest.mark.asyncio
    async def test_external_sources_sent_once(self, chat_transport):
        handler = make_handler(
            frames_of(
                ToolCallDelta(name="web_search", call_id="c", arguments='{"qu'),
                ToolCallDelta(arguments='ery": '),
                ToolCallDelta(arguments='"x"}'),
                Finish("tool_calls"),
            ),
            chat_transport,
            RecordingListener(accepts_tool_calls=True),
        )

        await handler.run()

        assert chat_transport.states_for("msg-1").count(AIState.EXTERNAL_SOURCES) == 1


# ─────────────────────────────────────────────────────
# Errors
# ─────────────────────────────────────────────────────


class TestErrors:
    @pytest.mark.asyncio
    async def test_mid_stream_exception_keeps_partial_text(self, chat_transport):
        async def failing_frames():
            yield TextDelta("Half an ans")
            raise RuntimeError("connection reset")

        listener = RecordingListener()
        handler = make_handler(failing_frames(), chat_transport, listener)

        await handler.run()

        assert chat_transport.states_for("msg-1") == [AIState.ERROR]
        assert chat_transport.final_text("msg-1") == "Half an ans"
        assert isinstance(listener.errors[0], RuntimeError)
        assert listener.completed == []

    @pytest.mark.asyncio
    async def test_exception_before_any_text_writes_apology(self, chat_transport):
        async def failing_frames():
            raise RuntimeError("boom")
            yield  # pragma: no cover

        handler = make_handler(failing_frames(), chat_transport)
        await handler.run()

        assert chat_transport.final_text("msg-1") == APOLOGY_MESSAGE

    @pytest.mark.asyncio
    async def test_transport_failures_do_not_abort_the_pass(self, chat_transport):
        chat_transport.fail_updates = True
        listener = RecordingListener()
        handler = make_handler(
            frames_of(TextDelta("still "), TextDelta("works"), Finish("stop")),
            chat_transport,
            listener,
        )

        await handler.run()

        assert listener.completed == ["still works"]
        assert chat_transport.states_for("msg-1") == [AIState.DONE]

    @pytest.mark.asyncio
    async def test_tracer_failures_are_non_fatal(self, chat_transport):
        tracer = Mock(spec=Tracer)
        tracer.start_span.side_effect = RuntimeError("tracer down")
        tracer.end_span.side_effect = RuntimeError("tracer down")
        tracer.record_event.side_effect = RuntimeError("tracer down")
        listener = RecordingListener(accepts_tool_calls=True)

        handler = make_handler(
            frames_of(
                ToolCallDelta(name="web_search", call_id="c", arguments='{"query": "x"}'),
                Finish("tool_calls"),
            ),
            chat_transport,
            listener,
            tracer=tracer,
        )

        await handler.run()

        assert len(listener.tool_calls) == 1


# ─────────────────────────────────────────────────────
# Cancellation & finalization
# ─────────────────────────────────────────────────────


class TestCancellation:
    @pytest.mark.asyncio
    async def test_stop_event_appends_marker_and_ignores_later_frames(self, chat_transport, stop_event):
        gate = asyncio.Event()
        closed = []

        async def gated_frames():
            try:
                yield TextDelta("Hello")
                await gate.wait()
                yield TextDelta(" world")
                yield Finish("stop")
            finally:
                closed.append(True)

        listener = RecordingListener()
        handler = make_handler(gated_frames(), chat_transport, listener)
        task = asyncio.create_task(handler.run())

        await wait_for(lambda: chat_transport.texts_for("msg-1") == ["Hello"])
        await chat_transport.emit(stop_event("msg-1"))
        gate.set()
        await task

        assert chat_transport.final_text("msg-1") == "Hello" + STOP_MARKER
        assert chat_transport.states_for("msg-1") == [AIState.DONE]
        assert not any(" world" in text for text in chat_transport.texts_for("msg-1"))
        assert handler.outcome == "cancelled"
        assert listener.completed == []
        assert closed == [True]

    @pytest.mark.asyncio
    async def test_stop_for_other_message_is_ignored(self, chat_transport, stop_event):
        gate = asyncio.Event()

        async def gated_frames():
            yield TextDelta("Hello")
            await gate.wait()
            yield Finish("stop")

        handler = make_handler(gated_frames(), chat_transport)
        task = asyncio.create_task(handler.run())

        await wait_for(lambda: len(chat_transport.updates) == 1)
        await chat_transport.emit(stop_event("some-other-message"))
        await chat_transport.emit(stop_event("msg-1", cid="messaging:elsewhere"))
        gate.set()
        await task

        assert handler.outcome == "done"
        assert chat_transport.final_text("msg-1") == "Hello"

    @pytest.mark.asyncio
    async def test_stop_after_completion_is_a_no_op(self, chat_transport, stop_event):
        handler = make_handler(frames_of(TextDelta("Done."), Finish("stop")), chat_transport)
        await handler.run()
        updates_before = list(chat_transport.updates)
        events_before = list(chat_transport.events)

        await handler.handle_stop_generating(stop_event("msg-1"))

        assert chat_transport.updates == updates_before
        assert chat_transport.events == events_before
        assert handler.outcome == "done"

    @pytest.mark.asyncio
    async def test_finish_frames_after_finalization_are_ignored(self, chat_transport):
        listener = RecordingListener()
        handler = make_handler(
            frames_of(TextDelta("once"), Finish("stop"), TextDelta(" twice"), Finish("stop")),
            chat_transport,
            listener,
        )

        await handler.run()

        assert listener.completed == ["once"]
        assert chat_transport.states_for("msg-1") == [AIState.DONE]

    @pytest.mark.asyncio
    async def test_stop_subscription_removed_after_completion(self, chat_transport):
        listener = RecordingListener()
        handler = make_handler(frames_of(TextDelta("x"), Finish("stop")), chat_transport, listener)
        assert chat_transport.handler_count(AI_INDICATOR_STOP) == 1

        await handler.run()

        assert chat_transport.handler_count(AI_INDICATOR_STOP) == 0
        assert listener.disposed == 1

    @pytest.mark.asyncio
    async def test_external_dispose_silences_the_pass(self, chat_transport):
        listener = RecordingListener()
        handler = make_handler(frames_of(TextDelta("never shown"), Finish("stop")), chat_transport, listener)

        handler.dispose()
        await handler.run()

        assert chat_transport.updates == []
        assert chat_transport.events == []
        assert handler.outcome == "disposed"
        assert listener.disposed == 1
