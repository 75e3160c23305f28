"""
Writing Assistant Agent
=======================

One agent per chat channel. Owns the conversation history and turns each
inbound user message into a streamed reply, running at most one web-search
round trip per turn.

Turn flow:
    message.new
      → placeholder message + THINKING
      → first pass (web_search offered, tool_choice="auto")
          → plain text  → final message + DONE
          → tool call   → EXTERNAL_SOURCES → search → results into history
                        → GENERATING → second pass (no tools) → DONE

Invariants:
- History entry 0 is always the system prompt
- At most two model requests per turn; the second never offers tools
- The second pass starts only after the first handler is finalized and the
  search result is in history
"""

import asyncio
import logging
import time
from typing import Callable, Dict, List, Optional, Set
from uuid import uuid4

from agent.history import ConversationHistory
from agent.prompting.prompt_builder import (
    build_search_results_message,
    build_system_prompt,
    build_writing_task_context,
)
from agent.stream_handler import (
    APOLOGY_MESSAGE,
    STOP_MARKER,
    ResponseHandler,
    ResponseListener,
    ToolCallRequest,
)
from agent.tools.web_search_tool import WebSearchTool
from agent.tracing.tracer import NoOpTracer, TraceMetadata, Tracer
from inference.base import ModelBackend
from inference.types import CompletionRequest
from transport.base import ChatTransport
from transport.schemas import AI_INDICATOR_STOP, MESSAGE_NEW, AIState, ChatEvent, OutboundMessage

logger = logging.getLogger(__name__)


class MissingCredentialError(Exception):
    """The model credential is not configured."""
    pass


def search_failure_message(error: BaseException) -> str:
    return (
        f"I tried to search the web but encountered an error: {str(error) or 'Unknown error'}. "
        f"Please try asking again."
    )


class _PassListener(ResponseListener):
    """Connects one handler's outcome back to its agent."""

    def __init__(
        self,
        agent: "WritingAssistantAgent",
        message: OutboundMessage,
        trace_id: str,
        accepts_tool_calls: bool,
    ):
        self._agent = agent
        self._message = message
        self._trace_id = trace_id
        self.accepts_tool_calls = accepts_tool_calls

    async def on_tool_call(self, request: ToolCallRequest) -> None:
        await self._agent.handle_tool_call(request, self._message, self._trace_id)

    async def on_complete(self, text: str) -> None:
        self._agent.record_reply(text)

    def on_dispose(self, handler: ResponseHandler) -> None:
        self._agent.remove_handler(handler)


class WritingAssistantAgent:
    def __init__(
        self,
        transport: ChatTransport,
        model_backend: ModelBackend,
        search_tool: WebSearchTool,
        cid: str,
        api_key: Optional[str],
        tracer: Optional[Tracer] = None,
        history_max_messages: int = 20,
        clock: Callable[[], float] = time.time,
    ):
        """
        Args:
            transport:            Chat transport bound to this agent's channel
            model_backend:        Streaming model boundary
            search_tool:          Web search tool offered to the model
            cid:                  Channel cid ("messaging:abc")
            api_key:              Model credential; init() refuses to start without it
            tracer:               Optional Tracer for trace emission
            history_max_messages: Non-system entries kept after the cap
            clock:                Wall clock (seconds), injectable for tests
        """
        self.transport = transport
        self._model = model_backend
        self._search_tool = search_tool
        self.cid = cid
        self._api_key = api_key
        self._tracer = tracer or NoOpTracer()
        self._clock = clock

        self.history = ConversationHistory(build_system_prompt(), max_messages=history_max_messages)
        self.handlers: List[ResponseHandler] = []
        self.last_interaction_at = clock()
        self.initialized = False

        self._tasks: Set[asyncio.Task] = set()
        # Messages with no active handler (stream opening or search running), keyed by id
        self._awaiting_stream: Dict[str, OutboundMessage] = {}
        self._cancelled: Set[str] = set()

    @property
    def bot_user_id(self) -> str:
        return self.transport.bot_user_id

    # ── Lifecycle ─────────────────────────────────────────────

    async def init(self) -> None:
        if not self._api_key:
            logger.error("Missing GEMINI_API_KEY environment variable")
            raise MissingCredentialError(
                "Gemini API key is required. Please set GEMINI_API_KEY environment variable."
            )

        self.history = ConversationHistory(build_system_prompt(), max_messages=self.history.max_messages)
        self.transport.on(MESSAGE_NEW, self.handle_message)
        self.transport.on(AI_INDICATOR_STOP, self.handle_stop_generating)
        self.initialized = True

        self._record_event("agent_started", {"bot_user_id": self.bot_user_id})
        logger.info(f"Agent {self.bot_user_id} listening on {self.cid}")

    async def dispose(self) -> None:
        self.transport.off(MESSAGE_NEW, self.handle_message)
        self.transport.off(AI_INDICATOR_STOP, self.handle_stop_generating)

        for handler in list(self.handlers):
            handler.dispose()
        self.handlers = []

        current = asyncio.current_task()
        pending = [task for task in self._tasks if task is not current and not task.done()]
        for task in pending:
            task.cancel()
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)
        self._tasks.clear()
        self._awaiting_stream.clear()
        self._cancelled.clear()

        await self.transport.disconnect()
        self.initialized = False

        self._record_event("agent_disposed", {"bot_user_id": self.bot_user_id})
        logger.info(f"Agent {self.bot_user_id} disposed")

    # ── Inbound events ────────────────────────────────────────

    async def handle_message(self, event: ChatEvent) -> None:
        message = event.message
        if message is None or message.ai_generated:
            return
        if not message.text:
            return
        if event.channel_cid and event.channel_cid != self.cid:
            return

        self.last_interaction_at = self._clock()
        trace_id = str(uuid4())

        self.history.append("user", message.text)
        writing_task = message.writing_task()
        if writing_task:
            self.history.set_system_prompt(
                build_system_prompt(build_writing_task_context(writing_task))
            )

        try:
            outbound = await self.transport.send_message("", ai_generated=True)
        except Exception as e:
            logger.error(f"Could not create reply placeholder in {self.cid}: {e}", exc_info=True)
            return

        self._awaiting_stream[outbound.id] = outbound
        try:
            await self._send_state(outbound, AIState.THINKING)

            try:
                frames = await self._model.open_stream(
                    CompletionRequest(
                        messages=self.history.snapshot(),
                        tools=[self._search_tool.to_declaration()],
                        tool_choice="auto",
                        trace_id=trace_id,
                    )
                )
            except Exception as e:
                logger.error(f"Error creating chat completion: {e}", exc_info=True)
                if self._was_cancelled(outbound.id):
                    return
                await self._send_state(outbound, AIState.ERROR)
                await self._write_text(outbound, APOLOGY_MESSAGE)
                return

            if self._was_cancelled(outbound.id):
                logger.info(f"Discarding stream for stopped message {outbound.id}")
                await self._close_frames(frames)
                return

            # No await until the handler has subscribed to stop events
            self._awaiting_stream.pop(outbound.id, None)
            handler = self._create_handler(frames, outbound, trace_id, accepts_tool_calls=True)
            self._spawn(handler.run())
        finally:
            self._awaiting_stream.pop(outbound.id, None)
            self._cancelled.discard(outbound.id)

    async def handle_stop_generating(self, event: ChatEvent) -> None:
        """
        Stop requests for a message with no active ResponseHandler: the first
        stream is still opening, or a web search is running. Stops for a
        streaming message are handled by its ResponseHandler.
        """
        message_id = event.message_id
        if not message_id or message_id not in self._awaiting_stream:
            return
        if event.channel_cid and event.channel_cid != self.cid:
            return

        outbound = self._awaiting_stream.pop(message_id)
        self._cancelled.add(message_id)
        logger.info(f"Stop generating requested before streaming for {message_id}")
        self._record_event("generation_cancelled", {"phase": "awaiting_stream"}, message_id=message_id)

        await self._write_text(outbound, outbound.text + STOP_MARKER)
        await self._send_state(outbound, AIState.DONE)

    # ── Tool round trip ───────────────────────────────────────

    async def handle_tool_call(self, request: ToolCallRequest, message: OutboundMessage, trace_id: str) -> None:
        """Run the search, fold the result into history and start the second pass."""
        logger.info(f"Tool call initiated: {request.name} {request.arguments}")
        tool_message = message.model_copy(update={"text": request.partial_text})
        self._awaiting_stream[message.id] = tool_message

        try:
            await self._send_state(message, AIState.EXTERNAL_SOURCES)

            if request.name == self._search_tool.name:
                result = await self._search_tool.search(
                    request.query,
                    TraceMetadata(trace_id=trace_id, conversation_id=self.cid, message_id=message.id),
                )
                logger.info(f"Web search completed, result length: {len(result)} characters")
            else:
                logger.warning(f"Model requested unknown tool {request.name!r}")
                result = f'Tool "{request.name}" is not available.'

            if self._was_cancelled(message.id):
                logger.info(f"Discarding search result for stopped message {message.id}")
                return

            self.history.append("system", build_search_results_message(request.query, result))
            await self._send_state(message, AIState.GENERATING)

            # No tools on the follow-up request
            frames = await self._model.open_stream(
                CompletionRequest(messages=self.history.snapshot(), trace_id=trace_id)
            )

            if self._was_cancelled(message.id):
                await self._close_frames(frames)
                return

            self._awaiting_stream.pop(message.id, None)
            handler = self._create_handler(frames, message, trace_id, accepts_tool_calls=False)
            await handler.run()

        except Exception as e:
            logger.error(f"Error in tool call handler: {e}", exc_info=True)
            if self._was_cancelled(message.id):
                return
            await self._send_state(message, AIState.ERROR)
            await self._write_text(message, search_failure_message(e))

        finally:
            self._awaiting_stream.pop(message.id, None)
            self._cancelled.discard(message.id)

    # ── Handler bookkeeping ───────────────────────────────────

    def record_reply(self, text: str) -> None:
        self.history.append("assistant", text)

    def remove_handler(self, handler: ResponseHandler) -> None:
        if handler in self.handlers:
            self.handlers.remove(handler)

    def _create_handler(self, frames, message: OutboundMessage, trace_id: str, accepts_tool_calls: bool) -> ResponseHandler:
        listener = _PassListener(self, message, trace_id, accepts_tool_calls)
        handler = ResponseHandler(
            frames,
            self.transport,
            message,
            listener=listener,
            tracer=self._tracer,
            trace_id=trace_id,
        )
        self.handlers.append(handler)
        return handler

    def _spawn(self, coro) -> asyncio.Task:
        task = asyncio.create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    def _was_cancelled(self, message_id: str) -> bool:
        return message_id in self._cancelled

    async def _close_frames(self, frames) -> None:
        aclose = getattr(frames, "aclose", None)
        if aclose is not None:
            await aclose()

    async def wait_idle(self) -> None:
        """Wait until every running turn has finished."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    def _record_event(self, name: str, metadata: dict, message_id: Optional[str] = None) -> None:
        try:
            self._tracer.record_event(
                name,
                metadata,
                TraceMetadata(trace_id=str(uuid4()), conversation_id=self.cid, message_id=message_id),
            )
        except Exception:
            # Tracing failure is non-fatal
            pass

    # ── Transport helpers ─────────────────────────────────────

    async def _write_text(self, message: OutboundMessage, text: str) -> None:
        try:
            await self.transport.partial_update_message(message.id, text)
        except Exception as e:
            logger.error(f"Error updating message {message.id}: {e}")

    async def _send_state(self, message: OutboundMessage, state: AIState) -> None:
        try:
            await self.transport.send_event(message, state)
        except Exception as e:
            logger.error(f"Error sending {state.value} for {message.id}: {e}")
