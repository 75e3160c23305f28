"""
Stream Response Handler

Consumes one streamed model reply (a "pass") frame by frame and keeps the
outbound chat message and its status indicator consistent with it.

States:
    STREAMING ──text──▶ STREAMING
    STREAMING ──tool fragment──▶ TOOL_ACCUMULATING
    any ──stop / tool_calls / cancel / error──▶ FINALIZED

Invariants:
- FINALIZED is entered exactly once; later finalize attempts are no-ops
- Frames arriving after FINALIZED are ignored
- Displayed text only grows during a pass
- A completed tool call is delegated only after the handler is FINALIZED,
  so the follow-up pass never overlaps this one on the same message
"""

import json
import logging
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, AsyncIterator, Callable, Dict, Optional
from uuid import uuid4

from agent.tracing.tracer import NoOpTracer, TraceMetadata, Tracer
from inference.types import Finish, Frame, TextDelta, ToolCallDelta
from transport.base import ChatTransport
from transport.schemas import AI_INDICATOR_STOP, AIState, ChatEvent, OutboundMessage

logger = logging.getLogger(__name__)

STOP_MARKER = "\n\n*[Generation stopped by user]*"
APOLOGY_MESSAGE = "Sorry, I encountered an error processing your message. Please try again."

# Debounce window for partial message updates
UPDATE_INTERVAL_S = 0.1
UPDATE_EVERY_N_FRAMES = 5


class HandlerState(str, Enum):
    STREAMING = "streaming"
    TOOL_ACCUMULATING = "tool_accumulating"
    FINALIZED = "finalized"


class ToolCallParseError(Exception):
    """Accumulated tool-call arguments are empty or not a JSON object."""
    pass


@dataclass
class ToolCallAccumulator:
    """Tool call assembled from fragments spread over several frames."""

    name: Optional[str] = None
    call_id: Optional[str] = None
    buffer: str = ""

    def add(self, fragment: ToolCallDelta) -> None:
        if fragment.name:
            self.name = fragment.name
        if fragment.call_id:
            self.call_id = fragment.call_id
        if fragment.arguments:
            self.buffer += fragment.arguments

    def parse(self) -> Dict[str, Any]:
        if not self.buffer.strip():
            raise ToolCallParseError("Tool call arguments are empty")
        try:
            arguments = json.loads(self.buffer)
        except json.JSONDecodeError as e:
            raise ToolCallParseError(f"Tool call arguments are not valid JSON: {e}") from e
        if not isinstance(arguments, dict):
            raise ToolCallParseError("Tool call arguments must be a JSON object")
        return arguments


@dataclass
class ToolCallRequest:
    """A completed tool call handed to the listener."""

    name: str
    call_id: Optional[str]
    arguments: Dict[str, Any] = field(default_factory=dict)
    partial_text: str = ""   # text streamed before the tool call, if any

    @property
    def query(self) -> str:
        return str(self.arguments.get("query") or "").strip()


class ResponseListener:
    """
    Receives a handler's outcome. Every callback is optional.

    accepts_tool_calls is False for listeners that cannot run a tool round
    trip; a tool_calls finish is then treated as normal completion.
    """

    accepts_tool_calls: bool = False

    async def on_text_delta(self, text: str) -> None:
        pass

    async def on_tool_call(self, request: ToolCallRequest) -> None:
        pass

    async def on_complete(self, text: str) -> None:
        pass

    async def on_error(self, error: Optional[BaseException]) -> None:
        pass

    def on_dispose(self, handler: "ResponseHandler") -> None:
        pass


class ResponseHandler:
    def __init__(
        self,
        frames: AsyncIterator[Frame],
        transport: ChatTransport,
        message: OutboundMessage,
        listener: Optional[ResponseListener] = None,
        tracer: Optional[Tracer] = None,
        clock: Callable[[], float] = time.monotonic,
        trace_id: Optional[str] = None,
    ):
        """
        Args:
            frames:    Frame sequence of one streamed completion
            transport: Chat transport bound to the message's channel
            message:   Placeholder message this pass writes into
            listener:  Receives completion / tool-call / error callbacks
            tracer:    Optional Tracer for trace emission
            clock:     Monotonic clock (seconds), injectable for tests
        """
        self._frames = frames
        self._transport = transport
        self.message = message
        self._listener = listener or ResponseListener()
        self._tracer = tracer or NoOpTracer()
        self._clock = clock
        self._trace = TraceMetadata(
            trace_id=trace_id or str(uuid4()),
            conversation_id=message.cid,
            message_id=message.id,
        )

        self.state = HandlerState.STREAMING
        self.outcome: Optional[str] = None   # done | error | cancelled | delegated | disposed
        self.text = ""
        self.frame_count = 0
        self._accumulator: Optional[ToolCallAccumulator] = None
        self._frames_since_update = 0
        self._last_update_at: Optional[float] = None
        self._stream_closed = False
        self._disposed = False

        self._transport.on(AI_INDICATOR_STOP, self.handle_stop_generating)

    @property
    def finalized(self) -> bool:
        return self.state == HandlerState.FINALIZED

    # ── Main loop ─────────────────────────────────────────────

    async def run(self) -> None:
        logger.debug(f"ResponseHandler.run() started for message: {self.message.id}")
        span = None
        try:
            span = self._tracer.start_span("generation_pass", {}, self._trace)
        except Exception:
            # Tracing failure is non-fatal
            pass

        try:
            async for frame in self._frames:
                if self.finalized:
                    logger.debug(f"Handler for {self.message.id} is finalized, ignoring remaining frames")
                    break
                self.frame_count += 1

                if isinstance(frame, ToolCallDelta):
                    await self._on_tool_fragment(frame)
                elif isinstance(frame, TextDelta):
                    await self._on_text(frame.text)
                elif isinstance(frame, Finish):
                    await self._on_finish(frame.reason)
                    break

            if not self.finalized:
                if self._accumulator is not None:
                    # Tool call started but the stream never signalled completion
                    logger.error(f"Tool call for {self.message.id} was detected but never completed")
                    await self._finalize_error(ToolCallParseError("Stream ended during a tool call"))
                else:
                    await self._finalize_normal()

        except Exception as e:
            logger.error(f"Error in ResponseHandler.run(): {e}", exc_info=True)
            self._record_event(
                "stream_failed", {"error_type": type(e).__name__, "error_message": str(e)}
            )
            await self._finalize_error(e)

        finally:
            await self._close_stream()
            try:
                self._tracer.end_span(
                    span,
                    self.outcome or "unknown",
                    {"frame_count": self.frame_count, "text_length": len(self.text)},
                )
            except Exception:
                pass

    async def _on_text(self, text: str) -> None:
        if not text:
            return
        self.text += text
        self._frames_since_update += 1
        await self._listener.on_text_delta(text)

        now = self._clock()
        due = (
            self._last_update_at is None
            or now - self._last_update_at >= UPDATE_INTERVAL_S
            or self._frames_since_update >= UPDATE_EVERY_N_FRAMES
        )
        if due:
            await self._update_message()
            self._last_update_at = now
            self._frames_since_update = 0

    async def _on_tool_fragment(self, fragment: ToolCallDelta) -> None:
        if self._accumulator is None:
            self._accumulator = ToolCallAccumulator()
            self.state = HandlerState.TOOL_ACCUMULATING
            logger.info(f"Tool call detected in stream for message {self.message.id}")
            await self._send_state(AIState.EXTERNAL_SOURCES)
            self._record_event("tool_call_detected", {"tool_name": fragment.name or ""})
        self._accumulator.add(fragment)

    async def _on_finish(self, reason: str) -> None:
        if reason == "tool_calls":
            await self._complete_tool_call()
            return
        if reason != "stop":
            logger.warning(f"Unexpected finish reason {reason!r}; completing with accumulated text")
        await self._finalize_normal()

    async def _complete_tool_call(self) -> None:
        accumulator = self._accumulator or ToolCallAccumulator()

        if not self._listener.accepts_tool_calls:
            logger.warning("Tool call received but no handler available")
            await self._finalize_normal()
            return

        try:
            arguments = accumulator.parse()
            if not str(arguments.get("query") or "").strip():
                raise ToolCallParseError("Tool call is missing the query argument")
        except ToolCallParseError as e:
            logger.error(f"Error parsing tool call arguments: {e} (buffer length {len(accumulator.buffer)})")
            await self._finalize_error(e)
            return

        request = ToolCallRequest(
            name=accumulator.name or "",
            call_id=accumulator.call_id,
            arguments=arguments,
            partial_text=self.text,
        )

        await self._close_stream()
        if self.finalized:
            # Stopped while the stream was closing
            return

        # The follow-up pass owns the final message from here on; nothing
        # below may await before the listener has taken over the message
        self._mark_finalized("delegated")
        self._dispose()
        self._accumulator = None

        self._record_event("tool_call_delegated", {"tool_name": request.name})
        logger.info(f"Delegating {request.name} call for message {self.message.id}")
        await self._listener.on_tool_call(request)

    # ── Finalization ──────────────────────────────────────────

    def _mark_finalized(self, outcome: str) -> None:
        self.state = HandlerState.FINALIZED
        self.outcome = outcome

    async def _finalize_normal(self) -> None:
        if self.finalized:
            return
        self._mark_finalized("done")

        try:
            await self._write_text(self.text)
            await self._send_state(AIState.DONE)
            logger.info(f"Message {self.message.id} completed. Total frames: {self.frame_count}")
            await self._listener.on_complete(self.text)
        except Exception as e:
            logger.error(f"Error finishing message: {e}", exc_info=True)
        finally:
            self._dispose()

    async def _finalize_error(self, error: Optional[BaseException] = None) -> None:
        if self.finalized:
            return
        self._mark_finalized("error")

        try:
            await self._send_state(AIState.ERROR)
            await self._write_text(self.text or APOLOGY_MESSAGE)
            await self._listener.on_error(error)
        except Exception as e:
            logger.error(f"Error handling error state: {e}", exc_info=True)
        finally:
            self._dispose()

    async def handle_stop_generating(self, event: ChatEvent) -> None:
        """Cancellation: ai_indicator.stop for exactly this message."""
        if event.channel_cid != self.message.cid or event.message_id != self.message.id:
            return
        if self.finalized:
            return

        logger.info(f"Stop generating requested for message {self.message.id}")
        self._mark_finalized("cancelled")
        self._record_event("generation_cancelled", {"text_length": len(self.text)})

        try:
            await self._write_text(self.text + STOP_MARKER)
            await self._send_state(AIState.DONE)
        finally:
            self._dispose()

    def dispose(self) -> None:
        """
        Tear down from outside (agent shutdown). Remaining frames are ignored
        and the message is left as last written.
        """
        if not self.finalized:
            self._mark_finalized("disposed")
        self._dispose()

    def _dispose(self) -> None:
        if self._disposed:
            return
        self._disposed = True
        self._transport.off(AI_INDICATOR_STOP, self.handle_stop_generating)
        self._listener.on_dispose(self)

    async def _close_stream(self) -> None:
        if self._stream_closed:
            return
        self._stream_closed = True
        aclose = getattr(self._frames, "aclose", None)
        if aclose is None:
            return
        try:
            await aclose()
        except Exception as e:
            logger.debug(f"Closing stream for {self.message.id} failed: {e}")

    def _record_event(self, name: str, metadata: Dict[str, Any]) -> None:
        try:
            self._tracer.record_event(name, metadata, self._trace)
        except Exception:
            # Tracing failure is non-fatal
            pass

    # ── Transport helpers (failures are logged, never raised) ─

    async def _update_message(self) -> None:
        if self.finalized:
            return
        await self._write_text(self.text)

    async def _write_text(self, text: str) -> None:
        try:
            await self._transport.partial_update_message(self.message.id, text)
        except Exception as e:
            logger.error(f"Error updating message {self.message.id}: {e}")

    async def _send_state(self, state: AIState) -> None:
        try:
            await self._transport.send_event(self.message, state)
        except Exception as e:
            logger.error(f"Error sending {state.value} for {self.message.id}: {e}")
