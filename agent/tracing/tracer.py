"""
Tool-agnostic tracing abstraction.

This module defines the Tracer interface that all observability implementations must follow.
Tracing is strictly passive:
- Never influences execution
- Never mutates agent or handler state
- Failures are silent and non-fatal
"""

import logging
from abc import ABC, abstractmethod
from typing import Dict, Any, Optional
from dataclasses import dataclass
from datetime import datetime

logger = logging.getLogger(__name__)

# Structural metadata only; message text and search results never leave the process
SAFE_METADATA_FIELDS = {
    "duration_ms",
    "status",
    "tool_name",
    "error_type",
    "error_message",
    "frame_count",
    "text_length",
    "result_length",
    "channel_key",
    "reason",
    "pass_index",
    "phase",
    "bot_user_id",
}


def filter_safe_metadata(metadata: Optional[Dict[str, Any]]) -> Dict[str, Any]:
    """Keep only safe fields; strings are truncated to 256 characters."""
    filtered = {}
    for key, value in (metadata or {}).items():
        if key not in SAFE_METADATA_FIELDS:
            continue
        if isinstance(value, (int, float, bool)):
            filtered[key] = value
        else:
            filtered[key] = str(value)[:256]
    return filtered


@dataclass
class TraceMetadata:
    """Metadata associated with a trace span or event."""

    trace_id: str  # Mandatory: globally unique identifier
    conversation_id: Optional[str] = None  # Channel cid the event belongs to
    message_id: Optional[str] = None  # Outbound chat message being generated


class Tracer(ABC):
    """
    Abstract tracing interface.

    All implementations MUST guarantee:
    - No control flow influence
    - No state mutation
    - Non-fatal failures (never raise)
    """

    @abstractmethod
    def start_span(
        self, name: str, metadata: Dict[str, Any], trace_metadata: TraceMetadata
    ) -> Optional[Any]:
        """
        Start a trace span (e.g., a generation pass, a web search).

        Returns:
            Span handle (can be used in end_span, or None if tracing disabled)
        """
        pass

    @abstractmethod
    def end_span(self, span: Any, status: str, metadata: Dict[str, Any]) -> None:
        """
        End a trace span.

        Args:
            span: Span handle from start_span
            status: "success", "failure", "cancelled" or "delegated"
            metadata: Execution results (duration_ms, error_type, etc.)
        """
        pass

    @abstractmethod
    def record_event(
        self, name: str, metadata: Dict[str, Any], trace_metadata: TraceMetadata
    ) -> None:
        """
        Record a point-in-time event (e.g. "tool_call_detected").
        """
        pass

    @abstractmethod
    def is_enabled(self) -> bool:
        """Check if tracing is enabled."""
        pass


class NoOpTracer(Tracer):
    """
    No-op tracing implementation (when tracing is disabled).

    Satisfies the Tracer interface but does nothing.
    """

    def start_span(
        self, name: str, metadata: Dict[str, Any], trace_metadata: TraceMetadata
    ) -> Optional[Any]:
        """No-op implementation."""
        return None

    def end_span(self, span: Any, status: str, metadata: Dict[str, Any]) -> None:
        """No-op implementation."""
        pass

    def record_event(
        self, name: str, metadata: Dict[str, Any], trace_metadata: TraceMetadata
    ) -> None:
        """No-op implementation."""
        pass

    def is_enabled(self) -> bool:
        """Tracing is disabled."""
        return False


class LoggingTracer(Tracer):
    """
    Tracer that writes spans and events to the standard logger.

    Only structural metadata is logged; message text and search results
    never reach the log.
    """

    def __init__(self, log: Optional[logging.Logger] = None):
        self._log = log or logger

    def start_span(
        self, name: str, metadata: Dict[str, Any], trace_metadata: TraceMetadata
    ) -> Optional[Any]:
        try:
            span = {
                "name": name,
                "trace_id": trace_metadata.trace_id,
                "conversation_id": trace_metadata.conversation_id,
                "message_id": trace_metadata.message_id,
                "start_time": datetime.now(),
            }
            self._log.debug(f"[trace] span start {name} {self._filter(metadata)} trace={trace_metadata.trace_id}")
            return span
        except Exception:
            return None

    def end_span(self, span: Any, status: str, metadata: Dict[str, Any]) -> None:
        if span is None:
            return
        try:
            elapsed_ms = int((datetime.now() - span["start_time"]).total_seconds() * 1000)
            self._log.debug(
                f"[trace] span end {span['name']} status={status} "
                f"duration_ms={elapsed_ms} {self._filter(metadata)} trace={span['trace_id']}"
            )
        except Exception:
            pass

    def record_event(
        self, name: str, metadata: Dict[str, Any], trace_metadata: TraceMetadata
    ) -> None:
        try:
            self._log.info(
                f"[trace] {name} {self._filter(metadata)} "
                f"cid={trace_metadata.conversation_id} message_id={trace_metadata.message_id}"
            )
        except Exception:
            pass

    def is_enabled(self) -> bool:
        return True

    @staticmethod
    def _filter(metadata: Dict[str, Any]) -> Dict[str, Any]:
        return filter_safe_metadata(metadata)
