"""
LangSmith-backed tracing implementation.

Each generation pass becomes a LangSmith run; tool-call and web-search
events become standalone runs in the same project.

Constraints:
- Never influences control flow
- Failures are silent and non-fatal
- Only structural metadata is sent; message text and search results never are
"""

import logging
import os
from datetime import datetime, timezone
from typing import Any, Dict, Optional
from uuid import uuid4

from langsmith import Client

from agent.tracing.tracer import TraceMetadata, Tracer, filter_safe_metadata

logger = logging.getLogger(__name__)

DEFAULT_PROJECT = "writing-assistant"

# Span outcomes reported as failed runs
_FAILED_STATUSES = {"error", "failure"}


class LangSmithTracer(Tracer):
    """
    LangSmith implementation of the Tracer interface.

    Silently disabled when no API key is configured.
    """

    def __init__(
        self,
        client: Optional[Client] = None,
        api_key: Optional[str] = None,
        project_name: Optional[str] = None,
    ):
        """
        Args:
            client:       Ready LangSmith client (tests inject a mock)
            api_key:      Overrides LANGSMITH_API_KEY
            project_name: Overrides LANGSMITH_PROJECT (default "writing-assistant")
        """
        self._project_name = project_name or os.getenv("LANGSMITH_PROJECT", DEFAULT_PROJECT)
        self._client = client
        self._enabled = client is not None

        if client is None:
            key = (api_key if api_key is not None else os.getenv("LANGSMITH_API_KEY", "")).strip()
            if key:
                try:
                    self._client = Client(api_key=key)
                    self._enabled = True
                except Exception as e:
                    logger.warning(f"LangSmith client unavailable, tracing disabled: {e}")

    @property
    def project_name(self) -> str:
        return self._project_name

    def start_span(
        self, name: str, metadata: Dict[str, Any], trace_metadata: TraceMetadata
    ) -> Optional[Any]:
        if not self.is_enabled():
            return None

        try:
            run_id = uuid4()
            start_time = datetime.now(timezone.utc)
            self._client.create_run(
                name=name,
                inputs=self._identity(trace_metadata),
                run_type="chain",
                project_name=self._project_name,
                id=run_id,
                start_time=start_time,
                extra={"metadata": filter_safe_metadata(metadata)},
            )
            return {"run_id": run_id, "name": name, "start_time": start_time}
        except Exception:
            # Tracing failure is non-fatal
            return None

    def end_span(self, span: Any, status: str, metadata: Dict[str, Any]) -> None:
        if not self.is_enabled() or span is None:
            return

        try:
            end_time = datetime.now(timezone.utc)
            outputs = filter_safe_metadata(metadata)
            outputs["status"] = status
            outputs["duration_ms"] = int((end_time - span["start_time"]).total_seconds() * 1000)
            self._client.update_run(
                span["run_id"],
                end_time=end_time,
                outputs=outputs,
                error=status if status in _FAILED_STATUSES else None,
            )
        except Exception:
            pass

    def record_event(
        self, name: str, metadata: Dict[str, Any], trace_metadata: TraceMetadata
    ) -> None:
        if not self.is_enabled():
            return

        try:
            now = datetime.now(timezone.utc)
            self._client.create_run(
                name=name,
                inputs=self._identity(trace_metadata),
                run_type="tool" if name.startswith(("web_search", "tool_call")) else "chain",
                project_name=self._project_name,
                start_time=now,
                end_time=now,
                outputs=filter_safe_metadata(metadata),
            )
        except Exception:
            pass

    def is_enabled(self) -> bool:
        return self._enabled and self._client is not None

    @staticmethod
    def _identity(trace_metadata: TraceMetadata) -> Dict[str, Any]:
        identity = {"trace_id": trace_metadata.trace_id}
        if trace_metadata.conversation_id:
            identity["conversation_id"] = trace_metadata.conversation_id
        if trace_metadata.message_id:
            identity["message_id"] = trace_metadata.message_id
        return identity
