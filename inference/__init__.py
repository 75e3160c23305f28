"""
Model boundary layer for LLM inference.

This package provides a clean abstraction for streaming model invocation,
allowing the agent to remain agnostic of the underlying backend.

Supported backends:
- ScriptedModelBackend: Deterministic fake model (default for CI/tests)
- OpenAICompatibleBackend: Any Chat Completions endpoint (Gemini by default)

Example usage:
    from inference import ScriptedModelBackend, CompletionRequest, ChatMessage

    backend = ScriptedModelBackend()
    frames = await backend.open_stream(
        CompletionRequest(messages=[ChatMessage(role="user", content="Hello")])
    )
    async for frame in frames:
        ...
"""

from .types import (
    ChatMessage,
    CompletionRequest,
    Finish,
    Frame,
    Role,
    TextDelta,
    ToolCallDelta,
    ToolDeclaration,
)
from .base import ModelBackend, ModelBackendError
from .stub import ScriptedModelBackend
from .openai_compat import OpenAICompatibleBackend, chunk_to_frames

__all__ = [
    "ChatMessage",
    "CompletionRequest",
    "Finish",
    "Frame",
    "Role",
    "TextDelta",
    "ToolCallDelta",
    "ToolDeclaration",
    "ModelBackend",
    "ModelBackendError",
    "ScriptedModelBackend",
    "OpenAICompatibleBackend",
    "chunk_to_frames",
]
