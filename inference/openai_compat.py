"""
OpenAI-compatible streaming backend.

Works against any endpoint speaking the Chat Completions protocol. The
default configuration targets Gemini's OpenAI compatibility layer.
"""

import logging
from typing import Any, AsyncIterator, Dict, Optional

from openai import AsyncOpenAI

from .base import ModelBackend, ModelBackendError
from .types import CompletionRequest, Finish, Frame, TextDelta, ToolCallDelta

logger = logging.getLogger(__name__)


def chunk_to_frames(chunk: Any) -> list:
    """
    Map one ChatCompletionChunk to frames.

    Order within a chunk: tool-call fragment, text, finish. Chunks without a
    choice produce no frames.
    """
    choices = getattr(chunk, "choices", None) or []
    if not choices:
        return []

    choice = choices[0]
    delta = getattr(choice, "delta", None)
    frames = []

    if delta is not None:
        for tc in getattr(delta, "tool_calls", None) or []:
            # Only the first call (index 0) is tracked; parallel calls are dropped
            if (getattr(tc, "index", None) or 0) != 0:
                continue
            fn = getattr(tc, "function", None)
            frames.append(
                ToolCallDelta(
                    name=getattr(fn, "name", None) if fn else None,
                    call_id=getattr(tc, "id", None),
                    arguments=(getattr(fn, "arguments", None) or "") if fn else "",
                )
            )

        content = getattr(delta, "content", None)
        if content:
            frames.append(TextDelta(content))

    finish_reason = getattr(choice, "finish_reason", None)
    if finish_reason:
        frames.append(Finish(finish_reason))

    return frames


class OpenAICompatibleBackend(ModelBackend):
    """
    Streaming chat-completions backend built on the openai SDK.
    """

    def __init__(
        self,
        model_name: str,
        api_key: Optional[str],
        base_url: Optional[str] = None,
        client: Optional[AsyncOpenAI] = None,
    ):
        """
        Args:
            model_name: Model identifier (e.g. "gemini-2.5-flash")
            api_key:    Provider API key
            base_url:   OpenAI-compatible endpoint
            client:     Pre-built AsyncOpenAI client (tests)
        """
        self.model_name = model_name
        self.base_url = base_url
        self._api_key = api_key
        self._client = client

    def _get_client(self) -> AsyncOpenAI:
        # Built on first use: the SDK refuses to construct without a key
        if self._client is None:
            self._client = AsyncOpenAI(api_key=self._api_key, base_url=self.base_url)
        return self._client

    async def open_stream(self, request: CompletionRequest) -> AsyncIterator[Frame]:
        kwargs: Dict[str, Any] = {
            "model": self.model_name,
            "messages": [m.model_dump() for m in request.messages],
            "stream": True,
        }
        if request.tools:
            kwargs["tools"] = [t.to_openai() for t in request.tools]
            kwargs["tool_choice"] = request.tool_choice or "auto"

        try:
            stream = await self._get_client().chat.completions.create(**kwargs)
        except Exception as e:
            raise ModelBackendError(f"Failed to open completion stream: {e}") from e

        logger.debug(
            f"Opened completion stream model={self.model_name} "
            f"messages={len(request.messages)} tools={len(request.tools)}"
        )
        return self._frames(stream)

    async def _frames(self, stream) -> AsyncIterator[Frame]:
        try:
            async for chunk in stream:
                for frame in chunk_to_frames(chunk):
                    yield frame
        finally:
            close = getattr(stream, "close", None)
            if close is not None:
                await close()
