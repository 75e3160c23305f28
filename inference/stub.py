import asyncio
from typing import AsyncIterator, List, Optional, Sequence

from .base import ModelBackend, ModelBackendError
from .types import CompletionRequest, Finish, Frame, TextDelta


class ScriptedModelBackend(ModelBackend):
    """
    Deterministic fake model for testing and CI.

    Each call to open_stream replays the next scripted frame list. Once the
    script is exhausted a fixed text reply is streamed. Every request is
    recorded so callers can assert on what was sent.
    """

    DEFAULT_REPLY = "This is a stubbed response."

    def __init__(
        self,
        scripts: Optional[Sequence[Sequence[Frame]]] = None,
        fail_on_call: Optional[int] = None,
        frame_delay_s: float = 0.0,
    ):
        """
        Args:
            scripts:       One frame list per expected call, in call order
            fail_on_call:  1-based call number that raises ModelBackendError
            frame_delay_s: Sleep between frames (lets tests interleave events)
        """
        self._scripts: List[List[Frame]] = [list(s) for s in (scripts or [])]
        self._fail_on_call = fail_on_call
        self._frame_delay_s = frame_delay_s
        self.requests: List[CompletionRequest] = []
        self.closed_streams = 0

    @property
    def call_count(self) -> int:
        return len(self.requests)

    async def open_stream(self, request: CompletionRequest) -> AsyncIterator[Frame]:
        self.requests.append(request)

        if self._fail_on_call is not None and self.call_count == self._fail_on_call:
            raise ModelBackendError("stub backend configured to fail")

        index = self.call_count - 1
        if index < len(self._scripts):
            frames = self._scripts[index]
        else:
            frames = [TextDelta(self.DEFAULT_REPLY), Finish("stop")]

        return self._replay(frames)

    async def _replay(self, frames: List[Frame]) -> AsyncIterator[Frame]:
        try:
            for frame in frames:
                if self._frame_delay_s:
                    await asyncio.sleep(self._frame_delay_s)
                yield frame
        finally:
            self.closed_streams += 1
