from abc import ABC, abstractmethod
from typing import AsyncIterator

from .types import CompletionRequest, Frame


class ModelBackendError(Exception):
    """The model request could not be started."""
    pass


class ModelBackend(ABC):
    """
    Abstract model boundary.
    Agent code must depend ONLY on this interface.
    """

    @abstractmethod
    async def open_stream(self, request: CompletionRequest) -> AsyncIterator[Frame]:
        """
        Start a streaming completion.

        Awaiting this performs the request itself, so failures to obtain a
        stream (credentials, transport) raise here, before any frame exists.
        The returned iterator yields frames in arrival order.
        """
        raise NotImplementedError
