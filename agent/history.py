"""
Conversation history for one agent.

Invariants:
- Entry 0 is always the current system prompt (replaced in place)
- Length is capped on every append: once it exceeds 1 + max_messages, it is
  truncated to the system entry plus the most recent max_messages entries
"""

from typing import List

from inference.types import ChatMessage, Role


class ConversationHistory:
    def __init__(self, system_prompt: str, max_messages: int = 20):
        if max_messages < 1:
            raise ValueError("max_messages must be at least 1")
        self.max_messages = max_messages
        self._messages: List[ChatMessage] = [ChatMessage(role="system", content=system_prompt)]

    @property
    def system_prompt(self) -> str:
        return self._messages[0].content

    def set_system_prompt(self, content: str) -> None:
        self._messages[0] = ChatMessage(role="system", content=content)

    def append(self, role: Role, content: str) -> None:
        self._messages.append(ChatMessage(role=role, content=content))
        self.apply_cap()

    def apply_cap(self) -> None:
        if len(self._messages) > self.max_messages + 1:
            self._messages = [self._messages[0]] + self._messages[-self.max_messages:]

    def snapshot(self) -> List[ChatMessage]:
        """Copy of the current entries, safe to hand to a model request."""
        return list(self._messages)

    def __len__(self) -> int:
        return len(self._messages)
