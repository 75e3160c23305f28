from dataclasses import dataclass, field
from typing import Optional, Dict, Any, List, Literal, Union

from pydantic import BaseModel

Role = Literal["system", "user", "assistant"]


class ChatMessage(BaseModel):
    """One role-tagged entry of a conversation."""

    role: Role
    content: str


@dataclass
class ToolDeclaration:
    """Function tool offered to the model (OpenAI tool schema)."""

    name: str
    description: str
    parameters: Dict[str, Any]

    def to_openai(self) -> Dict[str, Any]:
        return {
            "type": "function",
            "function": {
                "name": self.name,
                "description": self.description,
                "parameters": self.parameters,
            },
        }


@dataclass
class CompletionRequest:
    messages: List[ChatMessage]
    tools: List[ToolDeclaration] = field(default_factory=list)
    tool_choice: Optional[str] = None   # "auto" when tools are offered
    trace_id: Optional[str] = None


# ── Stream frames ─────────────────────────────────────────────────────────────
# A streamed completion is consumed as an ordered sequence of these frames.


@dataclass(frozen=True)
class TextDelta:
    text: str


@dataclass(frozen=True)
class ToolCallDelta:
    """Fragment of a tool call; any field may be missing on a given fragment."""

    name: Optional[str] = None
    call_id: Optional[str] = None
    arguments: str = ""


@dataclass(frozen=True)
class Finish:
    reason: str   # "stop" | "tool_calls" | anything else the provider sends


Frame = Union[TextDelta, ToolCallDelta, Finish]
