"""
Tool Interface

Abstract interface for tools the model may call mid-stream.

Enforces:
- Tools declare a JSON schema for their arguments
- Tools return text that can be folded into the conversation
- Tools never raise; failures are described in the returned text
"""

from abc import ABC, abstractmethod
from typing import Any, Dict, List

from pydantic import BaseModel

from inference.types import ToolDeclaration


class ToolInputSchema(BaseModel):
    """Schema for tool inputs."""

    properties: Dict[str, Dict[str, Any]] = {}
    required: List[str] = []


class ToolInterface(ABC):
    """
    Abstract base for all tools.
    """

    name: str
    description: str
    input_schema: ToolInputSchema

    @abstractmethod
    async def execute(self, input_dict: Dict[str, Any]) -> str:
        """
        Execute tool with given (already parsed) arguments.

        Must return text describing either the result or the failure.
        """
        pass

    def to_declaration(self) -> ToolDeclaration:
        """Declaration offered to the model."""
        return ToolDeclaration(
            name=self.name,
            description=self.description,
            parameters={
                "type": "object",
                "properties": self.input_schema.properties,
                "required": self.input_schema.required,
            },
        )

    def _validate_input(self, input_dict: Dict[str, Any]) -> bool:
        """Validate input against schema."""
        # Check required fields
        for field in self.input_schema.required:
            if field not in input_dict:
                return False
        return True
