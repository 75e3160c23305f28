"""
agent/tools package.

Tools the model can call during a streamed reply.
"""

from agent.tools.base import ToolInterface, ToolInputSchema
from agent.tools.web_search_tool import WebSearchTool

__all__ = ["ToolInterface", "ToolInputSchema", "WebSearchTool"]
