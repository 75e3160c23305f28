"""
Prompt Builder layer for the writing assistant.

Exports the system prompt assembler and the search-results context entry.
"""

from .prompt_builder import (
    SYSTEM_PROMPT_TEMPLATE,
    build_search_results_message,
    build_system_prompt,
    build_writing_task_context,
)

__all__ = [
    "SYSTEM_PROMPT_TEMPLATE",
    "build_search_results_message",
    "build_system_prompt",
    "build_writing_task_context",
]
