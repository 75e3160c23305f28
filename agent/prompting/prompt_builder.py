"""
Prompt Builder Layer
====================

Assembles the system prompt and the synthetic context entries the agent
injects into a conversation.

Responsibilities:
- Defines the authoritative writing-assistant system prompt
- Folds the current date and the optional writing-task context into it
- Renders web search results as the system entry that resumes generation
"""

from datetime import date
from typing import Optional

DEFAULT_CONTEXT = "General writing assistance."

SYSTEM_PROMPT_TEMPLATE = """You are an expert AI Writing Assistant. Your primary purpose is to be a collaborative writing partner.

**Your Core Capabilities:**
- Content Creation, Improvement, Style Adaptation, Brainstorming, and Writing Coaching.
- **Current Date**: Today's date is {current_date}. Please use this for any time-sensitive queries.

**Response Format:**
- Be direct and production-ready.
- Use clear formatting.
- Never begin responses with phrases like "Here's the edit:", "Here are the changes:", or similar introductory statements.
- Provide responses directly and professionally without unnecessary preambles.

**Writing Context**: {context}

Your goal is to provide accurate, current, and helpful written content."""


def format_current_date(today: Optional[date] = None) -> str:
    """"October 19, 2026" style date."""
    today = today or date.today()
    return f"{today.strftime('%B')} {today.day}, {today.year}"


def build_system_prompt(context: Optional[str] = None, today: Optional[date] = None) -> str:
    """
    Build the system prompt.

    Args:
        context: Writing-task context (e.g. "Writing Task: cover letter");
                 falls back to general assistance.
        today:   Date to embed (defaults to the current date).
    """
    return SYSTEM_PROMPT_TEMPLATE.format(
        current_date=format_current_date(today),
        context=context or DEFAULT_CONTEXT,
    )


def build_writing_task_context(writing_task: str) -> str:
    return f"Writing Task: {writing_task}"


def build_search_results_message(query: str, results: str) -> str:
    """
    System entry carrying web search results back into the conversation.

    Sent with the system role, not a tool role (Gemini compatibility layer).
    """
    return (
        f'[Web Search Results for "{query}"]\n\n'
        f"{results}\n\n"
        f"[End of Search Results]\n\n"
        f"Please provide a comprehensive answer to the user's question based on these search results."
    )
