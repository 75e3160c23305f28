"""
Web Search Tool (Tavily-backed implementation).

Implements ToolInterface using TavilyClient.

Invariants:
- Does NOT touch conversation history
- Does NOT log secrets
- Never raises: every failure becomes descriptive text the model can read

Usage:
    tool = WebSearchTool(client=TavilyClient(api_key="tvly-..."))
    text = await tool.search("latest AI news")
"""

import logging
import time
from typing import Any, Dict, Optional
from uuid import uuid4

from agent.search.tavily_client import SearchArgs, SearchResponse, TavilyClient
from agent.tools.base import ToolInterface, ToolInputSchema
from agent.tracing.tracer import NoOpTracer, TraceMetadata, Tracer

logger = logging.getLogger(__name__)

MISSING_KEY_MESSAGE = (
    "Web search is not available (missing Tavily API key). "
    "Please configure TAVILY_API_KEY in your environment variables."
)


class WebSearchTool(ToolInterface):
    """
    Web search tool backed by Tavily.

    Fixed result cap (5) and "basic" depth.

    Tool name: "web_search"
    """

    name = "web_search"
    description = (
        "Search the web for current information, news, facts, or research on any topic. "
        "Use this when you need up-to-date information that may not be in your training data, "
        "or when the question depends on today's date or recent events."
    )
    input_schema = ToolInputSchema(
        properties={
            "query": {
                "type": "string",
                "description": "The search query to find information about",
            },
        },
        required=["query"],
    )

    MAX_RESULTS = 5
    SEARCH_DEPTH = "basic"

    def __init__(
        self,
        client: Optional[TavilyClient] = None,
        tracer: Optional[Tracer] = None,
    ):
        """
        Args:
            client: TavilyClient instance (creates an unconfigured one if None).
            tracer: Optional Tracer for trace emission.
        """
        self._client = client or TavilyClient()
        self._tracer = tracer or NoOpTracer()

    async def execute(self, input_dict: Dict[str, Any]) -> str:
        if not self._validate_input(input_dict):
            return "Web search could not run: missing required field 'query'."
        return await self.search(str(input_dict.get("query", "")))

    async def search(self, query: str, trace_metadata: Optional[TraceMetadata] = None) -> str:
        """
        Search the web and format the results as text.

        The query is expected to be non-empty; callers guard that.
        """
        trace_metadata = trace_metadata or TraceMetadata(trace_id=str(uuid4()))
        start = time.time()

        if not self._client.credentials_present():
            logger.warning("TAVILY_API_KEY not configured")
            self._record_failure("missing_credentials", trace_metadata)
            return MISSING_KEY_MESSAGE

        logger.info(f'Searching the web for: "{query}"')
        response = await self._client.search(
            SearchArgs(query=query, max_results=self.MAX_RESULTS, search_depth=self.SEARCH_DEPTH)
        )
        text = self.format_response(query, response)

        if response.status == "success":
            try:
                self._tracer.record_event(
                    "web_search_completed",
                    {
                        "status": "success",
                        "result_length": len(text),
                        "duration_ms": int((time.time() - start) * 1000),
                    },
                    trace_metadata,
                )
            except Exception:
                # Tracing failure is non-fatal
                pass
        else:
            self._record_failure(response.error_type or "unknown", trace_metadata)

        return text

    @staticmethod
    def format_response(query: str, response: SearchResponse) -> str:
        """Render a SearchResponse as conversation text."""
        if response.status == "error":
            if response.error_type == "missing_credentials":
                return MISSING_KEY_MESSAGE
            if response.error_type == "http_error":
                return f"Web search failed: {response.status_code} - {response.error_detail or ''}"
            return f'Error performing web search for "{query}": {response.error_detail or "Unknown error"}'

        if not response.results:
            return (
                f'No search results found for "{query}". The query might be too specific '
                f"or the topic might not have recent information available."
            )

        blocks = [
            f"[{index}] {result.title}\nSource: {result.url}\n{result.content}\n"
            for index, result in enumerate(response.results, 1)
        ]
        text = f'Found {len(response.results)} search results for "{query}":\n\n' + "\n".join(blocks)

        if response.answer:
            text = f"Quick Answer: {response.answer}\n\n{text}"

        return text

    def _record_failure(self, reason: str, trace_metadata: TraceMetadata) -> None:
        try:
            self._tracer.record_event(
                "web_search_failed", {"status": "failure", "reason": reason}, trace_metadata
            )
        except Exception:
            pass
