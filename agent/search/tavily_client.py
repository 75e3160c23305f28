"""
Tavily Search Client.

Single-request web search against the Tavily REST API.

Invariants:
- API key travels in the request body only, never logged
- Pydantic response validation
- Fixed result cap (5) and "basic" search depth
- Never raises; all errors return SearchResponse(status="error")
"""

import logging
from typing import List, Literal, Optional

import httpx
from pydantic import BaseModel, Field

logger = logging.getLogger(__name__)


# ──────────────────────────────────────────────────────────────
# SCHEMAS
# ──────────────────────────────────────────────────────────────


class SearchArgs(BaseModel):
    """Search input."""

    query: str = Field(..., description="Free-text search query")
    max_results: int = Field(default=5, ge=1, le=5, description="Max results (1–5)")
    search_depth: Literal["basic", "advanced"] = "basic"


class SearchResult(BaseModel):
    """A single search result."""

    title: str = ""
    url: str = ""
    content: str = ""


class SearchResponse(BaseModel):
    """Structured response from the search provider."""

    status: Literal["success", "error"]
    answer: Optional[str] = None
    results: List[SearchResult] = Field(default_factory=list)
    # Populated on error only
    error_type: Optional[str] = None   # missing_credentials | http_error | unexpected_error
    status_code: Optional[int] = None
    error_detail: Optional[str] = None


# ──────────────────────────────────────────────────────────────
# CLIENT
# ──────────────────────────────────────────────────────────────


class TavilyClient:
    """
    Tavily web-search client.

    Usage:
        client = TavilyClient(api_key="tvly-...")
        response = await client.search(SearchArgs(query="AI news today"))

    Guarantees:
    - Never raises (returns SearchResponse(status="error") on any failure)
    - Validates response schema via Pydantic
    """

    DEFAULT_URL = "https://api.tavily.com/search"

    def __init__(
        self,
        api_key: Optional[str] = None,
        search_url: Optional[str] = None,
        timeout: float = 15.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """
        Args:
            api_key:    Tavily API key (empty means search is unavailable)
            search_url: Endpoint override
            timeout:    Request timeout in seconds
            transport:  httpx transport override (unit tests use httpx.MockTransport)
        """
        self._api_key = api_key or ""
        self.search_url = search_url or self.DEFAULT_URL
        self.timeout = timeout
        self._transport = transport

    def credentials_present(self) -> bool:
        return bool(self._api_key) and not self._api_key.startswith("your_")

    async def search(self, args: SearchArgs) -> SearchResponse:
        """
        Run one search request.
        """
        if not self.credentials_present():
            return SearchResponse(status="error", error_type="missing_credentials")

        payload = {
            "api_key": self._api_key,
            "query": args.query,
            "search_depth": args.search_depth,
            "include_answer": True,
            "include_domains": [],
            "exclude_domains": [],
            "max_results": args.max_results,
        }

        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                response = await client.post(
                    self.search_url,
                    json=payload,
                    headers={"Content-Type": "application/json"},
                )

            if response.status_code < 200 or response.status_code >= 300:
                logger.error(f"Tavily API error ({response.status_code})")
                return SearchResponse(
                    status="error",
                    error_type="http_error",
                    status_code=response.status_code,
                    error_detail=response.text,
                )

            data = response.json()
            results = [
                SearchResult(
                    title=str(item.get("title") or ""),
                    url=str(item.get("url") or ""),
                    content=str(item.get("content") or ""),
                )
                for item in (data.get("results") or [])[: args.max_results]
            ]
            logger.info(f"Tavily returned {len(results)} results")
            return SearchResponse(
                status="success",
                answer=data.get("answer") or None,
                results=results,
            )

        except Exception as e:
            logger.error(f"Web search exception: {type(e).__name__}: {e}")
            return SearchResponse(
                status="error",
                error_type="unexpected_error",
                error_detail=str(e) or type(e).__name__,
            )
