"""
Web search provider clients.
"""

from agent.search.tavily_client import SearchArgs, SearchResponse, SearchResult, TavilyClient

__all__ = ["SearchArgs", "SearchResponse", "SearchResult", "TavilyClient"]
