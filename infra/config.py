"""
Infrastructure configuration system.

Environment-based backend selection with sensible defaults.
The model defaults to Gemini through its OpenAI compatibility layer;
LLM_BACKEND=stub swaps in the scripted backend for CI.
"""

import os
from dataclasses import dataclass
from typing import Literal, Optional

from inference import ModelBackend, OpenAICompatibleBackend, ScriptedModelBackend
from agent.search import TavilyClient
from transport.stream_chat import StreamChatClient


LLMBackendType = Literal["openai", "stub"]


@dataclass
class InfraConfig:
    """Infrastructure configuration from environment."""

    # LLM
    llm_backend: LLMBackendType
    gemini_api_key: Optional[str]
    model_base_url: str
    model_name: str

    # Web search
    tavily_api_key: Optional[str]
    tavily_search_url: str
    search_timeout_s: float

    # Stream Chat
    stream_api_key: str
    stream_api_secret: str
    stream_base_url: str

    # Agent lifecycle
    inactivity_threshold_s: float
    sweep_interval_s: float
    history_max_messages: int

    @classmethod
    def from_env(cls) -> "InfraConfig":
        """
        Load configuration from environment variables.

        Defaults:
        - LLM: openai-compatible client against Gemini (gemini-2.5-flash)
        - Search: Tavily, 15s timeout
        - Agents: disposed after 8h idle, swept every 5s, 20 history entries
        """
        return cls(
            # LLM Configuration
            llm_backend=os.getenv("LLM_BACKEND", "openai"),  # type: ignore
            gemini_api_key=os.getenv("GEMINI_API_KEY") or None,
            model_base_url=os.getenv(
                "MODEL_BASE_URL", "https://generativelanguage.googleapis.com/v1beta/openai/"
            ),
            model_name=os.getenv("MODEL_NAME", "gemini-2.5-flash"),

            # Web Search Configuration
            tavily_api_key=os.getenv("TAVILY_API_KEY") or None,
            tavily_search_url=os.getenv("TAVILY_SEARCH_URL", TavilyClient.DEFAULT_URL),
            search_timeout_s=float(os.getenv("SEARCH_TIMEOUT_S", "15")),

            # Stream Chat Configuration
            stream_api_key=os.getenv("STREAM_API_KEY", ""),
            stream_api_secret=os.getenv("STREAM_API_SECRET", ""),
            stream_base_url=os.getenv("STREAM_BASE_URL", "https://chat.stream-io-api.com"),

            # Agent Lifecycle Configuration
            inactivity_threshold_s=float(os.getenv("AGENT_INACTIVITY_THRESHOLD_S", str(8 * 60 * 60))),
            sweep_interval_s=float(os.getenv("AGENT_SWEEP_INTERVAL_S", "5")),
            history_max_messages=int(os.getenv("HISTORY_MAX_MESSAGES", "20")),
        )

    @property
    def model_credential(self) -> Optional[str]:
        """Credential agents check at init; the stub backend needs none."""
        if self.llm_backend == "stub":
            return "stub"
        return self.gemini_api_key

    def create_llm_backend(self) -> ModelBackend:
        """Create LLM backend instance based on configuration."""
        if self.llm_backend == "stub":
            return ScriptedModelBackend()
        # Default to the openai-compatible client
        return OpenAICompatibleBackend(
            model_name=self.model_name,
            api_key=self.gemini_api_key,
            base_url=self.model_base_url,
        )

    def create_search_client(self) -> TavilyClient:
        return TavilyClient(
            api_key=self.tavily_api_key,
            search_url=self.tavily_search_url,
            timeout=self.search_timeout_s,
        )

    def create_chat_client(self) -> StreamChatClient:
        return StreamChatClient(
            api_key=self.stream_api_key,
            api_secret=self.stream_api_secret,
            base_url=self.stream_base_url,
        )


def get_config() -> InfraConfig:
    """Get global infrastructure configuration."""
    return InfraConfig.from_env()
