"""
Infrastructure initialization and bootstrap.

Singleton pattern for creating all service backends from configuration.
"""

import logging
from typing import Optional

from inference import ModelBackend
from agent.registry import AgentRegistry
from agent.tools import WebSearchTool
from agent.tracing import Tracer, create_tracer
from agent.writing_agent import WritingAssistantAgent
from transport.events import EventBus
from transport.stream_chat import StreamChannelTransport, StreamChatClient

from .config import InfraConfig, get_config

logger = logging.getLogger(__name__)


class InfraBootstrap:
    """
    Bootstrap infrastructure based on configuration.

    Singleton pattern - single instance per process.
    """

    _instance: Optional["InfraBootstrap"] = None

    def __init__(
        self,
        config: Optional[InfraConfig] = None,
        chat_client: Optional[StreamChatClient] = None,
        llm_backend: Optional[ModelBackend] = None,
        tracer: Optional[Tracer] = None,
    ):
        """
        Initialize bootstrap with configuration.

        chat_client / llm_backend / tracer override the configured ones (tests).
        """
        self.config = config or get_config()
        self.tracer = tracer or create_tracer()
        self.llm_backend = llm_backend or self.config.create_llm_backend()
        self.search_tool = WebSearchTool(client=self.config.create_search_client(), tracer=self.tracer)
        self.chat_client = chat_client or self.config.create_chat_client()
        self.event_bus = EventBus()
        self.registry = AgentRegistry(
            agent_factory=self.create_agent,
            chat_client=self.chat_client,
            inactivity_threshold_s=self.config.inactivity_threshold_s,
            sweep_interval_s=self.config.sweep_interval_s,
        )

    @classmethod
    def get_instance(cls, config: Optional[InfraConfig] = None) -> "InfraBootstrap":
        """
        Get singleton instance.

        Args:
            config: Optional custom configuration (only used first time)

        Returns:
            Singleton InfraBootstrap instance
        """
        if cls._instance is None:
            cls._instance = cls(config)
        return cls._instance

    @classmethod
    def install(cls, instance: "InfraBootstrap") -> "InfraBootstrap":
        """Replace the singleton with a prepared instance (for testing)."""
        cls._instance = instance
        return instance

    @classmethod
    def reset(cls):
        """Reset singleton (for testing)."""
        cls._instance = None

    def create_agent(self, channel_type: str, channel_id: str, bot_user_id: str) -> WritingAssistantAgent:
        """Agent factory handed to the registry."""
        transport = StreamChannelTransport(
            client=self.chat_client,
            bus=self.event_bus,
            channel_type=channel_type,
            channel_id=channel_id,
            bot_user_id=bot_user_id,
        )
        return WritingAssistantAgent(
            transport=transport,
            model_backend=self.llm_backend,
            search_tool=self.search_tool,
            cid=transport.cid,
            api_key=self.config.model_credential,
            tracer=self.tracer,
            history_max_messages=self.config.history_max_messages,
        )

    async def startup(self) -> None:
        await self.registry.init()

    async def shutdown(self) -> None:
        await self.registry.teardown()
        await self.chat_client.aclose()

    def __repr__(self) -> str:
        """String representation showing configured backends."""
        return (
            f"InfraBootstrap(llm={self.config.llm_backend}, "
            f"model={self.config.model_name}, "
            f"search={'tavily' if self.config.tavily_api_key else 'disabled'})"
        )
