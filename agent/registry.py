"""
Agent Registry
==============

Process-wide map of channel → running agent.

Responsibilities:
- Start at most one agent per channel, even under concurrent start requests
- Provision the bot user (upsert + channel membership) before the agent starts
- Stop agents on request or after a period of inactivity (periodic sweep)
- Report per-channel status

Invariants:
- A channel key is either active, pending, or absent; never both active and pending
- Check-then-mark sequences never await in between
"""

import asyncio
import logging
import time
from enum import Enum
from typing import Callable, Dict, List, Optional, Set

from agent.writing_agent import WritingAssistantAgent
from transport.stream_chat.client import StreamChatClient

logger = logging.getLogger(__name__)

BOT_DISPLAY_NAME = "AI Writing Assistant"

# (channel_type, channel_id, bot_user_id) -> un-initialized agent
AgentFactory = Callable[[str, str, str], WritingAssistantAgent]


class AgentStatus(str, Enum):
    CONNECTED = "connected"
    CONNECTING = "connecting"
    DISCONNECTED = "disconnected"


def bot_user_id_for(channel_id: str) -> str:
    """Bot user id (and registry key) for a channel: ai-bot-<id without '!'>."""
    return f"ai-bot-{channel_id.replace('!', '')}"


class AgentRegistry:
    def __init__(
        self,
        agent_factory: AgentFactory,
        chat_client: StreamChatClient,
        inactivity_threshold_s: float = 8 * 60 * 60,
        sweep_interval_s: float = 5.0,
        clock: Callable[[], float] = time.time,
    ):
        self._agent_factory = agent_factory
        self._chat_client = chat_client
        self.inactivity_threshold_s = inactivity_threshold_s
        self.sweep_interval_s = sweep_interval_s
        self._clock = clock

        self._agents: Dict[str, WritingAssistantAgent] = {}
        self._pending: Set[str] = set()
        self._sweep_task: Optional[asyncio.Task] = None

    @property
    def active_count(self) -> int:
        return len(self._agents)

    def get_agent(self, channel_id: str) -> Optional[WritingAssistantAgent]:
        return self._agents.get(bot_user_id_for(channel_id))

    # ── Lifecycle ─────────────────────────────────────────────

    async def init(self) -> None:
        if self._sweep_task is None or self._sweep_task.done():
            self._sweep_task = asyncio.create_task(self._sweep_loop())
            logger.info(
                f"Agent sweep running every {self.sweep_interval_s}s "
                f"(inactivity threshold {self.inactivity_threshold_s}s)"
            )

    async def teardown(self) -> None:
        """Stop the sweep and dispose every agent. Bot users are kept."""
        if self._sweep_task is not None:
            self._sweep_task.cancel()
            try:
                await self._sweep_task
            except asyncio.CancelledError:
                pass
            self._sweep_task = None

        agents = list(self._agents.values())
        self._agents.clear()
        for agent in agents:
            try:
                await agent.dispose()
            except Exception as e:
                logger.error(f"Error disposing agent {agent.bot_user_id}: {e}", exc_info=True)

    async def _sweep_loop(self) -> None:
        while True:
            await asyncio.sleep(self.sweep_interval_s)
            try:
                await self.sweep()
            except Exception as e:
                logger.error(f"Agent sweep failed: {e}", exc_info=True)

    # ── Operations ────────────────────────────────────────────

    async def start_agent(self, channel_id: str, channel_type: str = "messaging") -> None:
        """
        Start the channel's agent unless one is already active or starting.

        Raises whatever provisioning or agent init raised (e.g.
        MissingCredentialError); the pending mark is cleared either way.
        """
        user_id = bot_user_id_for(channel_id)

        if user_id in self._agents or user_id in self._pending:
            logger.info(f"AI Agent {user_id} already started or is pending.")
            return
        self._pending.add(user_id)

        try:
            logger.info(f"Creating new agent for {user_id}")
            await self._chat_client.upsert_user(user_id, name=BOT_DISPLAY_NAME)
            await self._chat_client.add_members(channel_type, channel_id, [user_id])

            agent = self._agent_factory(channel_type, channel_id, user_id)
            try:
                await agent.init()
            except Exception:
                await agent.dispose()
                raise

            if user_id in self._agents:
                # Another start won the race while this one was initializing
                logger.info(f"Agent {user_id} appeared during init; discarding duplicate")
                await agent.dispose()
            else:
                self._agents[user_id] = agent
        finally:
            self._pending.discard(user_id)

    async def stop_agent(self, channel_id: str) -> bool:
        """Dispose the channel's agent and hard-delete its bot user. False if none was active."""
        user_id = bot_user_id_for(channel_id)
        agent = self._agents.pop(user_id, None)
        if agent is None:
            logger.info(f"Agent for {user_id} not found.")
            return False

        logger.info(f"Disposing agent for {user_id}")
        await self._dispose_agent(agent)
        return True

    async def sweep(self) -> List[str]:
        """Dispose agents idle longer than the inactivity threshold; returns their ids."""
        now = self._clock()
        expired = [
            user_id
            for user_id, agent in self._agents.items()
            if now - agent.last_interaction_at > self.inactivity_threshold_s
        ]

        for user_id in expired:
            agent = self._agents.pop(user_id, None)
            if agent is None:
                continue
            logger.info(f"Disposing AI Agent due to inactivity: {user_id}")
            try:
                await self._dispose_agent(agent)
            except Exception as e:
                logger.error(f"Error disposing idle agent {user_id}: {e}", exc_info=True)

        return expired

    def status(self, channel_id: str) -> AgentStatus:
        user_id = bot_user_id_for(channel_id)
        if user_id in self._agents:
            return AgentStatus.CONNECTED
        if user_id in self._pending:
            return AgentStatus.CONNECTING
        return AgentStatus.DISCONNECTED

    async def _dispose_agent(self, agent: WritingAssistantAgent) -> None:
        await agent.dispose()
        await self._chat_client.delete_user(agent.bot_user_id, hard_delete=True)
