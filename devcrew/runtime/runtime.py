"""
Runtime - Top-level devcrew API

The Runtime owns the bus, the agents loaded from configuration files and
the optional transcript store.

Usage:
    runtime = await create_runtime(RuntimeConfig.from_env())
    replies = runtime.user_messages()

    await runtime.start()
    await runtime.submit("Build a console calculator")

    async for message in replies:
        print(message.content)

    await runtime.shutdown()
"""

import os
from datetime import timedelta
from typing import Dict, List, Optional

from .agent import ConfiguredAgent
from .factory import AgentFactory, entry_agent
from .message_bus import MessageBus, Subscription
from .types import Message, MessageType, USER
from ..config import RuntimeConfig
from ..llm.anthropic_service import AnthropicCompletionService
from ..llm.base import CompletionService
from ..llm.chat_completions import ChatCompletionsService
from ..persistence.service import TranscriptStore
from ..tools.base import ToolRegistry
from ..tools.file_tools import FileTools
from ..tools.task_tools import TaskTools
from ..utils.logger import get_logger

logger = get_logger(__name__)


class Runtime:
    """
    Runtime - Top-level devcrew runtime.

    Features:
    - Agent lifecycle (start/stop as a group)
    - User entry point into the entry agent
    - User-facing message stream
    """

    def __init__(
        self,
        config: RuntimeConfig,
        bus: MessageBus,
        agents: List[ConfiguredAgent],
        completion: CompletionService,
        tools: ToolRegistry,
        transcript: Optional[TranscriptStore] = None,
    ):
        self._config = config
        self._bus = bus
        self._agents: Dict[str, ConfiguredAgent] = {a.name: a for a in agents}
        self._entry = entry_agent(agents)
        self._completion = completion
        self._tools = tools
        self._transcript = transcript
        self._started = False
        self._is_shutdown = False

    @property
    def config(self) -> RuntimeConfig:
        return self._config

    @property
    def bus(self) -> MessageBus:
        return self._bus

    @property
    def tools(self) -> ToolRegistry:
        return self._tools

    @property
    def transcript(self) -> Optional[TranscriptStore]:
        return self._transcript

    @property
    def entry_agent(self) -> Optional[ConfiguredAgent]:
        return self._entry

    def get_agent(self, name: str) -> Optional[ConfiguredAgent]:
        return self._agents.get(name)

    def list_agents(self) -> List[ConfiguredAgent]:
        return list(self._agents.values())

    # =========================================================================
    # Lifecycle
    # =========================================================================

    async def start(self) -> None:
        """Start the transcript recorder and every agent."""
        if self._is_shutdown:
            raise RuntimeError("Runtime is shutdown")
        if self._started:
            return

        if self._transcript is not None:
            self._transcript.attach(self._bus)
        for agent in self._agents.values():
            await agent.start()
        self._started = True
        logger.info(
            "Runtime started",
            agents=",".join(self._agents),
            entry_agent=self._entry.name if self._entry else None,
        )

    async def shutdown(self) -> None:
        """Stop agents, let in-flight work finish, and release resources."""
        if self._is_shutdown:
            return
        self._is_shutdown = True

        for agent in self._agents.values():
            await agent.stop()
        for agent in self._agents.values():
            await agent.join()

        if self._transcript is not None:
            await self._transcript.detach()
            self._transcript.close()

        await self._completion.close()
        self._bus.close()
        logger.info("Runtime shutdown complete")

    # =========================================================================
    # User interaction
    # =========================================================================

    async def submit(
        self,
        content: str,
        session_id: Optional[str] = None,
        recipient: Optional[str] = None,
    ) -> Message:
        """
        Send a user request to the entry agent.

        Args:
            content: User input
            session_id: Continue an existing session instead of starting one
            recipient: Agent to answer instead of the entry agent, typically
                the one that asked the user a question

        Returns:
            The published message
        """
        if recipient is None:
            if self._entry is None:
                raise RuntimeError("No entry agent configured")
            recipient = self._entry.name

        metadata = {"SessionId": session_id} if session_id else {}
        message = Message(
            sender=USER,
            recipient=recipient,
            content=content,
            type=MessageType.TASK_REQUEST,
            metadata=metadata,
        )
        await self._bus.publish(message)
        return message

    def user_messages(self) -> Subscription:
        """Stream of every message addressed to the user."""
        return self._bus.subscribe(USER)


# =============================================================================
# Factory Function
# =============================================================================


def create_completion_service(config: RuntimeConfig, registry: ToolRegistry) -> CompletionService:
    if config.provider == "anthropic":
        return AnthropicCompletionService(
            api_key=config.api_key,
            registry=registry,
            model=config.model,
            max_tokens=config.max_tokens,
            temperature=config.temperature,
            base_url=config.base_url,
            timeout=config.http_timeout,
        )
    return ChatCompletionsService(
        api_key=config.api_key,
        registry=registry,
        base_url=config.base_url,
        model=config.model,
        max_tokens=config.max_tokens,
        temperature=config.temperature,
        timeout=config.http_timeout,
    )


async def create_runtime(
    config: RuntimeConfig,
    completion: Optional[CompletionService] = None,
    tools: Optional[ToolRegistry] = None,
) -> Runtime:
    """
    Create a Runtime from settings.

    Args:
        config: Runtime settings
        completion: Completion service (built from settings when omitted)
        tools: Tool registry (built-in file and task tools when omitted)

    Returns:
        Runtime with agents loaded but not started
    """
    bus = MessageBus()

    if tools is None:
        tools = ToolRegistry()
        os.makedirs(config.project_root, exist_ok=True)
        FileTools.register_all(tools, config.project_root)
        TaskTools.register_all(tools, bus, coding_agent=config.coding_agent)

    if completion is None:
        completion = create_completion_service(config, tools)

    factory = AgentFactory(
        bus,
        completion,
        tools,
        session_ttl=timedelta(minutes=config.session_ttl_minutes),
        sweep_interval=timedelta(minutes=config.sweep_interval_minutes),
        max_iterations=config.max_tool_iterations,
    )
    agents = factory.load_agents(config.agents_dir)

    transcript = TranscriptStore(config.transcript_db_url) if config.transcript_db_url else None

    runtime = Runtime(config, bus, agents, completion, tools, transcript)
    logger.info("Runtime created successfully", agents=len(agents))
    return runtime
