"""
Agent factory: builds ConfiguredAgents from JSON configuration files.
"""

import glob
import os
from typing import Any, List, Optional, Sequence

from .agent import ConfiguredAgent
from .agent_config import AgentConfig, AgentConfigError
from .message_bus import MessageBus
from ..llm.base import CompletionService
from ..tools.base import ToolExecutor
from ..utils.logger import get_logger

logger = get_logger(__name__)


class AgentFactory:
    """Creates agents that share one bus, completion service and tool executor."""

    def __init__(
        self,
        bus: MessageBus,
        completion: CompletionService,
        tools: ToolExecutor,
        **agent_options: Any,
    ):
        """
        Args:
            bus: Message bus the agents subscribe to
            completion: Completion service used by every agent
            tools: Tool executor used by every agent
            **agent_options: Extra keyword arguments for ConfiguredAgent
                (session_ttl, sweep_interval, max_iterations, ...)
        """
        self.bus = bus
        self.completion = completion
        self.tools = tools
        self.agent_options = agent_options

    def create_agent(self, config_path: str) -> ConfiguredAgent:
        """Create one agent from a configuration file."""
        config = AgentConfig.load(config_path)
        return self.from_config(config)

    def from_config(self, config: AgentConfig) -> ConfiguredAgent:
        agent = ConfiguredAgent(config, self.bus, self.completion, self.tools, **self.agent_options)
        logger.info("Agent created", agent=config.name, is_first=config.is_first)
        return agent

    def load_agents(self, directory: str) -> List[ConfiguredAgent]:
        """
        Create an agent for every ``*.json`` file in a directory, sorted by name.

        Raises:
            AgentConfigError: directory missing, empty, or holding duplicate names
        """
        if not os.path.isdir(directory):
            raise AgentConfigError(f"Agents directory not found: {directory}")

        paths = sorted(glob.glob(os.path.join(directory, "*.json")))
        if not paths:
            raise AgentConfigError(f"No agent configuration files in {directory}")

        agents = []
        names = set()
        for path in paths:
            agent = self.create_agent(path)
            if agent.name in names:
                raise AgentConfigError(f"Duplicate agent name '{agent.name}' in {path}")
            names.add(agent.name)
            agents.append(agent)

        logger.info("Agents loaded", directory=directory, count=len(agents))
        return agents


def entry_agent(agents: Sequence[ConfiguredAgent]) -> Optional[ConfiguredAgent]:
    """The agent flagged ``is_first``; falls back to the first agent."""
    for agent in agents:
        if agent.is_first:
            return agent
    return agents[0] if agents else None
