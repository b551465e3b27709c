# agent_registry.py - Agent lookup by type
# This file keeps agent factories and the agents they build, keyed by agent type.

import logging
import threading
from typing import Callable, Dict, List

from .agent_types.agent import Agent, AgentConfigurationError

logger = logging.getLogger(__name__)

AgentFactory = Callable[["AgentRegistry"], Agent]

class AgentRegistry:
    """Registry of agents by type.

    Agents are built lazily on first lookup and cached. Factories receive the
    registry so they can look up their handoff targets. Construction is
    guarded by a re-entrant lock so concurrent first lookups build once.
    """

    def __init__(self):
        self._factories: Dict[str, AgentFactory] = {}
        self._agents: Dict[str, Agent] = {}
        self._lock = threading.RLock()

    def register_factory(self, agent_type: str, factory: AgentFactory):
        with self._lock:
            self._factories[agent_type] = factory
            self._agents.pop(agent_type, None)
        logger.info(f"Registered agent factory for {agent_type}")

    def register(self, agent_type: str, agent: Agent):
        with self._lock:
            self._agents[agent_type] = agent
        logger.info(f"Registered agent {agent.name} as {agent_type}")

    def get(self, agent_type: str) -> Agent:
        agent = self._agents.get(agent_type)
        if agent is not None:
            return agent

        with self._lock:
            agent = self._agents.get(agent_type)
            if agent is not None:
                return agent

            factory = self._factories.get(agent_type)
            if factory is None:
                raise AgentConfigurationError(f"Unknown agent type: {agent_type}")

            agent = factory(self)
            self._agents[agent_type] = agent
            logger.info(f"Built agent {agent.name} for type {agent_type}")
            return agent

    def has(self, agent_type: str) -> bool:
        return agent_type in self._factories or agent_type in self._agents

    def list_agent_types(self) -> List[str]:
        with self._lock:
            return sorted(set(self._factories) | set(self._agents))

    def clear(self):
        """Drop built agents; factories stay registered."""
        with self._lock:
            for agent_type in list(self._agents):
                if agent_type in self._factories:
                    del self._agents[agent_type]
