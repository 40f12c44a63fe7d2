"""
Agent Registry

Explicit agent registration. Registered agents are immutable so cost and
latency baselines stay stable across an analysis session.

DESIGN RULES:
- Agents are registered explicitly
- Re-registration under the same id is rejected, never overwritten
- Thread-safe for concurrent access
"""

from threading import Lock
from typing import Any, Dict, List, Mapping, Optional, Union

from app.core.errors import DuplicateAgentError, UnknownAgentError
from schemas.agent import Agent


class AgentRegistry:
    """
    Central registry of agent definitions.

    Features:
    - Explicit registration (no auto-discovery)
    - Lookup by id, strict or lenient
    """

    def __init__(self):
        self._agents: Dict[str, Agent] = {}
        self._lock = Lock()

    def register(self, agent: Union[Agent, Mapping[str, Any]]) -> Agent:
        """
        Register an agent.

        Args:
            agent: Agent model or a descriptor dict ({"id": ..., "costPerToken": ...})

        Returns:
            The registered Agent

        Raises:
            DuplicateAgentError: if the id is already registered
        """
        if not isinstance(agent, Agent):
            agent = Agent.model_validate(agent)

        with self._lock:
            if agent.id in self._agents:
                raise DuplicateAgentError(agent.id)
            self._agents[agent.id] = agent
        return agent

    def register_if_absent(self, agent: Union[Agent, Mapping[str, Any]]) -> Agent:
        """
        Register an agent unless its id is already taken.

        Check and insert happen under one lock acquisition, so concurrent
        callers never see DuplicateAgentError.

        Returns:
            The agent registered under that id, which is the existing one if any
        """
        if not isinstance(agent, Agent):
            agent = Agent.model_validate(agent)

        with self._lock:
            return self._agents.setdefault(agent.id, agent)

    def lookup(self, agent_id: str) -> Agent:
        """
        Get an agent by id.

        Raises:
            UnknownAgentError: if no agent has that id
        """
        with self._lock:
            agent = self._agents.get(agent_id)
        if agent is None:
            raise UnknownAgentError(agent_id)
        return agent

    def get(self, agent_id: str) -> Optional[Agent]:
        """Lenient lookup used by analysis (None if unknown)."""
        with self._lock:
            return self._agents.get(agent_id)

    def list_all(self) -> List[Agent]:
        """Get all registered agents."""
        with self._lock:
            return list(self._agents.values())

    def __contains__(self, agent_id: str) -> bool:
        with self._lock:
            return agent_id in self._agents

    def __len__(self) -> int:
        with self._lock:
            return len(self._agents)

    def clear(self) -> None:
        """Drop all agents (used by dispose)."""
        with self._lock:
            self._agents.clear()
