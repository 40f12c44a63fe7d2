# Registry Package
from registry.agent_registry import AgentRegistry

__all__ = ["AgentRegistry"]
