# ==============================
# API Dependencies / Singletons
# ==============================
from __future__ import annotations

from functools import lru_cache

from agentloop.agents.extensions import load_extensions
from agentloop.config.loader import load_settings
from agentloop.config.schema import Settings
from agentloop.orchestrator.engine import ToolLoopAgent
from agentloop.tools.builtin import builtin_tools


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    settings, _ = load_settings()
    return settings


@lru_cache(maxsize=1)
def get_agent() -> ToolLoopAgent:
    """Default agent: built-in tools, plus skills/subagents from `agent.extensions`."""
    settings = get_settings()
    agent = ToolLoopAgent.from_settings(settings, tools=builtin_tools())
    load_extensions(agent, settings.agent.extensions)
    return agent
