# ==============================
# Agent Extensions
# ==============================
"""
Settings-driven registration of skills and subagents.

Each entry in `settings.agent.extensions` is an importable module path. The module must
define `register(agent)`; it receives the ToolLoopAgent and adds whatever skills or
subagents it provides through the agent's own `add_skill` / `add_subagent` surface.

Rules:
- Extensions load in listed order; a duplicate name raises like any direct registration.
- Import errors and a missing `register` raise ConfigurationError naming the module.
"""

from __future__ import annotations

import importlib
import logging
from typing import Any, Iterable, List

from agentloop.contracts.errors import ConfigurationError

logger = logging.getLogger("agentloop.extensions")


def load_extensions(agent: Any, modules: Iterable[str]) -> List[str]:
    loaded: List[str] = []
    for name in modules:
        try:
            module = importlib.import_module(name)
        except ImportError as exc:
            raise ConfigurationError(f"Cannot import agent extension {name!r}: {exc}") from exc
        register_fn = getattr(module, "register", None)
        if not callable(register_fn):
            raise ConfigurationError(f"Agent extension {name!r} must define register(agent)")
        register_fn(agent)
        loaded.append(name)
        logger.info("extension.loaded", extra={"event": "extension.loaded", "payload": {"module": name}})
    return loaded
