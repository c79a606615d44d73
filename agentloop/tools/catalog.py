# ==============================
# Tool Catalog
# ==============================
"""
Name-indexed tool table.

Design:
- Built once per execution call from the configured tool list (no per-call linear scan)
- Exact-name resolution: the backend must request a tool by the name it was given
- Deferred classification: a tool's own `deferred` marker, or its name in the
  configured deferred-tool set (vendor built-ins such as web-search)
"""

from __future__ import annotations

from typing import Dict, Iterable, Iterator, List, Optional

from agentloop.contracts.tool_schema import Tool, ToolSpec


# Vendor built-ins executed by the backend itself.
DEFAULT_DEFERRED_TOOLS = (
    "tool-search-bm25",
    "tool-search-regex",
    "web-search",
    "web-fetch",
    "code-execution",
    "file-search",
    "mcp-server",
)


class ToolCatalog:
    def __init__(self, tools: Iterable[Tool] = (), *, deferred_names: Iterable[str] = DEFAULT_DEFERRED_TOOLS) -> None:
        self._tools: Dict[str, Tool] = {}
        self._deferred_names = frozenset(deferred_names)
        for tool in tools:
            # later entries replace earlier ones with the same name
            self._tools[tool.name] = tool

    def resolve(self, name: str) -> Optional[Tool]:
        return self._tools.get(name)

    def has(self, name: str) -> bool:
        return name in self._tools

    def is_deferred(self, tool: Tool) -> bool:
        return tool.deferred or tool.name in self._deferred_names

    def specs(self) -> List[ToolSpec]:
        return [t.spec() for t in self._tools.values()]

    def names(self) -> List[str]:
        return list(self._tools)

    def __len__(self) -> int:
        return len(self._tools)

    def __iter__(self) -> Iterator[Tool]:
        return iter(self._tools.values())
