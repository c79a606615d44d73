# ==============================
# Skill Registry
# ==============================
"""
Named, reusable agent capabilities.

Design:
- A Skill bundles a handler `(text, ctx) -> str` with instructions that can be folded
  into a system prompt.
- Registry is per engine (no global state); names are exact and unique.
- Not internally locked: callers synchronize mutation that races with an in-flight run.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional

from agentloop.contracts.errors import DuplicateRegistrationError, SkillNotFoundError
from agentloop.contracts.tool_schema import Tool, ToolExecutionOptions
from agentloop.orchestrator.run_context import RunContext

SkillHandler = Callable[[str, RunContext], str]


@dataclass(frozen=True)
class Skill:
    name: str
    handler: Optional[SkillHandler] = None
    description: str = ""
    instructions: str = ""
    metadata: Dict[str, Any] = field(default_factory=dict)


class SkillRegistry:
    def __init__(self) -> None:
        self._skills: Dict[str, Skill] = {}

    def register(self, skill: Optional[Skill]) -> None:
        if skill is None:
            raise ValueError("skill cannot be None")
        if not skill.name:
            raise ValueError("skill name cannot be empty")
        if skill.handler is None:
            raise ValueError(f"skill '{skill.name}' has no handler")
        if skill.name in self._skills:
            raise DuplicateRegistrationError(f"skill '{skill.name}' already registered")
        self._skills[skill.name] = skill

    def unregister(self, name: str) -> None:
        self._skills.pop(name, None)

    def get(self, name: str) -> Optional[Skill]:
        return self._skills.get(name)

    def has(self, name: str) -> bool:
        return name in self._skills

    def list(self) -> List[Skill]:
        return list(self._skills.values())

    def names(self) -> List[str]:
        return list(self._skills)

    def execute(self, name: str, text: str, *, ctx: Optional[RunContext] = None) -> str:
        skill = self._skills.get(name)
        if skill is None:
            raise SkillNotFoundError(f"skill '{name}' not found")
        if skill.handler is None:
            raise ValueError(f"skill '{name}' has no handler")
        return skill.handler(text, ctx or RunContext())

    def clear(self) -> None:
        self._skills.clear()

    def count(self) -> int:
        return len(self._skills)

    def __len__(self) -> int:
        return len(self._skills)

    def __contains__(self, name: object) -> bool:
        return name in self._skills

    # ------------------------------
    # Prompt / tool exposure
    # ------------------------------

    def instructions_prompt(self) -> str:
        """Markdown block listing every skill with its instructions ("" when empty)."""
        if not self._skills:
            return ""
        lines = ["## Available skills", ""]
        for skill in self._skills.values():
            lines.append(f"### {skill.name}")
            if skill.description:
                lines.append(skill.description)
            if skill.instructions:
                lines.append("")
                lines.append(skill.instructions.strip())
            lines.append("")
        return "\n".join(lines).rstrip() + "\n"

    def as_tool(self, name: str) -> Tool:
        """Local tool `{"input": str}` that runs the named skill. Resolved at call time."""
        skill = self._skills.get(name)
        if skill is None:
            raise SkillNotFoundError(f"skill '{name}' not found")

        def _handler(args: Dict[str, Any], options: ToolExecutionOptions) -> str:
            return self.execute(name, str(args.get("input", "")), ctx=options.run)

        return Tool(
            name=name,
            description=skill.description,
            parameters={
                "type": "object",
                "properties": {"input": {"type": "string", "description": "Input text for the skill."}},
                "required": ["input"],
            },
            handler=_handler,
        )
